"""Adapters for external resources used by WB Desk."""
