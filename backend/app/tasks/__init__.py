"""Celery task definitions for WB Desk.

This module provides the Celery application and the two scheduled jobs:
daily deadline reminders and the retention purge.
"""

from app.tasks.celery_app import celery_app

__all__ = ["celery_app"]
