"""Attachment scanning."""

from app.scanning.antivirus import (
    AntivirusScanner,
    ClamScanScanner,
    DisabledScanner,
    ScanVerdict,
    create_scanner,
)

__all__ = [
    "AntivirusScanner",
    "ClamScanScanner",
    "DisabledScanner",
    "ScanVerdict",
    "create_scanner",
]
