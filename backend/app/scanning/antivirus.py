"""Antivirus scanning for uploaded attachments.

PATTERN: Strategy Pattern
The attachment service only sees AntivirusScanner.scan(path) -> ScanVerdict.
Any scanner failure degrades to PENDING; nothing is ever assumed clean.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime

from app.exceptions import DependencyError
from app.models.attachment import AvStatus

logger = logging.getLogger(__name__)


@dataclass
class ScanVerdict:
    """Outcome of a single scan.

    PATTERN: Data Transfer Object (DTO)
    """

    status: AvStatus
    target: str
    exit_code: int | None = None
    duration_ms: float = 0.0
    detail: str | None = None
    scan_time: datetime = field(default_factory=lambda: datetime.now(UTC))


class AntivirusScanner(ABC):
    """Pluggable scanner interface."""

    mode: str = "base"

    @abstractmethod
    async def scan(self, path: str) -> ScanVerdict:
        """Scan the file at path. Must not raise."""
        ...


class DisabledScanner(AntivirusScanner):
    """Used when no scanner is configured; every file stays pending."""

    mode = "disabled"

    async def scan(self, path: str) -> ScanVerdict:
        return ScanVerdict(status=AvStatus.PENDING, target=path, detail="scanner disabled")


class ClamScanScanner(AntivirusScanner):
    """Runs the clamscan CLI once per file with a hard timeout.

    Exit code 0 means no threat, 1 means a threat was found, anything else
    is a scanner error.
    """

    mode = "local"

    def __init__(self, binary: str = "clamscan", timeout_seconds: float = 60.0):
        self.binary = binary
        self.timeout_seconds = timeout_seconds

    async def _run(self, path: str) -> int:
        try:
            proc = await asyncio.create_subprocess_exec(
                self.binary,
                "-i",
                path,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            raise DependencyError("clamscan", f"Could not start {self.binary}: {e}") from e

        try:
            return await asyncio.wait_for(proc.wait(), timeout=self.timeout_seconds)
        except TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise DependencyError(
                "clamscan", f"Scan exceeded {self.timeout_seconds}s timeout"
            ) from e

    async def scan(self, path: str) -> ScanVerdict:
        start = time.perf_counter()
        try:
            exit_code = await self._run(path)
        except DependencyError as e:
            logger.warning("Antivirus scan left pending for %s: %s", path, e.message)
            return ScanVerdict(
                status=AvStatus.PENDING,
                target=path,
                duration_ms=(time.perf_counter() - start) * 1000,
                detail=e.message,
            )

        duration_ms = (time.perf_counter() - start) * 1000
        if exit_code == 0:
            status = AvStatus.CLEAN
        elif exit_code == 1:
            status = AvStatus.QUARANTINED
            logger.warning("Antivirus flagged %s", path)
        else:
            status = AvStatus.PENDING
            logger.warning("clamscan exited with %s for %s", exit_code, path)

        return ScanVerdict(status=status, target=path, exit_code=exit_code, duration_ms=duration_ms)


def create_scanner(settings: object) -> AntivirusScanner:
    """Select the scanner implementation from settings."""
    mode = getattr(settings, "wb_av_mode", "disabled")
    if mode == "local":
        return ClamScanScanner(
            binary=getattr(settings, "clamscan_bin", "clamscan"),
            timeout_seconds=getattr(settings, "wb_av_timeout_seconds", 60.0),
        )
    if mode != "disabled":
        logger.warning("Unknown WB_AV_MODE %r, antivirus disabled", mode)
    return DisabledScanner()
