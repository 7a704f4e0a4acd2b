"""Reporting of per-entity outcomes and progress during an export."""

import logging

logger = logging.getLogger(__name__)


class ImportReporter:
    """Collects failures, skips, written attachments and progress.

    Every event is logged as it happens and kept so the caller can print a
    summary at the end.
    """

    def __init__(self):
        self.failed: list[tuple[str, str | None]] = []
        self.skipped: list[tuple[str, str | None]] = []
        self.attachments: list[str] = []
        self.progress: str | None = None

    def report_failed(self, name: str, reason: str | None = None) -> None:
        self.failed.append((name, reason))
        logger.warning("Import failed: %s %s", name, reason or "")

    def report_skipped(self, name: str, reason: str | None = None) -> None:
        self.skipped.append((name, reason))
        logger.info("Import skipped: %s (%s)", name, reason or "no reason given")

    def report_attachment_success(self, path: str) -> None:
        self.attachments.append(path)
        logger.info("Attachment imported: %s", path)

    def report_progress(self, current: int, total: int) -> None:
        if total <= 0:
            return
        self.progress = f"{100 * current / total:.1f}%"
        logger.info("Current progress: %s", self.progress)

    def summary(self) -> str:
        return (
            f"{len(self.attachments)} attachments, "
            f"{len(self.skipped)} skipped, {len(self.failed)} failed"
        )
