"""
BatchProgress - Tracks and displays batch run progress.
"""

import logging
from typing import Optional

from .batch_item import BatchFileItem
from .batch_stats import BatchStats


class BatchProgress:
    """
    Receives batch run events and prints or logs them.

    With show_files each file is printed as it is handled; otherwise a
    summary line is logged every `log_interval` files.
    """

    def __init__(
        self,
        show_files: bool = False,
        log_interval: int = 10,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize progress tracker.

        Args:
            show_files: If True, print each file as it's processed
            log_interval: Log summary progress every N files (when not show_files)
            logger: Optional logger instance
        """
        self.show_files = show_files
        self.log_interval = log_interval
        self.logger = logger or logging.getLogger(__name__)
        self.last_logged = 0

    def on_item_started(self, item: BatchFileItem, index: int, total: int) -> None:
        """Called before a file is sent for generation."""
        if self.show_files:
            print(f"  [{index}/{total}] {item.relative_path} ...")

    def on_file_processed(
        self,
        item: BatchFileItem,
        success: bool,
        image_count: int = 0,
        error: Optional[str] = None
    ) -> None:
        """
        Called when a file is processed.

        Args:
            item: The source file
            success: Whether generation succeeded
            image_count: Variations written (if success)
            error: Error message (if failed)
        """
        if self.show_files:
            if success:
                print(f"  [OK] {item.relative_path} -> {image_count} variation(s)")
            else:
                print(f"  [ERROR] {item.relative_path} -> {error or 'failed'}")

    def on_cooldown(self, seconds: float, message: str) -> None:
        """Called when a rate-limit cooldown starts."""
        self.logger.warning(f"Rate limit detected, cooling down for {seconds:.0f}s: {message}")

    def on_progress_update(self, stats: BatchStats) -> None:
        """
        Called after every file to report overall progress.

        Args:
            stats: Current batch statistics
        """
        total_done = stats.completed_count

        if not self.show_files and total_done - self.last_logged >= self.log_interval:
            self.last_logged = total_done
            eta_minutes = stats.estimated_remaining_seconds / 60
            self.logger.info(
                f"Progress: {stats.current}/{stats.total_to_process}, "
                f"{stats.processed} processed, {stats.errors} errors "
                f"(~{eta_minutes:.0f}m remaining, {stats.remaining_count} left)"
            )

    def on_dry_run(self, item: BatchFileItem) -> None:
        """Called in dry-run mode."""
        if self.show_files:
            print(f"  [DRY RUN] {item.relative_path} -> would generate variations")

    def __call__(self, stats: BatchStats) -> None:
        """Allow use as callback for stats updates."""
        self.on_progress_update(stats)
