"""
Reporter - Human-readable summaries of scans, batch runs and review sessions.
"""

import logging
import sys
from typing import Optional, TextIO

from .batch_item import BatchScanResult
from .batch_stats import BatchStats
from .review_item import ReviewScanResult, ReviewStatus


class Reporter:
    """
    Prints summaries to an output stream.
    """

    def __init__(
        self,
        output: Optional[TextIO] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize reporter.

        Args:
            output: Output stream (default: stdout)
            logger: Optional logger instance
        """
        self.output = output or sys.stdout
        self.logger = logger or logging.getLogger(__name__)

    def _print(self, text: str = "") -> None:
        """Print to output stream."""
        print(text, file=self.output)

    def _format_bytes(self, bytes_val: float) -> str:
        """Format bytes as human-readable string."""
        for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
            if bytes_val < 1024:
                return f"{bytes_val:.1f} {unit}"
            bytes_val /= 1024
        return f"{bytes_val:.1f} PB"

    def _format_duration(self, seconds: float) -> str:
        """Format duration as human-readable string."""
        if seconds < 60:
            return f"{seconds:.1f} seconds"
        elif seconds < 3600:
            return f"{seconds / 60:.1f} minutes"
        else:
            return f"{seconds / 3600:.1f} hours"

    def report_batch_scan(self, scan: BatchScanResult, list_pending: bool = False) -> None:
        """Summarize a batch source folder."""
        self._print("=" * 60)
        self._print("BATCH FOLDER")
        self._print("=" * 60)
        self._print(f"  Source:      {scan.source_folder_path}")
        self._print(f"  Output:      {scan.output_folder_path}")
        self._print(f"  Images:      {scan.total_count}")
        self._print(f"  Processed:   {scan.processed_count}")
        self._print(f"  Pending:     {scan.pending_count}")

        if list_pending and scan.pending_count:
            self._print()
            self._print("Pending files:")
            for item in scan.pending_files:
                self._print(f"  {item.relative_path} ({item.short_type}, {self._format_bytes(item.size_bytes)})")
        self._print()

    def report_batch_run(self, stats: BatchStats) -> None:
        """Summarize a finished batch run."""
        self._print("=" * 60)
        self._print("BATCH RUN SUMMARY")
        self._print("=" * 60)
        self._print(f"  Files:       {stats.total_to_process}")
        self._print(f"  Processed:   {stats.processed}")
        self._print(f"  Errors:      {stats.errors}")
        self._print(f"  Images:      {stats.images_generated} ({self._format_bytes(stats.bytes_generated)})")
        if stats.cooldowns:
            self._print(f"  Cooldowns:   {stats.cooldowns}")
        if stats.stopped:
            self._print("  Stopped before completion")
        self._print(f"  Duration:    {self._format_duration(stats.elapsed_seconds)}")

        if stats.error_details:
            self._print()
            self._print("Errors:")
            for detail in stats.error_details:
                self._print(f"  {detail}")
        self._print()

    def report_review(self, scan: ReviewScanResult, status: ReviewStatus) -> None:
        """Summarize a review session."""
        self._print("=" * 60)
        self._print("REVIEW FOLDER")
        self._print("=" * 60)
        self._print(f"  Processed:   {scan.processed_folder_path}")
        self._print(f"  Source:      {scan.source_folder_path}")
        self._print(f"  Selections:  {scan.selection_folder_path}")
        self._print(f"  Items:       {status.total}")
        self._print(f"  Reviewed:    {status.reviewed}")
        self._print(f"  Pending:     {status.pending}")
        if status.current_relative_path:
            self._print(f"  Next:        {status.current_relative_path}")
        elif status.all_reviewed:
            self._print("  All items reviewed")
        self._print()

        for item in scan.items:
            mark = f"[{item.selected_index}]" if item.is_reviewed else "[ ]"
            self._print(f"  {mark} {item.relative_source_path} ({item.variation_count} variations)")
        self._print()
