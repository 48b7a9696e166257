"""
BatchStats - Statistics for a batch run.
"""

import time
from dataclasses import dataclass, field
from typing import List

from .batch_item import BatchGenerationResult


@dataclass
class BatchStats:
    """
    Statistics for a batch run.

    Attributes:
        total_to_process: Pending files at the start of the run
        current: 1-based position of the file being processed
        processed: Files that produced at least one variation
        errors: Files that failed
        cooldowns: Rate-limit cooldowns applied
        images_generated: Variation files written
        bytes_generated: Total bytes of variation files written
        start_time: Start timestamp
        error_details: List of error messages
        failed_items: Relative paths of failed files
        results: Generated images per successful file
    """
    total_to_process: int = 0
    current: int = 0
    processed: int = 0
    errors: int = 0
    cooldowns: int = 0
    images_generated: int = 0
    bytes_generated: int = 0
    stopped: bool = False
    start_time: float = field(default_factory=time.time)
    error_details: List[str] = field(default_factory=list)
    failed_items: List[str] = field(default_factory=list)
    results: List[BatchGenerationResult] = field(default_factory=list)

    @property
    def elapsed_seconds(self) -> float:
        """Elapsed time in seconds."""
        return time.time() - self.start_time

    @property
    def rate_per_minute(self) -> float:
        """Completed files per minute."""
        if self.elapsed_seconds > 0:
            return self.completed_count / self.elapsed_seconds * 60
        return 0.0

    @property
    def completed_count(self) -> int:
        """Total completed (processed + errors)."""
        return self.processed + self.errors

    @property
    def remaining_count(self) -> int:
        """Remaining to process."""
        return self.total_to_process - self.completed_count

    @property
    def estimated_remaining_seconds(self) -> float:
        """Estimated time remaining in seconds."""
        if self.completed_count > 0:
            return self.remaining_count * self.elapsed_seconds / self.completed_count
        return 0.0

    def record_success(self, result: BatchGenerationResult) -> None:
        self.processed += 1
        self.images_generated += len(result.images)
        self.bytes_generated += sum(image.size for image in result.images)
        self.results.append(result)

    def record_failure(self, relative_path: str, message: str) -> None:
        self.errors += 1
        self.failed_items.append(relative_path)
        self.error_details.append(f"{relative_path}: {message}")
