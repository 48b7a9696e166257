"""
Runtime models for review mode. Nothing here is persisted; items are rebuilt
from the review index and the filesystem on every scan.
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class ReviewItem:
    """
    A set of generated variations awaiting (or having) a committed selection.

    Attributes:
        relative_source_path: Source path relative to the source folder
        original_file_path: Absolute path of the original image
        variation_folder_path: Folder holding the variation files
        variation_file_paths: Variation files in display order
        is_reviewed: True once a valid selection is committed
        selected_index: 1-based chosen variation, 0 when pending
        notes: Reviewer notes
        transparency: Reviewer flag
        selected_output_relative_path: Selection copy, relative to the selection folder
    """
    relative_source_path: str
    original_file_path: str
    variation_folder_path: str
    variation_file_paths: List[str] = field(default_factory=list)
    is_reviewed: bool = False
    selected_index: int = 0
    notes: str = ''
    transparency: bool = False
    selected_output_relative_path: str = ''

    @property
    def variation_count(self) -> int:
        return len(self.variation_file_paths)

    def clear_selection(self) -> None:
        """Return the item to the pending state."""
        self.is_reviewed = False
        self.selected_index = 0
        self.notes = ''
        self.transparency = False
        self.selected_output_relative_path = ''


@dataclass
class ReviewScanResult:
    """Outcome of scanning a processed folder."""
    processed_folder_path: str
    source_folder_path: str
    selection_folder_path: str
    items: List[ReviewItem] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        return len(self.items)

    @property
    def reviewed_count(self) -> int:
        return sum(1 for item in self.items if item.is_reviewed)

    @property
    def pending_count(self) -> int:
        return self.total_count - self.reviewed_count


@dataclass
class RedoRequest:
    """A queued regeneration of one review item."""
    item: ReviewItem
    prompt: str
    image_size: str
    processed_folder_path: str = ''

    @property
    def key(self) -> str:
        return self.item.relative_source_path.casefold()


@dataclass(frozen=True)
class ReviewStatus:
    """Snapshot of the review session, computed on demand."""
    total: int
    reviewed: int
    pending: int
    current_index: Optional[int]
    current_relative_path: Optional[str]
    redo_queue_length: int
    redo_active: bool

    @property
    def all_reviewed(self) -> bool:
        return self.total > 0 and self.pending == 0
