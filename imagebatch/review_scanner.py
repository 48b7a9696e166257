"""
ReviewScanner - Discovers variation sets in a processed folder and keeps the
review index in step with them.
"""

import logging
import os
import shutil
import time
from typing import Dict, List, Optional

from .config import WorkflowConfig
from .image_codec import SUPPORTED_EXTENSIONS
from .index_store import IndexStore
from .layout import (
    from_posix,
    is_variation_file,
    normalize_path,
    sort_variation_paths,
    strip_suffix,
    to_posix,
)
from .records import ReviewRecord
from .review_item import ReviewItem, ReviewScanResult


class ReviewScanner:
    """
    Scans processed folders and records committed selections.

    Each folder under the processed root that holds `variation_*` images is
    one review item; its path relative to the root is the item's relative
    source path.
    """

    def __init__(
        self,
        store: IndexStore,
        config: Optional[WorkflowConfig] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize review scanner.

        Args:
            store: Review index (ReviewRecord store)
            config: Workflow configuration (folder suffixes)
            logger: Optional logger instance
        """
        self.store = store
        self.config = config or WorkflowConfig()
        self.logger = logger or logging.getLogger(__name__)

    @property
    def _processed_suffixes(self) -> List[str]:
        # longest first so '_processed_output' wins over '_processed'
        return sorted(
            [self.config.processed_suffix, self.config.processed_fallback_suffix],
            key=len,
            reverse=True,
        )

    def resolve_source_folder_path(self, processed_folder_path: str) -> str:
        """Source folder a processed folder was generated from."""
        normalized = normalize_path(processed_folder_path)
        base = strip_suffix(os.path.basename(normalized), self._processed_suffixes)
        if base is None:
            return normalized
        return normalize_path(os.path.join(os.path.dirname(normalized), base))

    def build_selection_folder_path(self, processed_folder_path: str) -> str:
        """Folder receiving committed selections for a processed folder."""
        normalized = normalize_path(processed_folder_path)
        name = os.path.basename(normalized)
        base = strip_suffix(name, self._processed_suffixes)
        if base is None:
            base = name
        return os.path.join(os.path.dirname(normalized), f"{base}{self.config.selected_suffix}")

    @staticmethod
    def resolve_original_file_path(source_folder_path: str, relative_source_path: str) -> str:
        """
        Locate the original image of a review item.

        Falls back to the same stem with any supported extension; returns the
        exact candidate path when nothing exists.
        """
        candidate = from_posix(source_folder_path, relative_source_path)
        if os.path.isfile(candidate):
            return candidate

        directory = os.path.dirname(candidate)
        stem = os.path.splitext(os.path.basename(candidate))[0]
        if not stem:
            return candidate

        for extension in SUPPORTED_EXTENSIONS:
            alternative = os.path.join(directory, f"{stem}{extension}")
            if os.path.isfile(alternative):
                return alternative
        return candidate

    @staticmethod
    def selection_output_exists(selection_folder_path: str, relative_output_path: str) -> bool:
        if not relative_output_path or not relative_output_path.strip():
            return False
        return os.path.isfile(from_posix(selection_folder_path, relative_output_path))

    def scan(self, processed_folder_path: str) -> ReviewScanResult:
        """
        Scan a processed folder for variation sets.

        Review records whose variation set no longer exists are pruned.

        Raises:
            FileNotFoundError: If the folder does not exist
        """
        processed = normalize_path(processed_folder_path)
        if not os.path.isdir(processed):
            raise FileNotFoundError(f"Processed folder does not exist: {processed}")

        source = self.resolve_source_folder_path(processed)
        selection = self.build_selection_folder_path(processed)
        result = ReviewScanResult(
            processed_folder_path=processed,
            source_folder_path=source,
            selection_folder_path=selection,
        )

        groups = self._group_variations(processed)

        with self.store.lock:
            folder = self.store.get_or_create_folder(processed, source, selection)

            for relative_path in sorted(groups, key=lambda p: (p.casefold(), p)):
                variation_paths = sort_variation_paths(groups[relative_path])
                record = folder.get(relative_path)
                is_reviewed = (
                    isinstance(record, ReviewRecord)
                    and 0 < record.selected_index <= len(variation_paths)
                    and self.selection_output_exists(selection, record.selected_output_relative_path)
                )

                item = ReviewItem(
                    relative_source_path=relative_path,
                    original_file_path=self.resolve_original_file_path(source, relative_path),
                    variation_folder_path=os.path.dirname(variation_paths[0]),
                    variation_file_paths=variation_paths,
                )
                if is_reviewed:
                    item.is_reviewed = True
                    item.selected_index = record.selected_index
                    item.notes = record.notes
                    item.transparency = record.transparency
                    item.selected_output_relative_path = record.selected_output_relative_path
                result.items.append(item)

            removed = self.store.prune(processed, list(groups))
            if removed:
                self.logger.info(f"Pruned {removed} review record(s) with no variation set")

        self.logger.info(
            f"Loaded {result.total_count} review items. "
            f"Pending: {result.pending_count}, reviewed: {result.reviewed_count}."
        )
        return result

    def _group_variations(self, processed_folder_path: str) -> Dict[str, List[str]]:
        groups: Dict[str, List[str]] = {}
        spelling: Dict[str, str] = {}

        for dirpath, dirnames, filenames in os.walk(processed_folder_path):
            dirnames.sort()
            if os.path.normcase(dirpath) == os.path.normcase(processed_folder_path):
                continue
            for filename in sorted(filenames):
                if not is_variation_file(filename):
                    continue
                relative_path = to_posix(os.path.relpath(dirpath, processed_folder_path))
                key = spelling.setdefault(relative_path.casefold(), relative_path)
                groups.setdefault(key, []).append(os.path.join(dirpath, filename))

        return groups

    @staticmethod
    def build_selection_relative_path(relative_source_path: str, extension: str) -> str:
        """`<rel dir>/<source stem><extension>` inside the selection folder."""
        directory, _, file_name = to_posix(relative_source_path).rpartition('/')
        stem = os.path.splitext(file_name)[0] or 'selection'
        extension = extension or '.png'
        if not extension.startswith('.'):
            extension = f".{extension}"
        name = f"{stem}{extension}"
        return f"{directory}/{name}" if directory else name

    def copy_selection(
        self,
        selection_folder_path: str,
        item: ReviewItem,
        selected_index: int
    ) -> str:
        """
        Copy the chosen variation into the selection folder.

        Returns:
            Path of the copy relative to the selection folder

        Raises:
            ValueError: If selected_index is outside 1..variation_count
        """
        if selected_index < 1 or selected_index > item.variation_count:
            raise ValueError(
                f"Selected variation {selected_index} is not available "
                f"(1..{item.variation_count})"
            )

        source_path = item.variation_file_paths[selected_index - 1]
        relative_output = self.build_selection_relative_path(
            item.relative_source_path, os.path.splitext(source_path)[1]
        )
        destination = from_posix(selection_folder_path, relative_output)
        os.makedirs(os.path.dirname(destination), exist_ok=True)
        shutil.copyfile(source_path, destination)
        return relative_output

    def save_review_record(
        self,
        processed_folder_path: str,
        item: ReviewItem,
        selected_index: int,
        notes: str,
        transparency: bool,
        selected_output_relative_path: str
    ) -> ReviewRecord:
        record = ReviewRecord(
            relative_path=item.relative_source_path,
            selected_index=selected_index,
            notes=notes or '',
            transparency=transparency,
            selected_output_relative_path=selected_output_relative_path or '',
            reviewed_at=int(time.time()),
        )
        with self.store.lock:
            self.store.get_or_create_folder(
                processed_folder_path,
                self.resolve_source_folder_path(processed_folder_path),
                self.build_selection_folder_path(processed_folder_path),
            )
            self.store.upsert_item(processed_folder_path, item.relative_source_path, record)
        return record

    def clear_review_record(self, processed_folder_path: str, relative_source_path: str) -> bool:
        """Delete an item's review record. Returns True if one existed."""
        return self.store.remove_item(processed_folder_path, relative_source_path)
