"""
ChangeDetector - Classifies the images of a source folder as pending or done.
"""

import logging
import os
import time
from typing import Iterator, List, Optional

from .batch_item import BatchFileItem, BatchScanResult
from .config import WorkflowConfig
from .image_codec import infer_mime_type, is_supported
from .index_store import IndexStore
from .layout import from_posix, normalize_path, sibling_folder, to_posix
from .records import FileRecord


class ChangeDetector:
    """
    Scans a source folder and diffs it against the batch index.

    A file is done only if its (size, mtime) identity matches the stored
    record and every output recorded for it still exists. Records for files
    that were not discovered are pruned from the index.
    """

    def __init__(
        self,
        store: IndexStore,
        config: Optional[WorkflowConfig] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize change detector.

        Args:
            store: Batch index (FileRecord store)
            config: Workflow configuration (output folder suffixes)
            logger: Optional logger instance
        """
        self.store = store
        self.config = config or WorkflowConfig()
        self.logger = logger or logging.getLogger(__name__)

    def build_output_folder_path(self, source_folder_path: str) -> str:
        """Sibling folder receiving batch outputs for a source folder."""
        normalized = normalize_path(source_folder_path)
        output = sibling_folder(normalized, self.config.processed_suffix)
        if os.path.normcase(output) == os.path.normcase(normalized):
            output = sibling_folder(normalized, self.config.processed_fallback_suffix)
        return output

    def scan(self, source_folder_path: str) -> BatchScanResult:
        """
        Scan a source folder.

        Args:
            source_folder_path: Root of the images to process

        Returns:
            BatchScanResult with files ordered by relative path

        Raises:
            FileNotFoundError: If the folder does not exist
        """
        start_time = time.time()
        source = normalize_path(source_folder_path)
        if not os.path.isdir(source):
            raise FileNotFoundError(f"Folder does not exist: {source}")

        output = self.build_output_folder_path(source)
        result = BatchScanResult(source_folder_path=source, output_folder_path=output)

        with self.store.lock:
            folder = self.store.get_or_create_folder(source, source, output)

            for full_path in self._iter_supported_files(source):
                relative_path = to_posix(os.path.relpath(full_path, source))
                stat = os.stat(full_path)

                record = folder.get(relative_path)
                is_processed = (
                    isinstance(record, FileRecord)
                    and record.matches(stat.st_size, stat.st_mtime_ns)
                    and self.outputs_exist(output, record.output_relative_paths)
                )

                result.files.append(BatchFileItem(
                    name=relative_path,
                    relative_path=relative_path,
                    full_path=full_path,
                    mime_type=infer_mime_type(full_path),
                    size_bytes=stat.st_size,
                    modified_ns=stat.st_mtime_ns,
                    is_processed=is_processed,
                ))

            result.files.sort(key=lambda f: (f.relative_path.casefold(), f.relative_path))

            removed = self.store.prune(source, [f.relative_path for f in result.files])
            if removed:
                self.logger.info(f"Pruned {removed} index record(s) for files no longer in {source}")

        self.logger.info(
            f"Scan complete: {result.total_count} images, {result.pending_count} pending, "
            f"{result.processed_count} already processed ({time.time() - start_time:.1f}s)"
        )
        return result

    def mark_processed(
        self,
        scan: BatchScanResult,
        item: BatchFileItem,
        output_relative_paths: List[str]
    ) -> FileRecord:
        """Record a successfully processed file in the index."""
        record = FileRecord(
            relative_path=item.relative_path,
            size_bytes=item.size_bytes,
            modified_ns=item.modified_ns,
            output_relative_paths=list(output_relative_paths),
            processed_at=int(time.time()),
        )
        with self.store.lock:
            self.store.get_or_create_folder(
                scan.source_folder_path, scan.source_folder_path, scan.output_folder_path
            )
            self.store.upsert_item(scan.source_folder_path, item.relative_path, record)
        item.is_processed = True
        return record

    @staticmethod
    def outputs_exist(output_folder_path: str, output_relative_paths: List[str]) -> bool:
        """True if there is at least one output and all of them exist."""
        if not output_relative_paths:
            return False
        return all(
            os.path.isfile(from_posix(output_folder_path, rel)) for rel in output_relative_paths
        )

    @staticmethod
    def _iter_supported_files(root: str) -> Iterator[str]:
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames.sort()
            for filename in sorted(filenames):
                if is_supported(filename):
                    yield os.path.join(dirpath, filename)
