"""
IndexStore - Flat-file index of per-folder processing or review state.

File format, one record per line, tab-separated:

    F  <folder>  <source folder>  <output folder>
    R  <folder>  <record fields...>

Text fields are base64-encoded (see records.py). The whole file is parsed on
load and fully rewritten, in sorted order, after every mutation.
"""

import logging
import os
import threading
from typing import Dict, Iterable, List, Optional, Type

from .layout import folder_key, item_key, normalize_path
from .records import FolderRecord, ItemRecord, decode_text, encode_text


class IndexStore:
    """
    In-memory map of folder records backed by a flat text file.

    One store holds one record type: FileRecord for the batch index or
    ReviewRecord for the review index. Every read and mutation runs under a
    single lock; every mutation is followed by a full rewrite of the file.
    """

    FOLDER_TAG = 'F'
    ITEM_TAG = 'R'

    def __init__(
        self,
        path: str,
        record_type: Type[ItemRecord],
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize an empty store.

        Args:
            path: Location of the index file
            record_type: FileRecord or ReviewRecord
            logger: Optional logger instance
        """
        self.path = os.path.expanduser(path)
        self.record_type = record_type
        self.logger = logger or logging.getLogger(__name__)
        self._folders: Dict[str, FolderRecord] = {}
        self._lock = threading.RLock()

    @classmethod
    def open(
        cls,
        path: str,
        record_type: Type[ItemRecord],
        logger: Optional[logging.Logger] = None
    ) -> 'IndexStore':
        """Create a store and load it from disk."""
        store = cls(path, record_type, logger)
        store.load()
        return store

    @property
    def lock(self) -> threading.RLock:
        """The lock serializing all access to the store."""
        return self._lock

    def load(self) -> None:
        """Parse the index file, replacing the in-memory state."""
        with self._lock:
            self._folders.clear()
            if not os.path.exists(self.path):
                self.logger.debug(f"No index at {self.path}, starting empty")
                return

            skipped = 0
            with open(self.path, 'rb') as f:
                for raw_line in f:
                    try:
                        line = raw_line.decode('utf-8').rstrip('\r\n')
                    except UnicodeDecodeError:
                        skipped += 1
                        continue
                    if not line.strip():
                        continue
                    if not self._parse_line(line):
                        skipped += 1

            if skipped:
                self.logger.debug(f"Skipped {skipped} malformed line(s) in {self.path}")

    def _parse_line(self, line: str) -> bool:
        segments = line.split('\t')
        tag = segments[0]
        try:
            if tag == self.FOLDER_TAG and len(segments) >= 4:
                path = decode_text(segments[1])
                if not path.strip():
                    return False
                normalized = normalize_path(path)
                source = decode_text(segments[2])
                output = decode_text(segments[3])
                folder = self._folders.setdefault(
                    folder_key(normalized), FolderRecord(normalized, normalized, '')
                )
                folder.source_folder_path = normalize_path(source) if source.strip() else normalized
                folder.output_folder_path = normalize_path(output) if output.strip() else ''
                return True

            if tag == self.ITEM_TAG and len(segments) >= 2 + self.record_type.FIELD_COUNT:
                path = decode_text(segments[1])
                if not path.strip():
                    return False
                record = self.record_type.from_fields(segments[2:])
                folder = self._folders.get(folder_key(path))
                if folder is None:
                    normalized = normalize_path(path)
                    folder = FolderRecord(normalized, normalized, '')
                    self._folders[folder_key(normalized)] = folder
                folder.put(record)
                return True
        except ValueError:
            return False
        return False

    def save(self) -> None:
        """Rewrite the whole index file in deterministic order."""
        with self._lock:
            lines = []
            for key in sorted(self._folders):
                folder = self._folders[key]
                lines.append('\t'.join([
                    self.FOLDER_TAG,
                    encode_text(folder.path),
                    encode_text(folder.source_folder_path),
                    encode_text(folder.output_folder_path),
                ]))
                encoded_path = encode_text(folder.path)
                for record in folder.sorted_items():
                    lines.append('\t'.join([self.ITEM_TAG, encoded_path] + record.to_fields()))

            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)

            tmp_path = f"{self.path}.tmp"
            with open(tmp_path, 'w', encoding='utf-8', newline='\n') as f:
                for line in lines:
                    f.write(line + '\n')
            os.replace(tmp_path, self.path)

    def get_folder(self, path: str) -> Optional[FolderRecord]:
        with self._lock:
            return self._folders.get(folder_key(path))

    def get_or_create_folder(
        self,
        path: str,
        source_folder_path: str,
        output_folder_path: str
    ) -> FolderRecord:
        """
        Get the record for a folder, creating it if needed.

        The source and output paths are refreshed on every call so the record
        follows the current layout.
        """
        normalized = normalize_path(path)
        source = normalize_path(source_folder_path)
        output = normalize_path(output_folder_path)

        with self._lock:
            key = folder_key(normalized)
            folder = self._folders.get(key)
            if folder is None:
                folder = FolderRecord(normalized, source, output)
                self._folders[key] = folder
                self.save()
            elif folder.source_folder_path != source or folder.output_folder_path != output:
                folder.source_folder_path = source
                folder.output_folder_path = output
                self.save()
            return folder

    def get_item(self, folder_path: str, key: str) -> Optional[ItemRecord]:
        with self._lock:
            folder = self._folders.get(folder_key(folder_path))
            return folder.get(key) if folder is not None else None

    def upsert_item(self, folder_path: str, key: str, record: ItemRecord) -> None:
        """
        Insert or replace an item record in an existing folder.

        Raises:
            KeyError: If the folder has no record yet
            ValueError: If key does not name record.relative_path
        """
        if item_key(key) != item_key(record.relative_path):
            raise ValueError(f"Key {key!r} does not match record path {record.relative_path!r}")
        with self._lock:
            folder = self._folders.get(folder_key(folder_path))
            if folder is None:
                raise KeyError(f"Unknown folder: {folder_path}")
            folder.remove(key)
            folder.put(record)
            self.save()

    def remove_item(self, folder_path: str, key: str) -> bool:
        """Delete an item record. Returns True if one was removed."""
        with self._lock:
            folder = self._folders.get(folder_key(folder_path))
            if folder is None or not folder.remove(key):
                return False
            self.save()
            return True

    def prune(self, folder_path: str, keep_keys: Iterable[str]) -> int:
        """
        Remove item records whose key is not in keep_keys.

        Returns:
            Number of records removed
        """
        keep = {item_key(k) for k in keep_keys}
        with self._lock:
            folder = self._folders.get(folder_key(folder_path))
            if folder is None:
                return 0
            stale = [k for k in folder.items if k not in keep]
            for k in stale:
                del folder.items[k]
            if stale:
                self.save()
            return len(stale)

    def folders(self) -> List[FolderRecord]:
        """Snapshot of all folder records."""
        with self._lock:
            return [self._folders[k] for k in sorted(self._folders)]
