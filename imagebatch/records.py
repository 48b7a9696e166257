"""
Persisted records: folders, processed batch files and committed reviews.

Each item record knows how to turn itself into the tab-separated fields of an
index line and back. Free text is base64-encoded UTF-8 so paths and notes may
contain tabs, newlines and non-ASCII characters.
"""

import base64
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Union

from .layout import item_key, to_posix


OUTPUT_PATHS_SEPARATOR = '\u001f'


def encode_text(value: Optional[str]) -> str:
    """Reversible, tab/newline-free encoding of free text."""
    return base64.b64encode((value or '').encode('utf-8')).decode('ascii')


def decode_text(value: str) -> str:
    """Inverse of encode_text. Raises ValueError on corrupt input."""
    return base64.b64decode(value.encode('ascii'), validate=True).decode('utf-8')


@dataclass
class FileRecord:
    """
    A source file that has been processed in batch mode.

    Attributes:
        relative_path: Path relative to the source folder (forward slashes)
        size_bytes: Source size when it was processed
        modified_ns: Source modification time (ns) when it was processed
        output_relative_paths: Generated files, relative to the output folder
        processed_at: Epoch seconds of processing
    """
    relative_path: str
    size_bytes: int
    modified_ns: int
    output_relative_paths: List[str] = field(default_factory=list)
    processed_at: int = 0

    FIELD_COUNT = 5

    def matches(self, size_bytes: int, modified_ns: int) -> bool:
        """True if the identity tuple is unchanged."""
        return self.size_bytes == size_bytes and self.modified_ns == modified_ns

    def to_fields(self) -> List[str]:
        outputs = OUTPUT_PATHS_SEPARATOR.join(self.output_relative_paths)
        return [
            encode_text(self.relative_path),
            str(self.size_bytes),
            str(self.modified_ns),
            encode_text(outputs),
            str(self.processed_at),
        ]

    @classmethod
    def from_fields(cls, fields: List[str]) -> 'FileRecord':
        relative_path = decode_text(fields[0])
        if not relative_path.strip():
            raise ValueError("empty relative path")
        outputs_raw = decode_text(fields[3])
        try:
            processed_at = int(fields[4])
        except ValueError:
            processed_at = 0
        return cls(
            relative_path=to_posix(relative_path),
            size_bytes=int(fields[1]),
            modified_ns=int(fields[2]),
            output_relative_paths=[
                p.strip() for p in outputs_raw.split(OUTPUT_PATHS_SEPARATOR) if p.strip()
            ],
            processed_at=processed_at,
        )


@dataclass
class ReviewRecord:
    """
    A committed review selection.

    Attributes:
        relative_path: Relative source path of the reviewed item
        selected_index: 1-based index of the chosen variation
        notes: Free-text reviewer notes
        transparency: Reviewer flag carried into the output metadata
        selected_output_relative_path: Copy location, relative to the selection folder
        reviewed_at: Epoch seconds of the commit
    """
    relative_path: str
    selected_index: int
    notes: str = ''
    transparency: bool = False
    selected_output_relative_path: str = ''
    reviewed_at: int = 0

    FIELD_COUNT = 6

    def to_fields(self) -> List[str]:
        return [
            encode_text(self.relative_path),
            str(self.selected_index),
            '1' if self.transparency else '0',
            str(self.reviewed_at),
            encode_text(self.notes),
            encode_text(self.selected_output_relative_path),
        ]

    @classmethod
    def from_fields(cls, fields: List[str]) -> 'ReviewRecord':
        relative_path = decode_text(fields[0])
        if not relative_path.strip():
            raise ValueError("empty relative path")
        try:
            reviewed_at = int(fields[3])
        except ValueError:
            reviewed_at = 0
        return cls(
            relative_path=to_posix(relative_path),
            selected_index=int(fields[1]),
            transparency=fields[2] == '1',
            reviewed_at=reviewed_at,
            notes=decode_text(fields[4]),
            selected_output_relative_path=decode_text(fields[5]),
        )


ItemRecord = Union[FileRecord, ReviewRecord]


@dataclass
class FolderRecord:
    """
    Per-folder state: the folder triple plus its item records.

    Attributes:
        path: Absolute path of the folder the record is keyed by
        source_folder_path: Folder the originals live in
        output_folder_path: Folder outputs or selections are written to
        items: Item records keyed by case-folded relative path
    """
    path: str
    source_folder_path: str
    output_folder_path: str
    items: Dict[str, ItemRecord] = field(default_factory=dict)

    def get(self, relative_path: str) -> Optional[ItemRecord]:
        return self.items.get(item_key(relative_path))

    def put(self, record: ItemRecord) -> None:
        self.items[item_key(record.relative_path)] = record

    def remove(self, relative_path: str) -> bool:
        return self.items.pop(item_key(relative_path), None) is not None

    def sorted_items(self) -> Iterator[ItemRecord]:
        for key in sorted(self.items):
            yield self.items[key]
