"""
Runtime models for batch mode: scanned files, scan results and generated
images.
"""

from dataclasses import dataclass, field
from typing import List


@dataclass
class GeneratedImage:
    """One generated variation: encoded bytes plus mime type."""
    data: bytes
    mime_type: str = 'image/png'

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class BatchFileItem:
    """
    A supported image discovered under a batch source folder.

    Attributes:
        name: Display name (the relative path)
        relative_path: Path relative to the source folder (forward slashes)
        full_path: Absolute path of the file
        mime_type: Mime type inferred from the extension
        size_bytes: File size at scan time
        modified_ns: Modification time (ns) at scan time
        is_processed: True if up-to-date outputs exist
    """
    name: str
    relative_path: str
    full_path: str
    mime_type: str
    size_bytes: int
    modified_ns: int
    is_processed: bool = False

    @property
    def short_type(self) -> str:
        return self.mime_type.split('/')[-1] or 'img'


@dataclass
class BatchScanResult:
    """Outcome of scanning a batch source folder."""
    source_folder_path: str
    output_folder_path: str
    files: List[BatchFileItem] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        return len(self.files)

    @property
    def pending_count(self) -> int:
        return sum(1 for f in self.files if not f.is_processed)

    @property
    def processed_count(self) -> int:
        return self.total_count - self.pending_count

    @property
    def pending_files(self) -> List[BatchFileItem]:
        return [f for f in self.files if not f.is_processed]


@dataclass
class BatchGenerationResult:
    """Generated images for one successfully processed batch file."""
    original_name: str
    original_relative_path: str
    images: List[GeneratedImage] = field(default_factory=list)
    output_relative_paths: List[str] = field(default_factory=list)
