"""
ZIP export of the variations generated by a batch run.
"""

import io
import logging
import zipfile
from typing import List, Optional

from .batch_item import BatchGenerationResult
from .image_codec import convert_for_output_format, mime_type_to_extension
from .layout import INVALID_NAME_CHARS, safe_file_name, to_posix, variation_file_name


def _safe_directory(relative_path: str) -> str:
    directory = to_posix(relative_path).rpartition('/')[0]
    segments = []
    for segment in directory.split('/'):
        segment = segment.strip()
        if not segment:
            continue
        segments.append(INVALID_NAME_CHARS.sub('_', segment).strip() or '_')
    return '/'.join(segments)


def entry_base_path(result: BatchGenerationResult) -> str:
    """`<rel dir>/<file name>` for a result's archive entries."""
    directory = _safe_directory(result.original_relative_path)
    base_name = safe_file_name(to_posix(result.original_name).rpartition('/')[2])
    return f"{directory}/{base_name}" if directory else base_name


def build_batch_zip(
    results: List[BatchGenerationResult],
    output_format: str = 'original',
    logger: Optional[logging.Logger] = None
) -> bytes:
    """
    Build a ZIP archive of generated variations.

    Entries are laid out as `<rel dir>/<file name>/variation_<n>.<ext>`.

    Returns:
        The archive as bytes
    """
    logger = logger or logging.getLogger(__name__)
    buffer = io.BytesIO()
    entry_count = 0

    with zipfile.ZipFile(buffer, 'w', compression=zipfile.ZIP_DEFLATED) as archive:
        for result in results:
            base_path = entry_base_path(result)
            for index, image in enumerate(result.images, start=1):
                data, mime_type = convert_for_output_format(image.data, image.mime_type, output_format)
                entry = f"{base_path}/{variation_file_name(index, mime_type_to_extension(mime_type))}"
                archive.writestr(entry, data)
                entry_count += 1

    logger.info(f"Created ZIP archive with {entry_count} image(s) from {len(results)} file(s)")
    return buffer.getvalue()


def write_batch_zip(
    path: str,
    results: List[BatchGenerationResult],
    output_format: str = 'original',
    logger: Optional[logging.Logger] = None
) -> str:
    """Write the batch archive to a file and return its path."""
    data = build_batch_zip(results, output_format, logger)
    with open(path, 'wb') as f:
        f.write(data)
    return path
