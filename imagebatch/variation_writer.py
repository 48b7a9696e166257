"""
Writes generated variations to disk for batch runs and redo jobs.
"""

import logging
import os
from typing import List, Optional

from .batch_item import BatchFileItem, GeneratedImage
from .image_codec import convert_for_output_format, mime_type_to_extension
from .layout import (
    from_posix,
    is_variation_file,
    safe_file_name,
    sort_variation_paths,
    to_posix,
    variation_file_name,
)


def variation_folder_relative_path(item_relative_path: str) -> str:
    """`<rel dir>/<file name>` for a source file's relative path."""
    posix_path = to_posix(item_relative_path)
    directory, _, file_name = posix_path.rpartition('/')
    folder_name = safe_file_name(file_name)
    return f"{directory}/{folder_name}" if directory else folder_name


def save_batch_outputs(
    output_folder_path: str,
    item: BatchFileItem,
    images: List[GeneratedImage],
    output_format: str = 'original',
    logger: Optional[logging.Logger] = None
) -> List[str]:
    """
    Write the variations of one batch item.

    Files land in `<output>/<rel dir>/<file name>/variation_<n>.<ext>`,
    numbered from 1 in the order given.

    Returns:
        Output paths relative to output_folder_path (forward slashes)
    """
    logger = logger or logging.getLogger(__name__)
    folder_relative = variation_folder_relative_path(item.relative_path)
    folder = from_posix(output_folder_path, folder_relative)
    os.makedirs(folder, exist_ok=True)

    relative_paths = []
    for index, image in enumerate(images, start=1):
        data, mime_type = convert_for_output_format(image.data, image.mime_type, output_format)
        file_name = variation_file_name(index, mime_type_to_extension(mime_type))
        with open(os.path.join(folder, file_name), 'wb') as f:
            f.write(data)
        relative_paths.append(f"{folder_relative}/{file_name}")

    logger.debug(f"Wrote {len(relative_paths)} variation(s) to {folder}")
    return relative_paths


def overwrite_variations(
    variation_folder_path: str,
    images: List[GeneratedImage],
    logger: Optional[logging.Logger] = None
) -> List[str]:
    """
    Replace every variation file in a folder with new images.

    Stale `variation_*` files are deleted first, whatever their extension.

    Returns:
        Absolute paths of the new files in display order
    """
    logger = logger or logging.getLogger(__name__)
    os.makedirs(variation_folder_path, exist_ok=True)

    for name in os.listdir(variation_folder_path):
        path = os.path.join(variation_folder_path, name)
        if os.path.isfile(path) and is_variation_file(path):
            os.remove(path)

    written = []
    for index, image in enumerate(images, start=1):
        path = os.path.join(
            variation_folder_path,
            variation_file_name(index, mime_type_to_extension(image.mime_type)),
        )
        with open(path, 'wb') as f:
            f.write(image.data)
        written.append(path)

    logger.debug(f"Replaced variations in {variation_folder_path} ({len(written)} file(s))")
    return sort_variation_paths(written)
