"""
On-disk layout: path normalization, sibling output folders, safe names and
variation file ordering.
"""

import os
import re
from typing import List, Optional

from .image_codec import SUPPORTED_EXTENSIONS


VARIATION_PREFIX = 'variation_'

# variation_<n> anywhere in a file stem
VARIATION_PATTERN = re.compile(r'variation_(\d+)$', re.IGNORECASE)

INVALID_NAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def normalize_path(path: str) -> str:
    """Absolute path without trailing separators."""
    full_path = os.path.abspath(os.path.expanduser(path))
    stripped = full_path.rstrip('/\\')
    return stripped or full_path


def folder_key(path: str) -> str:
    """Key used to look up a folder record (case-insensitive where the OS is)."""
    return os.path.normcase(normalize_path(path))


def item_key(relative_path: str) -> str:
    """Key used to look up an item record within a folder (case-insensitive)."""
    return to_posix(relative_path).casefold()


def to_posix(relative_path: str) -> str:
    """Relative path with forward slashes."""
    return relative_path.replace('\\', '/')


def from_posix(root: str, relative_path: str) -> str:
    """Join a forward-slash relative path onto a root folder."""
    return os.path.join(root, *to_posix(relative_path).split('/'))


def sibling_folder(folder: str, suffix: str) -> str:
    """Path of a folder next to `folder`, named by appending `suffix`."""
    normalized = normalize_path(folder)
    name = os.path.basename(normalized) or 'images'
    parent = os.path.dirname(normalized) or normalized
    return os.path.join(parent, f"{name}{suffix}")


def strip_suffix(name: str, suffixes: List[str]) -> Optional[str]:
    """Remove the first matching suffix (case-insensitive), or None."""
    lowered = name.lower()
    for suffix in suffixes:
        if suffix and lowered.endswith(suffix.lower()):
            return name[:-len(suffix)]
    return None


def safe_file_name(value: str, default: str = 'image') -> str:
    """Replace characters that are invalid in file names."""
    if not value or not value.strip():
        return default
    safe_name = INVALID_NAME_CHARS.sub('_', value).strip()
    return safe_name or default


def parse_variation_index(path: str) -> Optional[int]:
    """Numeric suffix of a variation file, or None."""
    stem = os.path.splitext(os.path.basename(path))[0]
    match = VARIATION_PATTERN.search(stem)
    return int(match.group(1)) if match else None


def variation_sort_key(path: str):
    """Order variation files by numeric suffix, then lexicographically."""
    index = parse_variation_index(path)
    return (index is None, index if index is not None else 0, path.casefold())


def sort_variation_paths(paths: List[str]) -> List[str]:
    """Sorted, case-insensitively de-duplicated variation paths."""
    unique = {}
    for path in paths:
        unique.setdefault(path.casefold(), path)
    return sorted(unique.values(), key=variation_sort_key)


def is_variation_file(path: str) -> bool:
    """True for supported image files named variation_*."""
    name = os.path.basename(path)
    return (
        name.lower().startswith(VARIATION_PREFIX)
        and os.path.splitext(name)[1].lower() in SUPPORTED_EXTENSIONS
    )


def variation_file_name(index: int, extension: str) -> str:
    """File name for the 1-based variation index."""
    return f"{VARIATION_PREFIX}{index}.{extension.lstrip('.')}"
