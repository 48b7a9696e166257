"""
Best-effort tagging of selection copies with reviewer notes and flags.

PNG files get text chunks; JPEG and WEBP files get EXIF description,
keywords and comment tags. Failures are logged and never raised: the copied
image is valid without its metadata.
"""

import logging
import os
from typing import List, Optional

from PIL import Image
from PIL.PngImagePlugin import PngInfo

from .image_codec import JPEG_QUALITY


KEYWORD_PREFIX = 'ImageBatch'

EXIF_IMAGE_DESCRIPTION = 0x010E
EXIF_XP_COMMENT = 0x9C9C
EXIF_XP_KEYWORDS = 0x9C9E


def build_keywords(notes: str, transparency: bool) -> List[str]:
    keywords = [f"{KEYWORD_PREFIX}.Transparency={'true' if transparency else 'false'}"]
    if notes and notes.strip():
        keywords.append(f"{KEYWORD_PREFIX}.Notes={notes}")
    return keywords


def _xp_text(value: str) -> bytes:
    # XP* tags are UTF-16LE with a terminating null
    return value.encode('utf-16-le') + b'\x00\x00'


def write_metadata(
    file_path: str,
    notes: str,
    transparency: bool,
    logger: Optional[logging.Logger] = None
) -> bool:
    """
    Attach notes and the transparency flag to an image file in place.

    Returns:
        True if the metadata was written
    """
    logger = logger or logging.getLogger(__name__)
    keywords = build_keywords(notes, transparency)
    tmp_path = f"{file_path}.tmp"

    try:
        with Image.open(file_path) as img:
            img.load()
            image_format = img.format

            if image_format == 'PNG':
                info = PngInfo()
                info.add_text('Keywords', '; '.join(keywords))
                info.add_text('Comment', notes or '')
                img.save(tmp_path, format='PNG', pnginfo=info)
            elif image_format in ('JPEG', 'WEBP'):
                exif = img.getexif()
                exif[EXIF_IMAGE_DESCRIPTION] = notes or ''
                exif[EXIF_XP_KEYWORDS] = _xp_text(';'.join(keywords))
                exif[EXIF_XP_COMMENT] = _xp_text(notes or '')
                if image_format == 'JPEG':
                    img.save(tmp_path, format='JPEG', exif=exif, quality='keep')
                else:
                    img.save(tmp_path, format='WEBP', exif=exif, quality=JPEG_QUALITY)
            else:
                logger.warning(f"Metadata not supported for {image_format} file: {file_path}")
                return False

        os.replace(tmp_path, file_path)
        return True
    except Exception as e:
        logger.warning(f"Could not write metadata to {file_path}: {e}")
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        return False
