"""
Image type helpers: supported extensions, mime types, dimensions and
output-format conversion.
"""

import io
import os
from typing import Tuple

from PIL import Image


SUPPORTED_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.webp')

CONTENT_TYPES = {
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.webp': 'image/webp',
}

EXTENSIONS = {
    'image/jpeg': 'jpg',
    'image/jpg': 'jpg',
    'image/webp': 'webp',
    'image/png': 'png',
}

PIL_FORMATS = {
    'png': ('PNG', 'image/png'),
    'jpeg': ('JPEG', 'image/jpeg'),
    'webp': ('WEBP', 'image/webp'),
}

JPEG_QUALITY = 92


def is_supported(path: str) -> bool:
    """True if the file extension is one the service accepts."""
    return os.path.splitext(path)[1].lower() in SUPPORTED_EXTENSIONS


def infer_mime_type(file_name_or_extension: str) -> str:
    """Get the mime type for a file name or bare extension (default PNG)."""
    ext = os.path.splitext(file_name_or_extension)[1] or file_name_or_extension
    return CONTENT_TYPES.get(ext.lower(), 'image/png')


def mime_type_to_extension(mime_type: str) -> str:
    """Get the file extension (without dot) for a mime type (default png)."""
    return EXTENSIONS.get((mime_type or '').lower(), 'png')


def get_image_dimensions(image_data: bytes) -> Tuple[int, int]:
    """Return (width, height) of encoded image bytes."""
    with Image.open(io.BytesIO(image_data)) as img:
        return img.size


def flatten_to_rgb(img: Image.Image) -> Image.Image:
    """Convert an image to RGB, compositing any transparency onto white."""
    if img.mode in ('RGBA', 'LA'):
        background = Image.new('RGB', img.size, (255, 255, 255))
        if img.mode == 'LA':
            img = img.convert('RGBA')
        background.paste(img, mask=img.split()[-1])
        return background
    elif img.mode == 'P':
        img = img.convert('RGBA')
        background = Image.new('RGB', img.size, (255, 255, 255))
        background.paste(img, mask=img.split()[-1])
        return background
    elif img.mode != 'RGB':
        return img.convert('RGB')
    return img


def encode_image(img: Image.Image, pil_format: str) -> bytes:
    """Encode a Pillow image in the given format."""
    output = io.BytesIO()
    if pil_format == 'JPEG':
        flatten_to_rgb(img).save(output, format='JPEG', quality=JPEG_QUALITY, optimize=True)
    elif pil_format == 'WEBP':
        img.save(output, format='WEBP', quality=JPEG_QUALITY)
    else:
        img.save(output, format='PNG', optimize=True)
    return output.getvalue()


def convert_for_output_format(
    image_data: bytes,
    mime_type: str,
    output_format: str
) -> Tuple[bytes, str]:
    """
    Re-encode image bytes for the requested output format.

    Args:
        image_data: Encoded image
        mime_type: Mime type of image_data
        output_format: 'original', 'png', 'jpeg' or 'webp'

    Returns:
        Tuple of (image_bytes, mime_type)
    """
    target = PIL_FORMATS.get((output_format or 'original').lower())
    if target is None:
        return image_data, mime_type

    pil_format, target_mime = target
    current_mime = (mime_type or '').lower().replace('image/jpg', 'image/jpeg')
    if current_mime == target_mime:
        return image_data, target_mime

    with Image.open(io.BytesIO(image_data)) as img:
        img.load()
        return encode_image(img, pil_format), target_mime
