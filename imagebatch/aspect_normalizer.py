"""
AspectNormalizer - Center-crops generated images to the source aspect ratio.
"""

import io
import logging
from typing import Optional, Tuple

from PIL import Image

from .image_codec import encode_image


class AspectNormalizer:
    """
    Crops generated images so their aspect ratio matches the source image.

    The service only returns a fixed set of ratios and may round the
    requested one, so outputs are trimmed symmetrically on the longer side.
    Images already within `tolerance` of the target are returned untouched.
    """

    OUTPUT_FORMATS = {
        'image/jpeg': ('JPEG', 'image/jpeg'),
        'image/jpg': ('JPEG', 'image/jpeg'),
        'image/webp': ('WEBP', 'image/webp'),
    }

    def __init__(
        self,
        tolerance: float = 0.01,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize normalizer.

        Args:
            tolerance: Maximum absolute difference of width/height ratios
                that is left uncropped (default: 0.01)
            logger: Optional logger instance
        """
        self.tolerance = tolerance
        self.logger = logger or logging.getLogger(__name__)

    def normalize(
        self,
        image_data: bytes,
        mime_type: str,
        target_width: int,
        target_height: int
    ) -> Tuple[bytes, str]:
        """
        Crop image data to the target aspect ratio.

        Args:
            image_data: Generated image as bytes
            mime_type: Mime type of image_data
            target_width: Width of the source image
            target_height: Height of the source image

        Returns:
            Tuple of (image_bytes, mime_type); the input unchanged when no
            crop is needed
        """
        if target_width <= 0 or target_height <= 0:
            return image_data, mime_type

        with Image.open(io.BytesIO(image_data)) as img:
            width, height = img.size
            if width == 0 or height == 0:
                return image_data, mime_type

            box = self.crop_box(width, height, target_width, target_height)
            if box is None:
                return image_data, mime_type

            img.load()
            cropped = img.crop(box)

        pil_format, output_mime = self.OUTPUT_FORMATS.get(
            (mime_type or '').lower(), ('PNG', 'image/png')
        )
        self.logger.debug(
            f"Cropped {width}x{height} to {cropped.size[0]}x{cropped.size[1]} "
            f"for target {target_width}x{target_height}"
        )
        return encode_image(cropped, pil_format), output_mime

    def crop_box(
        self,
        width: int,
        height: int,
        target_width: int,
        target_height: int
    ) -> Optional[Tuple[int, int, int, int]]:
        """
        Compute the centered crop box, or None if the ratio already matches.

        Returns:
            (left, upper, right, lower) as used by Image.crop
        """
        source_aspect = width / height
        target_aspect = target_width / target_height

        if abs(source_aspect - target_aspect) <= self.tolerance:
            return None

        if source_aspect > target_aspect:
            crop_height = height
            crop_width = min(width, max(1, round(crop_height * target_aspect)))
            left = (width - crop_width) // 2
            upper = 0
        else:
            crop_width = width
            crop_height = min(height, max(1, round(crop_width / target_aspect)))
            left = 0
            upper = (height - crop_height) // 2

        return left, upper, left + crop_width, upper + crop_height
