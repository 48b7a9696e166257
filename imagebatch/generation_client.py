"""
GenerationClient - Calls the external image-generation service.

Each source image fans out to several independent requests. A request is
retried only on transient network failures; service errors fail just that
request, and the call as a whole fails only when every request failed.
"""

import asyncio
import base64
import json
import logging
import math
import os
from dataclasses import dataclass
from typing import List, Optional

import urllib3
from retrying import Retrying

from .aspect_normalizer import AspectNormalizer
from .batch_item import GeneratedImage
from .config import GenerationConfig
from .exceptions import (
    GenerationFailedError,
    MissingImageError,
    NetworkError,
    ServiceError,
    UnsupportedAspectRatioError,
)
from .image_codec import get_image_dimensions, infer_mime_type
from .service_response import GenerateResponse, extract_error_message, is_unknown_field_error


SUPPORTED_ASPECT_RATIOS = [
    '1:1',
    '2:3',
    '3:2',
    '3:4',
    '4:3',
    '4:5',
    '5:4',
    '9:16',
    '16:9',
    '21:9',
]


def resolve_aspect_ratio(width: int, height: int) -> str:
    """
    Reduce width:height by their GCD and check it against the service.

    Raises:
        UnsupportedAspectRatioError: If the reduced ratio cannot be requested
    """
    if width <= 0 or height <= 0:
        return '1:1'

    divisor = math.gcd(width, height) or 1
    ratio = f"{width // divisor}:{height // divisor}"
    if ratio in SUPPORTED_ASPECT_RATIOS:
        return ratio
    raise UnsupportedAspectRatioError(ratio, SUPPORTED_ASPECT_RATIOS)


def is_transient_network_error(error: BaseException) -> bool:
    """True for host-not-found, timeout and unreachable-network failures."""
    if isinstance(error, urllib3.exceptions.MaxRetryError) and error.reason is not None:
        return is_transient_network_error(error.reason)
    return isinstance(error, (
        urllib3.exceptions.NewConnectionError,
        urllib3.exceptions.TimeoutError,
    ))


@dataclass
class ApiResponse:
    """Status and decoded body of one HTTP exchange."""
    status: int
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class GenerationClient:
    """
    Client for the generateContent endpoint of the image service.

    Generated images are passed through an AspectNormalizer so every
    returned variation has the aspect ratio of its source.
    """

    PRIMARY_CONFIG_FIELD = 'generationConfig'
    ALTERNATE_CONFIG_FIELD = 'config'

    def __init__(
        self,
        config: GenerationConfig,
        normalizer: Optional[AspectNormalizer] = None,
        http: Optional[urllib3.PoolManager] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize generation client.

        Args:
            config: Service configuration
            normalizer: Aspect normalizer (default: AspectNormalizer())
            http: Optional urllib3 pool manager (created if not given)
            logger: Optional logger instance
        """
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.normalizer = normalizer or AspectNormalizer(logger=self.logger)
        self.http = http or urllib3.PoolManager(
            maxsize=max(1, config.variation_count),
            timeout=urllib3.Timeout(connect=config.connect_timeout, read=config.read_timeout),
            retries=False,
        )

    async def generate_from_file(
        self,
        file_path: str,
        prompt: str,
        image_size: Optional[str] = None
    ) -> List[GeneratedImage]:
        """Read an image file and generate variations of it."""
        image_data = await asyncio.to_thread(_read_bytes, file_path)
        return await self.generate_variations(image_data, infer_mime_type(file_path), prompt, image_size)

    async def generate_variations(
        self,
        image_data: bytes,
        mime_type: str,
        prompt: str,
        image_size: Optional[str] = None
    ) -> List[GeneratedImage]:
        """
        Generate variations of an image.

        Args:
            image_data: Source image bytes
            mime_type: Mime type of the source image
            prompt: Instruction for the model
            image_size: Size class (default: config.image_size)

        Returns:
            Normalized images from the requests that succeeded, in request order

        Raises:
            ConfigurationError: If no API key is configured
            UnsupportedAspectRatioError: If the source ratio cannot be requested
            GenerationFailedError: If every request failed
        """
        api_key = self.config.require_api_key()
        width, height = await asyncio.to_thread(get_image_dimensions, image_data)
        aspect_ratio = resolve_aspect_ratio(width, height)

        encoded = base64.b64encode(image_data).decode('ascii')
        size = image_size or self.config.image_size
        count = self.config.variation_count

        self.logger.debug(f"Requesting {count} variations at {aspect_ratio} ({size})")
        results = await asyncio.gather(
            *[
                self._generate_single(api_key, encoded, mime_type, prompt, size, aspect_ratio)
                for _ in range(count)
            ],
            return_exceptions=True,
        )

        images = [r for r in results if isinstance(r, GeneratedImage)]
        errors = [r for r in results if isinstance(r, BaseException)]
        if not images:
            raise GenerationFailedError(errors)
        if errors:
            self.logger.warning(f"{len(errors)} of {count} generation requests failed: {errors[0]}")

        normalized = []
        for image in images:
            data, output_mime = await asyncio.to_thread(
                self.normalizer.normalize, image.data, image.mime_type, width, height
            )
            normalized.append(GeneratedImage(data=data, mime_type=output_mime))
        return normalized

    async def _generate_single(
        self,
        api_key: str,
        encoded_image: str,
        mime_type: str,
        prompt: str,
        image_size: str,
        aspect_ratio: str
    ) -> GeneratedImage:
        payload = self.build_payload(
            self.PRIMARY_CONFIG_FIELD, encoded_image, mime_type, prompt, image_size, aspect_ratio
        )
        response = await asyncio.to_thread(self.send, api_key, payload)

        if not response.ok and is_unknown_field_error(response.body, self.PRIMARY_CONFIG_FIELD):
            self.logger.debug(
                f"Service rejected '{self.PRIMARY_CONFIG_FIELD}', retrying with '{self.ALTERNATE_CONFIG_FIELD}'"
            )
            payload = self.build_payload(
                self.ALTERNATE_CONFIG_FIELD, encoded_image, mime_type, prompt, image_size, aspect_ratio
            )
            response = await asyncio.to_thread(self.send, api_key, payload)

        if not response.ok:
            raise ServiceError(response.status, extract_error_message(response.body))

        parsed = GenerateResponse.parse(response.body)
        image = parsed.first_image()
        if image is None:
            detail = f" Model response: {parsed.text}" if parsed.text else ''
            raise MissingImageError(f"The generation response did not include image content.{detail}")

        return GeneratedImage(data=image.decode(), mime_type=image.mime_type)

    @staticmethod
    def build_payload(
        config_field: str,
        encoded_image: str,
        mime_type: str,
        prompt: str,
        image_size: str,
        aspect_ratio: str
    ) -> dict:
        """Request body with generation parameters under `config_field`."""
        return {
            'contents': [
                {
                    'parts': [
                        {'inlineData': {'data': encoded_image, 'mimeType': mime_type}},
                        {'text': prompt},
                    ]
                }
            ],
            config_field: {
                'imageConfig': {
                    'imageSize': image_size,
                    'aspectRatio': aspect_ratio,
                }
            },
        }

    def send(self, api_key: str, payload: dict) -> ApiResponse:
        """
        POST a payload, retrying transient network failures.

        The wait before attempt n+1 is n * retry_base_delay.

        Raises:
            NetworkError: If every attempt failed with a transient error
        """
        base_ms = int(self.config.retry_base_delay * 1000)
        retrying = Retrying(
            retry_on_exception=is_transient_network_error,
            stop_max_attempt_number=self.config.max_network_attempts,
            wait_incrementing_start=base_ms,
            wait_incrementing_increment=base_ms,
        )
        try:
            return retrying.call(self._post, api_key, payload)
        except Exception as e:
            if is_transient_network_error(e):
                raise NetworkError(
                    "Network error reaching the generation API. "
                    "Check internet, DNS, firewall/proxy, then try again.",
                    cause=e,
                ) from e
            raise

    def _post(self, api_key: str, payload: dict) -> ApiResponse:
        response = self.http.request(
            'POST',
            self.config.request_url,
            body=json.dumps(payload).encode('utf-8'),
            headers={
                'Content-Type': 'application/json',
                'Accept': 'application/json',
                'x-goog-api-key': api_key,
            },
        )
        return ApiResponse(status=response.status, body=response.data.decode('utf-8', errors='replace'))


def _read_bytes(path: str) -> bytes:
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Image not found: {path}")
    with open(path, 'rb') as f:
        return f.read()
