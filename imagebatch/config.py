"""
Configuration values for the generation service and the folder workflows.

Both configs are plain dataclasses built from the environment and passed to
components at construction.
"""

import os
from dataclasses import dataclass
from typing import List, Optional

from .exceptions import ConfigurationError


DEFAULT_STATE_DIR = os.path.join('~', '.local', 'share', 'imagebatch')

OUTPUT_FORMATS = ('original', 'png', 'jpeg', 'webp')


@dataclass
class GenerationConfig:
    """
    Settings for the external image-generation service.

    Attributes:
        api_key: Service credential
        model: Model name used in the request URL
        endpoint: Base URL of the service
        image_size: Default size class sent with every request
        variation_count: Number of concurrent requests per source image
        max_network_attempts: Attempts per request on transient network errors
        retry_base_delay: Seconds; the wait before attempt n+1 is n * this value
        connect_timeout: Seconds allowed to establish a connection
        read_timeout: Seconds allowed for the service to answer
    """
    api_key: Optional[str] = None
    model: str = 'gemini-3-pro-image-preview'
    endpoint: str = 'https://generativelanguage.googleapis.com/v1beta'
    image_size: str = '1K'
    variation_count: int = 4
    max_network_attempts: int = 3
    retry_base_delay: float = 0.4
    connect_timeout: float = 30.0
    read_timeout: float = 300.0

    @classmethod
    def from_env(cls) -> 'GenerationConfig':
        """Create configuration from environment variables."""
        api_key = os.getenv('GEMINI_API_KEY') or os.getenv('API_KEY')
        return cls(
            api_key=api_key.strip() if api_key else None,
            model=os.getenv('IMAGEBATCH_MODEL', cls.model),
            endpoint=os.getenv('IMAGEBATCH_ENDPOINT', cls.endpoint),
            image_size=os.getenv('IMAGEBATCH_IMAGE_SIZE', cls.image_size),
        )

    @property
    def request_url(self) -> str:
        """URL of the generateContent call for the configured model."""
        return f"{self.endpoint.rstrip('/')}/models/{self.model}:generateContent"

    def require_api_key(self) -> str:
        """Return the API key or raise ConfigurationError."""
        if not self.api_key or not self.api_key.strip():
            raise ConfigurationError(
                "Missing API key. Set GEMINI_API_KEY (or API_KEY), or pass --api-key."
            )
        return self.api_key.strip()

    def validate(self) -> List[str]:
        """Return a list of configuration errors (empty if valid)."""
        errors = []
        if not self.api_key:
            errors.append("GEMINI_API_KEY (or API_KEY) is not set")
        if self.variation_count < 1:
            errors.append("variation_count must be at least 1")
        if self.max_network_attempts < 1:
            errors.append("max_network_attempts must be at least 1")
        if self.retry_base_delay < 0:
            errors.append("retry_base_delay cannot be negative")
        return errors


@dataclass
class WorkflowConfig:
    """
    Settings shared by the batch and review workflows.

    Attributes:
        state_dir: Directory holding the index files
        batch_index_filename: Index of processed source files
        review_index_filename: Index of committed review selections
        processed_suffix: Appended to a source folder name for batch outputs
        processed_fallback_suffix: Used when the plain suffix collides with the source
        selected_suffix: Appended to the source folder name for review selections
        item_delay: Seconds to wait between batch items
        rate_limit_cooldown: Seconds to wait after a rate-limit failure
        output_format: One of OUTPUT_FORMATS, applied to batch outputs
    """
    state_dir: str = DEFAULT_STATE_DIR
    batch_index_filename: str = 'batch_folder_index.db'
    review_index_filename: str = 'process_mode_index.db'
    processed_suffix: str = '_processed'
    processed_fallback_suffix: str = '_processed_output'
    selected_suffix: str = '_selected'
    item_delay: float = 1.0
    rate_limit_cooldown: float = 10.0
    output_format: str = 'original'

    @classmethod
    def from_env(cls) -> 'WorkflowConfig':
        """Create configuration from environment variables."""
        return cls(
            state_dir=os.getenv('IMAGEBATCH_STATE_DIR', DEFAULT_STATE_DIR),
            output_format=os.getenv('IMAGEBATCH_OUTPUT_FORMAT', 'original').lower(),
        )

    @property
    def batch_index_path(self) -> str:
        return os.path.join(os.path.expanduser(self.state_dir), self.batch_index_filename)

    @property
    def review_index_path(self) -> str:
        return os.path.join(os.path.expanduser(self.state_dir), self.review_index_filename)

    def validate(self) -> List[str]:
        """Return a list of configuration errors (empty if valid)."""
        errors = []
        if not self.state_dir:
            errors.append("state_dir is required")
        if not self.processed_suffix or not self.selected_suffix:
            errors.append("Output folder suffixes cannot be empty")
        if self.output_format not in OUTPUT_FORMATS:
            errors.append(
                f"output_format must be one of: {', '.join(OUTPUT_FORMATS)} (got {self.output_format!r})"
            )
        if self.item_delay < 0 or self.rate_limit_cooldown < 0:
            errors.append("Delays cannot be negative")
        return errors
