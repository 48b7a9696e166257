"""
Exception hierarchy for imagebatch.

Generation failures are split by how the caller should react: configuration
problems are never retried, network problems are retried before they surface,
and service/response problems fail a single request.
"""

from typing import List, Optional


class ImageBatchError(Exception):
    """Base exception for all imagebatch errors."""
    pass


class ConfigurationError(ImageBatchError):
    """Raised when a required setting (such as the API key) is missing."""
    pass


class GenerationError(ImageBatchError):
    """Base class for failures of a generation request."""
    pass


class UnsupportedAspectRatioError(GenerationError):
    """Raised before any network call when the source ratio cannot be requested."""

    def __init__(self, ratio: str, supported: List[str]):
        self.ratio = ratio
        self.supported = list(supported)
        super().__init__(
            f"Source image aspect ratio {ratio} is not supported by the generation service. "
            f"Supported ratios: {', '.join(self.supported)}. "
            f"Generation cancelled to avoid spending credits on mismatched sizes."
        )


class NetworkError(GenerationError):
    """Raised when the service could not be reached after all retry attempts."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


class ServiceError(GenerationError):
    """Raised for a non-success response from the generation service."""

    def __init__(self, status: int, message: str):
        self.status = status
        self.service_message = message
        super().__init__(f"Generation API error ({status}): {message}")


class MalformedResponseError(GenerationError):
    """Raised when a success response does not have the expected structure."""
    pass


class MissingImageError(GenerationError):
    """Raised when a well-formed response carries no image content."""
    pass


class GenerationFailedError(GenerationError):
    """Raised when every fan-out request for one source image failed."""

    MAX_DETAILS = 3

    def __init__(self, errors: List[BaseException]):
        self.errors = list(errors)
        messages = []
        for error in self.errors:
            message = str(error)
            if message not in messages:
                messages.append(message)
        self.details = messages[:self.MAX_DETAILS]
        detail = ' | '.join(self.details) if self.details else 'Unknown error from generation API.'
        super().__init__(f"All image generation requests failed. Details: {detail}")


class ReviewStateError(ImageBatchError):
    """Raised when a review operation needs a current item and there is none."""
    pass
