"""
Typed view of generation service responses.

Success bodies are parsed into GenerateResponse -> Candidate -> ResponsePart
with explicit presence checks. Structural problems raise
MalformedResponseError instead of surfacing as missing values later.
"""

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any, List, Optional

from .exceptions import MalformedResponseError


@dataclass
class InlineImage:
    """Base64 image payload embedded in a response part."""
    data: str
    mime_type: str = 'image/png'

    def decode(self) -> bytes:
        try:
            return base64.b64decode(self.data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise MalformedResponseError(f"Image payload is not valid base64: {e}") from e


@dataclass
class ResponsePart:
    """One part of a candidate: text, an inline image, or neither."""
    text: Optional[str] = None
    inline_image: Optional[InlineImage] = None

    @classmethod
    def from_dict(cls, data: Any) -> 'ResponsePart':
        if not isinstance(data, dict):
            return cls()
        inline = data.get('inlineData')
        if inline is None:
            inline = data.get('inline_data')
        image = None
        if isinstance(inline, dict):
            payload = inline.get('data')
            if isinstance(payload, str) and payload.strip():
                mime_type = inline.get('mimeType') or inline.get('mime_type') or 'image/png'
                image = InlineImage(data=payload, mime_type=str(mime_type))
        text = data.get('text')
        return cls(text=text if isinstance(text, str) else None, inline_image=image)


@dataclass
class Candidate:
    """A response candidate and its parts."""
    parts: List[ResponsePart] = field(default_factory=list)
    finish_reason: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> 'Candidate':
        if not isinstance(data, dict):
            return cls()
        content = data.get('content')
        parts = content.get('parts') if isinstance(content, dict) else None
        if parts is not None and not isinstance(parts, list):
            raise MalformedResponseError("Response candidate 'parts' is not a list")
        return cls(
            parts=[ResponsePart.from_dict(p) for p in parts or []],
            finish_reason=data.get('finishReason'),
        )


@dataclass
class GenerateResponse:
    """Parsed success body of a generateContent call."""
    candidates: List[Candidate] = field(default_factory=list)

    @classmethod
    def parse(cls, body: str) -> 'GenerateResponse':
        """
        Parse a response body.

        Raises:
            MalformedResponseError: If the body is not a JSON object or
                'candidates' is present but not a list
        """
        try:
            data = json.loads(body)
        except (TypeError, ValueError) as e:
            raise MalformedResponseError(f"Response is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise MalformedResponseError("Response is not a JSON object")

        candidates = data.get('candidates', [])
        if candidates is None:
            candidates = []
        if not isinstance(candidates, list):
            raise MalformedResponseError("Response 'candidates' is not a list")

        return cls(candidates=[Candidate.from_dict(c) for c in candidates])

    def first_image(self) -> Optional[InlineImage]:
        """The first inline image across all candidates, or None."""
        for candidate in self.candidates:
            for part in candidate.parts:
                if part.inline_image is not None:
                    return part.inline_image
        return None

    @property
    def text(self) -> str:
        """Concatenated text parts, useful when no image came back."""
        return ' '.join(
            part.text for c in self.candidates for part in c.parts if part.text
        ).strip()


def extract_error_message(body: str) -> str:
    """Service error message from an error body, or the raw body."""
    try:
        data = json.loads(body)
    except (TypeError, ValueError):
        return body
    if isinstance(data, dict):
        error = data.get('error')
        if isinstance(error, dict) and isinstance(error.get('message'), str):
            return error['message']
    return body


def is_unknown_field_error(body: str, field_name: str) -> bool:
    """True if the service rejected the payload because of an unknown field."""
    lowered = (body or '').lower()
    return 'unknown name' in lowered and field_name.lower() in lowered
