"""Tests for GenerationClient class."""

import io
import json
import threading
from dataclasses import replace

import pytest
import urllib3
from PIL import Image

from imagebatch.exceptions import (
    ConfigurationError,
    GenerationFailedError,
    NetworkError,
    UnsupportedAspectRatioError,
)
from imagebatch.generation_client import (
    GenerationClient,
    is_transient_network_error,
    resolve_aspect_ratio,
)


class ScriptedHttp:
    """Thread-safe stand-in for a PoolManager; answers through a callback."""

    def __init__(self, respond):
        self.respond = respond
        self.calls = []
        self._lock = threading.Lock()

    def request(self, method, url, body=None, headers=None):
        payload = json.loads(body.decode('utf-8'))
        with self._lock:
            self.calls.append({'method': method, 'url': url, 'payload': payload, 'headers': headers})
            attempt = len(self.calls)
        return self.respond(payload, attempt)


class TestResolveAspectRatio:
    """Tests for aspect ratio resolution."""

    def test_reduces_by_gcd(self):
        """Test dimensions are reduced to a supported ratio."""
        assert resolve_aspect_ratio(400, 300) == '4:3'
        assert resolve_aspect_ratio(1920, 1080) == '16:9'
        assert resolve_aspect_ratio(512, 512) == '1:1'
        assert resolve_aspect_ratio(2520, 1080) == '21:9'

    def test_invalid_dimensions_default_square(self):
        """Test non-positive dimensions map to 1:1."""
        assert resolve_aspect_ratio(0, 300) == '1:1'
        assert resolve_aspect_ratio(300, -1) == '1:1'

    def test_unsupported_ratio(self):
        """Test an unsupported ratio raises with the ratio and the list."""
        with pytest.raises(UnsupportedAspectRatioError) as exc_info:
            resolve_aspect_ratio(1000, 1001)
        assert exc_info.value.ratio == '1000:1001'
        assert '16:9' in str(exc_info.value)


class TestTransientErrors:
    """Tests for transient network error classification."""

    def test_connection_and_timeout_errors(self):
        assert is_transient_network_error(urllib3.exceptions.NewConnectionError(None, 'refused'))
        assert is_transient_network_error(urllib3.exceptions.ReadTimeoutError(None, '/x', 'timed out'))

    def test_wrapped_in_max_retry(self):
        inner = urllib3.exceptions.NewConnectionError(None, 'dns failure')
        assert is_transient_network_error(urllib3.exceptions.MaxRetryError(None, '/x', inner))

    def test_other_errors(self):
        assert not is_transient_network_error(ValueError('nope'))
        assert not is_transient_network_error(urllib3.exceptions.ProtocolError('reset'))


class TestGenerationClient:
    """Tests for GenerationClient class."""

    def _client(self, config, respond, logger):
        http = ScriptedHttp(respond)
        return GenerationClient(config, http=http, logger=logger), http

    def test_build_payload(self):
        """Test request body layout."""
        payload = GenerationClient.build_payload('generationConfig', 'QUJD', 'image/png', 'make it shiny', '2K', '4:3')

        parts = payload['contents'][0]['parts']
        assert parts[0] == {'inlineData': {'data': 'QUJD', 'mimeType': 'image/png'}}
        assert parts[1] == {'text': 'make it shiny'}
        assert payload['generationConfig'] == {'imageConfig': {'imageSize': '2K', 'aspectRatio': '4:3'}}

    @pytest.mark.asyncio
    async def test_generates_all_variations(self, gen_config, sample_png_bytes, ok_response, logger):
        """Test every request succeeding yields one image per request."""
        client, http = self._client(gen_config, lambda payload, attempt: ok_response(sample_png_bytes), logger)

        images = await client.generate_variations(sample_png_bytes, 'image/png', 'prompt')

        assert len(images) == 4
        assert len(http.calls) == 4
        call = http.calls[0]
        assert call['url'].endswith('/models/gemini-3-pro-image-preview:generateContent')
        assert call['headers']['x-goog-api-key'] == 'test-key'
        assert call['payload']['generationConfig']['imageConfig'] == {'imageSize': '1K', 'aspectRatio': '4:3'}

    @pytest.mark.asyncio
    async def test_image_size_override(self, gen_config, sample_png_bytes, ok_response, logger):
        """Test the size class can be set per call."""
        client, http = self._client(gen_config, lambda payload, attempt: ok_response(sample_png_bytes), logger)

        await client.generate_variations(sample_png_bytes, 'image/png', 'prompt', image_size='4K')

        assert all(c['payload']['generationConfig']['imageConfig']['imageSize'] == '4K' for c in http.calls)

    @pytest.mark.asyncio
    async def test_outputs_cropped_to_source_ratio(self, gen_config, sample_png_bytes, wide_png_bytes, ok_response, logger):
        """Test 16:9 results are cropped to the 4:3 source."""
        client, _ = self._client(gen_config, lambda payload, attempt: ok_response(wide_png_bytes), logger)

        images = await client.generate_variations(sample_png_bytes, 'image/png', 'prompt')

        with Image.open(io.BytesIO(images[0].data)) as img:
            width, height = img.size
        assert height == 180
        assert abs(width / height - 4 / 3) < 0.01

    @pytest.mark.asyncio
    async def test_partial_failure_returns_successes(self, gen_config, sample_png_bytes, ok_response, failed_response, logger):
        """Test 3 failed requests out of 4 still yield the 1 good image."""
        def respond(payload, attempt):
            if attempt == 1:
                return ok_response(sample_png_bytes)
            return failed_response(500, 'internal')

        client, _ = self._client(gen_config, respond, logger)

        images = await client.generate_variations(sample_png_bytes, 'image/png', 'prompt')

        assert len(images) == 1

    @pytest.mark.asyncio
    async def test_all_failed_aggregates_messages(self, gen_config, sample_png_bytes, failed_response, logger):
        """Test every request failing raises one error with distinct details."""
        messages = ['quota exceeded', 'quota exceeded', 'bad request', 'overloaded']

        def respond(payload, attempt):
            return failed_response(429, messages[attempt - 1])

        client, _ = self._client(gen_config, respond, logger)

        with pytest.raises(GenerationFailedError) as exc_info:
            await client.generate_variations(sample_png_bytes, 'image/png', 'prompt')

        error = exc_info.value
        assert len(error.errors) == 4
        assert len(error.details) == 3
        assert str(error).startswith('All image generation requests failed. Details: ')
        assert 'Generation API error (429): quota exceeded' in str(error)

    @pytest.mark.asyncio
    async def test_unknown_field_falls_back(self, gen_config, sample_png_bytes, ok_response, failed_response, logger):
        """Test a rejected generationConfig field is retried as config."""
        def respond(payload, attempt):
            if 'generationConfig' in payload:
                return failed_response(400, 'Invalid JSON payload received. Unknown name "generationConfig": Cannot find field.')
            return ok_response(sample_png_bytes)

        client, http = self._client(gen_config, respond, logger)

        images = await client.generate_variations(sample_png_bytes, 'image/png', 'prompt')

        assert len(images) == 4
        assert len(http.calls) == 8
        assert sum(1 for c in http.calls if 'config' in c['payload']) == 4

    @pytest.mark.asyncio
    async def test_other_400_not_retried(self, gen_config, sample_png_bytes, failed_response, logger):
        """Test a service error is not retried with the alternate field."""
        config = replace(gen_config, variation_count=1)
        client, http = self._client(config, lambda payload, attempt: failed_response(400, 'bad image'), logger)

        with pytest.raises(GenerationFailedError):
            await client.generate_variations(sample_png_bytes, 'image/png', 'prompt')
        assert len(http.calls) == 1

    @pytest.mark.asyncio
    async def test_network_error_retried(self, gen_config, sample_png_bytes, ok_response, logger):
        """Test transient failures are retried until a request succeeds."""
        config = replace(gen_config, variation_count=1)

        def respond(payload, attempt):
            if attempt < 3:
                raise urllib3.exceptions.NewConnectionError(None, 'Failed to resolve host')
            return ok_response(sample_png_bytes)

        client, http = self._client(config, respond, logger)

        images = await client.generate_variations(sample_png_bytes, 'image/png', 'prompt')

        assert len(images) == 1
        assert len(http.calls) == 3

    def test_network_error_escalates(self, gen_config, logger):
        """Test persistent transient failures raise NetworkError after max attempts."""
        def respond(payload, attempt):
            raise urllib3.exceptions.NewConnectionError(None, 'Failed to resolve host')

        client, http = self._client(gen_config, respond, logger)

        with pytest.raises(NetworkError) as exc_info:
            client.send('test-key', {'contents': []})

        assert len(http.calls) == gen_config.max_network_attempts
        assert isinstance(exc_info.value.cause, urllib3.exceptions.NewConnectionError)

    def test_non_transient_error_not_retried(self, gen_config, logger):
        """Test other exceptions propagate on the first attempt."""
        def respond(payload, attempt):
            raise urllib3.exceptions.ProtocolError('connection reset')

        client, http = self._client(gen_config, respond, logger)

        with pytest.raises(urllib3.exceptions.ProtocolError):
            client.send('test-key', {'contents': []})
        assert len(http.calls) == 1

    @pytest.mark.asyncio
    async def test_unsupported_ratio_makes_no_calls(self, gen_config, make_image, ok_response, logger):
        """Test an unsupported source ratio fails before any request."""
        odd = make_image(1000, 1001)
        client, http = self._client(gen_config, lambda payload, attempt: ok_response(odd), logger)

        with pytest.raises(UnsupportedAspectRatioError):
            await client.generate_variations(odd, 'image/png', 'prompt')
        assert http.calls == []

    @pytest.mark.asyncio
    async def test_missing_api_key(self, gen_config, sample_png_bytes, ok_response, logger):
        """Test a missing key fails before any request."""
        config = replace(gen_config, api_key=None)
        client, http = self._client(config, lambda payload, attempt: ok_response(sample_png_bytes), logger)

        with pytest.raises(ConfigurationError):
            await client.generate_variations(sample_png_bytes, 'image/png', 'prompt')
        assert http.calls == []

    @pytest.mark.asyncio
    async def test_response_without_image(self, gen_config, sample_png_bytes, logger):
        """Test a text-only answer counts as a failed request."""
        from unittest.mock import MagicMock

        def respond(payload, attempt):
            response = MagicMock()
            response.status = 200
            response.data = json.dumps({
                'candidates': [{'content': {'parts': [{'text': 'I cannot do that'}]}}]
            }).encode('utf-8')
            return response

        client, _ = self._client(replace(gen_config, variation_count=1), respond, logger)

        with pytest.raises(GenerationFailedError) as exc_info:
            await client.generate_variations(sample_png_bytes, 'image/png', 'prompt')
        assert 'did not include image content' in str(exc_info.value)
        assert 'I cannot do that' in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_generate_from_file(self, gen_config, tmp_path, sample_jpeg_bytes, ok_response, logger):
        """Test reading a file sends its bytes with the inferred mime type."""
        path = tmp_path / 'oak.jpg'
        path.write_bytes(sample_jpeg_bytes)
        client, http = self._client(
            replace(gen_config, variation_count=2),
            lambda payload, attempt: ok_response(sample_jpeg_bytes, 'image/jpeg'),
            logger,
        )

        images = await client.generate_from_file(str(path), 'prompt')

        assert len(images) == 2
        assert http.calls[0]['payload']['contents'][0]['parts'][0]['inlineData']['mimeType'] == 'image/jpeg'
