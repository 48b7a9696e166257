"""
Pytest fixtures for imagebatch tests.
"""

import base64
import io
import json
import os

import pytest
from PIL import Image


def make_image_bytes(width, height, fmt='PNG', color=(200, 30, 30)):
    """Encode a solid-color image of the given size."""
    mode = 'RGBA' if fmt == 'PNG' and len(color) == 4 else 'RGB'
    img = Image.new(mode, (width, height), color=color)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


def write_image(path, width=40, height=30, fmt='PNG'):
    """Write an image file, creating parent folders."""
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'wb') as f:
        f.write(make_image_bytes(width, height, fmt))
    return path


def service_response(image_bytes, mime_type='image/png', status=200):
    """A urllib3-like response object carrying one inline image."""
    from unittest.mock import MagicMock

    body = {
        'candidates': [
            {
                'content': {
                    'parts': [
                        {'text': 'here you go'},
                        {'inlineData': {
                            'data': base64.b64encode(image_bytes).decode('ascii'),
                            'mimeType': mime_type,
                        }},
                    ]
                }
            }
        ]
    }
    response = MagicMock()
    response.status = status
    response.data = json.dumps(body).encode('utf-8')
    return response


def error_response(status, message):
    """A urllib3-like response object carrying a service error."""
    from unittest.mock import MagicMock

    response = MagicMock()
    response.status = status
    response.data = json.dumps({'error': {'code': status, 'message': message}}).encode('utf-8')
    return response


@pytest.fixture
def sample_png_bytes():
    """Fixture providing a 4:3 PNG."""
    return make_image_bytes(400, 300, 'PNG')


@pytest.fixture
def wide_png_bytes():
    """Fixture providing a 16:9 PNG."""
    return make_image_bytes(320, 180, 'PNG')


@pytest.fixture
def sample_jpeg_bytes():
    """Fixture providing a 4:3 JPEG."""
    return make_image_bytes(400, 300, 'JPEG')


@pytest.fixture
def gen_config():
    """Fixture providing a generation config with a key and no retry wait."""
    from imagebatch.config import GenerationConfig

    return GenerationConfig(api_key='test-key', retry_base_delay=0)


@pytest.fixture
def workflow_config(tmp_path):
    """Fixture providing a workflow config with state under tmp_path and no delays."""
    from imagebatch.config import WorkflowConfig

    return WorkflowConfig(
        state_dir=str(tmp_path / 'state'),
        item_delay=0,
        rate_limit_cooldown=0,
    )


@pytest.fixture
def batch_store(workflow_config, logger):
    """Fixture providing an empty batch index."""
    from imagebatch.index_store import IndexStore
    from imagebatch.records import FileRecord

    return IndexStore.open(workflow_config.batch_index_path, FileRecord, logger)


@pytest.fixture
def review_store(workflow_config, logger):
    """Fixture providing an empty review index."""
    from imagebatch.index_store import IndexStore
    from imagebatch.records import ReviewRecord

    return IndexStore.open(workflow_config.review_index_path, ReviewRecord, logger)


@pytest.fixture
def source_folder(tmp_path):
    """Fixture providing a source folder with two images and a non-image."""
    root = tmp_path / 'textures'
    write_image(str(root / 'brick.png'), 40, 30)
    write_image(str(root / 'wood' / 'oak.jpg'), 40, 30, 'JPEG')
    (root / 'notes.txt').write_text('not an image')
    return str(root)


@pytest.fixture
def processed_folder(tmp_path):
    """
    Fixture providing a processed folder with three variation sets and the
    matching source folder: brick.png, stone.png and wood/oak.jpg.
    """
    source = tmp_path / 'textures'
    processed = tmp_path / 'textures_processed'
    for rel in ['brick.png', 'stone.png', 'wood/oak.jpg']:
        fmt = 'JPEG' if rel.endswith('.jpg') else 'PNG'
        write_image(str(source / rel), 40, 30, fmt)
        for index in (1, 2):
            write_image(str(processed / rel / f'variation_{index}.png'), 40, 30)
    return str(processed)


@pytest.fixture
def logger():
    """Fixture providing a logger."""
    import logging
    return logging.getLogger('test')


@pytest.fixture
def make_image():
    """Fixture providing make_image_bytes(width, height, fmt='PNG')."""
    return make_image_bytes


@pytest.fixture
def image_file():
    """Fixture providing write_image(path, width, height, fmt)."""
    return write_image


@pytest.fixture
def ok_response():
    """Fixture providing service_response(image_bytes, mime_type)."""
    return service_response


@pytest.fixture
def failed_response():
    """Fixture providing error_response(status, message)."""
    return error_response
