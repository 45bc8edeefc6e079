"""Small builders shared by several test modules."""

import io
import os
from unittest.mock import MagicMock

from PIL import Image


def make_image_bytes(size=(64, 48), color=(200, 30, 30), fmt='PNG'):
    buffer = io.BytesIO()
    Image.new('RGB', size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def make_noisy_image_bytes(size=(1400, 1000)):
    """Random pixels so the file stays well above the compression threshold."""
    image = Image.frombytes('RGB', size, os.urandom(size[0] * size[1] * 3))
    buffer = io.BytesIO()
    image.save(buffer, format='PNG')
    return buffer.getvalue()


def mock_response(status_code=200, json_data=None, text='', headers=None, chunks=None):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    response.json.return_value = json_data or {}
    response.text = text
    response.headers = headers or {}
    response.encoding = 'utf-8'
    response.iter_content.return_value = iter(chunks or [])
    return response
