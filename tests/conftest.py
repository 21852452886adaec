"""Shared fixtures: a browser-free session and configuration builders."""

import asyncio
import io

import pytest
from PIL import Image

from hassink.config import Config


def make_png(width: int = 60, height: int = 80, color=(200, 200, 200)) -> bytes:
    output = io.BytesIO()
    Image.new('RGB', (width, height), color).save(output, format='PNG')
    return output.getvalue()


class FakeSession:
    """Stands in for BrowserSession; images maps screenshot_url to bytes or None"""

    def __init__(self, images=None, default=None):
        self.images = images or {}
        self.default = make_png() if default is None else default
        self.rendered = []
        self.events = []
        self.opened = False
        self.authenticated = False
        self.closed = False

    async def open(self):
        self.opened = True

    async def authenticate(self):
        self.authenticated = True

    async def render_page(self, page_config):
        url = page_config.screenshot_url
        self.events.append(('start', url))
        await asyncio.sleep(0)
        self.rendered.append(url)
        self.events.append(('end', url))
        return self.images.get(url, self.default)

    async def close(self):
        self.closed = True


@pytest.fixture
def base_env(tmp_path):
    return {
        'HA_BASE_URL': 'http://hass.local:8123',
        'HA_ACCESS_TOKEN': 'secret-token',
        'HA_SCREENSHOT_URL': '/lovelace/0',
        'OUTPUT_PATH': str(tmp_path / 'output' / 'cover'),
        'LEAVE_IMAGE_UNMODIFIED': 'true',
    }


@pytest.fixture
def make_config(tmp_path, base_env):
    """Build a Config from base_env plus overrides, ignoring any config.yaml"""
    def _make(**overrides):
        env = dict(base_env)
        env.update(overrides)
        return Config(str(tmp_path / 'missing.yaml'), environ=env)
    return _make


@pytest.fixture
def two_page_env(tmp_path):
    return {
        'HA_SCREENSHOT_URL_2': '/lovelace/1',
        'OUTPUT_PATH_2': str(tmp_path / 'output' / 'cover_2'),
    }
