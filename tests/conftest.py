"""
Pytest configuration and fixtures for giftprint tests.

Provides shared fixtures for building synthetic layouts and customer
photos on disk, plus a configured Flask test client.
"""

from pathlib import Path

import pytest
import yaml
from PIL import Image, ImageDraw

from giftprint.config import AppConfig, set_config
from tests.helpers import BLUE, GREEN, RED, YELLOW, make_image


@pytest.fixture
def test_config(tmp_path):
    """Isolated configuration pointing at a temporary tree."""
    config = AppConfig(
        SECRET_KEY='test-key',
        FLASK_ENV='testing',
        DEBUG=False,
        ASSETS_DIRECTORY=str(tmp_path / 'assets'),
        LAYOUTS_FILE=str(tmp_path / 'layouts.yaml'),
        STORAGE_FOLDER=str(tmp_path / 'storage'),
        TEMP_FOLDER=str(tmp_path / 'scratch'),
        LOG_FILE=str(tmp_path / 'logs' / 'app.log'),
        PNG_COMPRESS_LEVEL=6,
    )
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture
def base_image(tmp_path):
    """400x300 solid blue layout base."""
    return make_image(tmp_path / 'assets' / 'layouts' / 'base.png', (400, 300), BLUE)


@pytest.fixture
def split_base_image(tmp_path):
    """400x200 base, left half red and right half blue."""
    path = tmp_path / 'assets' / 'layouts' / 'split.png'
    path.parent.mkdir(parents=True, exist_ok=True)
    img = Image.new('RGB', (400, 200), BLUE)
    ImageDraw.Draw(img).rectangle([0, 0, 199, 199], fill=RED)
    img.save(path)
    return path


@pytest.fixture
def red_photo(tmp_path):
    return make_image(tmp_path / 'photos' / 'red.png', (300, 100), RED)


@pytest.fixture
def green_photo(tmp_path):
    return make_image(tmp_path / 'photos' / 'green.png', (120, 160), GREEN)


@pytest.fixture
def marked_photo(tmp_path):
    """200x100 photo: green band on the left, yellow band on the right, red between."""
    path = tmp_path / 'photos' / 'marked.png'
    path.parent.mkdir(parents=True, exist_ok=True)
    img = Image.new('RGB', (200, 100), RED)
    draw = ImageDraw.Draw(img)
    draw.rectangle([0, 0, 19, 99], fill=GREEN)
    draw.rectangle([180, 0, 199, 99], fill=YELLOW)
    img.save(path)
    return path


@pytest.fixture
def layouts_file(test_config, base_image):
    """Catalog with one two-slot layout and one empty layout."""
    catalog = {
        'layouts': [
            {
                'id': 'mug',
                'name': 'Test mug',
                'base_image': 'layouts/base.png',
                'width': 400,
                'height': 300,
                'slots': [
                    {'id': 'left', 'x': 0, 'y': 0, 'width': 50, 'height': 100},
                    {'id': 'right', 'x': 50, 'y': 0, 'width': 50, 'height': 100, 'fit': 'contain'},
                ],
            },
            {
                'id': 'plain',
                'name': 'Plain',
                'base_image': 'layouts/base.png',
                'width': 400,
                'height': 300,
                'slots': [],
            },
        ]
    }
    path = Path(test_config.LAYOUTS_FILE)
    path.write_text(yaml.safe_dump(catalog), encoding='utf-8')
    return path


@pytest.fixture
def app(test_config, layouts_file):
    """Create and configure a test Flask application."""
    from giftprint import create_app

    app = create_app(test_config)
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    """Create a test client for the Flask application."""
    return app.test_client()
