"""
Test configuration and fixtures for the distil pipeline tests.
"""
import numpy as np
import pytest
from loguru import logger
from PIL import Image


@pytest.fixture
def write_image(tmp_path):
    """Factory that saves an (H, W, C) uint8 array as an image file in tmp_path."""
    def _write(pixels, name='image.png', format='PNG'):
        path = tmp_path / name
        Image.fromarray(np.asarray(pixels, dtype=np.uint8)).save(path, format=format)
        return path
    return _write


@pytest.fixture
def scenario_pixels():
    """2x2 opaque image: two dark grays, one light gray, one near-black pixel."""
    return np.array([
        [[10, 10, 10, 255], [10, 10, 10, 255]],
        [[200, 200, 200, 255], [5, 5, 5, 255]],
    ], dtype=np.uint8)


@pytest.fixture
def banded_pixels():
    """20x20 RGB image: top half brick red, bottom half navy."""
    pixels = np.zeros((20, 20, 3), dtype=np.uint8)
    pixels[:10] = (200, 30, 30)
    pixels[10:] = (30, 30, 200)
    return pixels


@pytest.fixture
def noisy_pixels():
    """40x30 RGB image of seeded noise, larger than the default sample budget."""
    rng = np.random.default_rng(7)
    return rng.integers(0, 256, size=(30, 40, 3), dtype=np.uint8)


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop any sinks a CLI entry point added during the test."""
    yield
    logger.remove()
