import numpy as np
import pytest
from PIL import Image

RED = (255, 0, 0)
GREEN = (0, 255, 0)
BLUE = (0, 0, 255)
BLACK = (0, 0, 0)
WHITE = (255, 255, 255)


@pytest.fixture
def solid_image(tmp_path):
    """Write a single-colour PNG and return its path as a string."""

    def _make(name, color, size=(100, 100)):
        path = tmp_path / name
        Image.new("RGB", size, color).save(path, format="PNG")
        return str(path)

    return _make


@pytest.fixture
def gradient_image(tmp_path):
    """Write a PNG whose every pixel differs, so misplaced pixels are detectable."""

    def _make(name, size=(64, 48)):
        width, height = size
        xs = np.linspace(0, 255, width, dtype=np.uint8)[np.newaxis, :].repeat(height, axis=0)
        ys = np.linspace(0, 255, height, dtype=np.uint8)[:, np.newaxis].repeat(width, axis=1)
        arr = np.stack([xs, ys, 255 - xs], axis=-1)
        path = tmp_path / name
        Image.fromarray(arr).save(path, format="PNG")
        return str(path)

    return _make
