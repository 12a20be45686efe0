from pathlib import Path

import numpy as np
import pytest
from PIL import Image


def noise(width, height, channels=3, seed=0):
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(height, width, channels), dtype=np.uint8)


def solid(width, height, color):
    array = np.zeros((height, width, len(color)), dtype=np.uint8)
    array[:, :] = color
    return array


def write_image(path, array, format=None, **save_kwargs):
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(array).save(path, format=format, **save_kwargs)
    return path


@pytest.fixture
def scratch_dir(tmp_path):
    path = tmp_path / "scratch"
    path.mkdir()
    return path


@pytest.fixture
def small_png(tmp_path):
    """Tiny flat PNG, well under every size threshold."""
    return write_image(tmp_path / "in" / "small.png", solid(64, 48, (200, 30, 30)))


@pytest.fixture
def large_bmp(tmp_path):
    """Uncompressed noise, about 1.8 MB."""
    return write_image(tmp_path / "in" / "large.bmp", noise(1000, 600, seed=1))


@pytest.fixture
def photo_png(tmp_path):
    """Noisy RGBA PNG, large enough to be treated as a photo."""
    return write_image(tmp_path / "in" / "photo.png", noise(1000, 800, channels=4, seed=2))


@pytest.fixture
def broken_png(tmp_path):
    path = tmp_path / "in" / "broken.png"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"this is not an image" * 100)
    return path
