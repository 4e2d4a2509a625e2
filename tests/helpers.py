"""Image builders and pixel assertions shared by the test modules."""

import io
from pathlib import Path
from typing import Tuple

import numpy as np
from PIL import Image


BLUE = (0, 0, 255)
RED = (255, 0, 0)
GREEN = (0, 255, 0)
YELLOW = (255, 255, 0)


def make_image(path: Path, size: Tuple[int, int], color=RED, mode: str = 'RGB') -> Path:
    """Save a solid-color image and return its path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new(mode, size, color).save(path)
    return path


def png_bytes(size: Tuple[int, int], color=RED) -> bytes:
    buffer = io.BytesIO()
    Image.new('RGB', size, color).save(buffer, format='PNG')
    return buffer.getvalue()


def as_array(result) -> np.ndarray:
    """Decode a CompositionResult into an RGBA array (rows, cols, 4)."""
    return np.asarray(result.to_image().convert('RGBA'), dtype=np.int16)


def is_color(pixel, rgb, tolerance: int = 3) -> bool:
    return bool(np.all(np.abs(np.asarray(pixel[:3], dtype=np.int16) - np.asarray(rgb)) <= tolerance))
