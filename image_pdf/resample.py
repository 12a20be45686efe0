"""
resample.py - Width normalization for decoded images.

Nearest-neighbour sampling on purpose: every source pixel lands unchanged
in the output, there is no filtering cost, and the output is immediately
re-encoded as JPEG anyway. Thin lines may alias when the scale factor is
large; that is the accepted tradeoff.
"""

import logging
from typing import Tuple

import numpy as np

logger = logging.getLogger(__name__)


def scaled_size(width: int, height: int, target_width: int) -> Tuple[int, int]:
    """
    Output size for a width-bounded downscale, preserving aspect ratio.

    Never upscales.
    """
    if width <= target_width:
        return width, height

    scale = target_width / width
    return target_width, max(1, int(round(height * scale)))


def scale_to_width(image: np.ndarray, target_width: int) -> np.ndarray:
    """
    Downscale an image to target_width using nearest-neighbour sampling.

    Destination pixel (x, y) takes source pixel (floor(x/scale), floor(y/scale)),
    clamped to the source bounds.

    Args:
        image: HxW or HxWxC uint8 array
        target_width: Maximum output width in pixels

    Returns:
        The input array itself if it is already narrow enough, otherwise a
        new array of width target_width.
    """
    src_height, src_width = image.shape[:2]
    new_width, new_height = scaled_size(src_width, src_height, target_width)
    if (new_width, new_height) == (src_width, src_height):
        return image

    scale = target_width / src_width

    src_x = np.floor(np.arange(new_width) / scale).astype(np.intp)
    src_y = np.floor(np.arange(new_height) / scale).astype(np.intp)
    np.clip(src_x, 0, src_width - 1, out=src_x)
    np.clip(src_y, 0, src_height - 1, out=src_y)

    logger.debug(f"Resampling {src_width}x{src_height} to {new_width}x{new_height}")

    return image[src_y[:, np.newaxis], src_x]
