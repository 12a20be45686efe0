"""
strategy.py - Per-image compression decisions.

Pure functions only: the same (pixels, size, extension) always gives the
same answer, so the decision table can be tested without touching a file.
"""

from enum import Enum

from .config import KIB

JPEG_EXTENSIONS = frozenset({".jpg", ".jpeg"})
PNG_EXTENSION = ".png"

# Strategy table thresholds (bytes / pixels)
TINY_FILE_SIZE = 50 * KIB
SMALL_JPEG_SIZE = 200 * KIB
PHOTO_PNG_PIXELS = 100_000
PHOTO_PNG_SIZE = 500 * KIB
LARGE_JPEG_SIZE = 300 * KIB
LARGE_FILE_SIZE = 400 * KIB

QUALITY_FLOOR = 60
QUALITY_CEILING = 95


class CompressionStrategy(Enum):
    KEEP_ORIGINAL = "keep_original"
    OPTIMIZE_JPEG = "optimize_jpeg"
    CONVERT_AND_FLATTEN = "convert_png_to_jpeg"

    def __str__(self) -> str:
        return self.value


def normalize_extension(extension: str) -> str:
    """'PNG', 'png' and '.Png' all become '.png'."""
    extension = extension.lower()
    if extension and not extension.startswith("."):
        extension = "." + extension
    return extension


def select_strategy(pixel_count: int, original_size: int, extension: str) -> CompressionStrategy:
    """
    Pick how to re-encode an image. First matching rule wins.

    Small files and already-small JPEGs are not worth touching. Large PNGs
    with many pixels are likely photos, which compress far better lossy.
    Large JPEGs and other large files get a direct re-encode.
    """
    ext = normalize_extension(extension)
    is_jpeg = ext in JPEG_EXTENSIONS

    if original_size < TINY_FILE_SIZE:
        return CompressionStrategy.KEEP_ORIGINAL

    if is_jpeg and original_size < SMALL_JPEG_SIZE:
        return CompressionStrategy.KEEP_ORIGINAL

    if ext == PNG_EXTENSION and pixel_count > PHOTO_PNG_PIXELS and original_size > PHOTO_PNG_SIZE:
        return CompressionStrategy.CONVERT_AND_FLATTEN

    if is_jpeg and original_size > LARGE_JPEG_SIZE:
        return CompressionStrategy.OPTIMIZE_JPEG

    if original_size > LARGE_FILE_SIZE:
        return CompressionStrategy.OPTIMIZE_JPEG

    return CompressionStrategy.KEEP_ORIGINAL


def optimize_jpeg_quality(pixel_count: int) -> int:
    """JPEG quality for a direct re-encode."""
    if pixel_count > 2_000_000:
        return 65
    if pixel_count > 1_000_000:
        return 70
    if pixel_count < 300_000:
        return 80
    return 75


def flatten_jpeg_quality(pixel_count: int) -> int:
    """JPEG quality after alpha flattening. Higher, to keep flat artwork legible."""
    if pixel_count > 2_000_000:
        return 82
    return 88


def adaptive_quality(pixel_count: int) -> int:
    """Starting quality for the size-targeted path."""
    if pixel_count > 4_000_000:
        quality = 75
    elif pixel_count > 2_000_000:
        quality = 80
    elif pixel_count > 1_000_000:
        quality = 85
    else:
        quality = 90

    return max(QUALITY_FLOOR, min(quality, QUALITY_CEILING))


def start_quality(strategy: CompressionStrategy, pixel_count: int) -> int:
    """Initial JPEG quality for a re-encoding strategy."""
    if strategy is CompressionStrategy.CONVERT_AND_FLATTEN:
        return flatten_jpeg_quality(pixel_count)
    if strategy is CompressionStrategy.OPTIMIZE_JPEG:
        return optimize_jpeg_quality(pixel_count)
    raise ValueError(f"{strategy} does not re-encode")
