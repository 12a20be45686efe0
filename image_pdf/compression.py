"""
compression.py - Per-image optimization.

Strategies:
- keep_original: byte-for-byte copy, no re-encode
- optimize_jpeg: re-encode at a pixel-banded quality
- convert_png_to_jpeg: flatten alpha onto white, then re-encode

Every re-encode goes through a bounded quality search against a per-image
byte ceiling.
"""

import io
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import numpy as np
from PIL import Image
import cv2

from .config import (
    ConversionConfig,
    MAX_ATTEMPTS,
    MIN_QUALITY,
    MODE_TARGET_SIZE,
    QUALITY_STEP,
    SIZE_CEILING,
)
from .resample import scale_to_width
from .strategy import (
    CompressionStrategy,
    adaptive_quality,
    select_strategy,
    start_quality,
)

logger = logging.getLogger(__name__)

# A pixel counts as colored above this LAB chroma
COLOR_CHROMA_THRESHOLD = 15
# An image counts as colored when more than this share of pixels are
COLOR_PIXEL_THRESHOLD = 0.001  # 0.1%


@dataclass(frozen=True)
class SourceImage:
    """A decoded input image."""
    path: Path
    pixels: np.ndarray  # HxWx3 RGB or HxWx4 RGBA
    extension: str
    byte_size: int

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    @property
    def has_alpha(self) -> bool:
        return self.pixels.shape[2] == 4


@dataclass(frozen=True)
class OptimizedImage:
    """An image ready to be placed on a page."""
    source_path: Path
    output_path: Path
    strategy: CompressionStrategy
    original_size: int
    byte_size: int
    width: int
    height: int
    quality: Optional[int] = None  # None when the original was kept
    attempts: int = 0

    @property
    def reduction_pct(self) -> float:
        if self.original_size == 0:
            return 0
        return (1 - self.byte_size / self.original_size) * 100


@dataclass(frozen=True)
class ItemFailure:
    """An image that could not be optimized."""
    source_path: Path
    error: str


ItemOutcome = Union[OptimizedImage, ItemFailure]


@dataclass(frozen=True)
class EncodeResult:
    """Output of the size-ceiling search."""
    data: bytes
    quality: int
    attempts: int

    @property
    def size(self) -> int:
        return len(self.data)


def _has_transparency(img: Image.Image) -> bool:
    return img.mode in ("RGBA", "LA", "PA", "RGBa", "La") or "transparency" in img.info


def _to_8bit(img: Image.Image) -> Image.Image:
    """Reduce 16- or 32-bit integer grayscale to 8-bit by dropping the low byte."""
    values = np.clip(np.array(img), 0, 65535).astype(np.uint16)
    return Image.fromarray((values >> 8).astype(np.uint8))


def load_image(path: Path) -> SourceImage:
    """
    Decode an image file into an RGB or RGBA array.

    Alpha is kept when the file has any, so it can be flattened onto white
    later instead of being dropped. Multi-frame files use the first frame.
    High bit-depth grayscale (mode I;16 or I) is scaled down, not clipped.
    """
    path = Path(path)
    byte_size = path.stat().st_size

    with Image.open(path) as img:
        frame = _to_8bit(img) if img.mode.startswith("I") else img
        mode = "RGBA" if _has_transparency(frame) else "RGB"
        pixels = np.array(frame.convert(mode))

    logger.debug(f"Decoded {path.name}: {pixels.shape[1]}x{pixels.shape[0]} {mode}")

    return SourceImage(
        path=path,
        pixels=pixels,
        extension=path.suffix.lower(),
        byte_size=byte_size,
    )


def flatten_alpha(image: np.ndarray) -> np.ndarray:
    """
    Composite an RGBA image onto opaque white.

    dst = src * alpha + 255 * (1 - alpha), alpha in [0, 1].
    Images without an alpha channel are returned unchanged.
    """
    if image.ndim != 3 or image.shape[2] != 4:
        return image

    rgb = image[:, :, :3].astype(np.float32)
    alpha = image[:, :, 3:4].astype(np.float32) / 255.0

    flat = rgb * alpha + 255.0 * (1.0 - alpha)
    return np.clip(np.rint(flat), 0, 255).astype(np.uint8)


def is_grayscale_image(image: np.ndarray) -> bool:
    """
    Check if image carries no meaningful color.

    Counts pixels whose chroma is above COLOR_CHROMA_THRESHOLD, so a small
    colored logo or signature on a gray scan still marks the image as color.
    """
    if image.ndim != 3 or image.shape[2] != 3:
        return True  # Already grayscale

    lab = cv2.cvtColor(image, cv2.COLOR_RGB2LAB)

    # a and b are centred at 128 in 8-bit LAB
    a = lab[:, :, 1].astype(np.float32) - 128
    b = lab[:, :, 2].astype(np.float32) - 128
    chroma = np.sqrt(a * a + b * b)

    color_fraction = np.count_nonzero(chroma > COLOR_CHROMA_THRESHOLD) / chroma.size
    is_gray = color_fraction <= COLOR_PIXEL_THRESHOLD
    logger.debug(f"Color pixels: {color_fraction:.2%}, is_grayscale: {is_gray}")

    return is_gray


def encode_jpeg(
    image: np.ndarray,
    quality: int,
    grayscale_detection: bool = False
) -> bytes:
    """
    Encode an image array as JPEG.

    Args:
        image: RGB, RGBA or grayscale uint8 array
        quality: JPEG quality (1-100, lower = smaller)
        grayscale_detection: Store colorless images as one channel

    Returns:
        JPEG bytes
    """
    image = flatten_alpha(image)

    if image.ndim == 2:
        img = Image.fromarray(image)
    elif grayscale_detection and is_grayscale_image(image):
        img = Image.fromarray(cv2.cvtColor(image, cv2.COLOR_RGB2GRAY))
    else:
        img = Image.fromarray(image)

    buffer = io.BytesIO()
    img.save(
        buffer,
        format="JPEG",
        quality=quality,
        optimize=True,
        subsampling=2  # 4:2:0 chroma subsampling
    )
    return buffer.getvalue()


def encode_with_size_ceiling(
    image: np.ndarray,
    quality: int,
    size_ceiling: int = SIZE_CEILING,
    max_attempts: int = MAX_ATTEMPTS,
    quality_step: int = QUALITY_STEP,
    min_quality: int = MIN_QUALITY,
    grayscale_detection: bool = False
) -> EncodeResult:
    """
    Encode as JPEG, lowering quality until the output fits size_ceiling.

    Stops as soon as the output fits, quality reaches min_quality, or
    max_attempts encodes have been made. A missed ceiling is not an error:
    the last attempt is returned.
    """
    image = flatten_alpha(image)
    quality = max(min_quality, quality)
    attempts = 0

    while True:
        data = encode_jpeg(image, quality, grayscale_detection)
        attempts += 1

        if len(data) <= size_ceiling or quality <= min_quality or attempts >= max_attempts:
            break

        logger.debug(
            f"Attempt {attempts}: {len(data):,} bytes at q={quality} "
            f"exceeds {size_ceiling:,}, retrying"
        )
        quality = max(min_quality, quality - quality_step)

    if attempts > 1:
        logger.debug(f"Compressed to {len(data) // 1024} KB (quality: {quality})")

    return EncodeResult(data=data, quality=quality, attempts=attempts)


def _choose_strategy(source: SourceImage, pixel_count: int, config: ConversionConfig) -> CompressionStrategy:
    if config.mode == MODE_TARGET_SIZE:
        if source.has_alpha:
            return CompressionStrategy.CONVERT_AND_FLATTEN
        return CompressionStrategy.OPTIMIZE_JPEG
    return select_strategy(pixel_count, source.byte_size, source.extension)


def _log_outcome(result: OptimizedImage):
    original_kb = result.original_size // 1024
    if result.reduction_pct > 0:
        logger.info(
            f"    {result.strategy}: {original_kb} KB -> {result.byte_size // 1024} KB "
            f"({result.reduction_pct:.1f}% reduction)"
        )
    else:
        logger.info(f"    {result.strategy}: {original_kb} KB (kept original)")


def optimize_image(
    path: Path,
    index: int,
    scratch_dir: Path,
    config: ConversionConfig
) -> ItemOutcome:
    """
    Optimize one image into scratch_dir.

    Output names carry the batch index, so files with the same name in
    different subdirectories cannot overwrite each other.

    Returns:
        OptimizedImage on success, ItemFailure if the image could not be
        decoded, encoded or copied.
    """
    path = Path(path)

    try:
        source = load_image(path)
        pixels = scale_to_width(source.pixels, config.target_width)
        height, width = pixels.shape[:2]
        pixel_count = width * height

        strategy = _choose_strategy(source, pixel_count, config)

        if strategy is CompressionStrategy.KEEP_ORIGINAL:
            output_path = Path(scratch_dir) / f"{index:05d}_{path.name}"
            shutil.copyfile(path, output_path)
            result = OptimizedImage(
                source_path=path,
                output_path=output_path,
                strategy=strategy,
                original_size=source.byte_size,
                byte_size=source.byte_size,
                width=source.width,
                height=source.height,
            )
        else:
            if config.mode == MODE_TARGET_SIZE:
                quality = adaptive_quality(pixel_count)
            else:
                quality = start_quality(strategy, pixel_count)

            if strategy is CompressionStrategy.CONVERT_AND_FLATTEN:
                pixels = flatten_alpha(pixels)

            encoded = encode_with_size_ceiling(
                pixels,
                quality,
                size_ceiling=config.size_ceiling,
                max_attempts=config.max_attempts,
                quality_step=config.quality_step,
                min_quality=config.min_quality,
                grayscale_detection=config.grayscale_detection,
            )

            output_path = Path(scratch_dir) / f"{index:05d}_{path.stem}.jpg"
            output_path.write_bytes(encoded.data)
            result = OptimizedImage(
                source_path=path,
                output_path=output_path,
                strategy=strategy,
                original_size=source.byte_size,
                byte_size=encoded.size,
                width=width,
                height=height,
                quality=encoded.quality,
                attempts=encoded.attempts,
            )

        _log_outcome(result)
        return result

    except Exception as e:
        logger.error(f"Failed to optimize {path.name}: {e}")
        return ItemFailure(source_path=path, error=str(e))
