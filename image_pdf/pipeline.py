"""
pipeline.py - Directory of images to a single PDF.

Pipeline:
1. Discover and sort input images
2. Optimize each image into a scratch directory (one at a time)
3. Derive one page size from the average image size
4. Write one page per image
5. Remove the scratch directory, report output size

Low-memory by design: only one image is decoded at any moment.
"""

import logging
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple

from .compression import ItemFailure, OptimizedImage, optimize_image
from .config import ConversionConfig, MIB, REPORT_THRESHOLD
from .discovery import find_image_files, sort_image_paths
from .errors import ConversionError, EmptyInputError, FatalSetupError, PersistError
from .geometry import PageGeometry, calculate_page_geometry, read_dimensions
from .pdf_writer import create_pdf

logger = logging.getLogger(__name__)

SCRATCH_PREFIX = "temp_optimized_images_"

ProgressCallback = Callable[[int, int], None]


@dataclass
class BatchResult:
    """Optimized images in processing order, plus the ones that failed."""
    items: List[OptimizedImage] = field(default_factory=list)
    failures: List[ItemFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.items)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def total(self) -> int:
        return self.succeeded + self.failed


@dataclass
class ConversionResult:
    """Result of converting a directory to PDF."""
    input_dir: Path
    output_path: Path
    error: Optional[ConversionError] = None

    batch: BatchResult = field(default_factory=BatchResult)
    geometry: Optional[PageGeometry] = None

    input_size: int = 0
    output_size: int = 0
    total_time: float = 0.0
    exceeds_threshold: bool = False

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def reduction_pct(self) -> float:
        if self.input_size == 0:
            return 0
        return (1 - self.output_size / self.input_size) * 100

    def summary(self) -> str:
        lines = [
            f"Input:  {self.input_dir} ({self.batch.total} images, {self.input_size:,} bytes)",
            f"Output: {self.output_path.name} ({self.output_size:,} bytes, "
            f"{self.output_size / MIB:.2f} MB)",
            f"Pages: {self.batch.succeeded}/{self.batch.total} "
            f"(skipped {self.batch.failed})",
        ]
        if self.geometry is not None:
            lines.append(
                f"Page size: {self.geometry.width_pts:.1f}x{self.geometry.height_pts:.1f} pts "
                f"@ {self.geometry.dpi} DPI"
            )
        lines.append(f"Reduction: {self.reduction_pct:.1f}%")
        lines.append(f"Time: {self.total_time:.1f}s")
        return "\n".join(lines)


def optimize_batch(
    paths: Iterable[Path],
    scratch_dir: Path,
    config: ConversionConfig,
    progress_callback: Optional[ProgressCallback] = None
) -> BatchResult:
    """
    Optimize images sequentially, collecting successes and failures.

    A failed image never stops the batch.
    """
    paths = list(paths)
    batch = BatchResult()

    for index, path in enumerate(paths):
        logger.info(f"Optimizing {index + 1}/{len(paths)}: {path.name}")

        outcome = optimize_image(path, index, scratch_dir, config)
        if isinstance(outcome, ItemFailure):
            batch.failures.append(outcome)
        else:
            batch.items.append(outcome)

        if progress_callback:
            progress_callback(index + 1, len(paths))

    logger.info(
        f"Optimized {batch.succeeded} images"
        + (f", skipped {batch.failed}" if batch.failed else "")
    )
    return batch


def check_file_size(path: Path, threshold: int = REPORT_THRESHOLD) -> Tuple[int, bool]:
    """
    Report the output size against the advisory threshold.

    Advisory only: a size that cannot be read is logged, not raised.

    Returns:
        (size_in_bytes, exceeds_threshold); (0, False) if unreadable
    """
    try:
        size = Path(path).stat().st_size
    except OSError as e:
        logger.warning(f"Could not read PDF size: {e}")
        return 0, False

    size_mb = size / MIB
    threshold_mb = threshold / MIB

    logger.info(f"PDF file size: {size_mb:.2f} MB")

    exceeds = size > threshold
    if exceeds:
        logger.warning(
            f"PDF size ({size_mb:.2f} MB) exceeds target of {threshold_mb:.1f} MB. "
            f"To reduce it: use JPEG instead of PNG for photos, lower the target "
            f"width, or split the images across several PDFs"
        )
    else:
        logger.info(f"PDF size is within the {threshold_mb:.1f} MB target")

    return size, exceeds


def _prepare(input_dir: Path, output_path: Path):
    if not input_dir.is_dir():
        raise FatalSetupError(f"Input directory does not exist: {input_dir}")

    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FatalSetupError(f"Failed to create output directory: {e}") from e


def _open_scratch(parent: Path) -> tempfile.TemporaryDirectory:
    try:
        return tempfile.TemporaryDirectory(prefix=SCRATCH_PREFIX, dir=parent)
    except OSError as e:
        raise FatalSetupError(f"Failed to create scratch directory: {e}") from e


def _convert(
    result: ConversionResult,
    config: ConversionConfig,
    progress_callback: Optional[ProgressCallback]
):
    _prepare(result.input_dir, result.output_path)

    image_files = sort_image_paths(find_image_files(result.input_dir, config.extensions))
    if not image_files:
        raise EmptyInputError(f"No image files found in directory: {result.input_dir}")

    logger.info(f"Found {len(image_files)} image files, converting to PDF")

    scratch_parent = config.scratch_parent or result.output_path.parent
    with _open_scratch(scratch_parent) as scratch_dir:
        batch = optimize_batch(image_files, Path(scratch_dir), config, progress_callback)
        result.batch = batch
        result.input_size = sum(item.original_size for item in batch.items)

        if batch.succeeded == 0:
            raise EmptyInputError(f"All {batch.total} images failed to optimize")

        result.geometry = calculate_page_geometry(
            (read_dimensions(item.output_path) for item in batch.items),
            dpi=config.dpi,
        )

        try:
            create_pdf(
                [item.output_path for item in batch.items],
                result.geometry,
                result.output_path,
            )
        except Exception as e:
            raise PersistError(f"Failed to save PDF to {result.output_path}: {e}") from e

    logger.debug("Cleaned up temporary optimized images")

    result.output_size, result.exceeds_threshold = check_file_size(
        result.output_path, config.report_threshold
    )


def convert_images_to_pdf(
    input_dir: Path,
    output_path: Path,
    config: Optional[ConversionConfig] = None,
    progress_callback: Optional[ProgressCallback] = None
) -> ConversionResult:
    """
    Convert every supported image under input_dir into one PDF.

    Args:
        input_dir: Directory searched recursively for images
        output_path: Destination PDF
        config: Conversion settings (defaults if omitted)
        progress_callback: Optional callback(current, total) per image

    Returns:
        ConversionResult; on failure success is False and error holds the
        FatalSetupError, EmptyInputError or PersistError that ended the run.
    """
    config = config or ConversionConfig()
    result = ConversionResult(
        input_dir=Path(input_dir),
        output_path=Path(output_path),
    )

    start_time = time.time()
    try:
        _convert(result, config, progress_callback)
        logger.info(f"Successfully created PDF: {result.output_path}")
    except ConversionError as e:
        logger.error(f"Conversion failed: {e}")
        result.error = e

    result.total_time = time.time() - start_time
    return result
