"""
geometry.py - One page size for the whole document.

Page size is the mean pixel size of the optimized images converted to
points at a fixed DPI. Images that do not match the average are fitted
and centred on the page rather than getting a page of their own size.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Tuple

from PIL import Image

from .config import DEFAULT_DPI, POINTS_PER_INCH
from .errors import EmptyInputError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageGeometry:
    """Page size in PDF points (1/72 inch)."""
    width_pts: float
    height_pts: float
    avg_width: float
    avg_height: float
    dpi: int = DEFAULT_DPI

    @property
    def page_size(self) -> Tuple[float, float]:
        return self.width_pts, self.height_pts


@dataclass(frozen=True)
class Placement:
    """Where an image is drawn on a page, in points."""
    x: float
    y: float
    width: float
    height: float


def read_dimensions(path: Path) -> Optional[Tuple[int, int]]:
    """Read (width, height) from an image header, or None if unreadable."""
    try:
        with Image.open(path) as img:
            return img.size
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read dimensions of {Path(path).name}: {e}")
        return None


def calculate_page_geometry(
    dimensions: Iterable[Optional[Tuple[int, int]]],
    dpi: int = DEFAULT_DPI
) -> PageGeometry:
    """
    Derive the page size from the average image size.

    Args:
        dimensions: (width, height) in pixels per image; None entries are skipped
        dpi: Resolution used to convert pixels to points

    Raises:
        EmptyInputError: if there is nothing to average
    """
    total_width = 0
    total_height = 0
    count = 0

    for dims in dimensions:
        if dims is None:
            continue
        total_width += dims[0]
        total_height += dims[1]
        count += 1

    if count == 0:
        raise EmptyInputError("No valid images to derive a page size from")

    avg_width = total_width / count
    avg_height = total_height / count

    geometry = PageGeometry(
        width_pts=avg_width * POINTS_PER_INCH / dpi,
        height_pts=avg_height * POINTS_PER_INCH / dpi,
        avg_width=avg_width,
        avg_height=avg_height,
        dpi=dpi,
    )
    logger.info(
        f"Average image dimensions: {avg_width:.1f}x{avg_height:.1f} pixels, "
        f"page {geometry.width_pts:.1f}x{geometry.height_pts:.1f} pts @ {dpi} DPI"
    )
    return geometry


def fit_to_page(width: int, height: int, geometry: PageGeometry) -> Placement:
    """Scale an image uniformly to fit the page and centre it."""
    scale = min(geometry.width_pts / width, geometry.height_pts / height)
    draw_width = width * scale
    draw_height = height * scale

    return Placement(
        x=(geometry.width_pts - draw_width) / 2,
        y=(geometry.height_pts - draw_height) / 2,
        width=draw_width,
        height=draw_height,
    )
