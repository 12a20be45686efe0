"""
config.py - Conversion settings.

All tunables live here as named constants. The pipeline never reads them
directly; it receives a ConversionConfig so every stage stays testable.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Optional

KIB = 1024
MIB = 1024 * 1024

# Page geometry
DEFAULT_DPI = 200
POINTS_PER_INCH = 72

# Resampling
TARGET_WIDTH = 800  # px

# Size-target search
SIZE_CEILING = 500 * KIB  # per image
MAX_ATTEMPTS = 4
QUALITY_STEP = 15
MIN_QUALITY = 50

# Advisory only, never blocks writing
REPORT_THRESHOLD = 3 * MIB

SUPPORTED_EXTENSIONS = frozenset({
    ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tiff", ".tif", ".webp",
})

# adaptive: strategy table feeding the bounded quality search
# target-size: always re-encode, starting from the pixel-banded quality
MODE_ADAPTIVE = "adaptive"
MODE_TARGET_SIZE = "target-size"
MODES = (MODE_ADAPTIVE, MODE_TARGET_SIZE)


@dataclass(frozen=True)
class ConversionConfig:
    """Settings for one batch run."""
    dpi: int = DEFAULT_DPI
    target_width: int = TARGET_WIDTH
    size_ceiling: int = SIZE_CEILING
    report_threshold: int = REPORT_THRESHOLD
    max_attempts: int = MAX_ATTEMPTS
    quality_step: int = QUALITY_STEP
    min_quality: int = MIN_QUALITY
    mode: str = MODE_ADAPTIVE
    grayscale_detection: bool = False
    extensions: FrozenSet[str] = SUPPORTED_EXTENSIONS
    scratch_parent: Optional[Path] = None

    def __post_init__(self):
        if self.mode not in MODES:
            raise ValueError(f"Unknown mode {self.mode!r}, expected one of {MODES}")
        if self.dpi <= 0:
            raise ValueError(f"DPI must be positive, got {self.dpi}")
        if self.target_width <= 0:
            raise ValueError(f"Target width must be positive, got {self.target_width}")
        if self.max_attempts < 1:
            raise ValueError(f"Need at least one encode attempt, got {self.max_attempts}")
