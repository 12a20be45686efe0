"""
discovery.py - Finding input images.
"""

import logging
from pathlib import Path
from typing import Iterable, List

from .config import SUPPORTED_EXTENSIONS

logger = logging.getLogger(__name__)


def find_image_files(root: Path, extensions: Iterable[str] = SUPPORTED_EXTENSIONS) -> List[Path]:
    """
    Recursively collect files under root with a supported extension.

    Matching is case-insensitive. The order is whatever the filesystem
    returns; use sort_image_paths for processing order.
    """
    patterns = {ext.lower() for ext in extensions}
    files = []
    for path in Path(root).rglob("*"):
        if path.is_file() and path.suffix.lower() in patterns:
            files.append(path)

    logger.debug(f"Found {len(files)} image files under {root}")
    return files


def sort_image_paths(paths: Iterable[Path]) -> List[Path]:
    """Processing order: lexicographic by full path string."""
    return sorted(paths, key=str)
