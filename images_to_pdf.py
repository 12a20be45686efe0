#!/usr/bin/env python3
"""
images_to_pdf.py - Folder of images to one PDF.

One image per page, every page the same size. Large images are
re-encoded as JPEG; small or already-efficient files are kept as-is.

Usage:
    python images_to_pdf.py -i ./scans
    python images_to_pdf.py -i ./scans -o ./out -n album.pdf
    python images_to_pdf.py -i ./scans --mode target-size
"""

import argparse
import logging
import sys
from pathlib import Path

from image_pdf.config import (
    ConversionConfig,
    DEFAULT_DPI,
    MODE_ADAPTIVE,
    MODES,
    TARGET_WIDTH,
)
from image_pdf.pipeline import convert_images_to_pdf


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S"
    )


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Convert images from a folder to a single PDF document.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python images_to_pdf.py -i ./scans
  python images_to_pdf.py -i ./scans -o ./out -n album.pdf
  python images_to_pdf.py -i ./scans --mode target-size

Images are read recursively (jpg, jpeg, png, gif, bmp, tiff, tif, webp)
and sorted by path. Each is scaled to the target width, re-encoded only
when worthwhile, and placed on its own page. Page size is the average
image size at the given DPI.
"""
    )

    parser.add_argument(
        "-i", "--input",
        type=Path,
        required=True,
        help="Input directory containing images"
    )

    parser.add_argument(
        "-o", "--output",
        type=Path,
        default=Path("."),
        help="Output directory for the PDF file (default: current directory)"
    )

    parser.add_argument(
        "-n", "--name",
        default="images.pdf",
        help="Name of the output PDF file (default: images.pdf)"
    )

    parser.add_argument(
        "--mode",
        choices=MODES,
        default=MODE_ADAPTIVE,
        help="adaptive: keep or re-encode per image; "
             "target-size: re-encode every image toward the size ceiling "
             "(default: adaptive)"
    )

    parser.add_argument(
        "-w", "--width",
        type=int,
        default=TARGET_WIDTH,
        help=f"Maximum image width in pixels (default: {TARGET_WIDTH})"
    )

    parser.add_argument(
        "-d", "--dpi",
        type=int,
        default=DEFAULT_DPI,
        help=f"DPI used to size pages (default: {DEFAULT_DPI})"
    )

    parser.add_argument(
        "--grayscale",
        action="store_true",
        help="Store images without any colored pixels as one-channel JPEGs"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )

    return parser.parse_args(argv)


def print_progress(current: int, total: int):
    """Print progress bar."""
    width = 40
    filled = int(width * current / total)
    bar = "=" * filled + "-" * (width - filled)
    pct = current / total * 100
    print(f"\r[{bar}] {current}/{total} ({pct:.0f}%)", end="", file=sys.stderr)
    if current == total:
        print(file=sys.stderr)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = ConversionConfig(
            dpi=args.dpi,
            target_width=args.width,
            mode=args.mode,
            grayscale_detection=args.grayscale,
        )
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    result = convert_images_to_pdf(
        args.input,
        args.output / args.name,
        config=config,
        progress_callback=print_progress
    )

    if not result.success:
        print(f"Error: {result.error}", file=sys.stderr)
        return 1

    print(f"\n{result.summary()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
