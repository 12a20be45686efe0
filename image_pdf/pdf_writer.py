"""
pdf_writer.py - PDF assembly from optimized images.

Supports:
- JPEG files (DCTDecode, embedded verbatim)
- Everything else decoded and stored as RGB (FlateDecode)

Every page has the same size; each carries exactly one image, fitted
and centred.
"""

import logging
import zlib
from pathlib import Path
from typing import List, Tuple

import numpy as np
import pikepdf
from pikepdf import Pdf, Stream, Dictionary, Name
from PIL import Image

from .compression import flatten_alpha, load_image
from .geometry import PageGeometry, fit_to_page

logger = logging.getLogger(__name__)

# JPEG modes that can go into the PDF without re-encoding
PASSTHROUGH_JPEG_MODES = {"RGB": Name.DeviceRGB, "L": Name.DeviceGray}


class PDFWriter:
    """
    Assembles images into a PDF with one fixed page size.

    Each page contains exactly one image.
    No text layers, no masks, no layering.
    """

    def __init__(self, geometry: PageGeometry):
        self.geometry = geometry
        self.pdf = Pdf.new()
        self.pages: List[Path] = []

    def _image_stream(self, path: Path) -> Tuple[Stream, int, int]:
        """Build an image XObject for a file, returning (stream, width, height)."""
        with Image.open(path) as img:
            width, height = img.size
            is_passthrough = img.format == "JPEG" and img.mode in PASSTHROUGH_JPEG_MODES
            mode = img.mode

        if is_passthrough:
            image_dict = Dictionary({
                '/Type': Name.XObject,
                '/Subtype': Name.Image,
                '/Width': width,
                '/Height': height,
                '/ColorSpace': PASSTHROUGH_JPEG_MODES[mode],
                '/BitsPerComponent': 8,
                '/Filter': Name.DCTDecode,
            })
            return Stream(self.pdf, path.read_bytes(), image_dict), width, height

        # Raw RGB with FlateDecode; alpha composited onto white first
        pixels = flatten_alpha(load_image(path).pixels)
        raw_data = zlib.compress(np.ascontiguousarray(pixels).tobytes(), level=9)

        image_dict = Dictionary({
            '/Type': Name.XObject,
            '/Subtype': Name.Image,
            '/Width': width,
            '/Height': height,
            '/ColorSpace': Name.DeviceRGB,
            '/BitsPerComponent': 8,
            '/Filter': Name.FlateDecode,
        })
        return Stream(self.pdf, raw_data, image_dict), width, height

    def add_image(self, path: Path):
        """Add a page showing one image file."""
        path = Path(path)
        img_stream, width, height = self._image_stream(path)

        self.pdf.add_blank_page(page_size=self.geometry.page_size)
        page = self.pdf.pages[-1]

        xobjects = Dictionary({})
        xobjects['/Im0'] = self.pdf.make_indirect(img_stream)
        page.Resources = Dictionary({'/XObject': xobjects})

        # Draw the image fitted and centred
        box = fit_to_page(width, height, self.geometry)
        content = f"""
q
{box.width:.4f} 0 0 {box.height:.4f} {box.x:.4f} {box.y:.4f} cm
/Im0 Do
Q
"""
        page.Contents = self.pdf.make_indirect(
            Stream(self.pdf, content.strip().encode("ascii"))
        )

        self.pages.append(path)

        logger.debug(
            f"Added page {len(self.pages)}: {path.name} {width}x{height} "
            f"at {box.width:.1f}x{box.height:.1f} pts"
        )

    def save(self, output_path: Path):
        """Save PDF to file."""
        output_path = Path(output_path)

        self.pdf.save(
            output_path,
            compress_streams=True,
            object_stream_mode=pikepdf.ObjectStreamMode.generate
        )

        logger.info(f"Saved {len(self.pages)} pages to {output_path}")


def create_pdf(image_paths: List[Path], geometry: PageGeometry, output_path: Path) -> int:
    """
    Create PDF from image files.

    Returns output file size in bytes.
    """
    writer = PDFWriter(geometry)
    for path in image_paths:
        writer.add_image(path)
    writer.save(output_path)
    return Path(output_path).stat().st_size
