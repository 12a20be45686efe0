"""
Images to PDF - adaptive image optimization and PDF assembly.

This package converts a directory of raster images into a single PDF,
one image per page, re-encoding each image only when it is worth it.
"""

__version__ = "1.0.0"
__author__ = "Images to PDF"
