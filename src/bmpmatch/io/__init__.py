"""
IO helpers for loading and saving bitmap files.
"""

from .image_loader import load_raster, save_raster

__all__ = ["load_raster", "save_raster"]
