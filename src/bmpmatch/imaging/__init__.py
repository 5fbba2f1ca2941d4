"""
Pixel pipeline stages applied to canonical rasters before correlation.
"""

from .pipeline import draw_box, gaussian_blur, resample, to_grayscale

__all__ = ["draw_box", "gaussian_blur", "resample", "to_grayscale"]
