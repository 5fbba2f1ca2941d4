"""
Error taxonomy shared by the codec, pipeline and matching engine.
"""

from __future__ import annotations

from pathlib import Path
from typing import Union


class BmpMatchError(Exception):
    """
    Base class for every error raised by the package.
    """


class FormatError(BmpMatchError, ValueError):
    """
    Raised when a bitmap has a bad signature or an unsupported layout.
    """


class PreconditionError(BmpMatchError):
    """
    Raised when an input raster cannot be read or decoded.
    """

    def __init__(self, path: Union[str, Path], stage: str, reason: str) -> None:
        self.path = Path(path)
        self.stage = stage
        self.reason = reason
        super().__init__(f"{stage} failed for {self.path}: {reason}")


class DegenerateWindowError(BmpMatchError, ArithmeticError):
    """
    Raised when a correlation window has zero variance.
    """


class UnsupportedScaleError(BmpMatchError, ValueError):
    """
    Raised when resampling is asked to enlarge an image.
    """
