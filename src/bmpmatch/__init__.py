"""
Multiscale normalized cross-correlation template matching on BMP rasters.
"""

from .codec import decode, encode
from .errors import (
    BmpMatchError,
    DegenerateWindowError,
    FormatError,
    PreconditionError,
    UnsupportedScaleError,
)
from .matching.engine import MatchCandidate, MatchConfig, MatchEngine, MatchOutcome
from .raster import GrayscaleBuffer, RasterImage
from .reporting.report import ResultAggregator

__all__ = [
    "BmpMatchError",
    "DegenerateWindowError",
    "FormatError",
    "GrayscaleBuffer",
    "MatchCandidate",
    "MatchConfig",
    "MatchEngine",
    "MatchOutcome",
    "PreconditionError",
    "RasterImage",
    "ResultAggregator",
    "UnsupportedScaleError",
    "decode",
    "encode",
]
