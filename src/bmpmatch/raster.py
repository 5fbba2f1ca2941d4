from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

RGBA = Tuple[int, int, int, int]


@dataclass(slots=True)
class RasterImage:
    """
    Canonical RGBA8 raster with a top-left origin.

    ``pixels`` is a single contiguous ``(height, width, 4)`` uint8 array owned
    by the image.
    """

    pixels: np.ndarray

    def __post_init__(self) -> None:
        if self.pixels.ndim != 3 or self.pixels.shape[2] != 4:
            raise ValueError("pixels must have shape (height, width, 4)")
        if self.pixels.dtype != np.uint8:
            raise ValueError("pixels must be uint8")
        self.pixels = np.ascontiguousarray(self.pixels)

    @classmethod
    def blank(cls, width: int, height: int, fill: RGBA = (0, 0, 0, 255)) -> "RasterImage":
        if width < 0 or height < 0:
            raise ValueError("width and height must be >= 0")
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[...] = np.asarray(fill, dtype=np.uint8)
        return cls(pixels)

    @classmethod
    def from_rgb(cls, rgb: np.ndarray) -> "RasterImage":
        """
        Wrap an ``(height, width, 3)`` RGB array, adding an opaque alpha channel.
        """
        if rgb.ndim != 3 or rgb.shape[2] != 3:
            raise ValueError("rgb must have shape (height, width, 3)")
        alpha = np.full(rgb.shape[:2] + (1,), 255, dtype=np.uint8)
        return cls(np.concatenate([rgb.astype(np.uint8), alpha], axis=2))

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> int:
        return self.width * self.height

    def pixel(self, x: int, y: int) -> RGBA:
        self._check_bounds(x, y)
        r, g, b, a = self.pixels[y, x]
        return int(r), int(g), int(b), int(a)

    def set_pixel(self, x: int, y: int, rgba: RGBA) -> None:
        self._check_bounds(x, y)
        self.pixels[y, x] = rgba

    def copy(self) -> "RasterImage":
        return RasterImage(self.pixels.copy())

    def crop(self, x: int, y: int, width: int, height: int) -> "RasterImage":
        if width <= 0 or height <= 0:
            raise ValueError("crop size must be positive")
        if x < 0 or y < 0 or x + width > self.width or y + height > self.height:
            raise IndexError(f"crop ({x}, {y}, {width}, {height}) exceeds {self.width}x{self.height} image")
        return RasterImage(self.pixels[y : y + height, x : x + width].copy())

    def _check_bounds(self, x: int, y: int) -> None:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"pixel ({x}, {y}) outside {self.width}x{self.height} image")


@dataclass(slots=True, frozen=True)
class GrayscaleBuffer:
    """
    Read-only 8-bit luma samples derived from a RasterImage.
    """

    samples: np.ndarray

    def __post_init__(self) -> None:
        if self.samples.ndim != 2:
            raise ValueError("samples must be a 2-D array")
        samples = np.array(self.samples, dtype=np.uint8, order="C")
        samples.setflags(write=False)
        object.__setattr__(self, "samples", samples)

    @property
    def width(self) -> int:
        return int(self.samples.shape[1])

    @property
    def height(self) -> int:
        return int(self.samples.shape[0])

    def value(self, x: int, y: int) -> int:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"sample ({x}, {y}) outside {self.width}x{self.height} buffer")
        return int(self.samples[y, x])
