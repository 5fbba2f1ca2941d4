from __future__ import annotations

from typing import Tuple

import cv2
import numpy as np

from ..errors import UnsupportedScaleError
from ..raster import GrayscaleBuffer, RasterImage

# Integer luma weights, summing to 256.
LUMA_WEIGHTS = (76, 150, 30)

# Centre, +-1 and +-2 taps of the 1-D smoothing kernel.
BLUR_TAPS = (0.4026, 0.2442, 0.0545)
BLUR_RADIUS = len(BLUR_TAPS) - 1

HIGHLIGHT_COLOR: Tuple[int, int, int] = (0, 255, 0)

_IDENTITY = np.ones(1, dtype=np.float32)


def to_grayscale(image: RasterImage) -> GrayscaleBuffer:
    """
    Integer luma approximation: (R*76 + G*150 + B*30) >> 8.
    """
    rgb = image.pixels[..., :3].astype(np.uint32)
    red_w, green_w, blue_w = LUMA_WEIGHTS
    luma = (rgb[..., 0] * red_w + rgb[..., 1] * green_w + rgb[..., 2] * blue_w) >> 8
    return GrayscaleBuffer(luma.astype(np.uint8))


def blur_kernel() -> np.ndarray:
    center, near, far = BLUR_TAPS
    return np.array([far, near, center, near, far], dtype=np.float32)


def gaussian_blur(image: RasterImage, iterations: int) -> RasterImage:
    """
    Separable smoothing, rows first then columns, repeated ``iterations`` times.

    The halo of ``BLUR_RADIUS`` pixels around the image replicates the edge
    pixels. Every pass rounds back to 8 bits before the next one reads it.
    Alpha is left untouched and the input image is not modified.
    """
    if iterations < 0:
        raise ValueError("iterations must be >= 0")

    result = image.copy()
    if iterations == 0 or result.size == 0:
        return result

    kernel = blur_kernel()
    rgb = np.ascontiguousarray(result.pixels[..., :3])
    for _ in range(iterations):
        rgb = _filter_pass(rgb, kernel, _IDENTITY)
        rgb = _filter_pass(rgb, _IDENTITY, kernel)
    result.pixels[..., :3] = rgb
    return result


def _filter_pass(channels: np.ndarray, kernel_x: np.ndarray, kernel_y: np.ndarray) -> np.ndarray:
    filtered = cv2.sepFilter2D(
        channels,
        cv2.CV_32F,
        kernel_x,
        kernel_y,
        borderType=cv2.BORDER_REPLICATE,
    )
    return np.clip(np.rint(filtered), 0, 255).astype(np.uint8)


def resample(image: RasterImage, scale_width: float, scale_height: float) -> RasterImage:
    """
    Nearest-neighbour downscaling.

    The output is ``floor(dim * scale)`` per axis and destination index ``d``
    reads source index ``clamp(floor(d / scale), 0, dim - 1)``.
    """
    if scale_width <= 0 or scale_height <= 0:
        raise ValueError("scale factors must be positive")
    if scale_width > 1.0 or scale_height > 1.0:
        raise UnsupportedScaleError(
            f"resample only shrinks images; got scale ({scale_width}, {scale_height})"
        )

    dst_width = int(image.width * scale_width)
    dst_height = int(image.height * scale_height)

    cols = _source_indices(dst_width, scale_width, image.width)
    rows = _source_indices(dst_height, scale_height, image.height)
    return RasterImage(image.pixels[rows[:, None], cols[None, :]])


def _source_indices(count: int, scale: float, limit: int) -> np.ndarray:
    indices = np.floor(np.arange(count, dtype=np.float64) / scale).astype(np.int64)
    return np.clip(indices, 0, max(limit - 1, 0))


def draw_box(
    image: RasterImage,
    x: int,
    y: int,
    width: int,
    height: int,
    color: Tuple[int, int, int] = HIGHLIGHT_COLOR,
) -> None:
    """
    Draw a 1-pixel rectangle outline in place, clipped to the image.
    """
    if width <= 0 or height <= 0:
        return
    cv2.rectangle(
        image.pixels,
        (int(x), int(y)),
        (int(x + width - 1), int(y + height - 1)),
        (int(color[0]), int(color[1]), int(color[2]), 255),
        thickness=1,
        lineType=cv2.LINE_8,
    )
