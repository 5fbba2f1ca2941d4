from __future__ import annotations

import cv2
import numpy as np

from ..errors import DegenerateWindowError
from ..raster import GrayscaleBuffer


def normalized_cross_correlation(patch: np.ndarray, template: np.ndarray) -> float:
    """
    NCC of two equally sized patches.

    Reference form of one ``correlation_surface`` cell, for checking a single
    window by hand; the engine itself only uses the surface.

    Uses population standard deviations:
    sum((p - mean_p) * (t - mean_t)) / (N * std_p * std_t).
    Raises DegenerateWindowError when either patch is constant.
    """
    if patch.shape != template.shape:
        raise ValueError("patch and template must have the same shape")
    if patch.size == 0:
        raise ValueError("patches must not be empty")

    p = patch.astype(np.float64)
    t = template.astype(np.float64)
    p_std = float(p.std())
    t_std = float(t.std())
    if p_std == 0.0 or t_std == 0.0:
        raise DegenerateWindowError("correlation window has zero variance")

    covariance = float(((p - p.mean()) * (t - t.mean())).sum())
    return covariance / (p.size * p_std * t_std)


def correlation_surface(scene: GrayscaleBuffer, template: GrayscaleBuffer) -> np.ndarray:
    """
    NCC score for every offset where the template fits inside the scene.

    Returns a float32 array of shape
    ``(scene.height - template.height + 1, scene.width - template.width + 1)``.
    Cells whose scene window (or the template) has zero variance score 0.0.
    """
    t_height, t_width = template.height, template.width
    if t_height == 0 or t_width == 0:
        raise ValueError("template must not be empty")
    rows = scene.height - t_height + 1
    cols = scene.width - t_width + 1
    if rows <= 0 or cols <= 0:
        raise ValueError(
            f"template {t_width}x{t_height} does not fit in scene {scene.width}x{scene.height}"
        )

    if not np.any(template.samples != template.samples.flat[0]):
        return np.zeros((rows, cols), dtype=np.float32)

    surface = cv2.matchTemplate(
        scene.samples.astype(np.float32),
        template.samples.astype(np.float32),
        cv2.TM_CCOEFF_NORMED,
    )

    surface[_flat_windows(np.array(scene.samples), t_height, t_width)] = 0.0
    surface = np.nan_to_num(surface, nan=0.0, posinf=0.0, neginf=0.0)
    return np.clip(surface, -1.0, 1.0).astype(np.float32, copy=False)


def _flat_windows(samples: np.ndarray, height: int, width: int) -> np.ndarray:
    """
    Mask of window offsets whose samples are all equal.
    """
    sums, squares = cv2.integral2(samples, sdepth=cv2.CV_64F, sqdepth=cv2.CV_64F)
    rows = samples.shape[0] - height + 1
    cols = samples.shape[1] - width + 1

    window_sum = sums[height:, width:] - sums[:rows, width:] - sums[height:, :cols] + sums[:rows, :cols]
    window_sq = squares[height:, width:] - squares[:rows, width:] - squares[height:, :cols] + squares[:rows, :cols]

    # N^2 * variance; exact for 8-bit integer samples.
    spread = height * width * window_sq - window_sum * window_sum
    return spread <= 0.0
