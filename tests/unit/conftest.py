from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np
import pytest

from bmpmatch.imaging.pipeline import gaussian_blur, resample
from bmpmatch.raster import RasterImage

SCENE_SIZE = (1600, 800)
TEMPLATE_SIZE = (80, 40)
PASTE_AT = (300, 300)
SCALE = 0.15
# PASTE_AT in the (0.15, 0.15) working scene.
TEMPLATE_OFFSET = (45, 45)


@dataclass(slots=True)
class PastedScene:
    scene: RasterImage
    template: RasterImage
    oracle: Tuple[int, int]


def build_pasted_scene(seed: int = 7) -> PastedScene:
    """
    Flat grey scene with a block-noise patch at PASTE_AT.

    The template is the patch as the search sees it at scale (0.15, 0.15):
    blurred, resampled and cropped to TEMPLATE_SIZE.
    """
    width, height = SCENE_SIZE
    rng = np.random.default_rng(seed)
    blocks = rng.integers(0, 256, size=(10, 10)).astype(np.uint8)
    patch = np.kron(blocks, np.ones((27, 54), dtype=np.uint8))

    pixels = np.full((height, width, 4), 128, dtype=np.uint8)
    pixels[..., 3] = 255
    x0, y0 = PASTE_AT
    pixels[y0 : y0 + patch.shape[0], x0 : x0 + patch.shape[1], :3] = patch[..., None]
    scene = RasterImage(pixels)

    working = resample(gaussian_blur(scene, 3), SCALE, SCALE)
    template = working.crop(*TEMPLATE_OFFSET, *TEMPLATE_SIZE)
    return PastedScene(scene=scene, template=template, oracle=PASTE_AT)


@pytest.fixture(scope="session")
def pasted_scene() -> PastedScene:
    return build_pasted_scene()
