from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..imaging.pipeline import gaussian_blur, resample, to_grayscale
from ..raster import GrayscaleBuffer, RasterImage
from .correlation import correlation_surface

logger = logging.getLogger(__name__)

ScalePair = Tuple[float, float]
Point = Tuple[int, int]


@dataclass(slots=True, frozen=True)
class MatchCandidate:
    """
    A thresholded correlation peak mapped back to original scene coordinates.
    """

    x: int
    y: int
    accuracy: float
    iou: float
    width: int
    height: int


@dataclass(slots=True)
class MatchOutcome:
    """
    Candidates of the last evaluated scale pair plus search bookkeeping.
    """

    candidates: List[MatchCandidate]
    scale: Optional[ScalePair]
    evaluated: List[ScalePair] = field(default_factory=list)
    elapsed_ms: float = 0.0
    accepted: bool = False

    @property
    def best(self) -> Optional[MatchCandidate]:
        return self.candidates[0] if self.candidates else None


@dataclass(slots=True)
class MatchConfig:
    """
    Tunables of the multiscale search.
    """

    blur_iterations: int = 3
    ncc_threshold: float = 0.6
    accept_accuracy: float = 0.8
    top_k: int = 5
    scale_widths: Tuple[float, ...] = (0.15, 0.10, 0.05)
    scale_heights: Tuple[float, ...] = (0.05, 0.10, 0.15)

    def __post_init__(self) -> None:
        if self.blur_iterations < 0:
            raise ValueError("blur_iterations must be >= 0")
        if not (-1.0 <= self.ncc_threshold <= 1.0):
            raise ValueError("ncc_threshold must be between -1 and 1")
        if not (0.0 <= self.accept_accuracy <= 1.0):
            raise ValueError("accept_accuracy must be between 0 and 1")
        if self.top_k <= 0:
            raise ValueError("top_k must be positive")
        if not self.scale_widths or not self.scale_heights:
            raise ValueError("scale grids must not be empty")
        for scale in (*self.scale_widths, *self.scale_heights):
            if not (0.0 < scale <= 1.0):
                raise ValueError(f"scale factors must be in (0, 1], got {scale}")


def scale_pairs(config: MatchConfig) -> List[ScalePair]:
    """
    Visiting order of the search: widths outer, heights inner.
    """
    return [(width, height) for width in config.scale_widths for height in config.scale_heights]


def footprint(template_width: int, template_height: int, scale: ScalePair) -> Tuple[int, int]:
    """
    Template size mapped back into original scene pixels.
    """
    scale_width, scale_height = scale
    return int(template_width / scale_width), int(template_height / scale_height)


def score_candidate(
    x: int,
    y: int,
    size: Tuple[int, int],
    oracle: Point,
) -> Optional[Tuple[float, float]]:
    """
    Return ``(accuracy, iou)`` of a footprint placed at ``(x, y)`` against the
    same footprint at the oracle position, or None when they do not overlap.
    """
    width, height = size
    dx = abs(x - oracle[0])
    dy = abs(y - oracle[1])
    if dx >= width or dy >= height:
        return None

    intersection = (width - dx) * (height - dy)
    area = width * height
    return intersection / area, intersection / (2 * area - intersection)


class MatchEngine:
    """
    Multiscale NCC search with oracle scoring and early exit.
    """

    def __init__(self, config: Optional[MatchConfig] = None) -> None:
        self.config = config or MatchConfig()

    def match(self, scene: RasterImage, template: RasterImage, oracle: Point) -> MatchOutcome:
        """
        Walk the scale grid until a pair's best candidate reaches
        ``accept_accuracy``; return the candidates of the last pair evaluated.
        """
        start = time.perf_counter()
        template_gray = to_grayscale(template)

        candidates: List[MatchCandidate] = []
        evaluated: List[ScalePair] = []
        last_scale: Optional[ScalePair] = None
        accepted = False

        for scale in scale_pairs(self.config):
            candidates = self.evaluate_scale(scene, template_gray, scale, oracle)
            evaluated.append(scale)
            last_scale = scale

            if candidates and candidates[0].accuracy >= self.config.accept_accuracy:
                accepted = True
                logger.info(
                    "accepted scale (%.2f, %.2f) with accuracy %.3f after %d pairs",
                    scale[0],
                    scale[1],
                    candidates[0].accuracy,
                    len(evaluated),
                )
                break

        elapsed_ms = (time.perf_counter() - start) * 1000.0
        return MatchOutcome(
            candidates=candidates,
            scale=last_scale,
            evaluated=evaluated,
            elapsed_ms=elapsed_ms,
            accepted=accepted,
        )

    def evaluate_scale(
        self,
        scene: RasterImage,
        template_gray: GrayscaleBuffer,
        scale: ScalePair,
        oracle: Point,
    ) -> List[MatchCandidate]:
        """
        Score one scale pair; candidates come back sorted by descending accuracy.
        """
        scale_width, scale_height = scale
        working = resample(gaussian_blur(scene, self.config.blur_iterations), scale_width, scale_height)
        scene_gray = to_grayscale(working)

        if scene_gray.width < template_gray.width or scene_gray.height < template_gray.height:
            logger.debug(
                "skipping scale (%.2f, %.2f): template %dx%d exceeds scene %dx%d",
                scale_width,
                scale_height,
                template_gray.width,
                template_gray.height,
                scene_gray.width,
                scene_gray.height,
            )
            return []

        surface = correlation_surface(scene_gray, template_gray)
        size = footprint(template_gray.width, template_gray.height, scale)

        rows, cols = np.nonzero(surface > self.config.ncc_threshold)
        xs = np.clip((cols / scale_width).astype(np.int64), 0, scene.width - 1)
        ys = np.clip((rows / scale_height).astype(np.int64), 0, scene.height - 1)

        candidates: List[MatchCandidate] = []
        for x, y in zip(xs.tolist(), ys.tolist()):
            scores = score_candidate(x, y, size, oracle)
            if scores is None:
                continue
            accuracy, iou = scores
            candidates.append(MatchCandidate(x=x, y=y, accuracy=accuracy, iou=iou, width=size[0], height=size[1]))

        candidates.sort(key=lambda candidate: candidate.accuracy, reverse=True)
        logger.debug(
            "scale (%.2f, %.2f): %d cells above %.2f, %d candidates kept",
            scale_width,
            scale_height,
            len(rows),
            self.config.ncc_threshold,
            len(candidates),
        )
        return candidates


def rank(candidates: Sequence[MatchCandidate], top_k: int) -> List[MatchCandidate]:
    """
    Highest-accuracy candidates first, at most ``top_k`` of them.
    """
    ordered = sorted(candidates, key=lambda candidate: candidate.accuracy, reverse=True)
    return ordered[:top_k]
