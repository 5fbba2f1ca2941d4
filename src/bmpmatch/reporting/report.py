from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Tuple, Union

from ..imaging.pipeline import HIGHLIGHT_COLOR, draw_box
from ..matching.engine import MatchCandidate, MatchOutcome, rank
from ..raster import RasterImage

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

COLUMN_HEADER = "coordinates accuracy IoU"


@dataclass(slots=True)
class ResultAggregator:
    """
    Truncates ranked candidates, draws them, and renders the text report.
    """

    top_k: int = 5
    highlight: Tuple[int, int, int] = HIGHLIGHT_COLOR

    def __post_init__(self) -> None:
        if self.top_k <= 0:
            raise ValueError("top_k must be positive")

    def finalize(self, outcome: MatchOutcome) -> List[MatchCandidate]:
        return rank(outcome.candidates, self.top_k)

    def annotate(self, scene: RasterImage, candidates: Sequence[MatchCandidate]) -> RasterImage:
        """
        Copy of the scene with one box outline per candidate footprint.
        """
        annotated = scene.copy()
        for candidate in candidates:
            draw_box(annotated, candidate.x, candidate.y, candidate.width, candidate.height, self.highlight)
        return annotated

    def format_report(self, image_name: str, candidates: Sequence[MatchCandidate], elapsed_ms: float) -> str:
        lines = [f"{image_name}:", COLUMN_HEADER]
        for candidate in candidates:
            lines.append(f"({candidate.x}, {candidate.y}) {candidate.accuracy:g} {candidate.iou:g}")

        # An empty result averages to zero rather than NaN.
        mean_accuracy = sum(c.accuracy for c in candidates) / len(candidates) if candidates else 0.0
        lines.append(f"average precision:{mean_accuracy:g} processing time(ms):{elapsed_ms:g}")
        return "\n".join(lines) + "\n\n"


def append_report(path: PathLike, text: str) -> Path:
    """
    Append a report block, creating the file and its parent directory if needed.
    """
    report_path = Path(path)
    report_path.parent.mkdir(parents=True, exist_ok=True)
    with report_path.open("a", encoding="utf-8") as handle:
        handle.write(text)
    logger.debug("appended %d characters to %s", len(text), report_path)
    return report_path
