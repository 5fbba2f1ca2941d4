from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from .datasets.oracle import OracleTable
from .errors import FormatError
from .io.image_loader import load_raster, save_raster
from .matching.engine import MatchCandidate, MatchConfig, MatchEngine, MatchOutcome
from .reporting.report import ResultAggregator, append_report

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

DEFAULT_SCENE_NAME = "input1.bmp"
DEFAULT_TEMPLATE_NAME = "input2.bmp"
DEFAULT_CASE_ID = 0


@dataclass(slots=True, frozen=True)
class MatchRequest:
    """
    One scene/template pair to process.
    """

    case_id: int
    scene_path: Path
    template_path: Path
    draw: bool = False

    @property
    def image_name(self) -> str:
        return self.scene_path.name

    @classmethod
    def for_case(cls, data_root: PathLike, case_id: Optional[int] = None, draw: bool | None = None) -> "MatchRequest":
        """
        Resolve ``test{id:03}.bmp`` / ``obj{id:03}.bmp`` for a case id, or the
        default ``input1.bmp`` / ``input2.bmp`` pair when no id is given.
        Drawing defaults to on for numbered cases.
        """
        root = Path(data_root)
        if case_id is None:
            return cls(
                case_id=DEFAULT_CASE_ID,
                scene_path=root / DEFAULT_SCENE_NAME,
                template_path=root / DEFAULT_TEMPLATE_NAME,
                draw=bool(draw),
            )
        return cls(
            case_id=case_id,
            scene_path=root / f"test{case_id:03}.bmp",
            template_path=root / f"obj{case_id:03}.bmp",
            draw=True if draw is None else draw,
        )


@dataclass(slots=True)
class MatchReport:
    request: MatchRequest
    outcome: MatchOutcome
    candidates: List[MatchCandidate]
    report_path: Path
    annotated_path: Optional[Path] = None


def run_match(
    request: MatchRequest,
    oracle: OracleTable,
    report_path: PathLike,
    output_dir: Optional[PathLike] = None,
    config: Optional[MatchConfig] = None,
) -> MatchReport:
    """
    Load both rasters, run the multiscale search, append a report block and
    optionally save the annotated scene as ``output_<image_name>``.

    Input failures raise PreconditionError before anything is written.
    """
    match_config = config or MatchConfig()
    expected = oracle[request.case_id]

    scene = load_raster(request.scene_path)
    template = load_raster(request.template_path)
    logger.info(
        "matching %s (%dx%d) against %s (%dx%d)",
        request.template_path.name,
        template.width,
        template.height,
        request.image_name,
        scene.width,
        scene.height,
    )

    outcome = MatchEngine(match_config).match(scene, template, expected)
    aggregator = ResultAggregator(top_k=match_config.top_k)
    candidates = aggregator.finalize(outcome)

    written = append_report(report_path, aggregator.format_report(request.image_name, candidates, outcome.elapsed_ms))
    result = MatchReport(request=request, outcome=outcome, candidates=candidates, report_path=written)

    if request.draw:
        target_dir = Path(output_dir) if output_dir is not None else request.scene_path.parent
        annotated = aggregator.annotate(scene, candidates)
        try:
            result.annotated_path = save_raster(annotated, target_dir / f"output_{request.image_name}")
        except FormatError as exc:
            logger.warning("could not save annotated %s: %s", request.image_name, exc)

    return result
