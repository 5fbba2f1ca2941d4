from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from bmpmatch.datasets import load_oracle_table
from bmpmatch.errors import PreconditionError
from bmpmatch.logging_setup import setup_logging
from bmpmatch.matching.engine import MatchConfig
from bmpmatch.runner import MatchRequest, run_match

logger = logging.getLogger("bmpmatch.scripts.run_matching")

MIN_CASE_ID = 1
MAX_CASE_ID = 100


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Locate a template bitmap inside a scene bitmap at unknown scale.")
    parser.add_argument(
        "case_id",
        type=int,
        nargs="?",
        default=None,
        help=f"Case id in [{MIN_CASE_ID}, {MAX_CASE_ID}] selecting testNNN.bmp/objNNN.bmp. "
        "Omit to match input1.bmp against input2.bmp.",
    )
    parser.add_argument(
        "--data-root",
        type=Path,
        default=Path("."),
        help="Directory holding the scene and template bitmaps.",
    )
    parser.add_argument(
        "--oracle-csv",
        type=Path,
        default=Path("ground_truth.csv"),
        help="CSV with case,x,y columns giving the expected template position per case.",
    )
    parser.add_argument(
        "--report",
        type=Path,
        default=Path("output.txt"),
        help="Text report; each run appends one block.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Directory for the annotated scene. Defaults to the data root.",
    )
    parser.add_argument(
        "--draw",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Save the scene with result boxes. On by default for numbered cases.",
    )
    parser.add_argument(
        "--blur-iterations",
        type=int,
        default=3,
        help="Smoothing passes applied to the scene before resampling.",
    )
    parser.add_argument(
        "--ncc-threshold",
        type=float,
        default=0.6,
        help="Minimum correlation score for a cell to become a candidate.",
    )
    parser.add_argument(
        "--accept-accuracy",
        type=float,
        default=0.8,
        help="Best-candidate accuracy that stops the scale search.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Logging level (DEBUG, INFO, WARNING, ERROR).",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_arguments(argv)
    setup_logging(args.log_level)

    if args.case_id is not None and not (MIN_CASE_ID <= args.case_id <= MAX_CASE_ID):
        print(f"case id must be in [{MIN_CASE_ID}, {MAX_CASE_ID}], got {args.case_id}", file=sys.stderr)
        return 2

    try:
        oracle = load_oracle_table(args.oracle_csv)
        config = MatchConfig(
            blur_iterations=args.blur_iterations,
            ncc_threshold=args.ncc_threshold,
            accept_accuracy=args.accept_accuracy,
        )
    except (FileNotFoundError, ValueError) as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return 2

    request = MatchRequest.for_case(args.data_root, args.case_id, draw=args.draw)

    try:
        result = run_match(request, oracle, args.report, output_dir=args.output_dir, config=config)
    except PreconditionError as exc:
        logger.error("%s", exc)
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except KeyError as exc:
        print(f"error: {exc.args[0]}", file=sys.stderr)
        return 2

    outcome = result.outcome
    scale = outcome.scale or (float("nan"), float("nan"))
    best = result.candidates[0] if result.candidates else None
    print(
        f"{request.image_name:20s} | "
        f"scale=({scale[0]:.2f},{scale[1]:.2f}) | "
        f"pairs={len(outcome.evaluated)} | "
        f"candidates={len(result.candidates)} | "
        + (f"best=({best.x},{best.y}) acc={best.accuracy:.3f} | " if best else "best=none | ")
        + f"time={outcome.elapsed_ms:8.2f}ms"
    )
    if result.annotated_path is not None:
        print(f"annotated scene: {result.annotated_path}")
    print(f"report appended to {result.report_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
