from __future__ import annotations

import csv
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Tuple

Point = Tuple[int, int]


@dataclass(slots=True)
class OracleTable:
    """
    Expected template positions keyed by case id, used only for scoring.
    """

    points: Dict[int, Point] = field(default_factory=dict)

    def __getitem__(self, case_id: int) -> Point:
        try:
            return self.points[case_id]
        except KeyError:
            raise KeyError(f"no expected coordinate for case {case_id}") from None

    def __contains__(self, case_id: object) -> bool:
        return case_id in self.points

    def __len__(self) -> int:
        return len(self.points)

    @classmethod
    def from_mapping(cls, points: Mapping[int, Point]) -> "OracleTable":
        return cls({int(case): (int(x), int(y)) for case, (x, y) in points.items()})


def load_oracle_table(csv_path: Path | str) -> OracleTable:
    """
    Load expected coordinates from a CSV with a ``case,x,y`` header.
    """
    path = Path(csv_path)
    if not path.exists():
        raise FileNotFoundError(f"Oracle CSV not found: {path}")

    points: Dict[int, Point] = {}
    with path.open(newline="", encoding="utf-8") as handle:
        reader = csv.DictReader(handle)
        if reader.fieldnames is None:
            raise ValueError("CSV file must include a header row.")
        missing = {"case", "x", "y"} - set(reader.fieldnames)
        if missing:
            raise ValueError(f"CSV header is missing columns: {', '.join(sorted(missing))}")

        for row in reader:
            try:
                case_id = int(row["case"])
                x = int(row["x"])
                y = int(row["y"])
            except (KeyError, TypeError, ValueError) as exc:
                raise ValueError(f"Invalid values in row: {row}") from exc
            if case_id in points:
                raise ValueError(f"Duplicate case id {case_id} in {path}")
            points[case_id] = (x, y)

    if not points:
        raise ValueError(f"No cases found in {path}")
    return OracleTable(points)


__all__ = ["OracleTable", "load_oracle_table"]
