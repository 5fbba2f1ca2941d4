"""
Ranking, drawing and text reports for match results.
"""

from .report import ResultAggregator, append_report

__all__ = ["ResultAggregator", "append_report"]
