"""
Matching subpackage exposes the multiscale NCC search.
"""

from .correlation import correlation_surface, normalized_cross_correlation
from .engine import MatchCandidate, MatchConfig, MatchEngine, MatchOutcome, scale_pairs, score_candidate

__all__ = [
    "MatchCandidate",
    "MatchConfig",
    "MatchEngine",
    "MatchOutcome",
    "correlation_surface",
    "normalized_cross_correlation",
    "scale_pairs",
    "score_candidate",
]
