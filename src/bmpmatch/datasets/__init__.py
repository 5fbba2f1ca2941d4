"""
Expected-coordinate tables used to score match results.
"""

from .oracle import OracleTable, load_oracle_table

__all__ = ["OracleTable", "load_oracle_table"]
