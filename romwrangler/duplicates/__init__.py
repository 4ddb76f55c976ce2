"""Duplicate detection and management module.

Regional and revision variants of one game are grouped and ranked by
region preference; the best-ranked file of each group is kept.
"""

from .variants import detect_variants, select_preferred

__all__ = [
    "detect_variants",
    "select_preferred",
]
