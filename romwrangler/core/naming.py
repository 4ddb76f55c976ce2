"""Filename normalization helpers."""

from __future__ import annotations

import os
import re
from typing import List, Optional, Sequence, Tuple

from .multidisc import strip_disc_pattern
from .patterns import (
    DUMP_TAG_PATTERNS,
    MULTI_SPACE,
    UNRANKED_REGION_SCORE,
    VARIANT_PATTERNS,
    build_region_priority,
)
from ..config.models import DEFAULT_REGION_PRIORITY


def clean_filename(name: str) -> str:
    """Strip dump tags and collapse spacing; region and disc tags survive."""
    result = name
    for pattern in DUMP_TAG_PATTERNS:
        result = pattern.sub("", result)
    return MULTI_SPACE.sub(" ", result).strip()


def clean_basename(filename: str) -> str:
    """clean_filename applied to the stem, extension kept."""
    stem, ext = os.path.splitext(filename)
    return clean_filename(stem) + ext


def base_game_name(name: str) -> str:
    """Grouping key for a filename without extension.

    Removes dump tags, disc indicators and the known region, language,
    revision, prerelease, year and rerelease tags. Unrecognized
    parentheticals such as subtitles are kept.
    """
    result = clean_filename(name)
    result = strip_disc_pattern(result)
    for pattern in VARIANT_PATTERNS:
        result = pattern.sub("", result)
    return MULTI_SPACE.sub(" ", result).strip()


class RegionRanker:
    """Scores filenames by the first matching region tag; lower is better."""

    def __init__(self, tags: Optional[Sequence[str]] = None) -> None:
        self._priority: List[Tuple[re.Pattern, int]] = build_region_priority(
            list(tags) if tags is not None else DEFAULT_REGION_PRIORITY
        )

    def score(self, path: str) -> int:
        name = os.path.basename(path)
        for pattern, score in self._priority:
            if pattern.search(name):
                return score
        return UNRANKED_REGION_SCORE


def region_score(path: str, tags: Optional[Sequence[str]] = None) -> int:
    return RegionRanker(tags).score(path)
