"""Regular-expression tables for disc numbers, dump tags and variant tags.

Order matters in every list here: disc patterns are tried first-to-last
when extracting a number, and variant patterns are stripped in sequence.
"""

from __future__ import annotations

import re
from typing import List, Tuple

# Each pattern captures the disc number in group "num".
DISC_PATTERNS: List[re.Pattern] = [
    re.compile(r"\(Disc\s*(?P<num>\d+)\s+of\s+\d+\)", re.IGNORECASE),   # (Disc 1 of 2)
    re.compile(r"\(Disc\s*(?P<num>\d+)\)", re.IGNORECASE),              # (Disc 1)
    re.compile(r"\(CD\s*(?P<num>\d+)\)", re.IGNORECASE),                # (CD1), (CD 2)
    re.compile(r"\(Disk\s*(?P<num>\d+)\)", re.IGNORECASE),              # (Disk 1)
    re.compile(r"[\s._-]d(?P<num>\d+)(?:[\s._]|$)", re.IGNORECASE),     # _d1, .d2, -d1
    re.compile(r"[\s._-]cd(?P<num>\d+)(?:[\s._]|$)", re.IGNORECASE),    # _cd1
    re.compile(r"[\s._-]disc(?P<num>\d+)(?:[\s._]|$)", re.IGNORECASE),  # _disc1
]

# Dump/quality markers removed by clean_filename. Region and disc tags stay.
DUMP_TAG_PATTERNS: List[re.Pattern] = [
    re.compile(r"\[!\]"),                # verified
    re.compile(r"\[b\d*\]"),             # bad dump
    re.compile(r"\[a\d*\]"),             # alternate
    re.compile(r"\[h\d*[^\]]*\]"),       # hack
    re.compile(r"\[o\d*\]"),             # overdump
    re.compile(r"\[t\d*\]"),             # trained
    re.compile(r"\[f\d*\]"),             # fixed
    re.compile(r"\[p\d*\]"),             # pirate
    re.compile(r"\[T[+-][^\]]*\]"),      # translation
    re.compile(r"\[SLUS-\d+\]"),
    re.compile(r"\[SLES-\d+\]"),
    re.compile(r"\[SLPM-\d+\]"),
    re.compile(r"\[SCUS-\d+\]"),
    re.compile(r"\[SCES-\d+\]"),
    re.compile(r"\[SCPS-\d+\]"),
    re.compile(r"\[GDI-\d+\]"),
    re.compile(r"\[\d+M\]"),             # size marker
]

_LANGS = r"En|Fr|De|Es|It|Nl|Sv|No|Da|Fi|Pt|Ru|Ja|Zh|Ko"

# Tags that distinguish releases of the same game.
VARIANT_PATTERNS: List[re.Pattern] = [
    # regions
    re.compile(r"\((USA|US|America)\)", re.IGNORECASE),
    re.compile(r"\((Japan|JP|JPN)\)", re.IGNORECASE),
    re.compile(r"\((Europe|EU|EUR)\)", re.IGNORECASE),
    re.compile(r"\((World)\)", re.IGNORECASE),
    re.compile(r"\((Korea|KR)\)", re.IGNORECASE),
    re.compile(r"\((Asia)\)", re.IGNORECASE),
    re.compile(r"\((Australia)\)", re.IGNORECASE),
    re.compile(r"\((Brazil)\)", re.IGNORECASE),
    re.compile(r"\((Canada)\)", re.IGNORECASE),
    re.compile(r"\((China)\)", re.IGNORECASE),
    re.compile(r"\((France|Fr)\)", re.IGNORECASE),
    re.compile(r"\((Germany|De)\)", re.IGNORECASE),
    re.compile(r"\((Italy|It)\)", re.IGNORECASE),
    re.compile(r"\((Spain|Es)\)", re.IGNORECASE),
    re.compile(r"\((Sweden|Sv)\)", re.IGNORECASE),
    re.compile(r"\((Netherlands|Nl)\)", re.IGNORECASE),
    re.compile(r"\((Russia|Ru)\)", re.IGNORECASE),
    re.compile(r"\((USA,\s*Europe)\)", re.IGNORECASE),
    # video standards
    re.compile(r"\((NTSC|PAL|SECAM|NTSC-J|NTSC-U|PAL-E)\)", re.IGNORECASE),
    # language lists
    re.compile(rf"\(({_LANGS})(,\s*({_LANGS}))*\)", re.IGNORECASE),
    # revisions
    re.compile(r"\(Rev\s*[A-Z0-9.]+\)", re.IGNORECASE),
    re.compile(r"\(v\d[\d.]*[a-z]?\)", re.IGNORECASE),
    # prerelease
    re.compile(r"\((Beta|Proto|Sample|Demo|Promo|Preview|Kiosk|Debug|Unl)\)", re.IGNORECASE),
    re.compile(r"\(Beta\s*\d+\)", re.IGNORECASE),
    # year
    re.compile(r"\(\d{4}\)"),
    # rereleases
    re.compile(r"\((Virtual Console|VC|Switch Online|Classic Mini)\)", re.IGNORECASE),
]

MULTI_SPACE = re.compile(r"\s{2,}")

UNRANKED_REGION_SCORE = 100


def region_tag_pattern(tag: str) -> re.Pattern:
    """Pattern matching ``(<tag>)`` with flexible spacing after commas."""
    parts = [re.escape(p.strip()) for p in tag.split(",")]
    return re.compile(r"\(" + r",\s*".join(parts) + r"\)", re.IGNORECASE)


def build_region_priority(tags: List[str]) -> List[Tuple[re.Pattern, int]]:
    return [(region_tag_pattern(tag), score) for score, tag in enumerate(tags)]
