"""ROM Wrangler scanning package.

Primary entry point: scan().
"""

from .detect import (
    check_folders,
    detect_misplaced,
    generate_all_folders,
    relocate_misplaced,
    resolve_unknown,
)
from .scanner import scan

__all__ = [
    "check_folders",
    "detect_misplaced",
    "generate_all_folders",
    "relocate_misplaced",
    "resolve_unknown",
    "scan",
]
