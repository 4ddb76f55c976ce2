"""Core helpers: naming rules, multi-disc sets and file operations."""

from .file_utils import (
    RESERVED_FOLDERS,
    compute_relative_path,
    copy_file,
    ensure_parent,
    move_file,
    remove_empty_dirs,
    walk_files,
)
from .multidisc import DiscFile, MultiDiscSet, detect_sets, generate_m3u, write_m3u
from .naming import RegionRanker, base_game_name, clean_basename, clean_filename, region_score

__all__ = [
    "DiscFile",
    "MultiDiscSet",
    "RESERVED_FOLDERS",
    "RegionRanker",
    "base_game_name",
    "clean_basename",
    "clean_filename",
    "compute_relative_path",
    "copy_file",
    "detect_sets",
    "ensure_parent",
    "generate_m3u",
    "move_file",
    "region_score",
    "remove_empty_dirs",
    "walk_files",
    "write_m3u",
]
