"""Archive extraction and ECM decoding."""

from .ecm import decompress_ecm, init_tables
from .extract import delete_archive_dir, extract_all, extract_archives, find_7z, find_extractable

__all__ = [
    "decompress_ecm",
    "delete_archive_dir",
    "extract_all",
    "extract_archives",
    "find_7z",
    "find_extractable",
    "init_tables",
]
