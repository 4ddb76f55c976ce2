"""Source-tree scanner.

Each immediate subdirectory of a source root is resolved to a system
through the alias table. Files below a resolved folder are kept when their
extension is a supported format for that system; everything else lands in
``unresolved`` or ``unsupported``.
"""

from __future__ import annotations

import logging
import os
from typing import Mapping, Optional, Sequence

from ..app.models import ScannedFile, ScanResult
from ..conversion.chdman import is_convertible, output_path
from ..core.file_utils import RESERVED_FOLDERS, list_dir_sorted, walk_files
from ..exceptions import ScannerError
from ..platforms import get_catalog

logger = logging.getLogger(__name__)


def scan(dirs: Sequence[str], aliases: Optional[Mapping[str, str]] = None) -> ScanResult:
    catalog = get_catalog()
    result = ScanResult()

    for root in dirs:
        root = os.path.abspath(root)
        try:
            entries = list_dir_sorted(root)
        except OSError as exc:
            logger.warning("Cannot read source directory %s: %s", root, exc)
            result.errors.append(ScannerError(f"read {root}: {exc}", file_path=root))
            continue

        for entry in entries:
            if entry.name in RESERVED_FOLDERS:
                continue
            if not entry.is_dir():
                result.unresolved.append(entry.path)
                continue

            system_id = catalog.resolve_alias(entry.name, aliases)
            if system_id is None:
                logger.debug("Unrecognized folder %s", entry.path)
                result.unresolved.extend(walk_files(entry.path))
                continue

            for path in walk_files(entry.path):
                ext = os.path.splitext(path)[1].lower()
                if not catalog.is_valid_format(system_id, ext):
                    result.unsupported.append(path)
                    continue
                result.files.append(ScannedFile(path=path, system=system_id, resolved=True))

    result.rebuild()
    result.convertible = [
        f for f in result.files
        if is_convertible(f.path)
        and catalog.is_disc_based(f.system)
        and not os.path.exists(output_path(f.path))
    ]

    logger.info(
        "Scan: %d files in %d systems, %d convertible, %d unresolved, %d unsupported",
        len(result.files), len(result.by_system), len(result.convertible),
        len(result.unresolved), len(result.unsupported),
    )
    return result
