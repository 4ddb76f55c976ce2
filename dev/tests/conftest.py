from __future__ import annotations

import os
import stat
import sys
from pathlib import Path
from typing import Iterable

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from romwrangler.extraction.ecm import init_tables  # noqa: E402
from romwrangler.platforms import init_catalog  # noqa: E402


@pytest.fixture(autouse=True)
def _static_tables() -> None:
    init_catalog()
    init_tables()


def write_files(root: Path, names: Iterable[str], content: bytes = b"x") -> None:
    for name in names:
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)


def make_script(path: Path, body: str) -> str:
    """Write an executable /bin/sh script and return its path."""
    path.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


requires_posix = pytest.mark.skipif(os.name == "nt", reason="fake tools are shell scripts")


# Fake chdman: writes the -o target, prints progress on stderr. Exits with
# $FAKE_CHDMAN_EXIT when set, sleeps $FAKE_CHDMAN_SLEEP seconds first.
FAKE_CHDMAN = r'''
out=""
while [ $# -gt 0 ]; do
  if [ "$1" = "-o" ]; then out="$2"; shift; fi
  shift
done
if [ -n "$FAKE_CHDMAN_SLEEP" ]; then sleep "$FAKE_CHDMAN_SLEEP" 2>/dev/null; fi
printf 'Compressing, 10.0%% complete...\r' >&2
printf 'Compressing, 55.5%% complete...\r' >&2
if [ -n "$FAKE_CHDMAN_EXIT" ]; then
  printf 'Error: bad input\n' >&2
  printf 'partial' > "$out"
  exit "$FAKE_CHDMAN_EXIT"
fi
printf 'CHD' > "$out"
printf 'Compression complete ... final ratio = 50.0%%\n' >&2
exit 0
'''


@pytest.fixture
def fake_chdman(tmp_path: Path) -> str:
    if os.name == "nt":
        pytest.skip("fake tools are shell scripts")
    return make_script(tmp_path / "chdman", FAKE_CHDMAN)
