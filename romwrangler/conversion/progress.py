"""Progress parsing for chdman's stderr.

chdman redraws its status line with carriage returns, e.g.
``Compressing, 45.2% complete... \\r``, so the stream is tokenized on
either CR or LF rather than by lines.
"""

from __future__ import annotations

import re
from typing import BinaryIO, Callable, Iterator, Optional

PROGRESS_RE = re.compile(r"(\d+(?:\.\d+)?)%\s+complete")

READ_SIZE = 4096


def iter_progress_tokens(stream: BinaryIO) -> Iterator[str]:
    """Yield CR/LF-delimited tokens as they arrive; empty tokens are skipped."""
    pending = b""
    while True:
        chunk = stream.read1(READ_SIZE) if hasattr(stream, "read1") else stream.read(READ_SIZE)
        if not chunk:
            break
        pending += chunk
        parts = re.split(rb"[\r\n]", pending)
        pending = parts.pop()
        for part in parts:
            if part:
                yield part.decode("utf-8", errors="replace")
    if pending:
        yield pending.decode("utf-8", errors="replace")


def parse_progress(token: str) -> Optional[float]:
    match = PROGRESS_RE.search(token)
    if match is None:
        return None
    return float(match.group(1))


def pump_progress(stream: BinaryIO, on_progress: Optional[Callable[[float], None]],
                  on_token: Optional[Callable[[str], None]] = None) -> None:
    """Drain stream, reporting each percentage found. Always reads to EOF."""
    for token in iter_progress_tokens(stream):
        if on_token is not None:
            on_token(token)
        if on_progress is None:
            continue
        percent = parse_progress(token)
        if percent is not None:
            on_progress(percent)
