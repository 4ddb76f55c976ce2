"""chdman wrapper: tool lookup and single-file CHD conversion."""

from __future__ import annotations

import collections
import logging
import os
import shutil
import subprocess  # nosec B404
import threading
import time
from typing import Callable, Deque, List, Optional

from ..app.models import CancelToken, is_cancelled
from ..exceptions import ConversionError, OperationCancelledError, ToolNotFoundError
from .progress import pump_progress

logger = logging.getLogger(__name__)

COMMON_PATHS = (
    "/usr/bin/chdman",
    "/usr/local/bin/chdman",
    "/opt/mame/chdman",
)

INSTALL_HINT = (
    "chdman not found. Install MAME tools:\n"
    "  Arch/Manjaro: sudo pacman -S mame-tools\n"
    "  Ubuntu/Debian: sudo apt install mame-tools\n"
    "  Fedora: sudo dnf install mame-tools"
)

CD_EXTENSIONS = (".gdi", ".cue")
CONVERTIBLE_EXTENSIONS = (".gdi", ".cue", ".iso")

POLL_INTERVAL = 0.05
STDERR_TAIL_LINES = 20


def find_chdman(configured: Optional[str] = None) -> str:
    """Configured path, then PATH, then the usual install locations."""
    if configured and os.path.exists(configured):
        return configured
    found = shutil.which("chdman")
    if found:
        return found
    for path in COMMON_PATHS:
        if os.path.exists(path):
            return path
    raise ToolNotFoundError(INSTALL_HINT, tool="chdman")


def detect_convert_type(input_path: str) -> str:
    ext = os.path.splitext(input_path)[1].lower()
    return "createcd" if ext in CD_EXTENSIONS else "createdvd"


def output_path(input_path: str) -> str:
    return os.path.splitext(input_path)[0] + ".chd"


def is_convertible(path: str) -> bool:
    return os.path.splitext(path)[1].lower() in CONVERTIBLE_EXTENSIONS


def build_command(chdman_path: str, input_path: str, out_path: str) -> List[str]:
    return [chdman_path, detect_convert_type(input_path), "-i", input_path, "-o", out_path]


def _terminate(process: subprocess.Popen) -> None:
    if process.poll() is not None:
        return
    try:
        process.terminate()
    except OSError as exc:
        logger.debug("Terminate failed: %s", exc)
    try:
        process.wait(timeout=2)
        return
    except subprocess.TimeoutExpired:
        logger.debug("chdman ignored terminate; killing")
    try:
        process.kill()
        process.wait(timeout=2)
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.debug("Kill failed: %s", exc)


def _remove_partial(path: str) -> None:
    if os.path.exists(path):
        try:
            os.remove(path)
        except OSError as exc:
            logger.warning("Could not remove partial output %s: %s", path, exc)


def convert(
    chdman_path: str,
    input_path: str,
    out_path: Optional[str] = None,
    on_progress: Optional[Callable[[float], None]] = None,
    cancel_token: Optional[CancelToken] = None,
) -> str:
    """Run chdman on one disc image and return the output path.

    Raises ConversionError on failure and OperationCancelledError when the
    token fires; the partial output file is removed in both cases.
    """
    out_path = out_path or output_path(input_path)
    if is_cancelled(cancel_token):
        raise OperationCancelledError()

    cmd = build_command(chdman_path, input_path, out_path)
    logger.debug("Running %s", " ".join(cmd))
    try:
        process = subprocess.Popen(  # nosec B603
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
        )
    except OSError as exc:
        raise ConversionError(f"failed to start chdman: {exc}", rom_path=input_path) from exc

    tail: Deque[str] = collections.deque(maxlen=STDERR_TAIL_LINES)
    reader = threading.Thread(
        target=pump_progress,
        args=(process.stderr, on_progress, tail.append),
        daemon=True,
    )
    reader.start()

    cancelled = False
    while process.poll() is None:
        if is_cancelled(cancel_token):
            cancelled = True
            _terminate(process)
            break
        time.sleep(POLL_INTERVAL)

    reader.join(timeout=2)
    if process.stderr is not None:
        process.stderr.close()

    if cancelled:
        _remove_partial(out_path)
        logger.info("Cancelled conversion of %s", os.path.basename(input_path))
        raise OperationCancelledError(f"Conversion of {os.path.basename(input_path)} cancelled")

    code = process.returncode
    if code != 0:
        _remove_partial(out_path)
        detail = next((t for t in reversed(tail) if "%" not in t), "")
        message = f"chdman failed with exit code {code}"
        if detail:
            message += f": {detail.strip()}"
        raise ConversionError(message, rom_path=input_path, exit_code=code)

    logger.info("Converted %s -> %s", os.path.basename(input_path), os.path.basename(out_path))
    return out_path
