"""Shared type aliases, dataclasses and concurrency primitives."""

from __future__ import annotations

import logging
import os
import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from ..conversion.sheets import companion_files
from ..exceptions import BaseError

logger = logging.getLogger(__name__)

FileProgressCallback = Callable[[int, int, str], None]
SystemIdentifier = Callable[[str], Optional[str]]


class CancelToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def event(self) -> threading.Event:
        return self._event

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()


def is_cancelled(token: Optional[CancelToken]) -> bool:
    return bool(token and token.is_cancelled())


class BestEffortQueue:
    """Bounded queue whose producers never block; overflow is dropped and counted.

    Used for high-frequency progress ticks where losing an update is harmless.
    """

    def __init__(self, maxsize: int = 64) -> None:
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=maxsize)
        self._dropped = 0
        self._lock = threading.Lock()

    @property
    def dropped(self) -> int:
        with self._lock:
            return self._dropped

    def put(self, item: Any) -> bool:
        try:
            self._queue.put_nowait(item)
            return True
        except queue.Full:
            with self._lock:
                self._dropped += 1
            return False

    def get(self, timeout: Optional[float] = None) -> Any:
        return self._queue.get(timeout=timeout)

    def get_nowait(self) -> Any:
        return self._queue.get_nowait()

    def empty(self) -> bool:
        return self._queue.empty()


class MilestoneQueue:
    """Unbounded queue for events that must never be lost (start, done, sentinel)."""

    def __init__(self) -> None:
        self._queue: "queue.Queue[Any]" = queue.Queue()

    def put(self, item: Any) -> bool:
        self._queue.put(item)
        return True

    def get(self, timeout: Optional[float] = None) -> Any:
        return self._queue.get(timeout=timeout)

    def get_nowait(self) -> Any:
        return self._queue.get_nowait()

    def empty(self) -> bool:
        return self._queue.empty()


@dataclass(frozen=True)
class ScannedFile:
    path: str
    system: str
    resolved: bool = True


@dataclass
class ScanResult:
    files: List[ScannedFile] = field(default_factory=list)
    by_system: Dict[str, List[ScannedFile]] = field(default_factory=dict)
    convertible: List[ScannedFile] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)
    unsupported: List[str] = field(default_factory=list)
    errors: List[Exception] = field(default_factory=list)

    def rebuild(self) -> None:
        """Recreate ``by_system`` from ``files``."""
        by_system: Dict[str, List[ScannedFile]] = {}
        for f in self.files:
            by_system.setdefault(f.system, []).append(f)
        self.by_system = by_system

    def add_file(self, scanned: ScannedFile) -> None:
        if any(f.path == scanned.path for f in self.files):
            return
        self.files.append(scanned)
        self.rebuild()

    def remove_files(self, paths: Iterable[str]) -> None:
        """Drop paths from every list that later phases act on."""
        remove = {os.path.abspath(p) for p in paths}
        if not remove:
            return
        self.files = [f for f in self.files if os.path.abspath(f.path) not in remove]
        self.convertible = [f for f in self.convertible if os.path.abspath(f.path) not in remove]
        self.unsupported = [p for p in self.unsupported if os.path.abspath(p) not in remove]
        self.rebuild()

    def update_for_conversions(self, results: Iterable["ConvertResult"]) -> None:
        """Swap converted images for their ``.chd`` and drop embedded tracks."""
        converted: Dict[str, str] = {
            os.path.abspath(r.input_path): r.output_path for r in results if r.ok
        }
        remove: Set[str] = set()
        for input_path in converted:
            remove.update(companions_or_self(input_path))

        new_files: List[ScannedFile] = []
        for f in self.files:
            key = os.path.abspath(f.path)
            if key in converted:
                new_files.append(ScannedFile(path=converted[key], system=f.system, resolved=f.resolved))
            elif key not in remove:
                new_files.append(f)
        self.files = new_files
        self.unsupported = [p for p in self.unsupported if os.path.abspath(p) not in remove]
        self.rebuild()
        self.convertible = []

    def remove_failed_conversions(self, results: Iterable["ConvertResult"]) -> None:
        """Exclude failed or cancelled inputs and their companions."""
        remove: Set[str] = set()
        for r in results:
            if not r.ok:
                remove.update(companions_or_self(r.input_path))
        if remove:
            self.remove_files(remove)


def companions_or_self(path: str) -> List[str]:
    try:
        return companion_files(path)
    except BaseError as exc:
        logger.debug("Companion lookup failed for %s: %s", path, exc)
        return [os.path.abspath(path)]


@dataclass(frozen=True)
class MisplacedFile:
    path: str
    current_system: str
    correct_system: str
    source: str = "extension"


@dataclass(frozen=True)
class VariantGroup:
    base_name: str
    system: str
    files: List[str]


@dataclass(frozen=True)
class ExtractableFile:
    path: str
    system: str


@dataclass
class ExtractResult:
    extracted: int = 0
    files_created: int = 0
    errors: List[Exception] = field(default_factory=list)
    succeeded: List[str] = field(default_factory=list)
    cancelled: bool = False


@dataclass(frozen=True)
class ConvertResult:
    input_path: str
    output_path: str
    error: Optional[BaseError] = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.cancelled


@dataclass(frozen=True)
class BatchProgress:
    file_index: int
    total_files: int
    filename: str
    percent: float = 0.0
    done: bool = False
    error: Optional[BaseError] = None


@dataclass(frozen=True)
class ArchiveAction:
    source_path: str
    archive_path: str


@dataclass
class ArchivePlan:
    actions: List[ArchiveAction] = field(default_factory=list)


@dataclass
class ArchiveResult:
    files_moved: int = 0
    errors: List[Exception] = field(default_factory=list)

    def merge(self, other: "ArchiveResult") -> None:
        self.files_moved += other.files_moved
        self.errors.extend(other.errors)


@dataclass(frozen=True)
class FileAction:
    source_path: str
    dest_path: str
    system: str


@dataclass(frozen=True)
class M3UAction:
    path: str
    content: str


@dataclass
class SortPlan:
    files: List[FileAction] = field(default_factory=list)
    m3us: List[M3UAction] = field(default_factory=list)
    dirs_to_create: List[str] = field(default_factory=list)
    errors: List[Exception] = field(default_factory=list)


@dataclass
class PlanResult:
    files_moved: int = 0
    files_copied: int = 0
    m3us_written: int = 0
    dirs_created: int = 0
    errors: List[Exception] = field(default_factory=list)
    cancelled: bool = False


@dataclass(frozen=True)
class FolderStatus:
    system: str
    folder: str
    full_path: str
    exists: bool
    file_count: int = 0
