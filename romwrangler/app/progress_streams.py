from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, AsyncIterator, List, Optional, Sequence

from ..conversion.batch import batch_convert
from .models import BatchProgress, CancelToken, ConvertResult


@dataclass(frozen=True)
class ProgressEvent:
    kind: str
    current: int = 0
    total: int = 0
    message: Optional[str] = None
    percent: float = 0.0
    result: Optional[Any] = None


class _LoopSink:
    """Forwards batch events onto an asyncio queue from worker threads."""

    def __init__(self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue, ticks: bool = False) -> None:
        self._loop = loop
        self._queue = queue
        self._ticks = ticks

    def put(self, item: Optional[BatchProgress]) -> bool:
        if item is None:
            return True
        if item.done:
            kind = "error" if item.error is not None else "done"
            message = str(item.error) if item.error is not None else item.filename
        elif self._ticks:
            kind, message = "progress", item.filename
        else:
            kind, message = "start", item.filename
        event = ProgressEvent(kind=kind, current=item.file_index + 1, total=item.total_files,
                              message=message, percent=item.percent)
        self._loop.call_soon_threadsafe(self._queue.put_nowait, event)
        return True


async def run_blocking(func, *args, **kwargs) -> Any:
    return await asyncio.get_running_loop().run_in_executor(None, lambda: func(*args, **kwargs))


async def conversion_progress_stream(
    chdman_path: str,
    inputs: Sequence[str],
    concurrency: int = 1,
    cancel_token: Optional[CancelToken] = None,
) -> AsyncIterator[ProgressEvent]:
    """Run batch_convert in a worker thread and yield its progress.

    The last event has kind ``"result"`` and carries the ConvertResult list.
    """
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()
    milestones = _LoopSink(loop, queue)
    ticks = _LoopSink(loop, queue, ticks=True)

    task = asyncio.ensure_future(
        run_blocking(batch_convert, chdman_path, list(inputs), concurrency,
                     milestones=milestones, ticks=ticks, cancel_token=cancel_token)
    )

    while True:
        if task.done() and queue.empty():
            break
        try:
            event = await asyncio.wait_for(queue.get(), timeout=0.05)
            yield event
        except asyncio.TimeoutError:
            continue

    results: List[ConvertResult] = task.result()
    yield ProgressEvent(kind="result", current=len(results), total=len(results), result=results)
