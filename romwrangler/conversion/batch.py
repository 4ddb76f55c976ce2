"""Bounded-concurrency batch conversion.

Progress sinks are anything with ``put(item)``:

* ``milestones`` receives the start and done event of every file, then a
  final ``None`` once every worker has returned. Pass a MilestoneQueue.
* ``ticks`` receives percentage updates. Pass a BestEffortQueue so a slow
  consumer only loses ticks, never stalls a worker.

The same object may be passed for both.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Any, List, Optional, Protocol, Sequence

from ..app.models import BatchProgress, CancelToken, ConvertResult, is_cancelled
from ..exceptions import BaseError, ConversionError, OperationCancelledError
from .chdman import convert, output_path

logger = logging.getLogger(__name__)


class ProgressSink(Protocol):
    def put(self, item: Any) -> Any: ...


def _emit(sink: Optional[ProgressSink], event: Optional[BatchProgress]) -> None:
    if sink is not None:
        sink.put(event)


def batch_convert(
    chdman_path: str,
    inputs: Sequence[str],
    concurrency: int = 1,
    milestones: Optional[ProgressSink] = None,
    ticks: Optional[ProgressSink] = None,
    cancel_token: Optional[CancelToken] = None,
) -> List[ConvertResult]:
    """Convert inputs with at most ``concurrency`` chdman processes.

    Results are index-aligned with ``inputs``. Inputs that never started
    because of cancellation come back with ``cancelled=True``.
    """
    total = len(inputs)
    results: List[Optional[ConvertResult]] = [None] * total

    def worker(index: int, input_path: str) -> None:
        out_path = output_path(input_path)
        if is_cancelled(cancel_token):
            results[index] = ConvertResult(input_path=input_path, output_path=out_path, cancelled=True)
            return

        _emit(milestones, BatchProgress(file_index=index, total_files=total, filename=input_path))

        def on_progress(percent: float) -> None:
            _emit(ticks, BatchProgress(file_index=index, total_files=total, filename=input_path, percent=percent))

        error: Optional[BaseError] = None
        cancelled = False
        try:
            convert(chdman_path, input_path, out_path, on_progress, cancel_token)
        except OperationCancelledError:
            cancelled = True
        except BaseError as exc:
            logger.error("Conversion failed for %s: %s", os.path.basename(input_path), exc)
            error = exc
        except OSError as exc:
            logger.error("Conversion failed for %s: %s", os.path.basename(input_path), exc)
            error = ConversionError(str(exc), rom_path=input_path)

        results[index] = ConvertResult(input_path=input_path, output_path=out_path,
                                       error=error, cancelled=cancelled)
        _emit(milestones, BatchProgress(file_index=index, total_files=total, filename=input_path,
                                        percent=100.0, done=True, error=error))

    workers = max(1, int(concurrency))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="chdman") as executor:
        futures = [executor.submit(worker, i, path) for i, path in enumerate(inputs)]
        for future in futures:
            future.result()

    _emit(milestones, None)

    final: List[ConvertResult] = []
    for index, result in enumerate(results):
        if result is None:
            path = inputs[index]
            result = ConvertResult(input_path=path, output_path=output_path(path), cancelled=True)
        final.append(result)

    ok = sum(1 for r in final if r.ok)
    logger.info("Batch conversion: %d/%d succeeded", ok, total)
    return final
