"""Bounded-concurrency batch execution engine.

A rolling worker pool: at most ``batch_size`` items are in flight and the
next item is dispatched as soon as a slot frees. After every
``batch_size`` dispatches the dispatcher pauses ``delay_ms`` to give the
remote API room to breathe (no pause after the last wave).

Callbacks always run on the thread that called ``run()``; worker
threads only execute the unit of work.
"""
import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Sequence

log = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 5
DEFAULT_DELAY_MS = 100

ProgressFn = Callable[[int, int], None]
ErrorFn = Callable[[BaseException, Any, int], None]
CancelFn = Callable[[], bool]


class BatchProcessor:
    """Runs a unit of work over a list of items with bounded concurrency.

    Constructor args:
        batch_size:    Maximum items in flight; also the progress and
                       pacing granularity.
        delay_ms:      Pause between dispatch waves.
        on_progress:   ``(processed, total)`` once per ``batch_size``
                       settled items and once for the final partial wave.
        on_error:      ``(error, item, index)`` for each failed item.
        should_cancel: Polled before every dispatch.
    """

    def __init__(
        self,
        batch_size: int = DEFAULT_BATCH_SIZE,
        delay_ms: int = DEFAULT_DELAY_MS,
        on_progress: ProgressFn | None = None,
        on_error: ErrorFn | None = None,
        should_cancel: CancelFn | None = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.batch_size = batch_size
        self.delay_ms = max(0, delay_ms)
        self._on_progress = on_progress or (lambda processed, total: None)
        self._on_error = on_error or (lambda error, item, index: None)
        self._should_cancel = should_cancel or (lambda: False)

        # Outcome of the last run
        self.processed = 0
        self.failed = 0
        self.cancelled = False

    def run(self, items: Sequence[Any], unit_of_work: Callable[[Any], Any]) -> list[Any]:
        """
        Process *items* and return the successful results in item order.

        A failing item is reported through ``on_error`` and left out of
        the results; it never stops the other items. Once cancellation
        is observed no new item starts, in-flight items still settle.
        """
        total = len(items)
        results: dict[int, Any] = {}
        in_flight: dict[Future, int] = {}
        dispatched = 0
        reported = 0
        self.processed = 0
        self.failed = 0
        self.cancelled = False

        if total == 0:
            return []

        workers = min(self.batch_size, total)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="bulksync") as pool:
            while True:
                while (
                    dispatched < total
                    and len(in_flight) < self.batch_size
                    and not self.cancelled
                ):
                    if dispatched % self.batch_size == 0 and dispatched and self.delay_ms:
                        time.sleep(self.delay_ms / 1000)
                    if self._should_cancel():
                        self.cancelled = True
                        log.info("Batch cancelled after %d of %d item(s)", dispatched, total)
                        break
                    future = pool.submit(unit_of_work, items[dispatched])
                    in_flight[future] = dispatched
                    dispatched += 1

                if not in_flight:
                    break

                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    index = in_flight.pop(future)
                    try:
                        results[index] = future.result()
                    except Exception as e:
                        self.failed += 1
                        log.debug("Item %d failed: %s", index, e)
                        self._on_error(e, items[index], index)
                    self.processed += 1
                    if self.processed % self.batch_size == 0 or self.processed == total:
                        reported = self.processed
                        self._on_progress(self.processed, total)

        if self.cancelled and reported != self.processed:
            self._on_progress(self.processed, total)

        return [results[i] for i in sorted(results)]
