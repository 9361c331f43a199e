"""
Batch scan coordination for spot-library.

Runs one task per item on a bounded thread pool with cooperative
cancellation. Used by the duplicate scan (tag reading, hashing,
fingerprinting) and by the quality-upgrade batch scan.

Guarantees:
    - At most `workers` tasks are in flight at any time.
    - The cancellation token is checked before each submission and at
      the top of each task. Cancelling lets in-flight tasks finish and
      starts nothing new; the result is then marked stopped.
    - Results come back in input order regardless of completion order.
    - An exception raised by a task is recorded as a per-item error and
      logged; it never aborts the batch.
    - on_progress is called from the coordinating thread only.

Usage:
    token = CancellationToken()
    coordinator = BatchScanCoordinator(workers=4)
    result = coordinator.run(paths, read_one, cancel_token=token)

    for value in result.results:
        ...
    if result.stopped:
        print(f"Stopped after {result.completed}/{result.total}")
"""

import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Iterable, TypeVar

from spot_library.core.logger import get_logger


logger = get_logger(__name__)


T = TypeVar("T")
R = TypeVar("R")

# Per-item errors kept in a BatchResult; the total is always counted
DEFAULT_MAX_ERRORS = 10

# Returned by a task that noticed the cancellation before starting
_SKIPPED = object()


class CancellationToken:
    """
    Cooperative cancellation flag shared between the caller and workers.

    Example:
        token = CancellationToken()
        # from a signal handler or another thread:
        token.cancel()
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class BatchError:
    """
    A task that raised.

    Attributes:
        index: Position of the item in the input.
        item: The input item.
        message: The exception message.
    """
    index: int
    item: Any
    message: str


@dataclass
class BatchResult(Generic[R]):
    """
    Outcome of a batch run.

    Attributes:
        results: Successful task results, in input order.
        errors: First per-item errors (bounded).
        error_count: Total number of tasks that raised.
        completed: Tasks that finished (successfully or not).
        total: Number of input items.
        stopped: True if the run was cancelled before every item started.
    """
    results: list[R] = field(default_factory=list)
    errors: list[BatchError] = field(default_factory=list)
    error_count: int = 0
    completed: int = 0
    total: int = 0
    stopped: bool = False


class BatchScanCoordinator:
    """
    Bounded, cancellable, order-preserving thread pool runner.

    Attributes:
        workers: Maximum number of concurrent tasks.
        max_errors: Maximum number of BatchError entries kept.
    """

    def __init__(self, workers: int = 4, max_errors: int = DEFAULT_MAX_ERRORS) -> None:
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")
        self.workers = workers
        self.max_errors = max_errors

    def run(
        self,
        items: Iterable[T],
        task: Callable[[T], R],
        cancel_token: CancellationToken | None = None,
        on_progress: Callable[[int, int, R | None], None] | None = None
    ) -> BatchResult[R]:
        """
        Run `task` over every item.

        Args:
            items: Input items.
            task: Function applied to one item. Runs on a worker thread.
            cancel_token: Optional token; cancelling stops new submissions.
            on_progress: Called as (completed, total, result) after each
                         finished task; result is None when the task raised.

        Returns:
            BatchResult with results in input order.
        """
        items_list = list(items)
        token = cancel_token or CancellationToken()
        batch = BatchResult[R](total=len(items_list))
        if not items_list:
            return batch

        def guarded(item: T) -> Any:
            if token.cancelled:
                return _SKIPPED
            return task(item)

        outcomes: dict[int, R] = {}
        pending: dict[Future, int] = {}
        next_index = 0

        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            while next_index < len(items_list) or pending:
                while (
                    next_index < len(items_list)
                    and len(pending) < self.workers
                    and not token.cancelled
                ):
                    future = executor.submit(guarded, items_list[next_index])
                    pending[future] = next_index
                    next_index += 1

                if token.cancelled and next_index < len(items_list):
                    batch.stopped = True
                    next_index = len(items_list)

                if not pending:
                    break

                done, _ = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    index = pending.pop(future)
                    self._collect(future, index, items_list[index], batch, outcomes, on_progress)

        batch.results = [outcomes[index] for index in sorted(outcomes)]
        if batch.stopped:
            logger.info(f"Batch cancelled after {batch.completed}/{batch.total} items")
        return batch

    def _collect(
        self,
        future: Future,
        index: int,
        item: Any,
        batch: BatchResult,
        outcomes: dict[int, Any],
        on_progress: Callable[[int, int, Any], None] | None
    ) -> None:
        try:
            value = future.result()
        except Exception as e:
            batch.completed += 1
            batch.error_count += 1
            if len(batch.errors) < self.max_errors:
                batch.errors.append(BatchError(index=index, item=item, message=str(e)))
            logger.error(f"Task failed for {item}: {e}")
            if on_progress is not None:
                on_progress(batch.completed, batch.total, None)
            return

        if value is _SKIPPED:
            batch.stopped = True
            return

        outcomes[index] = value
        batch.completed += 1
        if on_progress is not None:
            on_progress(batch.completed, batch.total, value)
