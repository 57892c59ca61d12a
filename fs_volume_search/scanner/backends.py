#!/usr/bin/env python3

"""Execution backends that run one scan task per volume under a throttle.

Two interchangeable strategies share the same contract:

* ``FanOutBackend`` fans every task out as a coroutine on a private event
  loop; an ``asyncio.Semaphore`` bounds how many run at once and each scan
  runs in a thread via ``asyncio.to_thread``.
* ``PoolBackend`` submits one task per volume to a fixed-size
  ``ThreadPoolExecutor`` and polls the futures for completion.

``select_backend`` probes the interpreter once and picks one of them.
"""

import asyncio
import concurrent.futures
import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from ..errors import ConfigurationError
from .results import ScanResult
from .volume_worker import ScanTask

logger = logging.getLogger(__name__)

DEFAULT_THROTTLE = 5

TaskFunction = Callable[[ScanTask], ScanResult]


@dataclass
class TaskOutcome:
    """What the backend handed back for one task."""
    task: ScanTask
    result: Optional[ScanResult] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.result is not None


def compute_throttle(volume_count: int, limit: int = DEFAULT_THROTTLE) -> int:
    """Number of workers allowed to run at once: min(volume count, limit), at least 1."""
    return max(1, min(volume_count, limit))


class ExecutionBackend(ABC):
    """Runs ``fn(task)`` for every task, at most ``throttle`` at a time."""

    name = 'abstract'

    def __init__(self, throttle: int):
        if throttle < 1:
            raise ValueError(f"throttle must be >= 1, got {throttle}")
        self.throttle = throttle
        self._tasks: List[ScanTask] = []

    @abstractmethod
    def start(self, tasks: Sequence[ScanTask], fn: TaskFunction) -> None:
        """Dispatch every task without blocking the caller."""

    @abstractmethod
    def all_done(self) -> bool:
        """True once every dispatched task has finished, successfully or not."""

    @abstractmethod
    def wait(self) -> None:
        """Block until every dispatched task has finished."""

    @abstractmethod
    def outcomes(self) -> List[TaskOutcome]:
        """Per-task outcomes in dispatch order. Only valid after ``wait``."""

    def shutdown(self) -> None:
        """Release threads held by the backend."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()
        return False


class FanOutBackend(ExecutionBackend):
    """Bounded fan-out of one coroutine per task under a global semaphore."""

    name = 'fanout'

    def __init__(self, throttle: int):
        super().__init__(throttle)
        self._thread: Optional[threading.Thread] = None
        self._results: List[object] = []
        self._dispatch_error: Optional[BaseException] = None

    @staticmethod
    def available() -> bool:
        return hasattr(asyncio, 'to_thread')

    def start(self, tasks: Sequence[ScanTask], fn: TaskFunction) -> None:
        if not self.available():
            raise ConfigurationError("The fan-out backend needs asyncio.to_thread (Python 3.9+)")
        self._tasks = list(tasks)
        self._thread = threading.Thread(
            target=self._run_loop,
            args=(fn,),
            name='volume-scan-dispatch',
            daemon=True,
        )
        self._thread.start()

    def _run_loop(self, fn: TaskFunction) -> None:
        try:
            self._results = asyncio.run(self._dispatch(fn))
        except Exception as e:
            logger.error(f"Fan-out dispatcher failed: {e}", exc_info=True)
            self._dispatch_error = e

    async def _dispatch(self, fn: TaskFunction) -> List[object]:
        semaphore = asyncio.Semaphore(self.throttle)

        async def guarded(task: ScanTask) -> ScanResult:
            async with semaphore:
                return await asyncio.to_thread(fn, task)

        return await asyncio.gather(
            *(guarded(task) for task in self._tasks),
            return_exceptions=True,
        )

    def all_done(self) -> bool:
        return self._thread is not None and not self._thread.is_alive()

    def wait(self) -> None:
        if self._thread is not None:
            self._thread.join()

    def outcomes(self) -> List[TaskOutcome]:
        if self._dispatch_error is not None or len(self._results) != len(self._tasks):
            error = self._dispatch_error or RuntimeError("dispatcher returned no result")
            return [TaskOutcome(task, error=error) for task in self._tasks]

        outcomes = []
        for task, value in zip(self._tasks, self._results):
            if isinstance(value, BaseException):
                outcomes.append(TaskOutcome(task, error=value))
            else:
                outcomes.append(TaskOutcome(task, result=value))
        return outcomes


class PoolBackend(ExecutionBackend):
    """Fixed-size thread pool, one submitted task per volume."""

    name = 'pool'

    def __init__(self, throttle: int):
        super().__init__(throttle)
        self._executor: Optional[ThreadPoolExecutor] = None
        self._futures: List[concurrent.futures.Future] = []

    def start(self, tasks: Sequence[ScanTask], fn: TaskFunction) -> None:
        self._tasks = list(tasks)
        self._executor = ThreadPoolExecutor(
            max_workers=self.throttle,
            thread_name_prefix='volume-scan',
        )
        self._futures = [self._executor.submit(fn, task) for task in self._tasks]

    def all_done(self) -> bool:
        return all(future.done() for future in self._futures)

    def wait(self) -> None:
        concurrent.futures.wait(self._futures)

    def outcomes(self) -> List[TaskOutcome]:
        outcomes = []
        for task, future in zip(self._tasks, self._futures):
            try:
                outcomes.append(TaskOutcome(task, result=future.result()))
            except Exception as e:
                outcomes.append(TaskOutcome(task, error=e))
        return outcomes

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None


BACKENDS = {
    FanOutBackend.name: FanOutBackend,
    PoolBackend.name: PoolBackend,
}


def probe_backend() -> str:
    """Pick the backend the running interpreter supports best."""
    return FanOutBackend.name if FanOutBackend.available() else PoolBackend.name


def select_backend(name: str, throttle: int,
                   probe: Callable[[], str] = probe_backend) -> ExecutionBackend:
    """Build the backend named ``name``; ``auto`` asks ``probe``.

    Raises:
        ConfigurationError: Unknown name, or ``fanout`` forced where it is unavailable
    """
    if name == 'auto':
        name = probe()
        logger.debug(f"Backend probe selected '{name}'")
    if name not in BACKENDS:
        raise ConfigurationError(f"Unknown backend '{name}'")
    if name == FanOutBackend.name and not FanOutBackend.available():
        raise ConfigurationError("The fan-out backend needs asyncio.to_thread (Python 3.9+)")
    return BACKENDS[name](throttle)
