"""
Background task queue for fire-and-forget work.

Memory extraction, summarization and title generation run here, decoupled
from the request that triggered them:
- Handlers are wrapped so that failures are logged and never propagate
- Handlers must be idempotent; nothing is retried automatically
- inline=True runs handlers synchronously (tests, single-process tools)
"""
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, List, Optional

from companion.core.logging_config import get_logger

logger = get_logger(__name__)


class BackgroundTaskQueue:
    """
    Named-task dispatcher backed by a thread pool.

    Example:
        >>> queue = BackgroundTaskQueue(max_workers=2)
        >>> queue.submit("summarize", summarizer.summarize, chat_id)
        >>> queue.drain(timeout=5)
    """

    def __init__(self, max_workers: int = 4, inline: bool = False):
        """
        Initialize the queue.

        Args:
            max_workers: Thread pool size (ignored when inline)
            inline: Run each task immediately in the caller's thread
        """
        self.inline = inline
        self._executor: Optional[ThreadPoolExecutor] = None
        if not inline:
            self._executor = ThreadPoolExecutor(
                max_workers=max_workers,
                thread_name_prefix="companion-bg",
            )
        self._pending: List[Future] = []
        self._lock = threading.Lock()
        self.failures = 0

        logger.info(
            f"BackgroundTaskQueue initialized: "
            f"{'inline' if inline else f'{max_workers} workers'}"
        )

    def submit(self, name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Optional[Future]:
        """
        Schedule a task. Never raises because of the task itself.

        Args:
            name: Task name used in log lines
            fn: Callable to run
            *args, **kwargs: Arguments forwarded to fn

        Returns:
            The Future for threaded execution, None when run inline
        """
        if self.inline:
            self._run(name, fn, args, kwargs)
            return None

        future = self._executor.submit(self._run, name, fn, args, kwargs)
        with self._lock:
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(future)
        return future

    def _run(self, name: str, fn: Callable[..., Any], args: tuple, kwargs: dict) -> None:
        logger.debug(f"Background task started: {name}")
        try:
            fn(*args, **kwargs)
        except Exception:
            with self._lock:
                self.failures += 1
            logger.exception(f"Background task failed: {name}")
        else:
            logger.debug(f"Background task finished: {name}")

    def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for every task submitted so far to finish."""
        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def shutdown(self, wait_for_tasks: bool = True) -> None:
        """Stop accepting work and optionally wait for running tasks."""
        if self._executor is not None:
            self._executor.shutdown(wait=wait_for_tasks)
            logger.info("BackgroundTaskQueue shut down")
