"""The event loop: orders synchronous code, microtasks and macrotasks.

One pass of the loop drains the microtask queue to fixpoint, then runs a
single eligible macrotask, and repeats until both queues are empty. Delays
are measured on a virtual clock of whole ticks; when nothing is eligible the
clock jumps straight to the next ready tick.
"""

import itertools
import logging
import time
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Sequence, Tuple

from .callstack import CallStack
from .errors import InternalError, JSError, TimeLimitError, UnhandledRejection
from .tasks import MacrotaskQueue, MicrotaskQueue, Task, TaskKind, normalize_delay
from .values import UNDEFINED, JSValue

if TYPE_CHECKING:
    from .promise import Promise

logger = logging.getLogger(__name__)


def call_native(fn: Callable, args: Sequence[JSValue], this: JSValue = UNDEFINED) -> JSValue:
    """Default invoker: plain Python callables only."""
    result = fn(*args)
    return UNDEFINED if result is None else result


class EventLoop:
    """Single-threaded cooperative scheduler."""

    def __init__(
        self,
        call_stack: Optional[CallStack] = None,
        time_limit: Optional[float] = None,
        on_unhandled_rejection: Optional[Callable[[UnhandledRejection], None]] = None,
        on_task_error: Optional[Callable[[Task, BaseException], None]] = None,
    ):
        """Create an event loop.

        Args:
            call_stack: Stack whose emptiness gates the loop (a new one by default)
            time_limit: Maximum wall time in seconds for one run() call
            on_unhandled_rejection: Called with each unhandled-rejection report
            on_task_error: Called with (task, exception) when a task fails
        """
        self.call_stack = call_stack if call_stack is not None else CallStack()
        self.time_limit = time_limit
        self.on_unhandled_rejection = on_unhandled_rejection
        self.on_task_error = on_task_error

        self.microtasks = MicrotaskQueue()
        self.macrotasks = MacrotaskQueue()
        self.now = 0  # Virtual clock, in ticks

        # Replaced by the owning Context so that JS functions get frames
        self.invoke: Callable[..., JSValue] = call_native

        self.unhandled_rejections: List[UnhandledRejection] = []
        self.task_errors: List[Tuple[Task, BaseException]] = []

        self._ids = itertools.count(1)
        self._order = itertools.count()
        self._pending_rejections: List["Promise"] = []
        self._draining = False
        self._current_task: Optional[Task] = None
        self.start_time: Optional[float] = None

    # -- enqueueing -----------------------------------------------------------

    def enqueue_macro(self, callback: Callable[[], Any], delay: Any = 0, label: str = "") -> Task:
        """Queue a macrotask that becomes eligible after delay ticks."""
        ticks = normalize_delay(delay)
        task = Task(
            id=next(self._ids),
            kind=TaskKind.MACRO,
            run=callback,
            scheduled_at=next(self._order),
            ready_at=self.now + ticks,
            label=label,
        )
        self.macrotasks.push(task)
        logger.debug("enqueued %r ready at tick %d", task, task.ready_at)
        return task

    def enqueue_micro(self, callback: Callable[[], Any], label: str = "") -> Task:
        task = Task(
            id=next(self._ids),
            kind=TaskKind.MICRO,
            run=callback,
            scheduled_at=next(self._order),
            ready_at=self.now,
            label=label,
        )
        self.microtasks.push(task)
        logger.debug("enqueued %r", task)
        return task

    def schedule_after(self, delay: Any, callback: Callable, *args: JSValue) -> int:
        """Host timer hook: run callback(*args) as a macrotask after delay ticks."""
        task = self.enqueue_macro(
            lambda: self.invoke(callback, args),
            delay,
            label=getattr(callback, "name", None) or getattr(callback, "__name__", "timer"),
        )
        return task.id

    def queue_microtask(self, callback: Callable, *args: JSValue) -> int:
        task = self.enqueue_micro(
            lambda: self.invoke(callback, args),
            label=getattr(callback, "name", None) or getattr(callback, "__name__", "microtask"),
        )
        return task.id

    def cancel(self, task_id: int) -> bool:
        """Cancel a pending macrotask. Returns False if it is not pending."""
        cancelled = self.macrotasks.cancel(task_id)
        if cancelled:
            logger.debug("cancelled task #%d", task_id)
        return cancelled

    # -- running --------------------------------------------------------------

    @property
    def busy(self) -> bool:
        """True while the loop itself is running a task or draining microtasks."""
        return self._draining or self._current_task is not None

    def has_pending(self) -> bool:
        return bool(self.microtasks) or bool(self.macrotasks)

    def perform_microtask_checkpoint(self) -> None:
        """Drain the microtask queue to fixpoint, then report unhandled rejections.

        Microtasks queued while draining run in the same drain. Calling this
        from inside a running drain is a no-op.
        """
        if self._draining:
            return
        self._draining = True
        try:
            while self.microtasks:
                self._run_task(self.microtasks.pop())
        finally:
            self._draining = False
        self._report_unhandled_rejections()

    def run_once(self) -> bool:
        """Run exactly one macrotask (draining microtasks before and after).

        Returns False when no macrotask is left.
        """
        self._check_not_executing()
        self.perform_microtask_checkpoint()

        task = self.macrotasks.pop_ready(self.now)
        if task is None:
            ready_at = self.macrotasks.next_ready_at()
            if ready_at is None:
                return False
            logger.debug("clock advances from tick %d to %d", self.now, ready_at)
            self.now = ready_at
            task = self.macrotasks.pop_ready(self.now)
            if task is None:
                return False

        self._current_task = task
        try:
            self._run_task(task)
        finally:
            self._current_task = None
        self.perform_microtask_checkpoint()
        return True

    def run(self) -> None:
        """Run until both queues are empty."""
        self._check_not_executing()
        self.start_time = time.time()
        try:
            self.perform_microtask_checkpoint()
            while self.run_once():
                pass
        finally:
            self.start_time = None

    def run_until_complete(self, promise: "Promise") -> JSValue:
        """Run until promise settles; return its value or raise its reason."""
        from .promise import PromiseState, error_from

        self._check_not_executing()
        self.start_time = time.time()
        promise.mark_handled()
        try:
            self.perform_microtask_checkpoint()
            while promise.state is PromiseState.PENDING:
                if not self.run_once():
                    raise InternalError("event loop ran out of work before the promise settled")
        finally:
            self.start_time = None
        if promise.state is PromiseState.REJECTED:
            raise error_from(promise.result)
        return promise.result

    def _check_not_executing(self) -> None:
        if self.call_stack:
            raise InternalError("the event loop cannot run while code is executing")

    def _check_limits(self) -> None:
        if self.time_limit and self.start_time is not None:
            if time.time() - self.start_time > self.time_limit:
                raise TimeLimitError("Execution timeout")

    def _run_task(self, task: Task) -> None:
        """Run one task; report and discard it if it fails."""
        self._check_limits()
        logger.debug("running %r at tick %d", task, self.now)
        try:
            task.run()
        except (InternalError, TimeLimitError):
            raise
        except Exception as exc:
            self._report_task_error(task, exc)

    def _report_task_error(self, task: Task, exc: BaseException) -> None:
        if isinstance(exc, JSError):
            logger.error("Uncaught %s in %r", exc, task)
        else:
            logger.error("Uncaught exception in %r", task, exc_info=exc)
        self.task_errors.append((task, exc))
        if self.on_task_error is not None:
            self.on_task_error(task, exc)

    # -- unhandled rejections -------------------------------------------------

    def track_rejection(self, promise: "Promise") -> None:
        """Remember a promise that was rejected with no handler attached."""
        if promise not in self._pending_rejections:
            self._pending_rejections.append(promise)

    def untrack_rejection(self, promise: "Promise") -> None:
        if promise in self._pending_rejections:
            self._pending_rejections.remove(promise)

    def _report_unhandled_rejections(self) -> None:
        pending, self._pending_rejections = self._pending_rejections, []
        for promise in pending:
            if promise.handled:
                continue
            report = UnhandledRejection(promise, promise.result)
            logger.warning("Uncaught (in promise) %r", promise.result)
            self.unhandled_rejections.append(report)
            if self.on_unhandled_rejection is not None:
                self.on_unhandled_rejection(report)
