"""Task records and the two task queues."""

import bisect
import heapq
import math
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Deque, List, Optional, Set, Tuple


class TaskKind(Enum):
    MACRO = "macro"
    MICRO = "micro"


@dataclass(frozen=True)
class Task:
    """A unit of queued work. Immutable once enqueued."""

    id: int
    kind: TaskKind
    run: Callable[[], Any]
    scheduled_at: int  # Global enqueue order
    ready_at: int = 0  # Virtual tick from which a macrotask may run
    label: str = ""

    def __repr__(self) -> str:
        label = f" {self.label}" if self.label else ""
        return f"<Task #{self.id} {self.kind.value}{label}>"


def normalize_delay(delay: Any) -> int:
    """Coerce a requested delay to a whole, non-negative number of ticks.

    Negative delays clamp to 0. NaN, infinities, booleans and anything that
    is not a number also become 0. Fractions are truncated.
    """
    if isinstance(delay, bool) or not isinstance(delay, (int, float)):
        return 0
    if isinstance(delay, float) and (math.isnan(delay) or math.isinf(delay)):
        return 0
    return max(0, int(delay))


class MicrotaskQueue:
    """Strict FIFO queue of microtasks."""

    def __init__(self):
        self._tasks: Deque[Task] = deque()

    def push(self, task: Task) -> None:
        self._tasks.append(task)

    def pop(self) -> Task:
        return self._tasks.popleft()

    def __len__(self) -> int:
        return len(self._tasks)

    def __bool__(self) -> bool:
        return bool(self._tasks)


class MacrotaskQueue:
    """Macrotasks waiting for their delay, and those already eligible.

    Waiting tasks sit in a heap keyed by ready tick. Eligible tasks are kept
    sorted by scheduling order, which is the order they run in.
    """

    def __init__(self):
        self._waiting: List[Tuple[int, int, Task]] = []
        self._ready: List[Tuple[int, Task]] = []
        self._cancelled: Set[int] = set()

    def push(self, task: Task) -> None:
        heapq.heappush(self._waiting, (task.ready_at, task.scheduled_at, task))

    def cancel(self, task_id: int) -> bool:
        """Drop a pending task. Returns False if no such task is pending."""
        if task_id in self._cancelled:
            return False
        for _, _, task in self._waiting:
            if task.id == task_id:
                break
        else:
            for _, task in self._ready:
                if task.id == task_id:
                    break
            else:
                return False
        self._cancelled.add(task_id)
        return True

    def promote(self, now: int) -> None:
        """Move every task whose delay has elapsed into the eligible list."""
        while self._waiting and self._waiting[0][0] <= now:
            _, scheduled_at, task = heapq.heappop(self._waiting)
            if task.id in self._cancelled:
                self._cancelled.discard(task.id)
                continue
            bisect.insort(self._ready, (scheduled_at, task))

    def pop_ready(self, now: int) -> Optional[Task]:
        """Oldest eligible task, or None if nothing may run at tick now."""
        self.promote(now)
        while self._ready:
            _, task = self._ready.pop(0)
            if task.id in self._cancelled:
                self._cancelled.discard(task.id)
                continue
            return task
        return None

    def next_ready_at(self) -> Optional[int]:
        """Earliest tick at which a waiting task becomes eligible."""
        while self._waiting and self._waiting[0][2].id in self._cancelled:
            _, _, task = heapq.heappop(self._waiting)
            self._cancelled.discard(task.id)
        return self._waiting[0][0] if self._waiting else None

    def has_ready(self) -> bool:
        return any(task.id not in self._cancelled for _, task in self._ready)

    def __len__(self) -> int:
        pending = [t for _, _, t in self._waiting] + [t for _, t in self._ready]
        return sum(1 for task in pending if task.id not in self._cancelled)

    def __bool__(self) -> bool:
        return len(self) > 0

