"""Call stack of execution frames."""

from dataclasses import dataclass
from typing import Iterator, List, Optional

from .environment import Environment
from .errors import InternalError, StackOverflow
from .values import JSValue

DEFAULT_MAX_STACK_DEPTH = 200


@dataclass
class Frame:
    """Call frame on the call stack."""

    environment: Environment  # Current lexical environment (changes on block entry)
    this_value: JSValue
    caller: Optional["Frame"] = None
    function: Optional[object] = None  # JSFunction being run, None for scripts
    variable_environment: Optional[Environment] = None  # Function-level environment

    def __post_init__(self):
        if self.variable_environment is None:
            self.variable_environment = self.environment

    @property
    def name(self) -> str:
        if self.function is None:
            return "<script>"
        return getattr(self.function, "name", None) or "<anonymous>"


class CallStack:
    """Last-in-first-out sequence of the frames currently executing."""

    def __init__(self, max_depth: Optional[int] = DEFAULT_MAX_STACK_DEPTH):
        self.max_depth = max_depth
        self._frames: List[Frame] = []

    def push_frame(
        self,
        environment: Environment,
        this_value: JSValue,
        function: Optional[object] = None,
    ) -> Frame:
        """Create a frame on top of the stack and make it the running one."""
        if self.max_depth is not None and len(self._frames) >= self.max_depth:
            raise StackOverflow()
        frame = Frame(
            environment=environment,
            this_value=this_value,
            caller=self.current,
            function=function,
        )
        self._frames.append(frame)
        return frame

    def pop_frame(self) -> Frame:
        if not self._frames:
            raise InternalError("pop_frame() on an empty call stack")
        return self._frames.pop()

    @property
    def current(self) -> Optional[Frame]:
        """The running frame, or None when no code is executing."""
        return self._frames[-1] if self._frames else None

    @property
    def depth(self) -> int:
        return len(self._frames)

    def is_empty(self) -> bool:
        return not self._frames

    def __len__(self) -> int:
        return len(self._frames)

    def __bool__(self) -> bool:
        return bool(self._frames)

    def __iter__(self) -> Iterator[Frame]:
        """Iterate from the running frame outwards."""
        return reversed(self._frames)

    def format_stack(self) -> str:
        """Render the stack innermost-first, collapsing repeated frames."""
        lines: List[str] = []
        previous = None
        repeats = 0
        for frame in self:
            if frame.name == previous:
                repeats += 1
                continue
            if repeats:
                lines.append(f"    ... {repeats} more {previous}")
                repeats = 0
            lines.append(f"    at {frame.name}")
            previous = frame.name
        if repeats:
            lines.append(f"    ... {repeats} more {previous}")
        return "\n".join(lines)
