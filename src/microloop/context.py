"""Execution context: the public face of the core."""

from contextlib import contextmanager
from types import SimpleNamespace
from typing import Any, Callable, Iterable, Iterator, List, Optional, Sequence, Union

from .callstack import DEFAULT_MAX_STACK_DEPTH, CallStack, Frame
from .environment import UNINITIALIZED, Binding, BindingKind, Environment, EnvironmentKind
from .errors import JSThrow, JSTypeError, StackOverflow, UnhandledRejection
from .eventloop import EventLoop
from .promise import Promise
from .suspension import run_async
from .tasks import Task
from .units import (
    CompiledFunction,
    Declaration,
    JSFunction,
    Scope,
    instantiate_block_environment,
    instantiate_declarations,
    instantiate_function_environment,
)
from .values import UNDEFINED, JSValue, to_string


class Activation:
    """Handle through which a running body reaches its frame and the runtime.

    Bodies receive one of these as their only argument. For async bodies the
    frame is replaced each time the body resumes; the handle stays the same.
    """

    def __init__(self, context: "Context", frame: Frame):
        self.context = context
        self.frame = frame

    @property
    def this(self) -> JSValue:
        return self.frame.this_value

    @property
    def environment(self) -> Environment:
        return self.frame.environment

    def lookup(self, name: str) -> JSValue:
        """Read an identifier through the environment chain."""
        return self.frame.environment.get_value(name)

    def assign(self, name: str, value: JSValue) -> None:
        self.frame.environment.assign(name, value)

    def initialize(self, name: str, value: JSValue = UNDEFINED) -> None:
        """Run the initializer of a let/const (or var) declaration."""
        self.frame.environment.initialize(name, value)

    def declare(self, name: str, kind: BindingKind, value: Any = UNINITIALIZED) -> Binding:
        return self.frame.environment.declare(name, kind, value)

    @contextmanager
    def block(self, scope: Union[Scope, Sequence[Declaration], None] = None) -> Iterator[Environment]:
        """Enter a block scope for the duration of the with statement."""
        if scope is None:
            scope = Scope()
        elif not isinstance(scope, Scope):
            scope = Scope(list(scope))
        saved = self.frame.environment
        self.frame.environment = instantiate_block_environment(scope, saved)
        try:
            yield self.frame.environment
        finally:
            self.frame.environment = saved

    def closure(self, compiled: CompiledFunction) -> JSFunction:
        """Create a function value closing over the current environment."""
        this_value = self.frame.this_value if compiled.is_arrow else None
        return JSFunction(compiled, self.frame.environment, this_value)

    def function(
        self,
        name: str,
        params: List[str],
        body: Callable,
        scope: Optional[Scope] = None,
        is_async: bool = False,
        is_arrow: bool = False,
    ) -> JSFunction:
        compiled = CompiledFunction(
            name=name,
            params=list(params),
            body=body,
            scope=scope or Scope(),
            is_async=is_async,
            is_arrow=is_arrow,
        )
        return self.closure(compiled)

    def call(self, fn: Any, *args: JSValue, this: JSValue = UNDEFINED) -> JSValue:
        return self.context.call(fn, *args, this=this)

    def throw(self, value: JSValue) -> None:
        raise JSThrow(value)


class PromiseConstructor:
    """The ``Promise`` global: callable with an executor, plus static helpers."""

    def __init__(self, context: "Context"):
        self._context = context

    def __call__(self, executor: Any) -> Promise:
        return self._context.create_deferred_value(executor)

    def resolve(self, value: JSValue = UNDEFINED) -> Promise:
        return Promise.resolve(self._context.loop, value)

    def reject(self, reason: JSValue = UNDEFINED) -> Promise:
        return Promise.reject(self._context.loop, reason)

    def all(self, iterable: Iterable[JSValue]) -> Promise:
        return self._context.all(iterable)

    def race(self, iterable: Iterable[JSValue]) -> Promise:
        return self._context.race(iterable)

    def any(self, iterable: Iterable[JSValue]) -> Promise:
        return self._context.any(iterable)

    def allSettled(self, iterable: Iterable[JSValue]) -> Promise:
        return self._context.all_settled(iterable)


class Context:
    """Execution context with its own global environment, call stack and event loop.

    A Context models one process: its global environment is created once and
    lives as long as the Context.
    """

    def __init__(
        self,
        max_stack_depth: Optional[int] = DEFAULT_MAX_STACK_DEPTH,
        time_limit: Optional[float] = None,
        log_fn: Optional[Callable[[str], None]] = None,
        on_unhandled_rejection: Optional[Callable[[UnhandledRejection], None]] = None,
        on_task_error: Optional[Callable[[Task, BaseException], None]] = None,
    ):
        """Create a new execution context.

        Args:
            max_stack_depth: Maximum number of frames (None for unbounded)
            time_limit: Maximum wall time in seconds for one event loop run
            log_fn: Receives console.log lines (printed when not given)
            on_unhandled_rejection: Called with each unhandled-rejection report
            on_task_error: Called with (task, exception) when a queued task fails
        """
        self.call_stack = CallStack(max_stack_depth)
        self.loop = EventLoop(
            call_stack=self.call_stack,
            time_limit=time_limit,
            on_unhandled_rejection=on_unhandled_rejection,
            on_task_error=on_task_error,
        )
        self.loop.invoke = self._invoke
        self.log_fn = log_fn
        self._global_environment: Optional[Environment] = None
        self._setup_globals()

    def _setup_globals(self) -> None:
        """Install the host built-ins into the global environment."""
        env = self.create_global_environment()
        env.declare("undefined", BindingKind.CONST, UNDEFINED)
        env.declare("console", BindingKind.VAR, SimpleNamespace(log=self._console_log))
        env.declare("setTimeout", BindingKind.VAR, self._set_timeout)
        env.declare("clearTimeout", BindingKind.VAR, self.cancel_timer)
        env.declare("queueMicrotask", BindingKind.VAR, self.queue_microtask)
        env.declare("Promise", BindingKind.VAR, PromiseConstructor(self))

    def _console_log(self, *args: JSValue) -> None:
        """Console.log implementation."""
        line = " ".join(to_string(arg) for arg in args)
        if self.log_fn is not None:
            self.log_fn(line)
        else:
            print(line)

    def _set_timeout(self, callback: Any, delay: Any = 0, *args: JSValue) -> int:
        return self.schedule_after(delay, callback, *args)

    # -- environments and frames ----------------------------------------------

    def create_global_environment(self) -> Environment:
        """The root environment; the same object on every call."""
        if self._global_environment is None:
            self._global_environment = Environment(kind=EnvironmentKind.GLOBAL)
        return self._global_environment

    @property
    def global_environment(self) -> Environment:
        return self.create_global_environment()

    def run(
        self,
        unit: Union[CompiledFunction, JSFunction],
        environment: Optional[Environment] = None,
        this: JSValue = UNDEFINED,
    ) -> JSValue:
        """Run an executable unit to completion and return its result.

        A CompiledFunction runs as a script: its declarations are hoisted into
        environment (the global environment by default). A JSFunction is
        simply called. Errors propagate to the caller.
        """
        if isinstance(unit, JSFunction):
            return self.call(unit, this=this)
        env = environment if environment is not None else self.create_global_environment()
        instantiate_declarations(unit.scope, env)
        frame = self.call_stack.push_frame(env, this)
        try:
            return self._run_body(unit, frame)
        finally:
            self._pop_frame()

    def function(
        self,
        name: str,
        params: List[str],
        body: Callable,
        scope: Optional[Scope] = None,
        is_async: bool = False,
    ) -> JSFunction:
        """Create a function value closing over the global environment."""
        compiled = CompiledFunction(name, list(params), body, scope or Scope(), is_async)
        return JSFunction(compiled, self.create_global_environment())

    def call(self, fn: Any, *args: JSValue, this: JSValue = UNDEFINED) -> JSValue:
        """Call a JS function or a Python callable."""
        return self._invoke(fn, args, this)

    def _invoke(self, fn: Any, args: Sequence[JSValue], this: JSValue = UNDEFINED) -> JSValue:
        if isinstance(fn, JSFunction):
            return self._call_function(fn, args, this)
        if callable(fn):
            # Native function
            result = fn(*args)
            return UNDEFINED if result is None else result
        raise JSTypeError(f"{fn} is not a function")

    def _call_function(self, fn: JSFunction, args: Sequence[JSValue], this: JSValue) -> JSValue:
        this_value = fn.this_value if fn.is_arrow else this
        env = instantiate_function_environment(fn, args)
        frame = self.call_stack.push_frame(env, this_value, fn)
        try:
            return self._run_body(fn.compiled, frame)
        finally:
            self._pop_frame()

    def _run_body(self, compiled: CompiledFunction, frame: Frame) -> JSValue:
        activation = Activation(self, frame)
        try:
            if compiled.is_async:
                return run_async(self.loop, self.call_stack, activation, compiled.body)
            result = compiled.body(activation)
        except RecursionError:
            raise StackOverflow() from None
        return UNDEFINED if result is None else result

    def _pop_frame(self) -> None:
        self.call_stack.pop_frame()
        # Synchronous code has finished: service the microtask queue
        if self.call_stack.is_empty() and not self.loop.busy:
            self.loop.perform_microtask_checkpoint()

    # -- scheduling -----------------------------------------------------------

    def schedule_after(self, delay_ticks: Any, callback: Any, *args: JSValue) -> int:
        """Run callback(*args) as a macrotask once delay_ticks have elapsed."""
        return self.loop.schedule_after(delay_ticks, callback, *args)

    def cancel_timer(self, task_id: int) -> bool:
        return self.loop.cancel(task_id)

    def queue_microtask(self, callback: Any, *args: JSValue) -> int:
        return self.loop.queue_microtask(callback, *args)

    def run_loop(self) -> None:
        """Run the event loop until there is nothing left to do."""
        self.loop.run()

    def run_until_complete(self, promise: Promise) -> JSValue:
        return self.loop.run_until_complete(promise)

    @property
    def unhandled_rejections(self) -> List[UnhandledRejection]:
        return self.loop.unhandled_rejections

    @property
    def task_errors(self):
        return self.loop.task_errors

    # -- promises -------------------------------------------------------------

    def create_deferred_value(self, setup: Any) -> Promise:
        """Create a promise; setup is called at once with (resolve, reject)."""
        return Promise(self.loop, setup)

    def register_reaction(
        self,
        deferred: Promise,
        on_fulfill: Optional[Any] = None,
        on_reject: Optional[Any] = None,
    ) -> Promise:
        return deferred.then(on_fulfill, on_reject)

    def resolved(self, value: JSValue = UNDEFINED) -> Promise:
        return Promise.resolve(self.loop, value)

    def rejected(self, reason: JSValue = UNDEFINED) -> Promise:
        return Promise.reject(self.loop, reason)

    def all(self, iterable: Iterable[JSValue]) -> Promise:
        return Promise.all(self.loop, iterable)

    def race(self, iterable: Iterable[JSValue]) -> Promise:
        return Promise.race(self.loop, iterable)

    def any(self, iterable: Iterable[JSValue]) -> Promise:
        return Promise.any(self.loop, iterable)

    def all_settled(self, iterable: Iterable[JSValue]) -> Promise:
        return Promise.all_settled(self.loop, iterable)
