"""Suspension runner: drives async function bodies.

An async body is a generator function (``value = yield awaited``) or a
coroutine function (``value = await promise``). The runner steps it
synchronously up to its first suspension point, then resumes it from a
promise reaction, which is always a microtask. Each resumption re-enters
the call stack with the environment saved at the suspension point.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from .callstack import CallStack
from .environment import Environment
from .errors import StackOverflow
from .promise import FATAL_ERRORS, Promise, error_from, reason_from
from .values import UNDEFINED, JSValue

if TYPE_CHECKING:
    from .context import Activation
    from .eventloop import EventLoop

logger = logging.getLogger(__name__)


@dataclass
class SuspensionPoint:
    """Where a body paused, and what it is waiting for."""

    environment: Environment
    awaited: Promise


class AsyncRunner:
    """Runs one invocation of an async function and exposes it as a promise."""

    def __init__(self, loop: "EventLoop", call_stack: CallStack, activation: "Activation", body: Any):
        self.loop = loop
        self.call_stack = call_stack
        self.activation = activation
        self.body = body  # A started-or-not generator or coroutine object
        self.promise = Promise(loop)
        self._resolve, self._reject = self.promise._resolving_functions()
        self.suspension: Optional[SuspensionPoint] = None
        self._started = False

        frame = activation.frame
        self._this_value = frame.this_value
        self._function = frame.function
        self._variable_environment = frame.variable_environment

    def start(self) -> Promise:
        """Run up to the first suspension point. The caller's frame must be active."""
        self._step(UNDEFINED, None)
        return self.promise

    def _step(self, value: JSValue, error: Optional[BaseException]) -> None:
        try:
            if error is not None:
                awaited = self.body.throw(error)
            elif not self._started:
                self._started = True
                awaited = self.body.send(None)
            else:
                awaited = self.body.send(value)
        except StopIteration as stop:
            self._resolve(UNDEFINED if stop.value is None else stop.value)
            return
        except FATAL_ERRORS:
            raise
        except RecursionError:
            self._reject(StackOverflow())
            return
        except Exception as exc:
            self._reject(reason_from(exc))
            return
        self._suspend(awaited)

    def _suspend(self, awaited: JSValue) -> None:
        promise = Promise.resolve(self.loop, awaited)
        self.suspension = SuspensionPoint(self.activation.frame.environment, promise)
        logger.debug("%r suspended on %r", self._function, promise)
        promise.then(self._on_fulfilled, self._on_rejected)

    def _on_fulfilled(self, value: JSValue) -> None:
        self._resume(value, None)

    def _on_rejected(self, reason: JSValue) -> None:
        self._resume(UNDEFINED, error_from(reason))

    def _resume(self, value: JSValue, error: Optional[BaseException]) -> None:
        point, self.suspension = self.suspension, None
        frame = self.call_stack.push_frame(point.environment, self._this_value, self._function)
        frame.variable_environment = self._variable_environment
        self.activation.frame = frame
        try:
            self._step(value, error)
        finally:
            self.call_stack.pop_frame()


def run_async(loop: "EventLoop", call_stack: CallStack, activation: "Activation", body_fn: Any) -> Promise:
    """Call an async body with activation and return the promise of its completion."""
    try:
        body = body_fn(activation)
    except FATAL_ERRORS:
        raise
    except RecursionError:
        return Promise.reject(loop, StackOverflow())
    except Exception as exc:
        return Promise.reject(loop, reason_from(exc))

    if inspect.isgenerator(body) or inspect.iscoroutine(body):
        return AsyncRunner(loop, call_stack, activation, body).start()
    # A plain function marked async completes without suspending
    promise = Promise(loop)
    resolve, _ = promise._resolving_functions()
    resolve(UNDEFINED if body is None else body)
    return promise
