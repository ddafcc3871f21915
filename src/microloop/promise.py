"""Promise: the deferred-value state machine and its combinators.

A promise settles at most once, from pending to fulfilled or rejected.
Every reaction registered with then() runs exactly once, as its own
microtask, in registration order. Resolving a promise with another promise
makes it follow that promise, so chains never produce a promise of a promise.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterable, List, Optional, Tuple

from .errors import (
    AggregateError,
    InternalError,
    JSThrow,
    JSTypeError,
    TimeLimitError,
)
from .units import JSFunction
from .values import UNDEFINED, JSValue

if TYPE_CHECKING:
    from .eventloop import EventLoop

logger = logging.getLogger(__name__)

# Errors that must escape instead of turning into rejections
FATAL_ERRORS = (InternalError, TimeLimitError)


class PromiseState(Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


@dataclass
class PromiseReaction:
    """A handler pair registered on a promise, and the promise it feeds."""

    on_fulfilled: Optional[Any]
    on_rejected: Optional[Any]
    downstream: "Promise"
    resolve: Callable[[JSValue], None]
    reject: Callable[[JSValue], None]


@dataclass(frozen=True)
class SettledOutcome:
    """Per-input record produced by Promise.all_settled()."""

    status: str  # "fulfilled" or "rejected"
    value: JSValue = UNDEFINED
    reason: JSValue = UNDEFINED


def reason_from(exc: BaseException) -> JSValue:
    """The rejection reason for an exception raised by running code."""
    if isinstance(exc, JSThrow):
        return exc.value
    return exc


def error_from(reason: JSValue) -> BaseException:
    """The exception to raise for a rejection reason."""
    if isinstance(reason, BaseException):
        return reason
    return JSThrow(reason)


def is_callable(handler: Any) -> bool:
    return isinstance(handler, JSFunction) or callable(handler)


class Promise:
    """A value that becomes available once an asynchronous operation settles."""

    def __init__(self, loop: "EventLoop", executor: Optional[Any] = None):
        """Create a promise.

        Args:
            loop: Event loop that runs this promise's reactions
            executor: Called synchronously with (resolve, reject). If it raises,
                the promise is rejected with the error.
        """
        self.loop = loop
        self.state = PromiseState.PENDING
        self.result: JSValue = UNDEFINED
        self.reactions: List[PromiseReaction] = []
        self.handled = False

        if executor is not None:
            resolve, reject = self._resolving_functions()
            try:
                loop.invoke(executor, (resolve, reject))
            except FATAL_ERRORS:
                raise
            except Exception as exc:
                reject(reason_from(exc))

    # -- settlement -----------------------------------------------------------

    def _resolving_functions(self) -> Tuple[Callable[..., None], Callable[..., None]]:
        """A fresh (resolve, reject) pair. Only the first call of either counts."""
        already_resolved = False

        def resolve(value: JSValue = UNDEFINED) -> None:
            nonlocal already_resolved
            if already_resolved:
                return
            already_resolved = True
            self._resolve(value)

        def reject(reason: JSValue = UNDEFINED) -> None:
            nonlocal already_resolved
            if already_resolved:
                return
            already_resolved = True
            self._reject(reason)

        return resolve, reject

    def _resolve(self, value: JSValue) -> None:
        if value is self:
            self._reject(JSTypeError("Chaining cycle detected for promise"))
            return
        if isinstance(value, Promise):
            # Follow the other promise from a microtask of our own
            self.loop.enqueue_micro(lambda: self._follow(value), label="resolve-thenable")
            return
        self._settle(PromiseState.FULFILLED, value)

    def _follow(self, other: "Promise") -> None:
        resolve, reject = self._resolving_functions()
        other.then(resolve, reject)

    def _reject(self, reason: JSValue) -> None:
        if self.state is not PromiseState.PENDING:
            return
        self._settle(PromiseState.REJECTED, reason)
        if not self.handled:
            self.loop.track_rejection(self)

    def _settle(self, state: PromiseState, result: JSValue) -> None:
        if self.state is not PromiseState.PENDING:
            return
        self.state = state
        self.result = result
        logger.debug("%r settled", self)
        reactions, self.reactions = self.reactions, []
        for reaction in reactions:
            self._schedule(reaction)

    # -- reactions ------------------------------------------------------------

    def then(self, on_fulfilled: Optional[Any] = None, on_rejected: Optional[Any] = None) -> "Promise":
        """Register handlers; return the promise their outcome settles."""
        downstream = Promise(self.loop)
        resolve, reject = downstream._resolving_functions()
        reaction = PromiseReaction(
            on_fulfilled=on_fulfilled if is_callable(on_fulfilled) else None,
            on_rejected=on_rejected if is_callable(on_rejected) else None,
            downstream=downstream,
            resolve=resolve,
            reject=reject,
        )
        self.mark_handled()
        if self.state is PromiseState.PENDING:
            self.reactions.append(reaction)
        else:
            self._schedule(reaction)
        return downstream

    def catch(self, on_rejected: Any) -> "Promise":
        return self.then(None, on_rejected)

    def finally_(self, on_finally: Any) -> "Promise":
        """Run on_finally on either outcome, then pass the outcome through."""
        if not is_callable(on_finally):
            return self.then(on_finally, on_finally)
        loop = self.loop

        def then_finally(value: JSValue) -> "Promise":
            result = loop.invoke(on_finally, ())
            return Promise.resolve(loop, result).then(lambda _: value)

        def catch_finally(reason: JSValue) -> "Promise":
            result = loop.invoke(on_finally, ())

            def rethrow(_: JSValue) -> None:
                raise error_from(reason)

            return Promise.resolve(loop, result).then(rethrow)

        return self.then(then_finally, catch_finally)

    def mark_handled(self) -> None:
        if not self.handled:
            self.handled = True
            self.loop.untrack_rejection(self)

    def _schedule(self, reaction: PromiseReaction) -> None:
        state, result = self.state, self.result
        self.loop.enqueue_micro(
            lambda: self._run_reaction(reaction, state, result),
            label="promise-reaction",
        )

    def _run_reaction(self, reaction: PromiseReaction, state: PromiseState, result: JSValue) -> None:
        if state is PromiseState.FULFILLED:
            handler = reaction.on_fulfilled
        else:
            handler = reaction.on_rejected

        if handler is None:
            # Pass the outcome through unchanged
            if state is PromiseState.FULFILLED:
                reaction.resolve(result)
            else:
                reaction.reject(result)
            return

        try:
            value = self.loop.invoke(handler, (result,))
        except FATAL_ERRORS:
            raise
        except Exception as exc:
            reaction.reject(reason_from(exc))
        else:
            reaction.resolve(value)

    def __await__(self):
        return (yield self)

    def __repr__(self) -> str:
        if self.state is PromiseState.PENDING:
            return "<Promise pending>"
        return f"<Promise {self.state.value}: {self.result!r}>"

    # -- constructors and combinators -----------------------------------------

    @classmethod
    def resolve(cls, loop: "EventLoop", value: JSValue = UNDEFINED) -> "Promise":
        """A promise resolved with value (value itself if it is a promise)."""
        if isinstance(value, Promise):
            return value
        promise = cls(loop)
        resolve, _ = promise._resolving_functions()
        resolve(value)
        return promise

    @classmethod
    def reject(cls, loop: "EventLoop", reason: JSValue = UNDEFINED) -> "Promise":
        promise = cls(loop)
        _, reject = promise._resolving_functions()
        reject(reason)
        return promise

    @classmethod
    def all(cls, loop: "EventLoop", iterable: Iterable[JSValue]) -> "Promise":
        """Fulfill with every result, in input order, or reject with the first rejection."""
        result = cls(loop)
        resolve, reject = result._resolving_functions()
        items = list(iterable)
        values: List[JSValue] = [UNDEFINED] * len(items)
        remaining = len(items)
        if remaining == 0:
            resolve([])
            return result

        def element_fulfilled(index: int) -> Callable[[JSValue], None]:
            def on_fulfilled(value: JSValue) -> None:
                nonlocal remaining
                values[index] = value
                remaining -= 1
                if remaining == 0:
                    resolve(list(values))
            return on_fulfilled

        for index, item in enumerate(items):
            cls.resolve(loop, item).then(element_fulfilled(index), reject)
        return result

    @classmethod
    def race(cls, loop: "EventLoop", iterable: Iterable[JSValue]) -> "Promise":
        """Settle like whichever input settles first. An empty input never settles."""
        result = cls(loop)
        resolve, reject = result._resolving_functions()
        for item in iterable:
            cls.resolve(loop, item).then(resolve, reject)
        return result

    @classmethod
    def any(cls, loop: "EventLoop", iterable: Iterable[JSValue]) -> "Promise":
        """Fulfill with the first fulfillment; reject with an AggregateError if all reject.

        An empty input rejects straight away with an empty AggregateError.
        """
        result = cls(loop)
        resolve, reject = result._resolving_functions()
        items = list(iterable)
        errors: List[JSValue] = [UNDEFINED] * len(items)
        remaining = len(items)
        if remaining == 0:
            reject(AggregateError([]))
            return result

        def element_rejected(index: int) -> Callable[[JSValue], None]:
            def on_rejected(reason: JSValue) -> None:
                nonlocal remaining
                errors[index] = reason
                remaining -= 1
                if remaining == 0:
                    reject(AggregateError(errors))
            return on_rejected

        for index, item in enumerate(items):
            cls.resolve(loop, item).then(resolve, element_rejected(index))
        return result

    @classmethod
    def all_settled(cls, loop: "EventLoop", iterable: Iterable[JSValue]) -> "Promise":
        """Always fulfills, with one SettledOutcome per input, in input order."""
        result = cls(loop)
        resolve, _ = result._resolving_functions()
        items = list(iterable)
        outcomes: List[Optional[SettledOutcome]] = [None] * len(items)
        remaining = len(items)
        if remaining == 0:
            resolve([])
            return result

        def record(index: int, outcome: SettledOutcome) -> None:
            nonlocal remaining
            outcomes[index] = outcome
            remaining -= 1
            if remaining == 0:
                resolve(list(outcomes))

        for index, item in enumerate(items):
            cls.resolve(loop, item).then(
                lambda value, i=index: record(i, SettledOutcome("fulfilled", value=value)),
                lambda reason, i=index: record(i, SettledOutcome("rejected", reason=reason)),
            )
        return result
