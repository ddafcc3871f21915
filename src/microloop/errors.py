"""Error types raised by the execution core."""

from typing import Any, List, Optional


class JSError(Exception):
    """Base class for all errors visible to running code."""

    def __init__(self, message: str = "", name: str = "Error"):
        self.message = message
        self.name = name
        super().__init__(f"{name}: {message}" if message else name)

    @property
    def value(self) -> Any:
        """The value a catch clause receives for this error."""
        return self


class JSThrow(JSError):
    """An arbitrary value thrown by running code."""

    def __init__(self, value: Any):
        self._value = value
        if isinstance(value, str):
            message = value
        else:
            message = repr(value)
        super().__init__(message, "Error")

    @property
    def value(self) -> Any:
        return self._value


class JSTypeError(JSError):
    """Type error."""

    def __init__(self, message: str = ""):
        super().__init__(message, "TypeError")


class JSReferenceError(JSError):
    """Reference error (unresolvable or unusable identifier)."""

    def __init__(self, message: str = ""):
        super().__init__(message, "ReferenceError")


class JSSyntaxError(JSError):
    """Early error detected while declaring bindings."""

    def __init__(self, message: str = ""):
        super().__init__(message, "SyntaxError")


class JSRangeError(JSError):
    """Range error."""

    def __init__(self, message: str = ""):
        super().__init__(message, "RangeError")


class UnboundIdentifier(JSReferenceError):
    """Identifier is not declared in any reachable environment."""

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"{identifier} is not defined")


class UninitializedAccess(JSReferenceError):
    """A let/const binding was used inside its temporal dead zone."""

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Cannot access '{identifier}' before initialization")


class RedeclarationError(JSSyntaxError):
    """Block-scoped identifier declared twice in the same environment."""

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Identifier '{identifier}' has already been declared")


class ConstViolation(JSTypeError):
    """Write to an initialized const binding."""

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__("Assignment to constant variable.")


class StackOverflow(JSRangeError):
    """Call stack grew past its configured maximum depth."""

    def __init__(self, message: str = "Maximum call stack size exceeded"):
        super().__init__(message)


class AggregateError(JSError):
    """Several rejection reasons collected into one error."""

    def __init__(self, errors: Optional[List[Any]] = None, message: str = "All promises were rejected"):
        self.errors = list(errors or [])
        super().__init__(message, "AggregateError")


class UnhandledRejection(JSError):
    """Report record for a rejected promise nobody handled.

    The event loop never raises this; it is handed to the
    ``on_unhandled_rejection`` hook and kept on the loop.
    """

    def __init__(self, promise: Any, reason: Any):
        self.promise = promise
        self.reason = reason
        super().__init__(f"Uncaught (in promise) {reason!r}", "UnhandledRejection")


class InternalError(Exception):
    """Programming error in the host or the core itself. Always fatal."""


class TimeLimitError(JSError):
    """Raised when the event loop exceeds its wall-time budget."""

    def __init__(self, message: str = "Execution timeout"):
        super().__init__(message, "InternalError")
