"""
microloop - A Pure Python Cooperative Execution Core

An embeddable, single-threaded execution core: a call stack of frames over a
lexical environment chain, and an event loop that orders macrotasks,
microtasks, promises and async functions the way a JavaScript engine does.
Implemented entirely in Python with no external dependencies.
"""

__version__ = "0.1.0"

from .context import Activation, Context
from .environment import Binding, BindingKind, Environment
from .errors import (
    AggregateError,
    ConstViolation,
    InternalError,
    JSError,
    JSThrow,
    RedeclarationError,
    StackOverflow,
    TimeLimitError,
    UnboundIdentifier,
    UnhandledRejection,
    UninitializedAccess,
)
from .eventloop import EventLoop
from .promise import Promise, PromiseState, SettledOutcome
from .units import CompiledFunction, Declaration, DeclarationKind, JSFunction, Scope
from .values import UNDEFINED, NULL

__all__ = [
    "Activation",
    "AggregateError",
    "Binding",
    "BindingKind",
    "CompiledFunction",
    "ConstViolation",
    "Context",
    "Declaration",
    "DeclarationKind",
    "Environment",
    "EventLoop",
    "InternalError",
    "JSError",
    "JSFunction",
    "JSThrow",
    "Promise",
    "PromiseState",
    "RedeclarationError",
    "Scope",
    "SettledOutcome",
    "StackOverflow",
    "TimeLimitError",
    "UnboundIdentifier",
    "UnhandledRejection",
    "UninitializedAccess",
    "UNDEFINED",
    "NULL",
]
