"""Binding table and lexical environment chain.

An Environment maps identifiers to Binding records and links to the
Environment that encloses it. Resolution walks the chain from the innermost
Environment outwards, which is all shadowing needs.

Environments are plain Python objects. A closure holds a reference to the
Environment it was created in, so that Environment stays alive (and visible
to the closure) for as long as the closure does.
"""

from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from .errors import (
    ConstViolation,
    InternalError,
    RedeclarationError,
    UnboundIdentifier,
    UninitializedAccess,
)
from .values import UNDEFINED, JSValue


class BindingKind(Enum):
    """Declaration kind of a binding."""

    VAR = "var"
    LET = "let"
    CONST = "const"


class EnvironmentKind(Enum):
    GLOBAL = "global"
    FUNCTION = "function"
    BLOCK = "block"


class _Uninitialized:
    """Marker held by let/const bindings inside their temporal dead zone."""

    def __repr__(self) -> str:
        return "<uninitialized>"


UNINITIALIZED = _Uninitialized()


class Binding:
    """A single identifier binding."""

    __slots__ = ("identifier", "kind", "value")

    def __init__(self, identifier: str, kind: BindingKind, value: Any = UNINITIALIZED):
        if kind is BindingKind.VAR and value is UNINITIALIZED:
            value = UNDEFINED
        self.identifier = identifier
        self.kind = kind
        self.value = value

    @property
    def initialized(self) -> bool:
        return self.value is not UNINITIALIZED

    def read(self) -> JSValue:
        if self.value is UNINITIALIZED:
            raise UninitializedAccess(self.identifier)
        return self.value

    def write(self, value: JSValue) -> None:
        if self.value is UNINITIALIZED:
            raise UninitializedAccess(self.identifier)
        if self.kind is BindingKind.CONST:
            raise ConstViolation(self.identifier)
        self.value = value

    def initialize(self, value: JSValue = UNDEFINED) -> None:
        """Run the binding's initializer, ending its temporal dead zone."""
        if self.kind is BindingKind.VAR:
            self.value = value
            return
        if self.value is not UNINITIALIZED:
            raise InternalError(f"binding '{self.identifier}' is already initialized")
        self.value = value

    def __repr__(self) -> str:
        return f"Binding({self.kind.value} {self.identifier}={self.value!r})"


class Environment:
    """A scope: bindings plus a link to the enclosing scope."""

    def __init__(
        self,
        outer: Optional["Environment"] = None,
        kind: EnvironmentKind = EnvironmentKind.BLOCK,
    ):
        self.bindings: Dict[str, Binding] = {}
        self.outer = outer
        self.kind = kind

    def declare(self, identifier: str, kind: BindingKind, value: Any = UNINITIALIZED) -> Binding:
        """Register a binding in this environment.

        let/const may not reuse a name already bound here. var may, as long as
        the existing binding is also a var; redeclaring keeps the current value
        unless a new one (a function value) is supplied.
        """
        existing = self.bindings.get(identifier)
        if existing is not None:
            if kind is not BindingKind.VAR or existing.kind is not BindingKind.VAR:
                raise RedeclarationError(identifier)
            if value is not UNINITIALIZED:
                existing.value = value
            return existing

        binding = Binding(identifier, kind, value)
        self.bindings[identifier] = binding
        return binding

    def has_own(self, identifier: str) -> bool:
        return identifier in self.bindings

    def find(self, identifier: str) -> Optional[Binding]:
        """Return the nearest binding for identifier, or None."""
        env: Optional[Environment] = self
        while env is not None:
            binding = env.bindings.get(identifier)
            if binding is not None:
                return binding
            env = env.outer
        return None

    def resolve(self, identifier: str) -> Binding:
        binding = self.find(identifier)
        if binding is None:
            raise UnboundIdentifier(identifier)
        return binding

    def get_value(self, identifier: str) -> JSValue:
        return self.resolve(identifier).read()

    def assign(self, identifier: str, value: JSValue) -> None:
        self.resolve(identifier).write(value)

    def initialize(self, identifier: str, value: JSValue = UNDEFINED) -> None:
        """Run the initializer of a binding declared in this environment.

        A var initializer may run inside a nested block, so var bindings are
        also looked up in the enclosing function scope.
        """
        binding = self.bindings.get(identifier)
        if binding is None:
            binding = self.function_scope().bindings.get(identifier)
            if binding is None or binding.kind is not BindingKind.VAR:
                raise InternalError(f"'{identifier}' is not declared in this scope")
        binding.initialize(value)

    def chain(self) -> Iterator["Environment"]:
        """Iterate from this environment out to the global one."""
        env: Optional[Environment] = self
        while env is not None:
            yield env
            env = env.outer

    def function_scope(self) -> "Environment":
        """Nearest enclosing function-level (or global) environment."""
        for env in self.chain():
            if env.kind is not EnvironmentKind.BLOCK:
                return env
        return self

    def names(self) -> List[str]:
        return list(self.bindings.keys())

    def __contains__(self, identifier: str) -> bool:
        return self.find(identifier) is not None

    def __repr__(self) -> str:
        return f"Environment({self.kind.value}, {self.names()})"
