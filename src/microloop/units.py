"""Executable units and declaration instantiation (hoisting)."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterator, List, Optional, Sequence

from .environment import BindingKind, Environment, EnvironmentKind
from .errors import InternalError, RedeclarationError
from .values import UNDEFINED, JSValue


class DeclarationKind(Enum):
    VAR = "var"
    LET = "let"
    CONST = "const"
    FUNCTION = "function"


@dataclass(frozen=True)
class Declaration:
    """A declaration as it appears in a function body or block."""

    name: str
    kind: DeclarationKind
    function: Optional["CompiledFunction"] = None  # Set for FUNCTION declarations

    def __post_init__(self):
        if self.kind is DeclarationKind.FUNCTION and self.function is None:
            raise InternalError(f"function declaration '{self.name}' has no body")


@dataclass
class Scope:
    """Static declaration table of a function body or a block.

    ``blocks`` lists the blocks nested directly inside this one. Nested
    function bodies are not listed: they hang off FUNCTION declarations and
    have scopes of their own.
    """

    declarations: List[Declaration] = field(default_factory=list)
    blocks: List["Scope"] = field(default_factory=list)

    def var_names(self) -> List[str]:
        """All var names declared here or in any nested block, in order."""
        names: List[str] = []
        for scope in self._walk():
            for decl in scope.declarations:
                if decl.kind is DeclarationKind.VAR and decl.name not in names:
                    names.append(decl.name)
        return names

    def function_declarations(self) -> List[Declaration]:
        return [d for d in self.declarations if d.kind is DeclarationKind.FUNCTION]

    def lexical_declarations(self) -> List[Declaration]:
        return [
            d for d in self.declarations
            if d.kind in (DeclarationKind.LET, DeclarationKind.CONST)
        ]

    def _walk(self) -> Iterator["Scope"]:
        yield self
        for block in self.blocks:
            yield from block._walk()


@dataclass
class CompiledFunction:
    """An executable unit: a body plus its static declarations.

    ``body`` is called with an Activation. Async units supply a generator
    function (``value = yield awaited``) or a coroutine function
    (``value = await promise``).
    """

    name: str
    params: List[str]
    body: Callable[..., Any]
    scope: Scope = field(default_factory=Scope)
    is_async: bool = False
    is_arrow: bool = False


class JSFunction:
    """A function value: a compiled unit closed over an environment."""

    def __init__(
        self,
        compiled: CompiledFunction,
        environment: Environment,
        this_value: Optional[JSValue] = None,
    ):
        self.compiled = compiled
        self.environment = environment
        # Only arrow functions carry a this value; it is captured at creation
        self.this_value = this_value

    @property
    def name(self) -> str:
        return self.compiled.name

    @property
    def params(self) -> List[str]:
        return self.compiled.params

    @property
    def is_async(self) -> bool:
        return self.compiled.is_async

    @property
    def is_arrow(self) -> bool:
        return self.compiled.is_arrow

    def __repr__(self) -> str:
        return f"[Function: {self.name}]" if self.name else "[Function (anonymous)]"


def instantiate_declarations(scope: Scope, env: Environment) -> None:
    """Hoist a function-level scope's declarations into env.

    The first pass creates var bindings (holding undefined) for every var in
    the body, nested blocks included, and binds function declarations to
    closures over env. The second pass creates this level's let/const
    bindings, uninitialized.

    Every name is checked before anything is declared, so a redeclaration
    error leaves env untouched.
    """
    _check_declarations(scope, env)
    for name in scope.var_names():
        env.declare(name, BindingKind.VAR)
    for decl in scope.function_declarations():
        env.declare(decl.name, BindingKind.VAR, JSFunction(decl.function, env))

    for decl in scope.lexical_declarations():
        env.declare(decl.name, _binding_kind(decl.kind))


def _check_declarations(scope: Scope, env: Environment) -> None:
    var_names = scope.var_names()
    for decl in scope.function_declarations():
        if decl.name not in var_names:
            var_names.append(decl.name)
    for name in var_names:
        existing = env.bindings.get(name)
        if existing is not None and existing.kind is not BindingKind.VAR:
            raise RedeclarationError(name)

    lexical_names = set()
    for decl in scope.lexical_declarations():
        if decl.name in env.bindings or decl.name in lexical_names or decl.name in var_names:
            raise RedeclarationError(decl.name)
        lexical_names.add(decl.name)


def instantiate_function_environment(func: JSFunction, args: Sequence[JSValue]) -> Environment:
    """Create the environment for one invocation of func."""
    env = Environment(outer=func.environment, kind=EnvironmentKind.FUNCTION)
    for i, param in enumerate(func.params):
        env.declare(param, BindingKind.VAR, args[i] if i < len(args) else UNDEFINED)
    instantiate_declarations(func.compiled.scope, env)
    return env


def instantiate_block_environment(scope: Scope, outer: Environment) -> Environment:
    """Create a block environment nested in outer.

    Blocks hold their own let/const (uninitialized) and function declarations
    (initialized on entry). Their vars were already hoisted to the function.
    """
    env = Environment(outer=outer, kind=EnvironmentKind.BLOCK)
    for decl in scope.lexical_declarations():
        env.declare(decl.name, _binding_kind(decl.kind))
    for decl in scope.function_declarations():
        env.declare(decl.name, BindingKind.LET, JSFunction(decl.function, env))
    return env


def _binding_kind(kind: DeclarationKind) -> BindingKind:
    if kind is DeclarationKind.CONST:
        return BindingKind.CONST
    if kind is DeclarationKind.LET:
        return BindingKind.LET
    return BindingKind.VAR
