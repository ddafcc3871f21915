"""Tests for the Context facade: globals, bindings, frames and errors."""

import time

import pytest

from microloop import (
    CompiledFunction,
    ConstViolation,
    Context,
    Declaration,
    DeclarationKind,
    Environment,
    JSFunction,
    JSThrow,
    RedeclarationError,
    Scope,
    StackOverflow,
    UnboundIdentifier,
    UninitializedAccess,
    UNDEFINED,
)
from microloop.errors import JSTypeError


def script(body, *declarations):
    return CompiledFunction("main", [], body, Scope(list(declarations)))


class TestGlobals:
    """Test the host built-ins installed in the global environment."""

    def test_ordering_scenario(self):
        """Sync code, then microtasks, then macrotasks."""
        log = []
        ctx = Context(log_fn=log.append)

        def body(act):
            console = act.lookup("console")
            console.log("A")
            act.lookup("setTimeout")(lambda: console.log("C"), 0)
            act.lookup("Promise").resolve().then(lambda _: console.log("B"))
            console.log("D")

        ctx.run(script(body))
        assert log == ["A", "D", "B"]
        ctx.run_loop()
        assert log == ["A", "D", "B", "C"]

    def test_console_log_formats_values(self):
        log = []
        ctx = Context(log_fn=log.append)
        ctx.call(ctx.global_environment.get_value("console").log, "n =", 3.0, True, None, UNDEFINED)
        assert log == ["n = 3 true null undefined"]

    def test_console_log_prints_by_default(self, capsys):
        ctx = Context()
        ctx.run(script(lambda act: act.lookup("console").log("hello")))
        assert capsys.readouterr().out == "hello\n"

    def test_set_timeout_with_args_and_clear(self):
        log = []
        ctx = Context()

        def body(act):
            set_timeout = act.lookup("setTimeout")
            set_timeout(lambda a, b: log.append(a + b), 5, 1, 2)
            cancelled = set_timeout(lambda: log.append("cancelled"), 1)
            act.lookup("clearTimeout")(cancelled)

        ctx.run(script(body))
        ctx.run_loop()
        assert log == [3]
        assert ctx.loop.now == 5

    def test_queue_microtask(self):
        log = []
        ctx = Context()

        def body(act):
            act.lookup("setTimeout")(lambda: log.append("timer"))
            act.lookup("queueMicrotask")(lambda: log.append("micro"))
            log.append("sync")

        ctx.run(script(body))
        ctx.run_loop()
        assert log == ["sync", "micro", "timer"]

    def test_timer_callback_can_be_js_function(self):
        ctx = Context()
        seen = []

        def tick(act):
            seen.append((act.lookup("label"), ctx.call_stack.depth))

        fn = ctx.function("tick", ["label"], tick)
        ctx.schedule_after(2, fn, "fired")
        ctx.run_loop()
        assert seen == [("fired", 1)]

    def test_undefined_is_constant(self):
        ctx = Context()
        with pytest.raises(ConstViolation):
            ctx.run(script(lambda act: act.assign("undefined", 1)))
        assert ctx.global_environment.get_value("undefined") is UNDEFINED

    def test_promise_global_with_executor(self):
        ctx = Context()
        promise_global = ctx.global_environment.get_value("Promise")
        promise = promise_global(lambda resolve, reject: ctx.schedule_after(3, resolve, "later"))
        assert ctx.run_until_complete(promise) == "later"


class TestBindings:
    """Test hoisting, the temporal dead zone, closures and shadowing."""

    def test_var_before_declaration_is_undefined(self):
        ctx = Context()

        def body(act):
            before = act.lookup("v")
            act.assign("v", 1)
            return before, act.lookup("v")

        assert ctx.run(script(body, Declaration("v", DeclarationKind.VAR))) == (UNDEFINED, 1)

    def test_let_before_initializer_fails(self):
        ctx = Context()

        def body(act):
            act.lookup("x")

        with pytest.raises(UninitializedAccess) as exc_info:
            ctx.run(script(body, Declaration("x", DeclarationKind.LET)))
        assert exc_info.value.name == "ReferenceError"

    def test_undeclared_name_fails(self):
        ctx = Context()
        with pytest.raises(UnboundIdentifier):
            ctx.run(script(lambda act: act.lookup("nowhere")))

    def test_function_declaration_callable_before_its_position(self):
        ctx = Context()
        helper = CompiledFunction("helper", [], lambda act: "hoisted")

        def body(act):
            return act.call(act.lookup("helper"))

        assert ctx.run(script(body, Declaration("helper", DeclarationKind.FUNCTION, helper))) == "hoisted"

    def test_closure_sees_mutation_after_creator_returns(self):
        ctx = Context()

        def increment(act):
            act.assign("count", act.lookup("count") + 1)
            return act.lookup("count")

        def make_counter(act):
            act.initialize("count", 0)
            return act.function("increment", [], increment)

        factory = ctx.function("makeCounter", [], make_counter, Scope([Declaration("count", DeclarationKind.LET)]))
        counter = ctx.call(factory)
        other = ctx.call(factory)
        assert ctx.call(counter) == 1
        assert ctx.call(counter) == 2
        assert ctx.call(other) == 1

    def test_shadowing_leaves_outer_binding(self):
        ctx = Context()

        def body(act):
            act.initialize("x", "outer")
            with act.block([Declaration("x", DeclarationKind.LET)]):
                act.initialize("x", "inner")
                act.assign("x", "changed")
                inner = act.lookup("x")
            return inner, act.lookup("x")

        assert ctx.run(script(body, Declaration("x", DeclarationKind.LET))) == ("changed", "outer")

    def test_block_var_lands_in_function_scope(self):
        ctx = Context()
        block = Scope([Declaration("v", DeclarationKind.VAR)])

        def body(act):
            with act.block(block):
                act.assign("v", "from block")
            return act.lookup("v")

        fn = ctx.function("f", [], body, Scope(blocks=[block]))
        assert ctx.call(fn) == "from block"
        assert not ctx.global_environment.has_own("v")

    def test_const_assignment_fails(self):
        ctx = Context()

        def body(act):
            act.initialize("limit", 10)
            act.assign("limit", 11)

        with pytest.raises(ConstViolation):
            ctx.run(script(body, Declaration("limit", DeclarationKind.CONST)))
        assert ctx.global_environment.get_value("limit") == 10

    def test_const_redeclaration_across_scripts(self):
        """Every script shares the one global environment."""
        ctx = Context()
        ctx.run(script(lambda act: act.initialize("limit", 1), Declaration("limit", DeclarationKind.CONST)))
        with pytest.raises(RedeclarationError):
            ctx.run(script(lambda act: None, Declaration("limit", DeclarationKind.CONST)))

    def test_var_redeclaration_across_scripts(self):
        ctx = Context()
        ctx.run(script(lambda act: act.assign("v", 1), Declaration("v", DeclarationKind.VAR)))
        result = ctx.run(script(lambda act: act.lookup("v"), Declaration("v", DeclarationKind.VAR)))
        assert result == 1

    def test_failed_hoisting_leaves_globals_untouched(self):
        """A script that fails to hoist adds none of its other bindings."""
        ctx = Context()
        ctx.run(script(lambda act: act.initialize("x", 1), Declaration("x", DeclarationKind.LET)))
        helper = CompiledFunction("helper", [], lambda act: None)
        conflicting = script(
            lambda act: None,
            Declaration("leaked", DeclarationKind.VAR),
            Declaration("helper", DeclarationKind.FUNCTION, helper),
            Declaration("x", DeclarationKind.LET),
        )
        with pytest.raises(RedeclarationError):
            ctx.run(conflicting)
        with pytest.raises(UnboundIdentifier):
            ctx.global_environment.resolve("leaked")
        assert not ctx.global_environment.has_own("helper")
        assert ctx.global_environment.get_value("x") == 1


class TestFrames:
    """Test frames, this threading and the call stack."""

    def test_global_environment_is_singleton(self):
        ctx = Context()
        assert ctx.create_global_environment() is ctx.create_global_environment()
        assert ctx.global_environment is ctx.create_global_environment()
        assert Context().global_environment is not ctx.global_environment

    def test_run_in_given_environment(self):
        ctx = Context()
        env = ctx.global_environment
        child = Environment(env)
        ctx.run(script(lambda act: act.initialize("x", 5), Declaration("x", DeclarationKind.LET)), child)
        assert child.get_value("x") == 5
        assert not env.has_own("x")

    def test_this_is_threaded(self):
        ctx = Context()
        fn = ctx.function("getThis", [], lambda act: act.this)
        assert ctx.call(fn, this="receiver") == "receiver"
        assert ctx.call(fn) is UNDEFINED

    def test_arrow_captures_this(self):
        ctx = Context()

        def method(act):
            return act.function("arrow", [], lambda inner: inner.this, is_arrow=True)

        arrow = ctx.call(ctx.function("method", [], method), this="owner")
        assert isinstance(arrow, JSFunction)
        assert ctx.call(arrow, this="someone else") == "owner"

    def test_missing_arguments_are_undefined(self):
        ctx = Context()
        fn = ctx.function("f", ["a", "b"], lambda act: (act.lookup("a"), act.lookup("b")))
        assert ctx.call(fn, 1) == (1, UNDEFINED)

    def test_stack_overflow(self):
        ctx = Context(max_stack_depth=10)

        def recurse(act):
            return act.call(act.lookup("recurse"))

        with pytest.raises(StackOverflow) as exc_info:
            ctx.run(script(
                lambda act: act.call(act.lookup("recurse")),
                Declaration("recurse", DeclarationKind.FUNCTION, CompiledFunction("recurse", [], recurse)),
            ))
        assert exc_info.value.name == "RangeError"
        assert ctx.call_stack.is_empty()

    def test_stack_overflow_is_catchable(self):
        ctx = Context(max_stack_depth=5)

        def recurse(act):
            return act.call(act.lookup("recurse"))

        def body(act):
            try:
                act.call(act.lookup("recurse"))
            except StackOverflow:
                return ctx.call_stack.depth

        unit = script(body, Declaration("recurse", DeclarationKind.FUNCTION, CompiledFunction("recurse", [], recurse)))
        assert ctx.run(unit) == 1

    def test_stack_unwinds_after_exception(self):
        ctx = Context()

        def inner(act):
            act.throw("deep")

        def outer(act):
            return act.call(act.function("inner", [], inner))

        with pytest.raises(JSThrow) as exc_info:
            ctx.call(ctx.function("outer", [], outer))
        assert exc_info.value.value == "deep"
        assert ctx.call_stack.is_empty()

    def test_calling_non_function(self):
        ctx = Context()
        with pytest.raises(JSTypeError) as exc_info:
            ctx.call(42)
        assert str(exc_info.value) == "TypeError: 42 is not a function"


class TestTaskErrors:
    """Test failures inside queued work."""

    def test_timer_error_reported_and_loop_continues(self):
        errors = []
        ctx = Context(on_task_error=lambda task, exc: errors.append(exc))
        log = []
        failing = ctx.function("failing", [], lambda act: act.throw("oops"))
        ctx.schedule_after(1, failing)
        ctx.schedule_after(2, log.append, "next")
        ctx.run_loop()
        assert log == ["next"]
        assert [exc.value for exc in errors] == ["oops"]
        assert len(ctx.task_errors) == 1
        assert ctx.call_stack.is_empty()

    def test_stack_overflow_in_task_is_reported(self):
        ctx = Context(max_stack_depth=5)

        def recurse(act):
            return act.call(act.lookup("recurse"))

        ctx.run(script(
            lambda act: ctx.schedule_after(0, act.lookup("recurse")),
            Declaration("recurse", DeclarationKind.FUNCTION, CompiledFunction("recurse", [], recurse)),
        ))
        ctx.run_loop()
        assert isinstance(ctx.task_errors[0][1], StackOverflow)
        assert ctx.call_stack.is_empty()

    def test_unhandled_rejection_hook(self):
        reports = []
        ctx = Context(on_unhandled_rejection=reports.append)
        ctx.run(script(lambda act: act.lookup("Promise").reject("lost")))
        assert [report.reason for report in reports] == ["lost"]
        assert ctx.unhandled_rejections == reports


class TestTimeLimit:
    """Test that the wall-time budget covers one loop run at a time."""

    def test_budget_does_not_carry_over(self):
        log = []
        ctx = Context(time_limit=0.05)
        ctx.schedule_after(1, log.append, "first run")
        ctx.run_loop()
        time.sleep(0.1)

        def body(act):
            act.lookup("queueMicrotask")(lambda: log.append("microtask"))

        ctx.run(script(body))
        ctx.schedule_after(1, log.append, "second run")
        ctx.run_loop()
        assert log == ["first run", "microtask", "second run"]

    def test_budget_does_not_carry_over_from_run_until_complete(self):
        ctx = Context(time_limit=0.05)
        assert ctx.run_until_complete(ctx.resolved("done")) == "done"
        time.sleep(0.1)
        log = []
        ctx.run(script(lambda act: act.lookup("queueMicrotask")(log.append, "ran")))
        assert log == ["ran"]
