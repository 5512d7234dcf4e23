from __future__ import annotations

from textwrap import dedent

import pytest

from rhai_test.engine import Engine, ErrorMismatchOutputType, FnPtr, Module
from tests.support.harness import (
    ErrorArithmetic,
    ErrorFunctionNotFound,
    ErrorInFunctionCall,
    ErrorMismatchDataType,
    ErrorRuntime,
    ErrorStackOverflow,
    ErrorVariableNotFound,
    EvalAltError,
    run_runtime_case,
)

SCENARIOS = [
    pytest.param("40 + 2", ("i64", 42), None, id="int-add"),
    pytest.param("7 / 2", ("i64", 3), None, id="int-div-truncates"),
    pytest.param("-7 / 2", ("i64", -3), None, id="int-div-truncates-toward-zero"),
    pytest.param("-7 % 3", ("i64", -1), None, id="int-mod-sign-of-dividend"),
    pytest.param("1.5 + 1", ("f64", 2.5), None, id="float-int-mix"),
    pytest.param('"a" + 1', ("string", "a1"), None, id="string-concat-int"),
    pytest.param("1 + 1;", ("()", None), None, id="trailing-semicolon-is-unit"),
    pytest.param("let x = 5; x += 2; x", ("i64", 7), None, id="compound-assign"),
    pytest.param(
        dedent(
            """\
            fn double(x) {
                x * 2
            }
            double(21)
            """
        ),
        ("i64", 42),
        None,
        id="script-fn",
    ),
    pytest.param(
        "let r = add(1, 2); fn add(a, b) { a + b } r",
        ("i64", 3),
        None,
        id="fn-defs-are-hoisted",
    ),
    pytest.param(
        "let base = 10; let f = |x| x + base; f.call(5)",
        ("i64", 15),
        None,
        id="closure-captures-scope",
    ),
    pytest.param(
        'fn double(x) { x * 2 } Fn("double").call(4)',
        ("i64", 8),
        None,
        id="fn-pointer-by-name",
    ),
    pytest.param(
        "let total = 0; for i in 0..5 { total += i; } total",
        ("i64", 10),
        None,
        id="for-over-range",
    ),
    pytest.param(
        "let i = 0; loop { i += 1; if i == 3 { break i * 10; } }",
        ("i64", 30),
        None,
        id="loop-break-value",
    ),
    pytest.param(
        'let x = if 1 < 2 { "yes" } else { "no" }; x',
        ("string", "yes"),
        None,
        id="if-expression",
    ),
    pytest.param(
        'try { throw "boom"; } catch (err) { err }',
        ("string", "boom"),
        None,
        id="try-catch-thrown-value",
    ),
    pytest.param(
        "try { 1 / 0 } catch (err) { err.message }",
        ("string", "Division by zero: 1 / 0"),
        None,
        id="try-catch-engine-error",
    ),
    pytest.param("[1, 2, 3].len()", ("i64", 3), None, id="array-len"),
    pytest.param(
        "[1, 2, 3].map(|x| x * 2)",
        ("array", [2, 4, 6]),
        None,
        id="array-map-closure",
    ),
    pytest.param(
        'let m = #{a: 1, b: 2}; m.a + m["b"]',
        ("i64", 3),
        None,
        id="map-property-and-index",
    ),
    pytest.param(
        'let name = "Ada"; `Hi ${name}!`',
        ("string", "Hi Ada!"),
        None,
        id="template-interpolation",
    ),
    pytest.param("1 + true", None, ErrorFunctionNotFound, id="add-int-bool"),
    pytest.param("if 1 { 2 }", None, ErrorMismatchDataType, id="condition-must-be-bool"),
    pytest.param("missing + 1", None, ErrorVariableNotFound, id="unknown-variable"),
    pytest.param("9223372036854775807 + 1", None, ErrorArithmetic, id="i64-overflow"),
    pytest.param("to_int(-2.5e3)", ("i64", -2500), None, id="float-to-int"),
    pytest.param("to_int(1e300)", None, ErrorArithmetic, id="float-to-int-overflow"),
    pytest.param("(-1e19).to_int()", None, ErrorArithmetic, id="negative-float-to-int-overflow"),
    pytest.param('throw "x";', None, ErrorRuntime, id="throw-at-top-level"),
    pytest.param(
        'fn f() { throw "x"; } f()',
        None,
        ErrorInFunctionCall,
        id="throw-inside-fn-is-wrapped",
    ),
]


@pytest.mark.parametrize("source, expectation, expected_exc", SCENARIOS)
def test_eval_scenarios(source: str, expectation, expected_exc) -> None:
    run_runtime_case(source, expectation, expected_exc)


def test_recursion_limit_raises_stack_overflow() -> None:
    engine = Engine()
    engine.max_call_levels = 16
    with pytest.raises(EvalAltError) as excinfo:
        engine.eval("fn f(n) { f(n + 1) } f(0)")

    err = excinfo.value
    while isinstance(err, ErrorInFunctionCall):
        err = err.inner
    assert isinstance(err, ErrorStackOverflow)


def test_error_position_points_at_failing_node() -> None:
    with pytest.raises(ErrorRuntime) as excinfo:
        Engine().eval('let a = 1;\n  throw "late";')
    assert excinfo.value.position.line == 2
    assert excinfo.value.position.column == 3


def test_host_function_with_pinned_params() -> None:
    engine = Engine()
    engine.register_fn("triple", lambda x: x * 3, (int,))

    assert engine.eval("triple(4)") == 12
    assert engine.eval("4.triple()") == 12
    with pytest.raises(ErrorFunctionNotFound):
        engine.eval('triple("a")')


def test_host_overloads_are_tried_in_order() -> None:
    engine = Engine()
    engine.register_fn("describe", lambda x: "int", (int,))
    engine.register_fn("describe", lambda x: "string", (str,))

    assert engine.eval('describe(1) + " " + describe("s")') == "int string"


def test_host_value_error_becomes_runtime_error() -> None:
    def explode(text):
        raise ValueError(f"bad input: {text}")

    engine = Engine()
    engine.register_fn("explode", explode, (str,))

    with pytest.raises(ErrorRuntime) as excinfo:
        engine.eval('explode("x")')
    assert excinfo.value.value == "bad input: x"
    assert engine.eval('try { explode("y") } catch (e) { e }') == "bad input: y"


def test_print_goes_to_the_print_hook() -> None:
    printed = []
    engine = Engine()
    engine.on_print = printed.append

    engine.eval('print("hello " + 42);')

    assert printed == ["hello 42"]


def test_fork_shares_registrations_but_not_later_additions() -> None:
    engine = Engine()
    engine.register_fn("one", lambda: 1)
    engine.max_call_levels = 8

    fork = engine.fork()
    fork.register_fn("two", lambda: 2)

    assert fork.eval("one() + two()") == 3
    assert fork.max_call_levels == 8
    with pytest.raises(ErrorFunctionNotFound):
        engine.eval("two()")


def test_call_fn_ptr_against_compiled_program() -> None:
    engine = Engine()
    ast = engine.compile("fn add(a, b) { a + b }")

    assert engine.call_fn_ptr(ast, FnPtr("add"), [2, 3]) == 5
    with pytest.raises(ErrorMismatchOutputType):
        engine.call_fn_ptr(ast, FnPtr("add"), [2, 3], expect_unit=True)


def test_eval_ast_as_module_collects_exports() -> None:
    engine = Engine()
    ast = engine.compile(
        dedent(
            """\
            export const answer = 42;
            let hidden = 1;
            fn public_fn() { 1 }
            private fn private_fn() { 2 }
            """
        )
    )

    module = engine.eval_ast_as_module(ast)

    assert isinstance(module, Module)
    assert module.variables == {"answer": 42}
    assert ("public_fn", 0) in module.functions
    assert ("private_fn", 0) not in module.functions


def test_static_module_namespace() -> None:
    module = Module(source="consts")
    module.set_var("pi", 3)
    engine = Engine().register_static_module("consts", module)

    assert engine.eval("consts::pi * 2") == 6
