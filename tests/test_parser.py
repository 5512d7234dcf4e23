from __future__ import annotations

from textwrap import dedent

import pytest

from rhai_test.engine.errors import ParseErrorType
from rhai_test.engine.parser import parse_source
from rhai_test.engine.tree import node_position, tree_label
from tests.support.harness import ErrorParsing, LexError


def _labels(source: str):
    program, _ = parse_source(source)
    return [tree_label(stmt) for stmt in program.children]


@pytest.mark.parametrize(
    "source, expected",
    [
        pytest.param("let x = 1; x", ["let", "expr_stmt"], id="value-of-last-expression"),
        pytest.param("let x = 1;", ["let", "unit"], id="trailing-semicolon-discards"),
        pytest.param("if a { 1 } b", ["if", "expr_stmt"], id="block-statement-needs-no-semicolon"),
        pytest.param("x += 1", ["assign"], id="compound-assign"),
        pytest.param('import "lib" as lib; lib::f()', ["import", "expr_stmt"], id="import-and-namespace-call"),
        pytest.param("fn f() { 1 } f()", ["expr_stmt"], id="fn-def-hoisted-out"),
    ],
)
def test_statement_labels(source: str, expected) -> None:
    assert _labels(source) == expected


def test_precedence() -> None:
    program, _ = parse_source("1 + 2 * 3 ** 2 ** 2")
    add = program.children[0].children[0]

    assert tree_label(add) == "binop"
    assert add.children[1] == "+"
    mul = add.children[2]
    assert mul.children[1] == "*"
    # ** is right associative
    pow_ = mul.children[2]
    assert pow_.children[1] == "**"
    assert tree_label(pow_.children[2]) == "binop"


def test_hoisted_functions_keep_position() -> None:
    _, functions = parse_source(
        dedent(
            """\
            let a = 1;
            fn add(x, y) {
                x + y
            }
            private fn hidden() { 0 }
            """
        )
    )

    names = [fn.children[0].value for fn in functions]
    assert names == ["add", "hidden"]
    assert node_position(functions[0]).line == 2
    assert len(functions[1].children) == 4  # private marker


@pytest.mark.parametrize(
    "source, kind",
    [
        pytest.param("let x = 1 let y = 2", ParseErrorType.MISSING_TOKEN, id="missing-semicolon"),
        pytest.param("const c;", ParseErrorType.MISSING_TOKEN, id="const-needs-value"),
        pytest.param("if a { fn f() { 1 } }", ParseErrorType.WRONG_FN_DEFINITION, id="fn-inside-block"),
        pytest.param("fn f(a) { 1 } fn f(b) { 2 }", ParseErrorType.FN_DUPLICATED_DEFINITION, id="fn-duplicated"),
        pytest.param("fn f(a, a) { 1 }", ParseErrorType.FN_DUPLICATED_PARAM, id="fn-duplicated-param"),
        pytest.param("fn (a) { 1 }", ParseErrorType.FN_MISSING_NAME, id="fn-missing-name"),
        pytest.param("fn f { 1 }", ParseErrorType.FN_MISSING_PARAMS, id="fn-missing-params"),
        pytest.param("fn f();", ParseErrorType.FN_MISSING_BODY, id="fn-missing-body"),
        pytest.param("break;", ParseErrorType.LOOP_BREAK, id="break-outside-loop"),
        pytest.param("1 + 1 = 2", ParseErrorType.ASSIGNMENT_TO_INVALID_LHS, id="assign-to-expression"),
        pytest.param("#{a: 1, a: 2}", ParseErrorType.DUPLICATED_PROPERTY, id="duplicated-map-key"),
        pytest.param("{ export let x = 1; }", ParseErrorType.WRONG_EXPORT, id="export-inside-block"),
        pytest.param("let switch = 1;", ParseErrorType.RESERVED, id="reserved-variable-name"),
        pytest.param("(1 + 2", ParseErrorType.MISSING_TOKEN, id="unclosed-paren"),
        pytest.param("1 +", ParseErrorType.UNEXPECTED_EOF, id="eof-in-expression"),
    ],
)
def test_parse_errors(source: str, kind: ParseErrorType) -> None:
    with pytest.raises(ErrorParsing) as excinfo:
        parse_source(source)
    assert excinfo.value.kind is kind


def test_unexpected_token_is_a_bad_input_lex_error() -> None:
    with pytest.raises(LexError) as excinfo:
        parse_source("let x = ;")
    assert excinfo.value.kind is ParseErrorType.BAD_INPUT
    assert excinfo.value.args_detail == (";",)


def test_expression_depth_limit() -> None:
    source = "(" * 20 + "1" + ")" * 20
    with pytest.raises(ErrorParsing) as excinfo:
        parse_source(source, max_expr_depth=10)
    assert excinfo.value.kind is ParseErrorType.EXPR_TOO_DEEP


def test_parse_error_position() -> None:
    with pytest.raises(ErrorParsing) as excinfo:
        parse_source("let a = 1;\nlet b = 2 let c = 3;")
    assert excinfo.value.position.line == 2
    assert excinfo.value.position.column == 11
