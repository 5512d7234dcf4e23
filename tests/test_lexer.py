from __future__ import annotations

from typing import List

import pytest

from rhai_test.engine.errors import LexErrorKind
from rhai_test.engine.lexer import Lexer
from rhai_test.engine.token_types import TT
from tests.support.harness import LexError


def _types(source: str) -> List[TT]:
    return [tok.type for tok in Lexer(source).tokenize()]


@pytest.mark.parametrize(
    "source, expected",
    [
        pytest.param("let x = 1;", [TT.LET, TT.IDENT, TT.ASSIGN, TT.INT, TT.SEMI, TT.EOF], id="let"),
        pytest.param("a ..= b", [TT.IDENT, TT.RANGEINCL, TT.IDENT, TT.EOF], id="inclusive-range"),
        pytest.param("1..5", [TT.INT, TT.RANGE, TT.INT, TT.EOF], id="range-not-float"),
        pytest.param("#{a: 1}", [TT.MAPSTART, TT.IDENT, TT.COLON, TT.INT, TT.RBRACE, TT.EOF], id="map-start"),
        pytest.param("m::f", [TT.IDENT, TT.DCOLON, TT.IDENT, TT.EOF], id="namespace"),
        pytest.param("x ** = 2", [TT.IDENT, TT.POW, TT.ASSIGN, TT.INT, TT.EOF], id="pow-then-assign"),
        pytest.param("x **= 2", [TT.IDENT, TT.POWEQ, TT.INT, TT.EOF], id="pow-assign"),
        pytest.param("|a| a", [TT.PIPE, TT.IDENT, TT.PIPE, TT.IDENT, TT.EOF], id="closure-pipes"),
        pytest.param("// note\n/* a /* nested */ b */ 1", [TT.INT, TT.EOF], id="comments-skipped"),
        pytest.param("switch", [TT.RESERVED, TT.EOF], id="reserved-word"),
    ],
)
def test_token_types(source: str, expected: List[TT]) -> None:
    assert _types(source) == expected


def test_number_literals() -> None:
    values = [tok.value for tok in Lexer("0xff 0b101 0o17 1_000 2.5 1e3").tokenize()[:-1]]
    assert values == [255, 5, 15, 1000, 2.5, 1000.0]


def test_string_escapes() -> None:
    tok = Lexer(r'"a\tb\n\x41é\""').tokenize()[0]
    assert tok.type == TT.STRING
    assert tok.value == 'a\tb\nAé"'


def test_positions_are_one_based() -> None:
    tokens = Lexer("let a = 1;\n  foo(a);").tokenize()
    foo = next(tok for tok in tokens if tok.value == "foo")
    assert (tokens[0].line, tokens[0].column) == (1, 1)
    assert (foo.line, foo.column) == (2, 3)


def test_template_parts_keep_expression_position() -> None:
    tok = Lexer("`sum: ${a + b}!`").tokenize()[0]
    assert tok.type == TT.TEMPLATE
    assert tok.value == [("str", "sum: "), ("expr", "a + b", 1, 9), ("str", "!")]


@pytest.mark.parametrize(
    "source, kind",
    [
        pytest.param('"open', LexErrorKind.UNTERMINATED_STRING, id="unterminated-string"),
        pytest.param('"line\nbreak"', LexErrorKind.UNTERMINATED_STRING, id="newline-in-string"),
        pytest.param("12abc", LexErrorKind.MALFORMED_NUMBER, id="malformed-number"),
        pytest.param("0xZZ", LexErrorKind.MALFORMED_NUMBER, id="malformed-hex"),
        pytest.param("'ab'", LexErrorKind.MALFORMED_CHAR, id="malformed-char"),
        pytest.param(r'"\q"', LexErrorKind.MALFORMED_ESCAPE_SEQUENCE, id="malformed-escape"),
        pytest.param("a @ b", LexErrorKind.UNEXPECTED_INPUT, id="unexpected-symbol"),
    ],
)
def test_lex_errors(source: str, kind: LexErrorKind) -> None:
    with pytest.raises(LexError) as excinfo:
        Lexer(source).tokenize()
    assert excinfo.value.lex_kind is kind
