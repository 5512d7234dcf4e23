"""
Token Types for the Rhai dialect

Shared between lexer and parser to avoid circular dependencies.
"""

from typing import Any
from dataclasses import dataclass
from enum import Enum, auto


class TT(Enum):
    """Token Types"""

    # Literals
    INT = auto()
    FLOAT = auto()
    STRING = auto()
    TEMPLATE = auto()  # `...${expr}...`
    CHAR = auto()
    IDENT = auto()

    # Keywords
    LET = auto()
    CONST = auto()
    FN = auto()
    PRIVATE = auto()
    IF = auto()
    ELSE = auto()
    WHILE = auto()
    LOOP = auto()
    DO = auto()
    UNTIL = auto()
    FOR = auto()
    IN = auto()
    BREAK = auto()
    CONTINUE = auto()
    RETURN = auto()
    THROW = auto()
    TRY = auto()
    CATCH = auto()
    IMPORT = auto()
    EXPORT = auto()
    AS = auto()
    THIS = auto()
    TRUE = auto()
    FALSE = auto()
    RESERVED = auto()

    # Arithmetic
    PLUS = auto()
    MINUS = auto()
    STAR = auto()
    SLASH = auto()
    MOD = auto()
    POW = auto()
    SHL = auto()
    SHR = auto()

    # Comparison
    EQ = auto()
    NEQ = auto()
    LT = auto()
    LTE = auto()
    GT = auto()
    GTE = auto()

    # Logical / bitwise
    AND = auto()  # &&
    OR = auto()  # ||
    NEG = auto()  # !
    AMP = auto()  # &
    PIPE = auto()  # |
    CARET = auto()  # ^
    NULLISH = auto()  # ??

    # Assignment
    ASSIGN = auto()
    PLUSEQ = auto()
    MINUSEQ = auto()
    STAREQ = auto()
    SLASHEQ = auto()
    MODEQ = auto()
    POWEQ = auto()
    SHLEQ = auto()
    SHREQ = auto()
    AMPEQ = auto()
    PIPEEQ = auto()
    CARETEQ = auto()

    # Punctuation
    LPAR = auto()
    RPAR = auto()
    LSQB = auto()
    RSQB = auto()
    LBRACE = auto()
    RBRACE = auto()
    MAPSTART = auto()  # #{
    DOT = auto()
    QDOT = auto()  # ?.
    QLSQB = auto()  # ?[
    COMMA = auto()
    COLON = auto()
    DCOLON = auto()  # ::
    SEMI = auto()
    RANGE = auto()  # ..
    RANGEINCL = auto()  # ..=
    ARROW = auto()  # =>

    # Special
    EOF = auto()


ASSIGN_OPS = {
    TT.ASSIGN: None,
    TT.PLUSEQ: "+",
    TT.MINUSEQ: "-",
    TT.STAREQ: "*",
    TT.SLASHEQ: "/",
    TT.MODEQ: "%",
    TT.POWEQ: "**",
    TT.SHLEQ: "<<",
    TT.SHREQ: ">>",
    TT.AMPEQ: "&",
    TT.PIPEEQ: "|",
    TT.CARETEQ: "^",
}


@dataclass
class Tok:
    """Token with position info"""

    type: TT
    value: Any
    line: int = 0
    column: int = 0

    def __repr__(self):
        return f"Tok({self.type.name}, {self.value!r}, {self.line}:{self.column})"
