"""Error taxonomy raised by the script engine.

Every failure the engine reports is an ``EvalAltError`` subclass carrying the
source position it was raised at. Wrapping errors (``ErrorInFunctionCall``,
``ErrorInModule``) nest the error that caused them so callers can unwind the
full chain.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Optional, Tuple


@dataclass(frozen=True)
class Position:
    line: int = 0
    column: int = 0

    def is_none(self) -> bool:
        return self.line == 0

    def __str__(self) -> str:
        if self.is_none():
            return "none"
        return f"line {self.line}, position {self.column}"


NO_POSITION = Position()


class EvalAltError(Exception):
    """Base class for everything the engine raises."""

    def __init__(self, message: str, position: Optional[Position] = None):
        super().__init__(message)
        self.message = message
        self.position: Position = position or NO_POSITION

    def with_position(self, position: Optional[Position]) -> "EvalAltError":
        """Attach a position unless one is already known."""
        if position is not None and self.position.is_none():
            self.position = position
        return self

    def __str__(self) -> str:
        if self.position.is_none():
            return self.message
        return f"{self.message} ({self.position})"


# ---------------- Parse errors ----------------

class LexErrorKind(Enum):
    UNEXPECTED_INPUT = auto()
    UNTERMINATED_STRING = auto()
    STRING_TOO_LONG = auto()
    MALFORMED_ESCAPE_SEQUENCE = auto()
    MALFORMED_NUMBER = auto()
    MALFORMED_CHAR = auto()
    MALFORMED_IDENTIFIER = auto()
    IMPROPER_SYMBOL = auto()
    RUNTIME = auto()


class ParseErrorType(Enum):
    UNEXPECTED_EOF = auto()
    BAD_INPUT = auto()
    UNKNOWN_OPERATOR = auto()
    MISSING_TOKEN = auto()
    MISSING_SYMBOL = auto()
    MALFORMED_CALL_EXPR = auto()
    MALFORMED_INDEX_EXPR = auto()
    MALFORMED_IN_EXPR = auto()
    MALFORMED_CAPTURE = auto()
    DUPLICATED_PROPERTY = auto()
    DUPLICATED_VARIABLE = auto()
    WRONG_SWITCH_INTEGER_CASE = auto()
    WRONG_SWITCH_DEFAULT_CASE = auto()
    WRONG_SWITCH_CASE_CONDITION = auto()
    PROPERTY_EXPECTED = auto()
    VARIABLE_EXPECTED = auto()
    FORBIDDEN_VARIABLE = auto()
    RESERVED = auto()
    MISMATCHED_TYPE = auto()
    EXPR_EXPECTED = auto()
    WRONG_DOC_COMMENT = auto()
    WRONG_FN_DEFINITION = auto()
    FN_DUPLICATED_DEFINITION = auto()
    FN_MISSING_NAME = auto()
    FN_MISSING_PARAMS = auto()
    FN_DUPLICATED_PARAM = auto()
    FN_MISSING_BODY = auto()
    WRONG_EXPORT = auto()
    ASSIGNMENT_TO_CONSTANT = auto()
    ASSIGNMENT_TO_INVALID_LHS = auto()
    VARIABLE_EXISTS = auto()
    VARIABLE_UNDEFINED = auto()
    MODULE_UNDEFINED = auto()
    EXPR_TOO_DEEP = auto()
    TOO_MANY_FUNCTIONS = auto()
    LITERAL_TOO_LARGE = auto()
    LOOP_BREAK = auto()


class ErrorParsing(EvalAltError):
    def __init__(self, kind: ParseErrorType, *args: Any, position: Optional[Position] = None):
        self.kind = kind
        self.args_detail: Tuple[Any, ...] = args
        detail = ", ".join(str(a) for a in args)
        label = kind.name.lower().replace("_", " ")
        super().__init__(f"Syntax error: {label}{': ' + detail if detail else ''}", position)


class LexError(ErrorParsing):
    """Tokenizer failure; always a ``BAD_INPUT`` parse error."""

    def __init__(self, lex_kind: LexErrorKind, *args: Any, position: Optional[Position] = None):
        self.lex_kind = lex_kind
        super().__init__(ParseErrorType.BAD_INPUT, lex_kind.name.lower(), *args, position=position)
        self.args_detail = args


# ---------------- Runtime errors ----------------

class ErrorSystem(EvalAltError):
    def __init__(self, message: str, position: Optional[Position] = None):
        super().__init__(f"System error: {message}", position)
        self.detail = message


class ErrorVariableExists(EvalAltError):
    def __init__(self, name: str, position: Optional[Position] = None):
        super().__init__(f"Variable is already defined: {name}", position)
        self.name = name


class ErrorForbiddenVariable(EvalAltError):
    def __init__(self, name: str, position: Optional[Position] = None):
        super().__init__(f"Forbidden variable name: {name}", position)
        self.name = name


class ErrorVariableNotFound(EvalAltError):
    def __init__(self, name: str, position: Optional[Position] = None):
        super().__init__(f"Variable not found: {name}", position)
        self.name = name


class ErrorPropertyNotFound(EvalAltError):
    def __init__(self, name: str, position: Optional[Position] = None):
        super().__init__(f"Property not found: {name}", position)
        self.name = name


class ErrorIndexNotFound(EvalAltError):
    def __init__(self, index: str, position: Optional[Position] = None):
        super().__init__(f"Invalid index: {index}", position)
        self.index = index


class ErrorFunctionNotFound(EvalAltError):
    def __init__(self, signature: str, position: Optional[Position] = None):
        super().__init__(f"Function not found: {signature}", position)
        self.signature = signature


class ErrorModuleNotFound(EvalAltError):
    def __init__(self, name: str, position: Optional[Position] = None):
        super().__init__(f"Module not found: {name}", position)
        self.name = name


class ErrorInFunctionCall(EvalAltError):
    def __init__(self, name: str, source: str, inner: EvalAltError, position: Optional[Position] = None):
        super().__init__(f"Error in call to function '{name}': {inner.message}", position)
        self.name = name
        self.source = source
        self.inner = inner


class ErrorInModule(EvalAltError):
    def __init__(self, name: str, inner: EvalAltError, position: Optional[Position] = None):
        super().__init__(f"Error in module '{name}': {inner.message}", position)
        self.name = name
        self.inner = inner


class ErrorUnboundThis(EvalAltError):
    def __init__(self, position: Optional[Position] = None):
        super().__init__("'this' is not bound", position)


class ErrorMismatchDataType(EvalAltError):
    def __init__(self, requested: str, actual: str, position: Optional[Position] = None):
        super().__init__(f"Data type incorrect: {actual} (expecting {requested})", position)
        self.requested = requested
        self.actual = actual


class ErrorMismatchOutputType(EvalAltError):
    def __init__(self, requested: str, actual: str, position: Optional[Position] = None):
        super().__init__(f"Output type incorrect: {actual} (expecting {requested})", position)
        self.requested = requested
        self.actual = actual


class ErrorIndexingType(EvalAltError):
    def __init__(self, type_name: str, position: Optional[Position] = None):
        super().__init__(f"Indexer unavailable: {type_name}", position)
        self.type_name = type_name


class ErrorArrayBounds(EvalAltError):
    def __init__(self, length: int, index: int, position: Optional[Position] = None):
        super().__init__(f"Array index {index} out of bounds: {length} elements", position)
        self.length = length
        self.index = index


class ErrorStringBounds(EvalAltError):
    def __init__(self, length: int, index: int, position: Optional[Position] = None):
        super().__init__(f"String index {index} out of bounds: {length} characters", position)
        self.length = length
        self.index = index


class ErrorBitFieldBounds(EvalAltError):
    def __init__(self, bits: int, index: int, position: Optional[Position] = None):
        super().__init__(f"Bit-field index {index} out of bounds: only {bits} bits", position)
        self.bits = bits
        self.index = index


class ErrorFor(EvalAltError):
    def __init__(self, position: Optional[Position] = None):
        super().__init__("For loop expects an iterable type", position)


class ErrorDotExpr(EvalAltError):
    def __init__(self, message: str, position: Optional[Position] = None):
        super().__init__(message, position)


class ErrorArithmetic(EvalAltError):
    def __init__(self, message: str, position: Optional[Position] = None):
        super().__init__(message, position)


class ErrorAssignmentToConstant(EvalAltError):
    def __init__(self, name: str, position: Optional[Position] = None):
        super().__init__(f"Cannot modify constant: {name}", position)
        self.name = name


class ErrorTooManyOperations(EvalAltError):
    def __init__(self, position: Optional[Position] = None):
        super().__init__("Too many operations", position)


class ErrorTooManyModules(EvalAltError):
    def __init__(self, position: Optional[Position] = None):
        super().__init__("Too many modules imported", position)


class ErrorStackOverflow(EvalAltError):
    def __init__(self, position: Optional[Position] = None):
        super().__init__("Stack overflow", position)


class ErrorDataTooLarge(EvalAltError):
    def __init__(self, type_name: str, position: Optional[Position] = None):
        super().__init__(f"{type_name} exceeds maximum limit", position)
        self.type_name = type_name


class ErrorTerminated(EvalAltError):
    def __init__(self, token: Any = None, position: Optional[Position] = None):
        super().__init__("Script terminated", position)
        self.token = token


class ErrorCustomSyntax(EvalAltError):
    def __init__(self, message: str, symbols: Tuple[str, ...] = (), position: Optional[Position] = None):
        super().__init__(message, position)
        self.symbols = symbols


class ErrorRuntime(EvalAltError):
    """A value raised by script-level ``throw``."""

    def __init__(self, value: Any, position: Optional[Position] = None):
        from .types import to_display

        super().__init__(to_display(value), position)
        self.value = value


# ---------------- Control flow ----------------

class LoopBreak(EvalAltError):
    """``break`` (is_break=True) or ``continue`` unwinding to the enclosing loop."""

    def __init__(self, is_break: bool, value: Any = None, position: Optional[Position] = None):
        super().__init__("break" if is_break else "continue", position)
        self.is_break = is_break
        self.value = value


class Return(EvalAltError):
    def __init__(self, value: Any = None, position: Optional[Position] = None):
        super().__init__("return", position)
        self.value = value


class Exit(EvalAltError):
    def __init__(self, value: Any = None, position: Optional[Position] = None):
        super().__init__("exit", position)
        self.value = value


CONTROL_FLOW = (LoopBreak, Return, Exit)
