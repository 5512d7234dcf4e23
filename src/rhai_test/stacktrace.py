"""Translate nested engine errors into a flat stack trace.

``to_stack_trace`` walks an error outermost-first and returns one frame per
level; the last frame is the innermost error, which is what the throw
matchers compare against. Printing reverses the list so the innermost frame
comes first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .engine import (
    CONTROL_FLOW,
    ErrorArithmetic,
    ErrorArrayBounds,
    ErrorAssignmentToConstant,
    ErrorBitFieldBounds,
    ErrorCustomSyntax,
    ErrorDataTooLarge,
    ErrorDotExpr,
    ErrorFor,
    ErrorForbiddenVariable,
    ErrorFunctionNotFound,
    ErrorIndexingType,
    ErrorIndexNotFound,
    ErrorInFunctionCall,
    ErrorInModule,
    ErrorMismatchDataType,
    ErrorMismatchOutputType,
    ErrorModuleNotFound,
    ErrorParsing,
    ErrorPropertyNotFound,
    ErrorRuntime,
    ErrorStackOverflow,
    ErrorStringBounds,
    ErrorSystem,
    ErrorTerminated,
    ErrorTooManyModules,
    ErrorTooManyOperations,
    ErrorUnboundThis,
    ErrorVariableExists,
    ErrorVariableNotFound,
    EvalAltError,
    LexError,
    Position,
    to_display,
)
from .engine.errors import LexErrorKind, ParseErrorType

logger = logging.getLogger(__name__)

SCRIPT_EXTENSION = ".rhai"


@dataclass(frozen=True)
class StackFrame:
    message: str
    status: str = ""
    position: Position = field(default_factory=Position)
    source: str = ""

    def render(self) -> str:
        if not self.source:
            return f"\t\t{self.message}"
        return f"\t\t{self.message} ({self.source}:{self.position.line}:{self.position.column})"


def script_file(source: str) -> str:
    """Display name of a script source: ``calc`` becomes ``calc.rhai``."""
    if not source or source.endswith(SCRIPT_EXTENSION):
        return source
    return source + SCRIPT_EXTENSION


# ---------------- Parse errors ----------------

def _arg(err: ErrorParsing, index: int) -> str:
    args = err.args_detail
    return str(args[index]) if index < len(args) else ""


def _args(err: ErrorParsing) -> str:
    return " ".join(str(a) for a in err.args_detail)


_LEX_MESSAGES: Dict[LexErrorKind, Callable[[LexError], str]] = {
    LexErrorKind.UNEXPECTED_INPUT: lambda e: f"Unexpected symbol: {_arg(e, 0)}",
    LexErrorKind.UNTERMINATED_STRING: lambda e: "String literal not terminated before new-line or EOF.",
    LexErrorKind.STRING_TOO_LONG: lambda e: "identifier or string literal longer than the maximum allowed length.",
    LexErrorKind.MALFORMED_ESCAPE_SEQUENCE: lambda e: (
        f"string/character/numeric escape sequence is in an invalid format: {_arg(e, 0)}"
    ),
    LexErrorKind.MALFORMED_NUMBER: lambda e: f"numeric literal is in an invalid format: {_arg(e, 0)}",
    LexErrorKind.MALFORMED_CHAR: lambda e: f"character literal is in an invalid format: {_arg(e, 0)}",
    LexErrorKind.MALFORMED_IDENTIFIER: lambda e: f"identifier is in an invalid format: {_arg(e, 0)}",
    LexErrorKind.IMPROPER_SYMBOL: lambda e: f"Bad symbol encountered: {_args(e)}",
    LexErrorKind.RUNTIME: lambda e: f"Runtime error: {_arg(e, 0)}",
}

_PARSE_MESSAGES: Dict[ParseErrorType, Callable[[ErrorParsing], str]] = {
    ParseErrorType.UNEXPECTED_EOF: lambda e: "Unexpected end of file",
    ParseErrorType.UNKNOWN_OPERATOR: lambda e: f"unknown operator encountered: {_arg(e, 0)}",
    ParseErrorType.MISSING_TOKEN: lambda e: f"Expected token: {_arg(e, 0)} {_arg(e, 1)}",
    ParseErrorType.MISSING_SYMBOL: lambda e: f"Expected Symbol: {_arg(e, 0)}",
    ParseErrorType.MALFORMED_CALL_EXPR: lambda e: f"Invalid expression in function call arguments: {_arg(e, 0)}",
    ParseErrorType.MALFORMED_INDEX_EXPR: lambda e: (
        f"Syntax error with expression in indexing brackets `[]`: {_arg(e, 0)}"
    ),
    ParseErrorType.MALFORMED_IN_EXPR: lambda e: f"Invalid expression for the `in` operator: {_arg(e, 0)}",
    ParseErrorType.MALFORMED_CAPTURE: lambda e: f"Syntax error with a capture: {_arg(e, 0)}",
    ParseErrorType.DUPLICATED_PROPERTY: lambda e: f"Map definition has duplicated property names: {_arg(e, 0)}",
    ParseErrorType.DUPLICATED_VARIABLE: lambda e: f"variable name duplicated: {_arg(e, 0)}",
    ParseErrorType.WRONG_SWITCH_INTEGER_CASE: lambda e: (
        "numeric case of `switch` statement is in an appropriate place."
    ),
    ParseErrorType.WRONG_SWITCH_DEFAULT_CASE: lambda e: (
        "default case of `switch` statement is in an appropriate place."
    ),
    ParseErrorType.WRONG_SWITCH_CASE_CONDITION: lambda e: (
        "case condition of `switch` statement is not appropriate"
    ),
    ParseErrorType.PROPERTY_EXPECTED: lambda e: "Missing property name for custom type or map",
    ParseErrorType.VARIABLE_EXPECTED: lambda e: (
        "Missing variable name after a `let`, `const`, `for` or `catch` keyword."
    ),
    ParseErrorType.FORBIDDEN_VARIABLE: lambda e: f"Forbidden variable name: {_arg(e, 0)}",
    ParseErrorType.RESERVED: lambda e: f"Reserved symbol: {_arg(e, 0)}",
    ParseErrorType.MISMATCHED_TYPE: lambda e: f"Type mismatch. Requested: {_arg(e, 0)}, Actual: {_arg(e, 1)}",
    ParseErrorType.EXPR_EXPECTED: lambda e: f"Expression expected: {_arg(e, 0)}",
    ParseErrorType.WRONG_DOC_COMMENT: lambda e: "doc-comment defined in an appropriate place",
    ParseErrorType.WRONG_FN_DEFINITION: lambda e: "function `fn` defined in an appropriate place",
    ParseErrorType.FN_DUPLICATED_DEFINITION: lambda e: (
        f"function defined with a name that conflicts with an existing function: {_arg(e, 0)} {_arg(e, 1)}."
    ),
    ParseErrorType.FN_MISSING_NAME: lambda e: "Missing a function name after the `fn` keyword.",
    ParseErrorType.FN_MISSING_PARAMS: lambda e: (
        f"function definition is missing the parameters list: {_arg(e, 0)}"
    ),
    ParseErrorType.FN_DUPLICATED_PARAM: lambda e: (
        f"function definition has duplicated parameters: {_arg(e, 0)} {_arg(e, 1)}"
    ),
    ParseErrorType.FN_MISSING_BODY: lambda e: f"function definition is missing body: {_arg(e, 0)}",
    ParseErrorType.WRONG_EXPORT: lambda e: "Export statement found not at global level.",
    ParseErrorType.ASSIGNMENT_TO_CONSTANT: lambda e: f"Assignment to a constant variable: {_arg(e, 0)}",
    ParseErrorType.ASSIGNMENT_TO_INVALID_LHS: lambda e: (
        f"Assignment to an inappropriate left-hand-side expression: {_arg(e, 0)}"
    ),
    ParseErrorType.VARIABLE_EXISTS: lambda e: f"Variable is already defined: {_arg(e, 0)}",
    ParseErrorType.VARIABLE_UNDEFINED: lambda e: f"Variable not found: {_arg(e, 0)}",
    ParseErrorType.MODULE_UNDEFINED: lambda e: f"Imported module not found: {_arg(e, 0)}",
    ParseErrorType.EXPR_TOO_DEEP: lambda e: "Expression exceeding the maximum levels of complexity.",
    ParseErrorType.TOO_MANY_FUNCTIONS: lambda e: "Number of scripted functions over maximum limit.",
    ParseErrorType.LITERAL_TOO_LARGE: lambda e: f"Literal exceeding the maximum size: {_arg(e, 0)} {_arg(e, 1)}",
    ParseErrorType.LOOP_BREAK: lambda e: "Break statement found not inside a loop.",
}


def _parse_message(err: ErrorParsing) -> str:
    if isinstance(err, LexError):
        lex = _LEX_MESSAGES.get(err.lex_kind)
        detail = lex(err) if lex is not None else f"Unknown parsing error: {err.message}"
    else:
        parse = _PARSE_MESSAGES.get(err.kind)
        detail = parse(err) if parse is not None else f"Unknown parsing error: {err.message}"
    return f"Parsing Error: {detail}"


# ---------------- Runtime errors ----------------

_MODULE_HINT = (
    "Hint: If you're importing a module in a test file, don't forget to use "
    "inline imports scoped to the function you're using the import in."
)

# Leaf errors: class -> message. Wrapping errors and ErrorRuntime are
# handled in to_stack_trace itself.
_MESSAGES: Dict[type, Callable[..., str]] = {
    ErrorSystem: lambda e: f"Unknown System Error: {e.detail}",
    ErrorVariableExists: lambda e: f"Shadowing of an existing variable disallowed: {e.name}",
    ErrorForbiddenVariable: lambda e: f"Forbidden variable name: {e.name}",
    ErrorVariableNotFound: lambda e: f"Access of an unknown variable: {e.name}",
    ErrorPropertyNotFound: lambda e: f"Access of an unknown object map property: {e.name}",
    ErrorIndexNotFound: lambda e: f"Access of an invalid index: {e.index}",
    ErrorModuleNotFound: lambda e: f"Module not found: {e.name}. {_MODULE_HINT}",
    ErrorFunctionNotFound: lambda e: f"Function not found: {e.signature}.",
    ErrorUnboundThis: lambda e: "Access to `this` that is not bound.",
    ErrorMismatchDataType: lambda e: (
        f"Data is not of the required type. Requested: {e.requested} actual: {e.actual}"
    ),
    ErrorMismatchOutputType: lambda e: (
        f"Returned type is not the same as the required output type. Requested: {e.requested} actual: {e.actual}"
    ),
    ErrorIndexingType: lambda e: f"Tried to index into a type that has no indexer function defined: {e.type_name}",
    ErrorArrayBounds: lambda e: f"Array index out of bounds: {e.index} (length {e.length})",
    ErrorStringBounds: lambda e: f"String index out of bounds: {e.index} (length {e.length})",
    ErrorBitFieldBounds: lambda e: f"Bit-field index out of bounds: {e.index} (only {e.bits} bits)",
    ErrorFor: lambda e: "For loop expects an iterable type.",
    ErrorDotExpr: lambda e: f"Invalid property access: {e.message}",
    ErrorArithmetic: lambda e: f"Arithmetic error: {e.message}",
    ErrorAssignmentToConstant: lambda e: f"Assignment to a constant variable: {e.name}",
    ErrorTooManyOperations: lambda e: "Script exceeded the maximum number of operations.",
    ErrorTooManyModules: lambda e: "Script imported more modules than allowed.",
    ErrorStackOverflow: lambda e: "Stack overflow: too many nested function calls.",
    ErrorDataTooLarge: lambda e: f"Data exceeding the maximum size: {e.type_name}",
    ErrorTerminated: lambda e: "Script terminated.",
    ErrorCustomSyntax: lambda e: f"Custom syntax error: {e.message}",
    ErrorParsing: _parse_message,
}


def _leaf_message(err: BaseException) -> str:
    for cls in type(err).__mro__:
        handler = _MESSAGES.get(cls)
        if handler is not None:
            return handler(err)

    logger.debug("no stack trace message for %s", type(err).__name__)
    return f"Unknown error: {err}"


def _runtime_frame(err: ErrorRuntime, source: str) -> StackFrame:
    payload = err.value
    if isinstance(payload, dict):
        message = payload.get("message")
        status = payload.get("status")
        return StackFrame(
            "" if message is None else to_display(message),
            "" if status is None else to_display(status),
            err.position,
            source,
        )
    return StackFrame(to_display(payload), "", err.position, source)


def to_stack_trace(error: BaseException, parent_source: Optional[str] = None) -> List[StackFrame]:
    """Frames for ``error``, outermost first. Never raises."""
    source = parent_source or ""

    if isinstance(error, CONTROL_FLOW):
        return []

    if isinstance(error, ErrorInFunctionCall):
        file = script_file(error.source)
        frame = StackFrame(f"Error in function call: {error.name}", "", error.position, file)
        return [frame] + to_stack_trace(error.inner, file)

    if isinstance(error, ErrorInModule):
        file = script_file(error.name)
        frame = StackFrame(f"Error in module: {error.name}", "", error.position, source)
        return [frame] + to_stack_trace(error.inner, file)

    if isinstance(error, ErrorRuntime):
        return [_runtime_frame(error, source)]

    position = error.position if isinstance(error, EvalAltError) else Position()
    return [StackFrame(_leaf_message(error), "", position, source)]


def innermost_error(error: BaseException) -> BaseException:
    while isinstance(error, (ErrorInFunctionCall, ErrorInModule)):
        error = error.inner
    return error


def format_stack_trace(message: str, frames: List[StackFrame]) -> str:
    """``message`` followed by one indented line per frame, innermost first."""
    lines = [message]
    lines.extend(frame.render() for frame in reversed(frames))
    return "\n".join(lines)
