"""Operator semantics for script values."""

from __future__ import annotations

import operator
from typing import Any, Callable, Dict

from .errors import ErrorArithmetic, ErrorFunctionNotFound, ErrorMismatchDataType
from .types import InclusiveRange, to_display, type_name, values_equal

I64_MIN = -(2**63)
I64_MAX = 2**63 - 1

_OVERFLOW_NAMES = {
    '+': 'Addition',
    '-': 'Subtraction',
    '*': 'Multiplication',
    '**': 'Exponential',
    '<<': 'Left-shift',
    '-neg': 'Negation',
}


def is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)

def is_number(value: Any) -> bool:
    return is_int(value) or isinstance(value, float)

def _checked(op: str, result: int, left: Any, right: Any) -> int:
    if result < I64_MIN or result > I64_MAX:
        raise ErrorArithmetic(f"{_OVERFLOW_NAMES[op]} overflow: {left} {op} {right}")
    return result

def _trunc_div(left: int, right: int) -> int:
    quotient = abs(left) // abs(right)
    return quotient if (left >= 0) == (right >= 0) else -quotient

def _not_found(op: str, left: Any, right: Any) -> ErrorFunctionNotFound:
    return ErrorFunctionNotFound(f"{op} ({type_name(left)}, {type_name(right)})")

def _int_op(op: str, left: int, right: int) -> Any:
    match op:
        case '+' | '-' | '*':
            fn = {'+': operator.add, '-': operator.sub, '*': operator.mul}[op]
            return _checked(op, fn(left, right), left, right)
        case '/':
            if right == 0:
                raise ErrorArithmetic(f"Division by zero: {left} / {right}")
            return _checked('*', _trunc_div(left, right), left, right)
        case '%':
            if right == 0:
                raise ErrorArithmetic(f"Modulo division by zero: {left} % {right}")
            return left - right * _trunc_div(left, right)
        case '**':
            if right < 0:
                raise ErrorArithmetic(f"Integer raised to a negative power: {left} ** {right}")
            if right > 64 and abs(left) > 1:
                raise ErrorArithmetic(f"Exponential overflow: {left} ** {right}")
            return _checked('**', left ** right, left, right)
        case '<<' | '>>':
            if right < 0:
                raise ErrorArithmetic(f"Shift by a negative number: {left} {op} {right}")
            if op == '>>':
                return left >> right
            return _checked('<<', left << right, left, right)
        case '&':
            return left & right
        case '|':
            return left | right
        case '^':
            return left ^ right
    raise _not_found(op, left, right)

def _float_op(op: str, left: float, right: float) -> Any:
    match op:
        case '+':
            return left + right
        case '-':
            return left - right
        case '*':
            return left * right
        case '/':
            if right == 0:
                raise ErrorArithmetic(f"Division by zero: {left} / {right}")
            return left / right
        case '%':
            if right == 0:
                raise ErrorArithmetic(f"Modulo division by zero: {left} % {right}")
            return left - right * int(left / right)
        case '**':
            try:
                return float(left) ** right
            except (OverflowError, ZeroDivisionError) as exc:
                raise ErrorArithmetic(f"{exc}: {left} ** {right}") from None
    raise _not_found(op, left, right)

_COMPARE: Dict[str, Callable[[Any, Any], bool]] = {
    '<': operator.lt,
    '<=': operator.le,
    '>': operator.gt,
    '>=': operator.ge,
}

def binary_op(op: str, left: Any, right: Any) -> Any:
    """Evaluate ``left op right``; unsupported type pairs raise ErrorFunctionNotFound."""
    if op == '==':
        return values_equal(left, right)
    if op == '!=':
        return not values_equal(left, right)
    if op == 'in':
        return contains(right, left)

    if op in _COMPARE:
        if is_number(left) and is_number(right):
            return _COMPARE[op](left, right)
        if isinstance(left, str) and isinstance(right, str):
            return _COMPARE[op](str(left), str(right))
        raise _not_found(op, left, right)

    if is_int(left) and is_int(right):
        return _int_op(op, left, right)

    if is_number(left) and is_number(right) and op not in ('<<', '>>', '&', '|', '^'):
        return _float_op(op, float(left), float(right))

    if isinstance(left, bool) and isinstance(right, bool) and op in ('&', '|', '^'):
        return {'&': operator.and_, '|': operator.or_, '^': operator.xor}[op](left, right)

    if op == '+':
        if isinstance(left, str) or isinstance(right, str):
            if left is None:
                return str(right)
            if right is None:
                return str(left)
            return to_display(left) + to_display(right)
        if isinstance(left, list) and isinstance(right, list):
            return left + right
        if isinstance(left, dict) and isinstance(right, dict):
            merged = dict(left)
            merged.update(right)
            return merged

    if op == '-' and isinstance(left, str) and isinstance(right, str):
        return str(left).replace(str(right), '')

    raise _not_found(op, left, right)

def unary_op(op: str, operand: Any) -> Any:
    if op == '!':
        if isinstance(operand, bool):
            return not operand
        raise ErrorFunctionNotFound(f"! ({type_name(operand)})")

    if is_int(operand):
        if operand == I64_MIN:
            raise ErrorArithmetic(f"Negation overflow: -{operand}")
        return -operand
    if isinstance(operand, float):
        return -operand
    raise ErrorFunctionNotFound(f"- ({type_name(operand)})")

def contains(container: Any, item: Any) -> bool:
    if isinstance(container, list):
        return any(values_equal(x, item) for x in container)
    if isinstance(container, str):
        if isinstance(item, str):
            return str(item) in str(container)
        raise ErrorFunctionNotFound(f"contains ({type_name(container)}, {type_name(item)})")
    if isinstance(container, dict):
        if isinstance(item, str):
            return str(item) in container
        raise ErrorMismatchDataType("string", type_name(item))
    if isinstance(container, (range, InclusiveRange)):
        if not is_int(item):
            return False
        rng = container.as_range() if isinstance(container, InclusiveRange) else container
        return item in rng
    raise ErrorFunctionNotFound(f"contains ({type_name(container)}, {type_name(item)})")

def require_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise ErrorMismatchDataType("bool", type_name(value))
    return value