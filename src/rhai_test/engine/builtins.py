"""Built-in functions and per-type methods available to every script."""

from __future__ import annotations

import math
from dataclasses import dataclass
from functools import cmp_to_key
from typing import Any, Callable, Dict, List, Optional

from .errors import (
    ErrorArithmetic,
    ErrorArrayBounds,
    ErrorFunctionNotFound,
    ErrorMismatchDataType,
    Exit,
    Position,
)
from .ops import I64_MAX, I64_MIN, contains, is_int, is_number, require_bool
from .types import Char, FnPtr, Frame, Value, to_debug, to_display, type_name


@dataclass
class NativeCallContext:
    """What a built-in sees of its caller."""
    frame: Frame
    position: Position

    def call(self, fn_ptr: FnPtr, args: List[Value]) -> Value:
        from .evaluator import call_fn_ptr_value

        return call_fn_ptr_value(fn_ptr, args, self.frame, self.position)

    def type_name(self, value: Value) -> str:
        return type_name(value, self.frame.state.engine.type_names)


BuiltinFn = Callable[[NativeCallContext, List[Value]], Value]
MethodFn = Callable[[NativeCallContext, Any, List[Value]], Value]
GetterFn = Callable[[Any], Value]

VARIADIC = None


class Builtins:
    functions: Dict[str, Dict[Optional[int], BuiltinFn]] = {}
    methods: Dict[str, Dict[str, Dict[Optional[int], MethodFn]]] = {}
    getters: Dict[str, Dict[str, GetterFn]] = {}


def register_builtin(name: str, *arities: Optional[int]):
    def dec(fn: BuiltinFn):
        slots = Builtins.functions.setdefault(name, {})
        for arity in arities or (VARIADIC,):
            slots[arity] = fn
        return fn

    return dec

def register_method(types: str, name: str, *arities: Optional[int]):
    """Register ``fn(ctx, receiver, args)`` for each space-separated type name."""
    def dec(fn: MethodFn):
        for type_key in types.split():
            slots = Builtins.methods.setdefault(type_key, {}).setdefault(name, {})
            for arity in arities or (VARIADIC,):
                slots[arity] = fn
        return fn

    return dec

def register_getter(types: str, name: str):
    def dec(fn: GetterFn):
        for type_key in types.split():
            Builtins.getters.setdefault(type_key, {})[name] = fn
        return fn

    return dec

def find_function(name: str, arity: int) -> Optional[BuiltinFn]:
    slots = Builtins.functions.get(name)
    if not slots:
        return None
    return slots.get(arity) or slots.get(VARIADIC)

def find_method(type_key: str, name: str, arity: int) -> Optional[MethodFn]:
    slots = Builtins.methods.get(type_key, {}).get(name)
    if not slots:
        return None
    return slots.get(arity) or slots.get(VARIADIC)

def find_getter(type_key: str, name: str) -> Optional[GetterFn]:
    return Builtins.getters.get(type_key, {}).get(name)


def _signature(ctx: NativeCallContext, name: str, args: List[Value]) -> str:
    return f"{name} ({', '.join(ctx.type_name(a) for a in args)})"

def _int_arg(ctx: NativeCallContext, value: Value) -> int:
    if not is_int(value):
        raise ErrorMismatchDataType("i64", ctx.type_name(value))
    return value

def _str_arg(ctx: NativeCallContext, value: Value) -> str:
    if not isinstance(value, str):
        raise ErrorMismatchDataType("string", ctx.type_name(value))
    return str(value)

def _fn_arg(ctx: NativeCallContext, value: Value) -> FnPtr:
    if not isinstance(value, FnPtr):
        raise ErrorMismatchDataType("Fn", ctx.type_name(value))
    return value

# ---------------- Global functions ----------------

@register_builtin("print", 1)
def std_print(ctx: NativeCallContext, args: List[Value]) -> None:
    ctx.frame.state.engine.on_print(to_display(args[0]))

@register_builtin("debug", 1)
def std_debug(ctx: NativeCallContext, args: List[Value]) -> None:
    ctx.frame.state.engine.on_debug(to_debug(args[0]), ctx.frame.lib.source, ctx.position)

@register_builtin("type_of", 1)
def std_type_of(ctx: NativeCallContext, args: List[Value]) -> str:
    return ctx.type_name(args[0])

@register_builtin("to_string", 1)
def std_to_string(ctx: NativeCallContext, args: List[Value]) -> str:
    return to_display(args[0])

@register_builtin("to_debug", 1)
def std_to_debug(ctx: NativeCallContext, args: List[Value]) -> str:
    return to_debug(args[0])

@register_builtin("Fn", 1)
def std_fn(ctx: NativeCallContext, args: List[Value]) -> FnPtr:
    name = _str_arg(ctx, args[0])
    if not name.isidentifier():
        raise ErrorFunctionNotFound(name)
    return FnPtr(name)

@register_builtin("is_def_fn", 2)
def std_is_def_fn(ctx: NativeCallContext, args: List[Value]) -> bool:
    name = _str_arg(ctx, args[0])
    return ctx.frame.lib.get_fn(name, _int_arg(ctx, args[1])) is not None

@register_builtin("is_def_var", 1)
def std_is_def_var(ctx: NativeCallContext, args: List[Value]) -> bool:
    return ctx.frame.has(_str_arg(ctx, args[0]))

@register_builtin("exit", 0, 1)
def std_exit(ctx: NativeCallContext, args: List[Value]) -> None:
    raise Exit(args[0] if args else None)

@register_builtin("range", 2)
def std_range(ctx: NativeCallContext, args: List[Value]) -> range:
    return range(_int_arg(ctx, args[0]), _int_arg(ctx, args[1]))

@register_builtin("parse_int", 1)
def std_parse_int(ctx: NativeCallContext, args: List[Value]) -> int:
    text = _str_arg(ctx, args[0]).strip()
    try:
        return int(text)
    except ValueError:
        raise ErrorArithmetic(f"Error parsing integer number '{text}': invalid digit found in string") from None

@register_builtin("parse_float", 1)
def std_parse_float(ctx: NativeCallContext, args: List[Value]) -> float:
    text = _str_arg(ctx, args[0]).strip()
    try:
        return float(text)
    except ValueError:
        raise ErrorArithmetic(f"Error parsing floating-point number '{text}': invalid float literal") from None

# ---------------- Numbers ----------------

@register_method("i64 f64", "abs", 0)
def num_abs(ctx, recv, args):
    return abs(recv)

@register_method("i64 f64", "to_float", 0)
def num_to_float(ctx, recv, args):
    return float(recv)

@register_method("i64 f64 bool char", "to_int", 0)
def num_to_int(ctx, recv, args):
    if isinstance(recv, str):
        return ord(recv)
    if isinstance(recv, float) and (math.isnan(recv) or math.isinf(recv)):
        raise ErrorArithmetic(f"Integer overflow: to_int({recv})")
    result = int(recv)
    if result < I64_MIN or result > I64_MAX:
        raise ErrorArithmetic(f"Integer overflow: to_int({recv})")
    return result

@register_method("f64", "floor", 0)
def float_floor(ctx, recv, args):
    return float(math.floor(recv))

@register_method("f64", "ceiling", 0)
def float_ceiling(ctx, recv, args):
    return float(math.ceil(recv))

@register_method("f64", "round", 0)
def float_round(ctx, recv, args):
    return float(math.floor(recv + 0.5)) if recv >= 0 else float(math.ceil(recv - 0.5))

@register_method("i64", "is_even", 0)
def int_is_even(ctx, recv, args):
    return recv % 2 == 0

@register_method("i64", "is_odd", 0)
def int_is_odd(ctx, recv, args):
    return recv % 2 == 1

# ---------------- Strings ----------------

@register_getter("string array map", "len")
def value_len(recv):
    return len(recv)

@register_getter("string array map", "is_empty")
def value_is_empty(recv):
    return len(recv) == 0

@register_method("string array map", "len", 0)
def value_len_method(ctx, recv, args):
    return len(recv)

@register_method("string array map", "is_empty", 0)
def value_is_empty_method(ctx, recv, args):
    return len(recv) == 0

@register_method("string", "contains", 1)
def string_contains(ctx, recv, args):
    return contains(recv, _str_arg(ctx, args[0]))

@register_method("string", "starts_with", 1)
def string_starts_with(ctx, recv, args):
    return str(recv).startswith(_str_arg(ctx, args[0]))

@register_method("string", "ends_with", 1)
def string_ends_with(ctx, recv, args):
    return str(recv).endswith(_str_arg(ctx, args[0]))

@register_method("string char", "to_upper", 0)
def string_to_upper(ctx, recv, args):
    return str(recv).upper()

@register_method("string char", "to_lower", 0)
def string_to_lower(ctx, recv, args):
    return str(recv).lower()

@register_method("string", "trim", 0)
def string_trim(ctx, recv, args):
    return str(recv).strip()

@register_method("string", "split", 0, 1)
def string_split(ctx, recv, args):
    if not args:
        return str(recv).split()
    return str(recv).split(_str_arg(ctx, args[0]))

@register_method("string", "sub_string", 1, 2)
def string_sub_string(ctx, recv, args):
    text = str(recv)
    start = _int_arg(ctx, args[0])
    if start < 0:
        start = max(0, len(text) + start)
    if len(args) == 1:
        return text[start:]
    return text[start:start + max(0, _int_arg(ctx, args[1]))]

@register_method("string", "index_of", 1)
def string_index_of(ctx, recv, args):
    return str(recv).find(_str_arg(ctx, args[0]))

@register_method("string", "replace", 2)
def string_replace(ctx, recv, args):
    return str(recv).replace(_str_arg(ctx, args[0]), _str_arg(ctx, args[1]))

@register_method("string", "chars", 0)
def string_chars(ctx, recv, args):
    return [Char(c) for c in str(recv)]

# ---------------- Arrays ----------------

@register_method("array", "push", 1)
def array_push(ctx, recv, args):
    recv.append(args[0])

@register_method("array", "append", 1)
def array_append(ctx, recv, args):
    if isinstance(args[0], list):
        recv.extend(args[0])
    else:
        recv.append(args[0])

@register_method("array", "pop", 0)
def array_pop(ctx, recv, args):
    return recv.pop() if recv else None

@register_method("array", "shift", 0)
def array_shift(ctx, recv, args):
    return recv.pop(0) if recv else None

@register_method("array", "insert", 2)
def array_insert(ctx, recv, args):
    index = _int_arg(ctx, args[0])
    if index < 0:
        index = max(0, len(recv) + index)
    recv.insert(index, args[1])

@register_method("array map", "remove", 1)
def container_remove(ctx, recv, args):
    if isinstance(recv, dict):
        return recv.pop(_str_arg(ctx, args[0]), None)

    index = _int_arg(ctx, args[0])
    if index < 0:
        index += len(recv)
    if index < 0 or index >= len(recv):
        raise ErrorArrayBounds(len(recv), args[0])
    return recv.pop(index)

@register_method("array map", "clear", 0)
def container_clear(ctx, recv, args):
    recv.clear()

@register_method("array map range range=", "contains", 1)
def container_contains(ctx, recv, args):
    return contains(recv, args[0])

@register_method("array", "index_of", 1)
def array_index_of(ctx, recv, args):
    target = args[0]
    if isinstance(target, FnPtr):
        for idx, item in enumerate(recv):
            if require_bool(ctx.call(target, [item])):
                return idx
        return -1
    for idx, item in enumerate(recv):
        if contains([item], target):
            return idx
    return -1

@register_method("array", "reverse", 0)
def array_reverse(ctx, recv, args):
    recv.reverse()

@register_method("array", "join", 0, 1)
def array_join(ctx, recv, args):
    sep = _str_arg(ctx, args[0]) if args else ""
    return sep.join(to_display(x) for x in recv)

@register_method("array", "map", 1)
def array_map(ctx, recv, args):
    fn = _fn_arg(ctx, args[0])
    return [ctx.call(fn, [item]) for item in list(recv)]

@register_method("array", "filter", 1)
def array_filter(ctx, recv, args):
    fn = _fn_arg(ctx, args[0])
    return [item for item in list(recv) if require_bool(ctx.call(fn, [item]))]

@register_method("array", "some", 1)
def array_some(ctx, recv, args):
    fn = _fn_arg(ctx, args[0])
    return any(require_bool(ctx.call(fn, [item])) for item in list(recv))

@register_method("array", "all", 1)
def array_all(ctx, recv, args):
    fn = _fn_arg(ctx, args[0])
    return all(require_bool(ctx.call(fn, [item])) for item in list(recv))

@register_method("array", "reduce", 1, 2)
def array_reduce(ctx, recv, args):
    fn = _fn_arg(ctx, args[0])
    acc = args[1] if len(args) > 1 else None
    for item in list(recv):
        acc = ctx.call(fn, [acc, item])
    return acc

@register_method("array", "sort", 0, 1)
def array_sort(ctx, recv, args):
    if args:
        fn = _fn_arg(ctx, args[0])

        def compare(a, b):
            result = ctx.call(fn, [a, b])
            return _int_arg(ctx, result)

        recv.sort(key=cmp_to_key(compare))
        return None

    if all(is_number(x) for x in recv) or all(isinstance(x, str) for x in recv):
        recv.sort()
        return None
    kinds = sorted({ctx.type_name(x) for x in recv})
    raise ErrorFunctionNotFound(f"sort (array of {', '.join(kinds)})")

# ---------------- Maps ----------------

@register_method("map", "keys", 0)
def map_keys(ctx, recv, args):
    return list(recv.keys())

@register_method("map", "values", 0)
def map_values(ctx, recv, args):
    return list(recv.values())

# ---------------- Ranges ----------------

@register_getter("range range=", "start")
def range_start(recv):
    return recv.start

@register_getter("range", "end")
def range_end(recv):
    return recv.stop

@register_getter("range=", "end")
def range_incl_end(recv):
    return recv.end

# ---------------- Function pointers ----------------

@register_getter("Fn", "name")
def fn_name(recv):
    return recv.name

@register_method("Fn", "call")
def fn_call(ctx, recv, args):
    return ctx.call(recv, list(args))

@register_method("Fn", "curry")
def fn_curry(ctx, recv, args):
    return FnPtr(recv.name, recv.curried + list(args), recv.fn_def)


def method_signature(ctx: NativeCallContext, name: str, recv: Value, args: List[Value]) -> str:
    return _signature(ctx, name, [recv] + list(args))

__all__ = [
    "Builtins",
    "NativeCallContext",
    "find_function",
    "find_getter",
    "find_method",
    "method_signature",
]
