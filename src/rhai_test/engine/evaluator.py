from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from lark import Token, Tree

from .builtins import NativeCallContext, find_function, find_getter, find_method, method_signature
from .errors import (
    CONTROL_FLOW,
    ErrorArrayBounds,
    ErrorBitFieldBounds,
    ErrorDataTooLarge,
    ErrorDotExpr,
    ErrorFor,
    ErrorFunctionNotFound,
    ErrorInFunctionCall,
    ErrorInModule,
    ErrorIndexingType,
    ErrorMismatchDataType,
    ErrorModuleNotFound,
    ErrorPropertyNotFound,
    ErrorRuntime,
    ErrorStackOverflow,
    ErrorStringBounds,
    ErrorSystem,
    ErrorTerminated,
    ErrorTooManyModules,
    ErrorTooManyOperations,
    ErrorUnboundThis,
    ErrorVariableNotFound,
    EvalAltError,
    LoopBreak,
    Position,
    Return,
)
from .ops import binary_op, is_int, require_bool, unary_op
from .tree import is_token, node_position, tree_label
from .types import (
    NO_THIS,
    Char,
    FnPtr,
    Frame,
    InclusiveRange,
    Module,
    ScriptFnDef,
    Value,
    clone_value,
    type_name,
)

NodeHandler = Callable[[Tree, Frame], Value]

# Errors a script-level try/catch may intercept
_UNCATCHABLE = (ErrorSystem, ErrorTerminated, ErrorTooManyOperations, ErrorTooManyModules, ErrorStackOverflow, ErrorDataTooLarge)

# ---------------- Public API ----------------


def eval_statements(stmts: List[Any], frame: Frame) -> Value:
    """Run statements in order; the block's value is the last statement's value."""
    result: Value = None
    for stmt in stmts:
        result = eval_node(stmt, frame)
    return result


def call_fn_ptr_value(fn_ptr: FnPtr, args: List[Value], frame: Frame, position: Position, this: Any=NO_THIS) -> Value:
    """Invoke a function pointer from inside an evaluation."""
    all_args = list(fn_ptr.curried) + list(args)

    if fn_ptr.fn_def is not None:
        return call_script_fn(fn_ptr.fn_def, all_args, frame, position, this)

    return _call_named(fn_ptr.name, all_args, frame, position, this)


def call_script_fn(fn: ScriptFnDef, args: List[Value], caller: Frame, position: Position, this: Any=NO_THIS) -> Value:
    state = caller.state
    engine = state.engine

    if len(args) != fn.arity:
        raise ErrorFunctionNotFound(_signature(caller, fn.name, args), position)
    if engine.max_call_levels and state.call_depth >= engine.max_call_levels:
        raise ErrorStackOverflow(position)

    frame = Frame(state, fn.lib, parent=fn.captured, this=this)
    for name, value in zip(fn.params, args):
        frame.define(name, value)

    state.call_depth += 1
    try:
        result = eval_node(fn.body, frame)
    except Return as ret:
        result = ret.value
    except CONTROL_FLOW:
        raise
    except EvalAltError as err:
        raise ErrorInFunctionCall(fn.name, fn.lib.source, err, position) from None
    finally:
        state.call_depth -= 1

    if this is not NO_THIS:
        caller.last_this = frame.this
    return result

# ---------------- Core evaluator ----------------


def eval_node(n: Any, frame: Frame) -> Value:
    try:
        return _eval_node_inner(n, frame)
    except EvalAltError as e:
        e.with_position(node_position(n))
        raise


def _eval_node_inner(n: Any, frame: Frame) -> Value:
    if is_token(n):
        return _eval_token(n, frame)

    state = frame.state
    state.operations += 1
    limit = state.engine.max_operations
    if limit and state.operations > limit:
        raise ErrorTooManyOperations()

    handler = _NODE_DISPATCH.get(n.data)
    if handler is None:
        raise ErrorSystem(f"Unknown node kind: {n.data}")
    return handler(n, frame)


def _eval_token(tok: Token, frame: Frame) -> Value:
    match tok.type:
        case 'INT' | 'FLOAT' | 'STRING' | 'BOOL':
            return tok.value
        case 'CHAR':
            return Char(tok.value)
        case 'IDENT':
            return frame.get(tok.value)
        case 'THIS':
            if frame.this is NO_THIS:
                raise ErrorUnboundThis()
            return frame.this
    raise ErrorSystem(f"Unexpected token: {tok.type}")


def _type_name(frame: Frame, value: Value) -> str:
    return type_name(value, frame.state.engine.type_names)


def _signature(frame: Frame, name: str, args: List[Value]) -> str:
    return f"{name} ({', '.join(_type_name(frame, a) for a in args)})"


def _check_size(frame: Frame, value: Value) -> Value:
    engine = frame.state.engine
    if isinstance(value, str) and engine.max_string_size and len(value) > engine.max_string_size:
        raise ErrorDataTooLarge("Length of string")
    if isinstance(value, list) and engine.max_array_size and len(value) > engine.max_array_size:
        raise ErrorDataTooLarge("Size of array")
    if isinstance(value, dict) and engine.max_map_size and len(value) > engine.max_map_size:
        raise ErrorDataTooLarge("Size of object map")
    return value

# ---------------- Statements ----------------


def _eval_let(n: Tree, frame: Frame) -> None:
    name, init = n.children
    value = clone_value(eval_node(init, frame))
    frame.define(name.value, value, const=(n.data == 'const'))


def _eval_export(n: Tree, frame: Frame) -> None:
    decl = n.children[0]
    eval_node(decl, frame)
    name = decl.children[0].value
    frame.exports[name] = name


def _eval_export_var(n: Tree, frame: Frame) -> None:
    name, alias = n.children
    frame.get(name.value)
    frame.exports[name.value] = alias.value


def _eval_block(n: Tree, frame: Frame) -> Value:
    return eval_statements(n.children, frame.child())


def _eval_expr_stmt(n: Tree, frame: Frame) -> Value:
    return eval_node(n.children[0], frame)


def _eval_if(n: Tree, frame: Frame) -> Value:
    cond = eval_node(n.children[0], frame)
    if _condition(frame, cond):
        return eval_node(n.children[1], frame)
    if len(n.children) > 2:
        return eval_node(n.children[2], frame)
    return None


def _condition(frame: Frame, value: Value) -> bool:
    if not isinstance(value, bool):
        raise ErrorMismatchDataType("bool", _type_name(frame, value))
    return value


def _run_loop_body(body: Tree, frame: Frame) -> Optional[LoopBreak]:
    """Run one iteration; returns the break signal when the loop should stop."""
    try:
        eval_node(body, frame)
    except LoopBreak as signal:
        if signal.is_break:
            return signal
    return None


def _eval_while(n: Tree, frame: Frame) -> Value:
    cond, body = n.children
    while _condition(frame, eval_node(cond, frame)):
        stop = _run_loop_body(body, frame)
        if stop is not None:
            return stop.value
    return None


def _eval_loop(n: Tree, frame: Frame) -> Value:
    body = n.children[0]
    while True:
        stop = _run_loop_body(body, frame)
        if stop is not None:
            return stop.value


def _eval_do(n: Tree, frame: Frame) -> Value:
    body, mode, cond = n.children
    while True:
        stop = _run_loop_body(body, frame)
        if stop is not None:
            return stop.value
        result = _condition(frame, eval_node(cond, frame))
        if result != (mode.type == 'WHILE'):
            return None


def _eval_for(n: Tree, frame: Frame) -> Value:
    names, iterable_node, body = n.children
    iterable = eval_node(iterable_node, frame)

    if isinstance(iterable, list):
        items: Any = list(iterable)
    elif isinstance(iterable, str):
        items = [Char(c) for c in iterable]
    elif isinstance(iterable, InclusiveRange):
        items = iterable.as_range()
    elif isinstance(iterable, range):
        items = iterable
    else:
        raise ErrorFor(node_position(iterable_node))

    var_names = [tok.value for tok in names.children]
    for index, item in enumerate(items):
        scope = frame.child()
        scope.define(var_names[0], item)
        if len(var_names) > 1:
            scope.define(var_names[1], index)
        stop = _run_loop_body(body, scope)
        if stop is not None:
            return stop.value
    return None


def _eval_break(n: Tree, frame: Frame) -> None:
    value = eval_node(n.children[0], frame) if n.children else None
    raise LoopBreak(True, value)


def _eval_continue(n: Tree, frame: Frame) -> None:
    raise LoopBreak(False)


def _eval_return(n: Tree, frame: Frame) -> None:
    value = eval_node(n.children[0], frame) if n.children else None
    raise Return(value)


def _eval_throw(n: Tree, frame: Frame) -> None:
    value = eval_node(n.children[0], frame) if n.children else None
    raise ErrorRuntime(value, node_position(n))


def _eval_try(n: Tree, frame: Frame) -> Value:
    body, catch_var, handler = n.children
    try:
        return eval_node(body, frame)
    except CONTROL_FLOW:
        raise
    except _UNCATCHABLE:
        raise
    except EvalAltError as err:
        inner = innermost(err)
        scope = frame.child()
        if catch_var.children:
            scope.define(catch_var.children[0].value, _error_to_value(inner))
        return eval_statements(handler.children, scope)


def innermost(err: EvalAltError) -> EvalAltError:
    while isinstance(err, (ErrorInFunctionCall, ErrorInModule)):
        err = err.inner
    return err


def _error_to_value(err: EvalAltError) -> Value:
    if isinstance(err, ErrorRuntime):
        return err.value
    return {
        "message": err.message,
        "line": err.position.line,
        "position": err.position.column,
    }


def _eval_import(n: Tree, frame: Frame) -> None:
    path_node, alias = n.children
    path = eval_node(path_node, frame)
    position = node_position(n)

    if not isinstance(path, str):
        raise ErrorMismatchDataType("string", _type_name(frame, path), node_position(path_node))

    state = frame.state
    engine = state.engine
    state.modules += 1
    if engine.max_modules and state.modules > engine.max_modules:
        raise ErrorTooManyModules(position)

    resolver = engine.module_resolver
    if resolver is None:
        raise ErrorModuleNotFound(str(path), position)

    module = resolver.resolve(engine, frame.lib.source, str(path), position)

    if alias.children:
        name = alias.children[0].value
        frame.define(name, module)
        if frame.is_global:
            frame.lib.imports[name] = module


def _eval_assign(n: Tree, frame: Frame) -> None:
    target, op, value_node = n.children
    value = clone_value(eval_node(value_node, frame))

    if op.value != '=':
        current = eval_node(target, frame)
        value = _check_size(frame, binary_op(op.value[:-1], current, value))

    _assign_to(target, value, frame)


def _assign_to(target: Any, value: Value, frame: Frame) -> None:
    if is_token(target):
        if target.type == 'THIS':
            if frame.this is NO_THIS:
                raise ErrorUnboundThis(node_position(target))
            frame.this = value
            return
        try:
            frame.set(target.value, value)
        except EvalAltError as err:
            raise err.with_position(node_position(target))
        return

    label = tree_label(target)
    container = eval_node(target.children[0], frame)

    if label == 'prop':
        name = target.children[1].value
        if not isinstance(container, dict):
            raise ErrorDotExpr(f"Cannot set property '{name}' of {_type_name(frame, container)}", node_position(target))
        container[name] = value
        return

    index = eval_node(target.children[1], frame)
    position = node_position(target)

    if isinstance(container, list):
        container[_array_index(frame, container, index, position)] = value
    elif isinstance(container, dict):
        container[_map_key(frame, index, position)] = value
    elif isinstance(container, str):
        idx = _string_index(frame, container, index, position)
        if not isinstance(value, str) or len(value) != 1:
            raise ErrorMismatchDataType("char", _type_name(frame, value), position)
        _assign_to(target.children[0], container[:idx] + value + container[idx + 1:], frame)
    elif is_int(container):
        bit = _bit_index(frame, index, position)
        flag = require_bool(value)
        updated = container | (1 << bit) if flag else container & ~(1 << bit)
        if updated >= 2**63:
            updated -= 2**64
        _assign_to(target.children[0], updated, frame)
    else:
        raise ErrorIndexingType(_type_name(frame, container), position)

# ---------------- Expressions ----------------


def _eval_unit(n: Tree, frame: Frame) -> None:
    return None


def _eval_array(n: Tree, frame: Frame) -> Value:
    return _check_size(frame, [clone_value(eval_node(child, frame)) for child in n.children])


def _eval_map(n: Tree, frame: Frame) -> Value:
    result: Dict[str, Value] = {}
    for pair in n.children:
        key, value_node = pair.children
        result[str(key.value)] = clone_value(eval_node(value_node, frame))
    return _check_size(frame, result)


def _eval_template(n: Tree, frame: Frame) -> Value:
    from .types import to_display

    parts = []
    for child in n.children:
        if is_token(child) and child.type == 'STRING':
            parts.append(child.value)
        else:
            parts.append(to_display(eval_node(child, frame)))
    return _check_size(frame, "".join(parts))


def _eval_closure(n: Tree, frame: Frame) -> FnPtr:
    params, body = n.children
    position = node_position(n)
    name = f"anon${position.line}_{position.column}"
    fn = ScriptFnDef(
        name=name,
        params=[tok.value for tok in params.children],
        body=body,
        lib=frame.lib,
        captured=frame,
        position=position,
    )
    return FnPtr(name, fn_def=fn)


def _eval_unary(n: Tree, frame: Frame) -> Value:
    op, operand = n.children
    return unary_op(op.value, eval_node(operand, frame))


def _eval_binop(n: Tree, frame: Frame) -> Value:
    left, op, right = n.children
    return _check_size(frame, binary_op(op.value, eval_node(left, frame), eval_node(right, frame)))


def _eval_and(n: Tree, frame: Frame) -> bool:
    left, right = n.children
    if not _logic_operand(frame, eval_node(left, frame)):
        return False
    return _logic_operand(frame, eval_node(right, frame))


def _eval_or(n: Tree, frame: Frame) -> bool:
    left, right = n.children
    if _logic_operand(frame, eval_node(left, frame)):
        return True
    return _logic_operand(frame, eval_node(right, frame))


def _logic_operand(frame: Frame, value: Value) -> bool:
    if not isinstance(value, bool):
        raise ErrorMismatchDataType("bool", _type_name(frame, value))
    return value


def _eval_nullish(n: Tree, frame: Frame) -> Value:
    left, right = n.children
    value = eval_node(left, frame)
    return eval_node(right, frame) if value is None else value


def _eval_range(n: Tree, frame: Frame) -> Value:
    low = eval_node(n.children[0], frame)
    high = eval_node(n.children[1], frame)
    for bound in (low, high):
        if not is_int(bound):
            raise ErrorMismatchDataType("i64", _type_name(frame, bound))
    if n.data == 'range_incl':
        return InclusiveRange(low, high)
    return range(low, high)

# ---------------- Calls ----------------


def _eval_args(n: Tree, frame: Frame) -> List[Value]:
    return [clone_value(eval_node(arg, frame)) for arg in n.children]


def _eval_call(n: Tree, frame: Frame) -> Value:
    name_tok, args_node = n.children
    args = _eval_args(args_node, frame)
    return _call_named(name_tok.value, args, frame, node_position(n))


def _call_named(name: str, args: List[Value], frame: Frame, position: Position, this: Any=NO_THIS) -> Value:
    """Resolve a plain function call: script, host, built-in, then pointer variable."""
    fn = frame.lib.get_fn(name, len(args))
    if fn is not None:
        return call_script_fn(fn, args, frame, position, this)

    engine = frame.state.engine
    if name in engine.host_functions:
        return engine.call_host(name, args, frame, position)

    builtin = find_function(name, len(args))
    if builtin is not None:
        return builtin(NativeCallContext(frame, position), args)

    if args:
        method = _find_builtin_method(frame, args[0], name, len(args) - 1)
        if method is not None:
            return method(NativeCallContext(frame, position), args[0], args[1:])

    if frame.has(name):
        target = frame.get(name)
        if isinstance(target, FnPtr):
            return call_fn_ptr_value(target, args, frame, position)

    raise ErrorFunctionNotFound(_signature(frame, name, args), position)


def _find_builtin_method(frame: Frame, recv: Value, name: str, arity: int):
    kind = _type_name(frame, recv)
    method = find_method(kind, name, arity)
    if method is None and kind == 'char':
        method = find_method('string', name, arity)
    return method


def _eval_method(n: Tree, frame: Frame) -> Value:
    recv_node, name_tok, args_node = n.children
    recv = eval_node(recv_node, frame)
    if recv is None and n.data == 'qmethod':
        return None

    name = name_tok.value
    args = _eval_args(args_node, frame)
    position = node_position(n)

    method = _find_builtin_method(frame, recv, name, len(args))
    if method is not None:
        return method(NativeCallContext(frame, position), recv, args)

    builtin = find_function(name, len(args) + 1)
    if builtin is not None:
        return builtin(NativeCallContext(frame, position), [recv] + args)

    engine = frame.state.engine
    if name in engine.host_functions:
        return engine.call_host(name, [recv] + args, frame, position)

    fn = frame.lib.get_fn(name, len(args))
    if fn is not None:
        frame.last_this = NO_THIS
        result = call_script_fn(fn, args, frame, position, this=recv)
        _write_back_this(recv_node, recv, frame)
        return result

    if isinstance(recv, dict) and isinstance(recv.get(name), FnPtr):
        return call_fn_ptr_value(recv[name], args, frame, position, this=recv)

    ctx = NativeCallContext(frame, position)
    raise ErrorFunctionNotFound(method_signature(ctx, name, recv, args), position)


def _write_back_this(recv_node: Any, original: Value, frame: Frame) -> None:
    """A method that rebinds ``this`` updates the receiver variable."""
    updated = frame.last_this
    frame.last_this = NO_THIS
    if updated is NO_THIS or updated is original:
        return
    if is_token(recv_node) and recv_node.type in ('IDENT', 'THIS'):
        _assign_to(recv_node, updated, frame)


def _eval_prop(n: Tree, frame: Frame) -> Value:
    recv_node, name_tok = n.children
    recv = eval_node(recv_node, frame)
    if recv is None and n.data == 'qprop':
        return None

    name = name_tok.value
    if isinstance(recv, dict):
        return recv.get(name)

    getter = find_getter(_type_name(frame, recv), name)
    if getter is not None:
        return getter(recv)

    raise ErrorPropertyNotFound(name, node_position(n))


def _eval_index(n: Tree, frame: Frame) -> Value:
    recv_node, index_node = n.children
    recv = eval_node(recv_node, frame)
    if recv is None and n.data == 'qindex':
        return None

    index = eval_node(index_node, frame)
    position = node_position(n)

    if isinstance(recv, list):
        return recv[_array_index(frame, recv, index, position)]
    if isinstance(recv, dict):
        return recv.get(_map_key(frame, index, position))
    if isinstance(recv, str):
        return Char(recv[_string_index(frame, recv, index, position)])
    if is_int(recv):
        return bool(recv & (1 << _bit_index(frame, index, position)))

    raise ErrorIndexingType(_type_name(frame, recv), position)


def _array_index(frame: Frame, items: list, index: Value, position: Position) -> int:
    if not is_int(index):
        raise ErrorMismatchDataType("i64", _type_name(frame, index), position)
    actual = index + len(items) if index < 0 else index
    if actual < 0 or actual >= len(items):
        raise ErrorArrayBounds(len(items), index, position)
    return actual


def _string_index(frame: Frame, text: str, index: Value, position: Position) -> int:
    if not is_int(index):
        raise ErrorMismatchDataType("i64", _type_name(frame, index), position)
    actual = index + len(text) if index < 0 else index
    if actual < 0 or actual >= len(text):
        raise ErrorStringBounds(len(text), index, position)
    return actual


def _bit_index(frame: Frame, index: Value, position: Position) -> int:
    if not is_int(index):
        raise ErrorMismatchDataType("i64", _type_name(frame, index), position)
    actual = index + 64 if index < 0 else index
    if actual < 0 or actual >= 64:
        raise ErrorBitFieldBounds(64, index, position)
    return actual


def _map_key(frame: Frame, key: Value, position: Position) -> str:
    if not isinstance(key, str):
        raise ErrorMismatchDataType("string", _type_name(frame, key), position)
    return str(key)

# ---------------- Namespaces ----------------


def _resolve_namespace(path: Tree, frame: Frame) -> Module:
    names = [tok.value for tok in path.children]
    root = names[0]
    engine = frame.state.engine

    module: Optional[Module] = None
    if frame.has(root) and isinstance(frame.get(root), Module):
        module = frame.get(root)
    elif root in frame.lib.imports:
        module = frame.lib.imports[root]
    elif root in engine.static_modules:
        module = engine.static_modules[root]

    if module is None:
        raise ErrorModuleNotFound(root, node_position(path))

    for name in names[1:]:
        sub = module.sub_modules.get(name)
        if sub is None:
            raise ErrorModuleNotFound(name, node_position(path))
        module = sub
    return module


def _eval_ns_var(n: Tree, frame: Frame) -> Value:
    path, name_tok = n.children
    module = _resolve_namespace(path, frame)
    if name_tok.value not in module.variables:
        qualified = "::".join(tok.value for tok in path.children)
        raise ErrorVariableNotFound(f"{qualified}::{name_tok.value}", node_position(n))
    return module.variables[name_tok.value]


def _eval_ns_call(n: Tree, frame: Frame) -> Value:
    path, name_tok, args_node = n.children
    module = _resolve_namespace(path, frame)
    args = _eval_args(args_node, frame)
    position = node_position(n)
    name = name_tok.value

    fn = module.get_fn(name, len(args))
    if fn is not None:
        return call_script_fn(fn, args, frame, position)

    host = module.host_functions.get(name)
    if host is not None:
        return frame.state.engine.invoke_native(host, name, args, position)

    qualified = "::".join(tok.value for tok in path.children)
    raise ErrorFunctionNotFound(_signature(frame, f"{qualified}::{name}", args), position)

# ---------------- Dispatch ----------------

_NODE_DISPATCH: Dict[str, NodeHandler] = {
    'let': _eval_let,
    'const': _eval_let,
    'export': _eval_export,
    'export_var': _eval_export_var,
    'block': _eval_block,
    'expr_stmt': _eval_expr_stmt,
    'if': _eval_if,
    'while': _eval_while,
    'loop': _eval_loop,
    'do': _eval_do,
    'for': _eval_for,
    'break': _eval_break,
    'continue': _eval_continue,
    'return': _eval_return,
    'throw': _eval_throw,
    'try': _eval_try,
    'import': _eval_import,
    'assign': _eval_assign,
    'unit': _eval_unit,
    'array': _eval_array,
    'map': _eval_map,
    'template': _eval_template,
    'closure': _eval_closure,
    'unary': _eval_unary,
    'binop': _eval_binop,
    'and': _eval_and,
    'or': _eval_or,
    'nullish': _eval_nullish,
    'range': _eval_range,
    'range_incl': _eval_range,
    'call': _eval_call,
    'method': _eval_method,
    'qmethod': _eval_method,
    'prop': _eval_prop,
    'qprop': _eval_prop,
    'index': _eval_index,
    'qindex': _eval_index,
    'ns_var': _eval_ns_var,
    'ns_call': _eval_ns_call,
}

