"""Engine facade: host registration, compilation and evaluation entry points."""

from __future__ import annotations

import inspect
import logging
import sys
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from .errors import (
    ErrorFunctionNotFound,
    ErrorMismatchOutputType,
    ErrorRuntime,
    EvalAltError,
    Exit,
    NO_POSITION,
    Position,
    Return,
)
from .evaluator import call_fn_ptr_value, eval_statements
from .parser import parse_source
from .types import AST, EvalState, FnPtr, Frame, Module, ScriptFnDef, Value, type_name

logger = logging.getLogger(__name__)

ANY = object


class ModuleResolver(Protocol):
    def resolve(self, engine: 'Engine', source: str, path: str, position: Position) -> Module: ...


@dataclass(frozen=True)
class HostFunction:
    name: str
    fn: Callable[..., Value]
    params: Optional[Tuple[type, ...]]  # None: any arguments
    arity: Optional[int]

    def accepts(self, args: Sequence[Value]) -> bool:
        if self.arity is not None and len(args) != self.arity:
            return False
        if self.params is None:
            return True
        return all(_instance_of(arg, kind) for arg, kind in zip(args, self.params))


def _instance_of(value: Value, kind: type) -> bool:
    if kind is ANY:
        return True
    if kind is int:
        return isinstance(value, int) and not isinstance(value, bool)
    if kind is type(None):
        return value is None
    return isinstance(value, kind)


def _positional_arity(fn: Callable[..., Value]) -> Optional[int]:
    try:
        sig = inspect.signature(fn)
    except (TypeError, ValueError):
        return None

    count = 0
    for param in sig.parameters.values():
        if param.kind == param.VAR_POSITIONAL:
            return None
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD) and param.default is param.empty:
            count += 1
    return count


def _default_print(text: str) -> None:
    print(text)


def _default_debug(text: str, source: str, position: Position) -> None:
    prefix = source or "script"
    if position.is_none():
        print(f"{prefix} | {text}", file=sys.stderr)
    else:
        print(f"{prefix} @ {position.line}:{position.column} | {text}", file=sys.stderr)


_LIMITS = (
    "max_call_levels",
    "max_operations",
    "max_modules",
    "max_expr_depth",
    "max_string_size",
    "max_array_size",
    "max_map_size",
)


class Engine:
    """A configured interpreter: host functions, static modules, limits and a resolver."""

    def __init__(self) -> None:
        self.host_functions: Dict[str, List[HostFunction]] = {}
        self.static_modules: Dict[str, Module] = {}
        self.type_names: Dict[type, str] = {}
        self.module_resolver: Optional[ModuleResolver] = None
        self.on_print: Callable[[str], None] = _default_print
        self.on_debug: Callable[[str, str, Position], None] = _default_debug

        self.max_call_levels = 64
        self.max_operations = 0
        self.max_modules = 0
        self.max_expr_depth = 64
        self.max_string_size = 0
        self.max_array_size = 0
        self.max_map_size = 0

    def fork(self) -> 'Engine':
        """A new engine sharing this one's registrations, resolver and limits but no evaluation state."""
        other = Engine()
        other.host_functions = {name: list(overloads) for name, overloads in self.host_functions.items()}
        other.static_modules = dict(self.static_modules)
        other.type_names = dict(self.type_names)
        other.module_resolver = self.module_resolver
        other.on_print = self.on_print
        other.on_debug = self.on_debug
        for limit in _LIMITS:
            setattr(other, limit, getattr(self, limit))
        return other

    # ---------------- Registration ----------------

    def register_fn(self, name: str, fn: Callable[..., Value], params: Optional[Sequence[type]] = None) -> 'Engine':
        """Expose a Python callable to scripts.

        ``params`` pins the accepted argument types (``object`` matches anything);
        several registrations under one name form an overload set tried in order.
        """
        if params is not None:
            overload = HostFunction(name, fn, tuple(params), len(params))
        else:
            overload = HostFunction(name, fn, None, _positional_arity(fn))
        self.host_functions.setdefault(name, []).append(overload)
        return self

    def register_type_with_name(self, cls: type, name: str) -> 'Engine':
        self.type_names[cls] = name
        return self

    def register_static_module(self, name: str, module: Module) -> 'Engine':
        self.static_modules[name] = module
        return self

    def set_module_resolver(self, resolver: Optional[ModuleResolver]) -> 'Engine':
        self.module_resolver = resolver
        return self

    # ---------------- Compilation ----------------

    def compile(self, script: str, source: Optional[str] = None) -> AST:
        """Parse ``script``; raises ErrorParsing on any syntax error."""
        program, fndefs = parse_source(script, self.max_expr_depth)
        ast = AST(program, source=source or "")

        for node in fndefs:
            name_tok, params, body = node.children[:3]
            private = len(node.children) > 3
            fn = ScriptFnDef(
                name=name_tok.value,
                params=[tok.value for tok in params.children],
                body=body,
                lib=ast,
                private=private,
                position=Position(node.meta.line, node.meta.column),
            )
            ast.functions[(fn.name, fn.arity)] = fn

        return ast

    # ---------------- Evaluation ----------------

    def _global_frame(self, ast: AST) -> Frame:
        frame = Frame(EvalState(self), ast)
        frame.is_global = True
        return frame

    def eval_ast(self, ast: AST) -> Value:
        frame = self._global_frame(ast)
        try:
            return eval_statements(ast.program.children, frame)
        except (Return, Exit) as done:
            return done.value

    def eval(self, script: str) -> Value:
        return self.eval_ast(self.compile(script))

    def eval_ast_as_module(self, ast: AST) -> Module:
        """Run ``ast`` and collect its exported variables, public functions and imports."""
        frame = self._global_frame(ast)
        try:
            eval_statements(ast.program.children, frame)
        except (Return, Exit):
            pass

        module = Module(source=ast.source)
        for name, alias in frame.exports.items():
            module.variables[alias] = frame.vars[name]
        for key, fn in ast.functions.items():
            if not fn.private:
                module.functions[key] = fn
        for name, value in frame.vars.items():
            if isinstance(value, Module):
                module.sub_modules[name] = value
        return module

    def call_fn_ptr(self, ast: AST, fn_ptr: FnPtr, args: Sequence[Value] = (), expect_unit: bool = False) -> Value:
        """Call ``fn_ptr`` against the functions of ``ast`` in a fresh evaluation."""
        frame = self._global_frame(ast)
        try:
            result = call_fn_ptr_value(fn_ptr, list(args), frame, NO_POSITION)
        except (Return, Exit) as done:
            result = done.value

        if expect_unit and result is not None:
            raise ErrorMismatchOutputType("()", type_name(result, self.type_names))
        return result

    # ---------------- Host calls ----------------

    def call_host(self, name: str, args: List[Value], frame: Frame, position: Position) -> Value:
        for overload in self.host_functions[name]:
            if overload.accepts(args):
                return self.invoke_native(overload.fn, name, args, position)

        signature = ", ".join(type_name(a, self.type_names) for a in args)
        raise ErrorFunctionNotFound(f"{name} ({signature})", position)

    def invoke_native(self, fn: Callable[..., Value], name: str, args: List[Value], position: Position) -> Value:
        """Call a host callable; ValueError becomes a script-level runtime error."""
        try:
            return fn(*args)
        except EvalAltError as err:
            raise err.with_position(position)
        except ValueError as exc:
            logger.debug("host function %s failed: %s", name, exc)
            raise ErrorRuntime(str(exc), position) from exc
