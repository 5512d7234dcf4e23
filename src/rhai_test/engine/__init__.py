"""Interpreter for the Rhai scripting dialect used by test files."""

from .engine import ANY, Engine, HostFunction, ModuleResolver
from .errors import *  # noqa: F401,F403
from .errors import EvalAltError, Position
from .types import AST, Char, FnPtr, InclusiveRange, Module, to_debug, to_display, type_name

__all__ = [
    "ANY",
    "AST",
    "Char",
    "Engine",
    "EvalAltError",
    "FnPtr",
    "HostFunction",
    "InclusiveRange",
    "Module",
    "ModuleResolver",
    "Position",
    "to_debug",
    "to_display",
    "type_name",
]
