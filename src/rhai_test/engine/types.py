from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Set, Tuple

from lark import Tree
from typing_extensions import TypeAlias

from .errors import ErrorAssignmentToConstant, ErrorVariableNotFound, Position

if TYPE_CHECKING:
    from .engine import Engine

# ---------- Value Model ----------
#
# Script values are plain Python objects: int (i64), float (f64), bool, str,
# list (array), dict (map), range, None (unit), plus the classes below.

Value: TypeAlias = Any

@dataclass
class ScriptFnDef:
    name: str
    params: List[str]
    body: Tree
    lib: 'AST'
    private: bool = False
    captured: Optional['Frame'] = None  # closures only
    position: Position = field(default_factory=Position)

    @property
    def arity(self) -> int:
        return len(self.params)

@dataclass
class FnPtr:
    """Function pointer: a named function or an anonymous closure, plus curried args."""
    name: str
    curried: List[Value] = field(default_factory=list)
    fn_def: Optional[ScriptFnDef] = None

    def __repr__(self) -> str:
        return f"Fn({self.name})"

@dataclass
class AST:
    """A compiled program: top-level statements plus hoisted functions."""
    program: Tree
    functions: Dict[Tuple[str, int], ScriptFnDef] = field(default_factory=dict)
    source: str = ""
    imports: Dict[str, 'Module'] = field(default_factory=dict)

    def set_source(self, source: str) -> None:
        self.source = source

    def get_fn(self, name: str, arity: int) -> Optional[ScriptFnDef]:
        return self.functions.get((name, arity))

    def has_fn(self, name: str) -> bool:
        return any(key[0] == name for key in self.functions)

@dataclass(eq=False)
class Module:
    """Namespace produced by evaluating a script as a module, or built by the host."""
    source: str = ""
    variables: Dict[str, Value] = field(default_factory=dict)
    functions: Dict[Tuple[str, int], ScriptFnDef] = field(default_factory=dict)
    host_functions: Dict[str, Callable[..., Value]] = field(default_factory=dict)
    sub_modules: Dict[str, 'Module'] = field(default_factory=dict)

    def set_var(self, name: str, value: Value) -> 'Module':
        self.variables[name] = value
        return self

    def set_native_fn(self, name: str, fn: Callable[..., Value]) -> 'Module':
        self.host_functions[name] = fn
        return self

    def get_fn(self, name: str, arity: int) -> Optional[ScriptFnDef]:
        fn = self.functions.get((name, arity))
        if fn is None or fn.private:
            return None
        return fn

    def __repr__(self) -> str:
        return f"<module {self.source or '?'}>"

NO_THIS = object()

# ---------- Scopes ----------

class EvalState:
    """Bookkeeping shared by every frame of one top-level evaluation."""

    def __init__(self, engine: 'Engine'):
        self.engine = engine
        self.call_depth = 0
        self.operations = 0
        self.modules = 0

class Frame:
    def __init__(self, state: EvalState, lib: AST, parent: Optional['Frame']=None, this: Any=NO_THIS):
        self.state = state
        self.lib = lib
        self.parent = parent
        self.vars: Dict[str, Value] = {}
        self.constants: Set[str] = set()
        self.exports: Dict[str, str] = {}
        self.is_global = False
        # `this` lives in a cell shared by the nested block frames of one call
        self._this_cell: List[Any] = [this]
        # `this` as left by the most recent method call made from this frame
        self.last_this: Any = NO_THIS

    @property
    def this(self) -> Any:
        return self._this_cell[0]

    @this.setter
    def this(self, value: Any) -> None:
        self._this_cell[0] = value

    def child(self) -> 'Frame':
        frame = Frame(self.state, self.lib, parent=self)
        frame._this_cell = self._this_cell
        return frame

    def define(self, name: str, val: Value, const: bool=False) -> None:
        self.vars[name] = val
        if const:
            self.constants.add(name)
        else:
            self.constants.discard(name)

    def has(self, name: str) -> bool:
        frame: Optional[Frame] = self
        while frame is not None:
            if name in frame.vars:
                return True
            frame = frame.parent
        return False

    def get(self, name: str) -> Value:
        frame: Optional[Frame] = self
        while frame is not None:
            if name in frame.vars:
                return frame.vars[name]
            frame = frame.parent

        raise ErrorVariableNotFound(name)

    def set(self, name: str, val: Value) -> None:
        frame: Optional[Frame] = self
        while frame is not None:
            if name in frame.vars:
                if name in frame.constants:
                    raise ErrorAssignmentToConstant(name)
                frame.vars[name] = val
                return
            frame = frame.parent

        raise ErrorVariableNotFound(name)

# ---------- Type names and formatting ----------

def type_name(value: Value, custom: Mapping[type, str] = {}) -> str:
    if value is None:
        return "()"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "i64"
    if isinstance(value, float):
        return "f64"
    if isinstance(value, str):
        return "char" if isinstance(value, Char) else "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "map"
    if isinstance(value, FnPtr):
        return "Fn"
    if isinstance(value, InclusiveRange):
        return "range="
    if isinstance(value, range):
        return "range"
    if isinstance(value, Module):
        return "module"

    name = custom.get(type(value))
    if name is not None:
        return name
    return type(value).__name__

class Char(str):
    """Single character; behaves as a string everywhere except its type name."""

@dataclass(frozen=True)
class InclusiveRange:
    start: int
    end: int

    def as_range(self) -> range:
        return range(self.start, self.end + 1)

def to_display(value: Value) -> str:
    """String form used by print, to_string and string concatenation."""
    if isinstance(value, str):
        return str(value)
    return to_debug(value)

def to_debug(value: Value) -> str:
    """String form used by debug and inside containers: strings are quoted."""
    if value is None:
        return "()"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        text = repr(value)
        return text if ("." in text or "e" in text or "n" in text) else text + ".0"
    if isinstance(value, Char):
        return repr(str(value))
    if isinstance(value, str):
        return '"' + value.replace('\\', '\\\\').replace('"', '\\"') + '"'
    if isinstance(value, list):
        return "[" + ", ".join(to_debug(x) for x in value) + "]"
    if isinstance(value, dict):
        return "#{" + ", ".join(f"{to_debug(k)}: {to_debug(v)}" for k, v in value.items()) + "}"
    if isinstance(value, InclusiveRange):
        return f"{value.start}..={value.end}"
    if isinstance(value, range):
        return f"{value.start}..{value.stop}"
    return repr(value)

def clone_value(value: Value) -> Value:
    """Value semantics for containers: arrays and maps are copied on binding."""
    if isinstance(value, list):
        return [clone_value(x) for x in value]
    if isinstance(value, dict):
        return {k: clone_value(v) for k, v in value.items()}
    return value

def values_equal(left: Value, right: Value) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    if isinstance(left, str) and isinstance(right, str):
        return str(left) == str(right)
    if type(left) is not type(right):
        return False
    if isinstance(left, list):
        return len(left) == len(right) and all(values_equal(a, b) for a, b in zip(left, right))
    if isinstance(left, dict):
        return left.keys() == right.keys() and all(values_equal(left[k], right[k]) for k in left)
    return left == right
