"""File module resolver with optional coverage instrumentation and a shared cache."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Dict, Optional, Set, Union

from .coverage import CoverageRegistry
from .engine import Engine, ErrorInModule, ErrorModuleNotFound, ErrorSystem, EvalAltError, Module, Position
from .instrument import instrument_source

logger = logging.getLogger(__name__)

SCRIPT_EXTENSION = ".rhai"


class ModuleCache:
    """Compiled modules keyed by absolute path, shared by every engine of one run."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._modules: Dict[Path, Module] = {}

    def get(self, path: Path) -> Optional[Module]:
        with self._lock:
            return self._modules.get(path)

    def insert(self, path: Path, module: Module) -> Module:
        """Store ``module`` unless another one won the race; return the cached one."""
        with self._lock:
            return self._modules.setdefault(path, module)

    def clear(self) -> None:
        with self._lock:
            self._modules.clear()

    def __contains__(self, path: Path) -> bool:
        with self._lock:
            return path in self._modules

    def __len__(self) -> int:
        with self._lock:
            return len(self._modules)


class FileModuleResolver:
    """Turns ``import "path"`` into a module evaluated from ``<base_path>/path.rhai``.

    With a coverage registry every line of a freshly loaded file goes through
    the instrumenter before compilation. A module is compiled, instrumented
    and evaluated at most once per cache.
    """

    def __init__(
        self,
        base_path: Union[str, Path],
        coverage: Optional[CoverageRegistry] = None,
        cache: Optional[ModuleCache] = None,
    ) -> None:
        self.base_path = Path(base_path)
        self.coverage = coverage
        self.cache = cache if cache is not None else ModuleCache()
        self._loading: Set[Path] = set()
        self._lock = threading.Lock()

    def file_path(self, path: str) -> Path:
        file_path = Path(path)
        if not file_path.is_absolute():
            file_path = self.base_path / file_path
        return file_path.with_suffix(SCRIPT_EXTENSION).resolve()

    def resolve(self, engine: Engine, source: str, path: str, position: Position) -> Module:
        del source  # imports resolve against base_path, not the importing file

        try:
            file_path = self.file_path(path)
        except ValueError:
            raise ErrorModuleNotFound(path, position) from None

        cached = self.cache.get(file_path)
        if cached is not None:
            logger.debug("module cache hit: %s", file_path)
            return cached

        with self._lock:
            if file_path in self._loading:
                raise ErrorInModule(path, ErrorSystem("circular import"), position)
            self._loading.add(file_path)

        try:
            module = self._load(engine, path, file_path, position)
        finally:
            with self._lock:
                self._loading.discard(file_path)

        return self.cache.insert(file_path, module)

    def _load(self, engine: Engine, path: str, file_path: Path, position: Position) -> Module:
        logger.debug("module cache miss: %s", file_path)
        try:
            text = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("cannot read module %s: %s", file_path, exc)
            raise ErrorModuleNotFound(path, position) from None

        if self.coverage is not None:
            text = instrument_source(text, path, self.coverage)

        try:
            ast = engine.compile(text)
        except EvalAltError as err:
            raise ErrorInModule(path, err, position) from None
        ast.set_source(path)

        try:
            return engine.eval_ast_as_module(ast)
        except EvalAltError as err:
            raise ErrorInModule(path, err, position) from None
