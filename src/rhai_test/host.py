"""Host functions that make an Engine a test engine, and the factory that builds it."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from .config import Config
from .coverage import CoverageRegistry
from .engine import ANY, Engine, FnPtr, Module, to_display
from .expector import CurrentProgram, Expector
from .instrument import BRANCH_PROBE, FUNCTION_PROBE, STATEMENT_PROBE
from .logs import LoggingContainer, LogLevel
from .registry import TestRegistry
from .resolver import FileModuleResolver, ModuleCache

logger = logging.getLogger(__name__)


@dataclass
class RunServices:
    """Shared state of one run, handed to every engine the factory builds."""
    config: Config
    registry: TestRegistry = field(default_factory=TestRegistry)
    logs: LoggingContainer = field(default_factory=LoggingContainer)
    cache: ModuleCache = field(default_factory=ModuleCache)
    program: CurrentProgram = field(default_factory=CurrentProgram)
    coverage: Optional[CoverageRegistry] = None

    def __post_init__(self) -> None:
        if self.config.coverage and self.coverage is None:
            self.coverage = CoverageRegistry()


class EngineFactory:
    """Builds engines configured for a run.

    The first engine is configured by registering everything; later ones are
    forks of it, so an engine for a throw matcher costs a table copy.
    """

    def __init__(self, services: RunServices) -> None:
        self.services = services
        self.resolver = FileModuleResolver(services.config.base_path, services.coverage, services.cache)
        self._template: Optional[Engine] = None

    def __call__(self) -> Engine:
        if self._template is None:
            self._template = self._configure(Engine())
        return self._template.fork()

    def _configure(self, engine: Engine) -> Engine:
        engine.set_module_resolver(self.resolver)
        register_test_api(engine, self.services, self)
        register_log_hooks(engine, self.services.logs)
        register_helpers(engine)
        if self.services.coverage is not None:
            register_coverage_probes(engine, self.services.coverage)
        return engine


def register_test_api(engine: Engine, services: RunServices, factory: EngineFactory) -> None:
    registry = services.registry

    def test(name: str, fn: FnPtr) -> None:
        test_ = registry.add_test(name, fn)
        logger.debug("registered test %r in %s", name, test_.path)

    def expect(value: object) -> Expector:
        return Expector(value).attach(services.program, registry, services.logs, factory)

    engine.register_type_with_name(Expector, "Expector")
    engine.register_fn("test", test, (str, FnPtr))
    engine.register_fn("expect", expect, (ANY,))
    engine.register_fn("not", Expector.not_, (Expector,))
    engine.register_fn("to_be", Expector.to_be, (Expector, ANY))
    engine.register_fn("to_exist", Expector.to_exist, (Expector,))
    engine.register_fn("to_match", Expector.to_match, (Expector, str))
    engine.register_fn("to_throw", Expector.to_throw, (Expector,))
    engine.register_fn("to_throw_message", Expector.to_throw_message, (Expector, str))
    engine.register_fn("to_throw_status", Expector.to_throw_status, (Expector, ANY))
    engine.register_fn(
        "to_throw_status_and_message", Expector.to_throw_status_and_message, (Expector, ANY, str)
    )
    engine.register_fn("to_log", Expector.to_log, (Expector,))
    engine.register_fn("to_log_message", Expector.to_log_message, (Expector, str))


def register_log_hooks(engine: Engine, logs: LoggingContainer) -> None:
    levels = Module(source="LogLevel")
    engine.register_type_with_name(LogLevel, "LogLevel")

    for level in LogLevel:
        levels.set_var(level.name.capitalize(), level)

        def hook(message: object, level: LogLevel = level) -> None:
            logs.add_log(to_display(message), level)

        engine.register_fn(f"log_{level.value}", hook, (ANY,))

    engine.register_static_module("LogLevel", levels)


def register_helpers(engine: Engine) -> None:
    def set_env(name: str, value: object) -> None:
        os.environ[name] = to_display(value)

    def get_env(name: str) -> Optional[str]:
        return os.environ.get(name)

    engine.register_fn("set_env", set_env, (str, ANY))
    engine.register_fn("get_env", get_env, (str,))


def register_coverage_probes(engine: Engine, coverage: CoverageRegistry) -> None:
    engine.register_fn(FUNCTION_PROBE, coverage.function_called, (str, str, int))
    engine.register_fn(STATEMENT_PROBE, coverage.statement_called, (str, int))
    engine.register_fn(BRANCH_PROBE, coverage.branch_called, (str, int))
