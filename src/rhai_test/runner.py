"""Discovers test files and runs them one suite at a time."""

from __future__ import annotations

import glob
import logging
import os
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from .config import Config
from .coverage import CoverageRow
from .engine import AST, Engine, ErrorMismatchOutputType, EvalAltError
from .host import EngineFactory, RunServices
from .instrument import instrument_source
from .registry import Test
from .stacktrace import format_stack_trace, to_stack_trace

logger = logging.getLogger(__name__)

TEST_HINT = "Hint: Make sure your test ends with an expect function."


@dataclass(frozen=True)
class TestResult:
    __test__ = False

    name: str
    passed: bool
    reason: str = ""


@dataclass
class SuiteResult:
    path: str
    tests: List[TestResult] = field(default_factory=list)
    # compile/eval failure of the file itself
    error: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.error is None and all(t.passed for t in self.tests)


@dataclass
class RunResult:
    suites: List[SuiteResult] = field(default_factory=list)
    coverage: Optional[List[CoverageRow]] = None
    elapsed: float = 0.0

    @property
    def passed_suites(self) -> int:
        return sum(1 for s in self.suites if s.passed)

    @property
    def failed_suites(self) -> int:
        return len(self.suites) - self.passed_suites

    @property
    def passed_tests(self) -> int:
        return sum(1 for s in self.suites for t in s.tests if t.passed)

    @property
    def failed_tests(self) -> int:
        return sum(1 for s in self.suites for t in s.tests if not t.passed)

    @property
    def total_tests(self) -> int:
        return sum(len(s.tests) for s in self.suites)

    @property
    def exit_code(self) -> int:
        return 1 if self.failed_suites else 0


class Reporter(Protocol):
    def suite_finished(self, suite: SuiteResult) -> None: ...

    def run_finished(self, result: RunResult) -> None: ...


def discover(patterns: Sequence[str]) -> List[str]:
    """Expand ``testMatch`` globs (``**`` recurses) into a sorted list of files."""
    found = set()
    for pattern in patterns:
        for path in glob.glob(pattern, recursive=True):
            if os.path.isfile(path):
                found.add(path)
    return sorted(found)


def _error_trace(header: str, err: EvalAltError) -> str:
    return format_stack_trace(header, to_stack_trace(err))


class TestRunner:
    """Runs test files against one primary engine.

    The primary engine is only driven while ``engine_lock`` is held. Host
    functions called from inside a test never take it; throw matchers get
    their own engine from the factory.
    """

    __test__ = False

    def __init__(self, services: RunServices, reporter: Optional[Reporter] = None) -> None:
        self.services = services
        self.reporter = reporter
        self.factory = EngineFactory(services)
        self.engine: Engine = self.factory()
        self.engine_lock = threading.Lock()

    # ---------------- Suites ----------------

    def run(self, paths: Sequence[str]) -> RunResult:
        start = time.perf_counter()
        result = RunResult()

        for path in paths:
            suite = self.run_file(path)
            result.suites.append(suite)
            if self.reporter is not None:
                self.reporter.suite_finished(suite)

        if self.services.coverage is not None:
            result.coverage = self.services.coverage.report()
        result.elapsed = time.perf_counter() - start

        if self.reporter is not None:
            self.reporter.run_finished(result)
        return result

    def run_file(self, path: str) -> SuiteResult:
        registry = self.services.registry
        registry.add_suite(path)
        logger.debug("running suite %s", path)

        suite = self._load_and_run(path)
        if not suite.passed:
            registry.fail_suite(path)
        return suite

    def _load_and_run(self, path: str) -> SuiteResult:
        registry = self.services.registry
        try:
            text = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            return SuiteResult(path, error=f"Could not read test file: {exc}")

        if self.services.coverage is not None:
            text = instrument_source(text, path, self.services.coverage)

        with self.engine_lock:
            try:
                ast = self.engine.compile(text, source=path)
            except EvalAltError as err:
                return SuiteResult(path, error=_error_trace("Compilation Error:", err))

            self.services.program.set(ast)
            registry.current_path = path
            try:
                self.engine.eval_ast(ast)
            except EvalAltError as err:
                return SuiteResult(path, error=_error_trace("Eval Error:", err))
            finally:
                registry.current_path = None

        return self.run_tests(ast, path)

    # ---------------- Tests ----------------

    def run_tests(self, ast: AST, path: str) -> SuiteResult:
        suite = SuiteResult(path)
        registry = self.services.registry

        # expectations made at the top level of the file belong to no test
        registry.clear_expect_results()
        self.services.logs.reset()

        for test in registry.tests_for(path):
            outcome = self.run_test(ast, test)
            registry.record_test(outcome.passed)
            suite.tests.append(outcome)

        return suite

    def run_test(self, ast: AST, test: Test) -> TestResult:
        registry = self.services.registry
        logger.debug("running test %r", test.name)
        try:
            with self.engine_lock:
                self.engine.call_fn_ptr(ast, test.fn, expect_unit=True)
        except ErrorMismatchOutputType as err:
            return TestResult(test.name, False, f"{err}\n\t\t{TEST_HINT}")
        except EvalAltError as err:
            return TestResult(test.name, False, _error_trace(str(err), err))
        else:
            failure = registry.first_failure()
            if failure is not None:
                return TestResult(test.name, False, failure)
            return TestResult(test.name, True)
        finally:
            # matchers cannot tell which test called them
            self.services.logs.reset()
            registry.clear_expect_results()


def run_pipeline(config: Config, reporter: Optional[Reporter] = None) -> RunResult:
    """Discover and run every test file of ``config`` with fresh services."""
    paths = discover(config.test_match)
    logger.info("discovered %d test file(s)", len(paths))
    runner = TestRunner(RunServices(config), reporter)
    return runner.run(paths)
