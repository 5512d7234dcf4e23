from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from .engine import FnPtr


@dataclass(frozen=True)
class Test:
    __test__ = False

    name: str
    fn: FnPtr
    path: str


@dataclass
class TestSuite:
    __test__ = False

    path: str
    passed: bool = True


@dataclass(frozen=True)
class ExpectationResult:
    """Outcome of one matcher call; ``error`` is None when it passed."""
    error: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.error is None

    @classmethod
    def ok(cls) -> 'ExpectationResult':
        return cls()

    @classmethod
    def failed(cls, message: str) -> 'ExpectationResult':
        return cls(message)


class TestRegistry:
    """Tests and suites discovered during a run plus the results of the running test.

    Matchers cannot tell which test invoked them, so expectation results
    accumulate here and the orchestrator clears them after every test.
    """

    __test__ = False  # not a pytest class

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.tests: List[Test] = []
        self.suites: Dict[str, TestSuite] = {}
        self.passed_tests = 0
        self.failed_tests = 0
        self.expect_results: List[ExpectationResult] = []
        # file whose top level is being evaluated; `test(...)` registers against it
        self.current_path: Optional[str] = None

    def add_suite(self, path: str) -> TestSuite:
        with self._lock:
            suite = self.suites.get(path)
            if suite is None:
                suite = self.suites[path] = TestSuite(path)
            return suite

    def fail_suite(self, path: str) -> None:
        with self._lock:
            suite = self.suites.get(path)
            if suite is not None:
                suite.passed = False

    def has_failed_suites(self) -> bool:
        with self._lock:
            return any(not suite.passed for suite in self.suites.values())

    def add_test(self, name: str, fn: FnPtr, path: Optional[str] = None) -> Test:
        owner = path if path is not None else self.current_path
        if owner is None:
            raise ValueError(f"test '{name}' registered outside of a test file")
        test = Test(name, fn, owner)
        with self._lock:
            self.tests.append(test)
        return test

    def tests_for(self, path: str) -> List[Test]:
        with self._lock:
            return [test for test in self.tests if test.path == path]

    def record_test(self, passed: bool) -> None:
        with self._lock:
            if passed:
                self.passed_tests += 1
            else:
                self.failed_tests += 1

    def add_expect_result(self, result: ExpectationResult) -> None:
        with self._lock:
            self.expect_results.append(result)

    def first_failure(self) -> Optional[str]:
        with self._lock:
            for result in self.expect_results:
                if not result.passed:
                    return result.error
        return None

    def clear_expect_results(self) -> None:
        with self._lock:
            self.expect_results = []

    @property
    def suite_counts(self) -> Dict[str, int]:
        with self._lock:
            passed = sum(1 for suite in self.suites.values() if suite.passed)
            return {"passed": passed, "failed": len(self.suites) - passed, "total": len(self.suites)}
