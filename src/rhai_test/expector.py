"""The ``expect(value)`` assertion object exposed to scripts.

An Expector is created unbound by ``expect`` and immediately bound to the
run's services. Every matcher records exactly one ExpectationResult in the
test registry and returns unit to the script, so one test can collect
several independent failures.

The throw matchers have to run the function they hold. The caller already
owns the primary engine, so they build a fresh engine through the engine
factory instead of re-entering it.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Union

from .engine import AST, Engine, ErrorRuntime, EvalAltError, FnPtr, to_debug, to_display, type_name
from .logs import LogLevel, LoggingContainer
from .registry import ExpectationResult, TestRegistry
from .stacktrace import format_stack_trace, innermost_error, to_stack_trace

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR = "Unexpected error ocurred when running tests."

# ---------- Matcher inputs ----------

@dataclass(frozen=True)
class StringValue:
    value: str

@dataclass(frozen=True)
class BoolValue:
    value: bool

@dataclass(frozen=True)
class IntValue:
    value: int

@dataclass(frozen=True)
class NothingValue:
    pass

@dataclass(frozen=True)
class FunctionValue:
    fn: FnPtr

@dataclass(frozen=True)
class LogLevelValue:
    level: LogLevel

@dataclass(frozen=True)
class Unsupported:
    description: str

ExpectedValue = Union[StringValue, BoolValue, IntValue, NothingValue, FunctionValue, LogLevelValue, Unsupported]


def expected_value(value: object) -> ExpectedValue:
    if value is None:
        return NothingValue()
    if isinstance(value, bool):
        return BoolValue(value)
    if isinstance(value, int):
        return IntValue(value)
    if isinstance(value, str):
        return StringValue(str(value))
    if isinstance(value, FnPtr):
        return FunctionValue(value)
    if isinstance(value, LogLevel):
        return LogLevelValue(value)
    return Unsupported(f"Unsupported value type for expect: {type_name(value)}")


def _describe(value: ExpectedValue) -> str:
    match value:
        case StringValue(v) | BoolValue(v) | IntValue(v):
            return to_debug(v)
        case NothingValue():
            return "()"
        case FunctionValue(fn):
            return repr(fn)
        case LogLevelValue(level):
            return f"LogLevel::{level.name.capitalize()}"
        case Unsupported(description):
            return description
    return repr(value)


def _matches(actual: str, pattern: str, full: bool) -> bool:
    """Equality, or a regex match; an invalid pattern only compares equal."""
    if actual == pattern:
        return True
    try:
        regex = re.compile(pattern)
    except re.error:
        return False
    found = regex.fullmatch(actual) if full else regex.search(actual)
    return found is not None


class CurrentProgram:
    """The compiled test file whose functions matchers call back into."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ast: Optional[AST] = None

    def set(self, ast: Optional[AST]) -> None:
        with self._lock:
            self._ast = ast

    def get(self) -> Optional[AST]:
        with self._lock:
            return self._ast


@dataclass(frozen=True)
class Throw:
    """What invoking the held function produced."""
    error: Optional[EvalAltError] = None
    message: str = ""
    status: str = ""
    unexpected: Optional[str] = None

    @property
    def thrown(self) -> bool:
        return self.error is not None


class Expector:
    def __init__(self, value: object) -> None:
        self.value = expected_value(value)
        self.raw = value
        self.negative = False
        self._program: Optional[CurrentProgram] = None
        self._registry: Optional[TestRegistry] = None
        self._logs: Optional[LoggingContainer] = None
        self._engine_factory: Optional[Callable[[], Engine]] = None

    def attach(
        self,
        program: CurrentProgram,
        registry: TestRegistry,
        logs: LoggingContainer,
        engine_factory: Callable[[], Engine],
    ) -> 'Expector':
        self._program = program
        self._registry = registry
        self._logs = logs
        self._engine_factory = engine_factory
        return self

    @property
    def is_bound(self) -> bool:
        return self._registry is not None

    def __repr__(self) -> str:
        prefix = "not " if self.negative else ""
        return f"<Expector {prefix}{_describe(self.value)}>"

    def not_(self) -> 'Expector':
        other = Expector(self.raw)
        other.negative = not self.negative
        other._program = self._program
        other._registry = self._registry
        other._logs = self._logs
        other._engine_factory = self._engine_factory
        return other

    # ---------------- Recording ----------------

    def _require_bound(self) -> None:
        if self._registry is None:
            raise ValueError("expect() used before it was bound to a test run")

    def _record(self, error: Optional[str]) -> None:
        self._require_bound()
        result = ExpectationResult.ok() if error is None else ExpectationResult.failed(error)
        self._registry.add_expect_result(result)

    def _verdict(self, condition: bool, failure: str, negated_failure: str) -> None:
        if condition and self.negative:
            self._record(negated_failure)
        elif not condition and not self.negative:
            self._record(failure)
        else:
            self._record(None)

    def _type_mismatch(self, matcher: str, wanted: str) -> None:
        if isinstance(self.value, Unsupported):
            self._record(self.value.description)
        else:
            self._record(f"Type mismatch: {matcher} expects {wanted} but got {_describe(self.value)}")

    # ---------------- Value matchers ----------------

    def to_be(self, expected: object) -> None:
        if isinstance(self.value, Unsupported):
            self._record(self.value.description)
            return

        other = expected_value(expected)
        if isinstance(other, Unsupported):
            self._record(other.description)
            return

        condition = type(other) is type(self.value) and other == self.value
        self._verdict(
            condition,
            f"Expected value to be {_describe(other)} but instead got {_describe(self.value)}",
            f"Expected value {_describe(self.value)} to not be {_describe(other)} but it was",
        )

    def to_exist(self) -> None:
        if isinstance(self.value, Unsupported):
            self._record(self.value.description)
            return

        self._verdict(
            not isinstance(self.value, NothingValue),
            "Expected value to exist but it was ()",
            f"Expected value {_describe(self.value)} to not exist but it did",
        )

    def to_match(self, pattern: str) -> None:
        if not isinstance(self.value, StringValue):
            self._type_mismatch("to_match", "a string")
            return
        try:
            regex = re.compile(pattern)
        except re.error as exc:
            self._record(f"Invalid pattern {to_debug(pattern)}: {exc}")
            return

        self._verdict(
            regex.search(self.value.value) is not None,
            f"Expected value {_describe(self.value)} to match pattern {to_debug(pattern)} but it did not",
            f"Expected value {_describe(self.value)} to not match pattern {to_debug(pattern)} but it did",
        )

    # ---------------- Throw matchers ----------------

    def _invoke(self) -> Optional[Throw]:
        """Run the held function on a fresh engine; None if there is no function."""
        if not isinstance(self.value, FunctionValue):
            self._type_mismatch("a throw matcher", "a function")
            return None
        self._require_bound()

        program = self._program.get()
        if program is None:
            raise ValueError("no test program is loaded")

        engine = self._engine_factory()
        try:
            engine.call_fn_ptr(program, self.value.fn)
        except EvalAltError as err:
            frames = to_stack_trace(err)
            if not isinstance(innermost_error(err), ErrorRuntime):
                logger.debug("function under test failed with %s", type(err).__name__)
                return Throw(err, unexpected=format_stack_trace(UNEXPECTED_ERROR, frames))
            last = frames[-1]
            return Throw(err, last.message, last.status)
        return Throw()

    def _check_throw(self, outcome: Throw, mismatch: Optional[str] = None) -> None:
        if outcome.unexpected is not None:
            self._record(outcome.unexpected)
        elif not outcome.thrown and not self.negative:
            self._record("Expected function to throw but it did not")
        elif outcome.thrown and self.negative:
            self._record("Expected function to not throw but it did")
        elif outcome.thrown and mismatch is not None:
            self._record(mismatch)
        else:
            self._record(None)

    def _status_mismatch(self, outcome: Throw, status: object) -> Optional[str]:
        wanted = to_display(status)
        if _matches(outcome.status, wanted, full=True):
            return None
        return f"Expected function to throw error with status '{wanted}' but instead received '{outcome.status}'"

    def _message_mismatch(self, outcome: Throw, message: str) -> Optional[str]:
        if _matches(outcome.message, message, full=False):
            return None
        return f"Expected function to throw error with message '{message}' but instead received '{outcome.message}'"

    def to_throw(self) -> None:
        outcome = self._invoke()
        if outcome is not None:
            self._check_throw(outcome)

    def to_throw_message(self, message: str) -> None:
        outcome = self._invoke()
        if outcome is not None:
            self._check_throw(outcome, self._message_mismatch(outcome, message))

    def to_throw_status(self, status: object) -> None:
        outcome = self._invoke()
        if outcome is not None:
            self._check_throw(outcome, self._status_mismatch(outcome, status))

    def to_throw_status_and_message(self, status: object, message: str) -> None:
        outcome = self._invoke()
        if outcome is not None:
            mismatch = self._status_mismatch(outcome, status) or self._message_mismatch(outcome, message)
            self._check_throw(outcome, mismatch)

    # ---------------- Log matchers ----------------

    def to_log(self) -> None:
        if not isinstance(self.value, LogLevelValue):
            self._type_mismatch("to_log", "a LogLevel")
            return
        self._require_bound()

        level = self.value.level
        self._verdict(
            self._logs.has_log(level),
            f"Expected a log with level '{level}' but none was captured",
            f"Expected no log with level '{level}' but one was captured",
        )

    def to_log_message(self, pattern: str) -> None:
        if not isinstance(self.value, LogLevelValue):
            self._type_mismatch("to_log_message", "a LogLevel")
            return
        self._require_bound()

        level = self.value.level
        captured = "\n".join(f"\t\t\t{log}" for log in self._logs.get_logs()) or "\t\t\t(no logs)"
        self._verdict(
            self._logs.has_matching_log(level, pattern),
            f"Expected a log with level '{level}' matching '{pattern}' but none was captured. Captured logs:\n{captured}",
            f"Expected no log with level '{level}' matching '{pattern}' but one was captured. Captured logs:\n{captured}",
        )
