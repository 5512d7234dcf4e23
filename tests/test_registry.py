from __future__ import annotations

import logging

import pytest

from rhai_test.engine import FnPtr
from rhai_test.logs import LoggingContainer, LogLevel
from rhai_test.registry import ExpectationResult, TestRegistry


def test_add_suite_is_idempotent() -> None:
    registry = TestRegistry()
    first = registry.add_suite("a.test.rhai")
    registry.fail_suite("a.test.rhai")

    assert registry.add_suite("a.test.rhai") is first
    assert not first.passed
    assert registry.suite_counts == {"passed": 0, "failed": 1, "total": 1}


def test_tests_belong_to_the_current_file() -> None:
    registry = TestRegistry()
    with pytest.raises(ValueError):
        registry.add_test("orphan", FnPtr("f"))

    registry.current_path = "a.test.rhai"
    registry.add_test("one", FnPtr("f"))
    registry.current_path = "b.test.rhai"
    registry.add_test("two", FnPtr("g"))

    assert [t.name for t in registry.tests_for("a.test.rhai")] == ["one"]
    assert [t.name for t in registry.tests_for("b.test.rhai")] == ["two"]


def test_first_failure_and_clear() -> None:
    registry = TestRegistry()
    registry.add_expect_result(ExpectationResult.ok())
    registry.add_expect_result(ExpectationResult.failed("first"))
    registry.add_expect_result(ExpectationResult.failed("second"))

    assert registry.first_failure() == "first"
    registry.clear_expect_results()
    assert registry.first_failure() is None


@pytest.mark.parametrize(
    "pattern, found",
    [
        pytest.param("disk full", True, id="exact"),
        pytest.param("disk", True, id="substring-regex"),
        pytest.param("^full", False, id="anchored-miss"),
        pytest.param("(", False, id="invalid-regex-compares-equal-only"),
    ],
)
def test_matching_logs(pattern: str, found: bool) -> None:
    logs = LoggingContainer()
    logs.add_log("disk full", LogLevel.WARN)

    assert logs.has_matching_log(LogLevel.WARN, pattern) is found
    assert not logs.has_matching_log(LogLevel.ERROR, "disk full")


def test_invalid_regex_still_matches_identical_text() -> None:
    logs = LoggingContainer()
    logs.add_log("(", LogLevel.INFO)
    assert logs.has_matching_log(LogLevel.INFO, "(")


def test_captured_logs_are_forwarded_to_logging(caplog: pytest.LogCaptureFixture) -> None:
    logs = LoggingContainer()
    with caplog.at_level(logging.DEBUG, logger="rhai_test.script"):
        logs.add_log("traced", LogLevel.TRACE)
        logs.add_log("careful", LogLevel.WARN)

    assert [(r.levelno, r.getMessage()) for r in caplog.records] == [
        (logging.DEBUG, "traced"),
        (logging.WARNING, "careful"),
    ]
    logs.reset()
    assert logs.get_logs() == []
