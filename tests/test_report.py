from __future__ import annotations

import io

import pytest

from rhai_test.coverage import Band, CoverageCell, CoverageRow
from rhai_test.report import COVERAGE_HEADERS, ConsoleReporter, coverage_table, format_elapsed
from rhai_test.runner import RunResult, SuiteResult, TestResult


@pytest.mark.parametrize(
    "seconds, text",
    [
        pytest.param(0.0123, "12.30 ms", id="milliseconds"),
        pytest.param(0.9999, "999.90 ms", id="just-under-a-second"),
        pytest.param(2.5, "2.50 s", id="seconds"),
    ],
)
def test_format_elapsed(seconds: float, text: str) -> None:
    assert format_elapsed(seconds) == text


def _cell(percent: float) -> CoverageCell:
    return CoverageCell(percent, Band.of(percent))


def test_coverage_table_lists_every_source() -> None:
    rows = [
        CoverageRow("calc", _cell(50.0), _cell(100.0), _cell(50.0), [6, 7]),
        CoverageRow("main", _cell(100.0), _cell(100.0), _cell(100.0), []),
    ]

    table = coverage_table(rows)

    for header in COVERAGE_HEADERS:
        assert header in table
    assert "6,7" in table
    # band colors wrap the cell text
    assert "\x1b[33m50\x1b[0m" in table
    assert "\x1b[32m100\x1b[0m" in table


def _run() -> RunResult:
    passing = SuiteResult("tests/a.test.rhai", [TestResult("adds", True)])
    failing = SuiteResult(
        "tests/b.test.rhai",
        [TestResult("ok", True), TestResult("bad", False, 'Expected value to be "1" but instead got 1')],
    )
    broken = SuiteResult("tests/c.test.rhai", error="Compilation Error:\n\t\tParsing Error: oops")
    return RunResult([passing, failing, broken], None, 0.25)


def test_suite_output() -> None:
    out = io.StringIO()
    reporter = ConsoleReporter(out)

    for suite in _run().suites:
        reporter.suite_finished(suite)

    text = out.getvalue()
    assert " PASS  tests/a.test.rhai" in text
    assert "\t✓ adds" in text
    assert " FAIL  tests/b.test.rhai" in text
    assert '\t✗ bad\n\t\tExpected value to be "1" but instead got 1' in text
    assert "Parsing Error: oops" in text


def test_summary_output() -> None:
    out = io.StringIO()
    result = _run()
    result.coverage = [CoverageRow("calc", _cell(50.0), _cell(100.0), _cell(0.0), [2])]

    ConsoleReporter(out).run_finished(result)

    text = out.getvalue()
    assert "Test Suites: 1 passed, 2 failed, 3 total" in text
    assert "Tests:       2 passed, 1 failed, 3 total" in text
    assert "Time:        250.00 ms" in text
    assert "% Stmts" in text
    assert "calc" in text


def test_non_terminal_output_is_plain_text() -> None:
    out = io.StringIO()
    result = _run()
    result.coverage = [CoverageRow("calc", _cell(50.0), _cell(100.0), _cell(0.0), [2])]
    reporter = ConsoleReporter(out)

    for suite in result.suites:
        reporter.suite_finished(suite)
    reporter.run_finished(result)

    text = out.getvalue()
    assert "\r" not in text
    assert "\x1b[" not in text
    assert text.startswith(" PASS  tests/a.test.rhai\n\t✓ adds\n")
