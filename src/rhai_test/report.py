"""Terminal output of a run: suite results, the coverage table and the summary."""

from __future__ import annotations

import sys
from typing import List, Optional, TextIO, Tuple, Union

from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import ANSI, FormattedText, to_plain_text
from prompt_toolkit.styles import Style
from tabulate import tabulate

from .coverage import Band, CoverageCell, CoverageRow
from .runner import RunResult, SuiteResult

STYLE = Style.from_dict({
    "badge.pass": "bg:ansigreen ansiwhite bold",
    "badge.fail": "bg:ansired ansiwhite bold",
    "mark.pass": "ansigreen bold",
    "mark.fail": "ansired bold",
    "reason": "ansired",
    "passed": "ansigreen",
    "failed": "ansired",
})

# tabulate measures cells without their escape codes
_BAND_ANSI = {
    Band.GOOD: "\x1b[32m",
    Band.WARN: "\x1b[33m",
    Band.CRITICAL: "\x1b[31m",
}
_RESET = "\x1b[0m"

COVERAGE_HEADERS = ["Source", "% Stmts", "% Branch", "% Funcs", "Uncovered Line #s"]

Fragments = List[Tuple[str, str]]


def format_elapsed(seconds: float) -> str:
    if seconds < 1.0:
        return f"{seconds * 1000.0:.2f} ms"
    return f"{seconds:.2f} s"


def _cell(cell: CoverageCell) -> str:
    return f"{_BAND_ANSI[cell.band]}{cell}{_RESET}"


def coverage_table(rows: List[CoverageRow]) -> str:
    table = [COVERAGE_HEADERS]
    for row in rows:
        table.append([
            row.source,
            _cell(row.statements),
            _cell(row.branches),
            _cell(row.functions),
            row.uncovered_text,
        ])
    return tabulate(table, headers="firstrow", tablefmt="simple_grid")


def _counts(label: str, passed: int, failed: int, total: int) -> Fragments:
    fragments: Fragments = [("", label), ("class:passed", f"{passed} passed"), ("", ", ")]
    if failed:
        fragments += [("class:failed", f"{failed} failed"), ("", ", ")]
    fragments.append(("", f"{total} total\n"))
    return fragments


class ConsoleReporter:
    """Writes results as they arrive. Colors are dropped when ``file`` is not a terminal."""

    def __init__(self, file: Optional[TextIO] = None) -> None:
        self.file = file

    @property
    def out(self) -> TextIO:
        return self.file if self.file is not None else sys.stdout

    def _print(self, text: Union[FormattedText, ANSI]) -> None:
        out = self.out
        if out.isatty():
            print_formatted_text(text, file=out, style=STYLE, end="")
        else:
            # print_formatted_text writes \r\n to non-terminals
            out.write(to_plain_text(text))
            out.flush()

    def suite_finished(self, suite: SuiteResult) -> None:
        if suite.passed:
            fragments: Fragments = [("class:badge.pass", " PASS ")]
        else:
            fragments = [("class:badge.fail", " FAIL ")]
        fragments.append(("", f" {suite.path}\n"))

        if suite.error is not None:
            fragments.append(("class:reason", f"\t{suite.error}\n"))

        for test in suite.tests:
            if test.passed:
                fragments += [("", "\t"), ("class:mark.pass", "✓"), ("", f" {test.name}\n")]
            else:
                fragments += [
                    ("", "\t"),
                    ("class:mark.fail", "✗"),
                    ("", f" {test.name}\n"),
                    ("class:reason", f"\t\t{test.reason}\n"),
                ]
        self._print(FormattedText(fragments))

    def run_finished(self, result: RunResult) -> None:
        if result.coverage is not None:
            self._print(ANSI("\n" + coverage_table(result.coverage) + "\n"))

        fragments: Fragments = [("", "\n")]
        fragments += _counts("Test Suites: ", result.passed_suites, result.failed_suites, len(result.suites))
        fragments += _counts("Tests:       ", result.passed_tests, result.failed_tests, result.total_tests)
        fragments.append(("", f"Time:        {format_elapsed(result.elapsed)}\n"))
        self._print(FormattedText(fragments))
