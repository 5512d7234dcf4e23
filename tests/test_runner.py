from __future__ import annotations

from pathlib import Path
from textwrap import dedent

from rhai_test.coverage import SiteKind
from rhai_test.runner import TEST_HINT, discover
from tests.support.harness import run_suites, write_scripts

ADDS = 'test("adds", || { let x = 1 + 1; expect(x).to_be(2); });\n'
BAD = 'test("bad", || { expect(1).to_be("1"); });\n'


def test_passing_suite_with_coverage(tmp_path: Path) -> None:
    outcome = run_suites(tmp_path, {"adds.test.rhai": ADDS}, coverage=True)
    result = outcome.result

    assert result.passed_tests == 1
    assert result.passed_suites == 1
    assert result.exit_code == 0

    path = result.suites[0].path
    sites = outcome.services.coverage.sites(path)
    assert [(site.kind, site.line, site.hit) for site in sites] == [(SiteKind.STATEMENT, 1, True)]
    (row,) = result.coverage
    assert str(row.statements) == "100"


def test_failing_expectation_fails_suite(tmp_path: Path) -> None:
    outcome = run_suites(tmp_path, {"bad.test.rhai": BAD})
    result = outcome.result

    (test,) = result.suites[0].tests
    assert not test.passed
    assert test.reason.startswith("Expected value to be")
    assert result.failed_suites == 1
    assert result.exit_code == 1
    assert outcome.services.registry.has_failed_suites()
    assert outcome.services.registry.failed_tests == 1


def test_suites_are_independent(tmp_path: Path) -> None:
    outcome = run_suites(tmp_path, {"a/adds.test.rhai": ADDS, "b/bad.test.rhai": BAD})
    result = outcome.result

    assert [suite.passed for suite in result.suites] == [True, False]
    assert (result.passed_tests, result.failed_tests, result.total_tests) == (1, 1, 2)
    assert [suite.path for suite in outcome.reporter.suites] == [suite.path for suite in result.suites]
    assert outcome.reporter.results == [result]


def test_compilation_error(tmp_path: Path) -> None:
    outcome = run_suites(tmp_path, {"broken.test.rhai": 'test("x", || {\n'})

    suite = outcome.result.suites[0]
    assert not suite.passed
    assert suite.tests == []
    assert suite.error.startswith("Compilation Error:\n\t\tParsing Error:")


def test_eval_error(tmp_path: Path) -> None:
    outcome = run_suites(tmp_path, {"eval.test.rhai": "missing_fn();\n" + ADDS})

    suite = outcome.result.suites[0]
    assert suite.error.startswith("Eval Error:\n\t\tFunction not found: missing_fn")
    assert suite.tests == []
    assert outcome.result.exit_code == 1


def test_non_unit_test_result_gets_hint(tmp_path: Path) -> None:
    outcome = run_suites(tmp_path, {"hint.test.rhai": 'test("returns", || { 42 });\n'})

    (test,) = outcome.result.suites[0].tests
    assert not test.passed
    assert test.reason.endswith(TEST_HINT)


def test_uncaught_throw_reports_trace(tmp_path: Path) -> None:
    outcome = run_suites(tmp_path, {"raw.test.rhai": 'test("raw", || { throw "kaboom"; });\n'})

    (test,) = outcome.result.suites[0].tests
    assert not test.passed
    lines = test.reason.split("\n")
    assert "kaboom" in lines[0]
    assert lines[1].startswith("\t\tkaboom (")


def test_module_coverage_through_imports(tmp_path: Path) -> None:
    files = {
        "calc.rhai": dedent(
            """\
            fn add(a, b) {
                let sum = a + b;
                return sum;
            }
            fn unused(x) {
                let y = x * 2;
                return y;
            }
            """
        ),
        "calc.test.rhai": dedent(
            """\
            test("calc adds", || {
                import "calc" as calc;
                expect(calc::add(1, 2)).to_be(3);
            });
            """
        ),
    }

    outcome = run_suites(tmp_path, files, coverage=True)

    assert outcome.result.exit_code == 0
    rows = {row.source: row for row in outcome.result.coverage}
    calc = rows["calc"]
    assert str(calc.functions) == "50"
    assert calc.uncovered == [6]
    suite_row = rows[outcome.result.suites[0].path]
    assert str(suite_row.statements) == "100"


def test_module_is_loaded_once_per_run(tmp_path: Path) -> None:
    files = {
        "counter.rhai": 'log_info("loaded");\nfn one() { 1 }\n',
        "first.test.rhai": 'test("a", || { import "counter" as c; expect(c::one()).to_be(1); });\n',
        "second.test.rhai": 'test("b", || { import "counter" as c; expect(c::one()).to_be(1); });\n',
    }

    outcome = run_suites(tmp_path, files)

    assert outcome.result.passed_tests == 2
    assert len(outcome.services.cache) == 1


def test_unicode_separator_in_string_survives_coverage(tmp_path: Path) -> None:
    script = 'test("sep", || { let s = "a\u2028b"; expect(s.len()).to_be(3); });\n'

    for coverage in (False, True):
        outcome = run_suites(tmp_path, {"sep.test.rhai": script}, coverage=coverage)

        suite = outcome.suite("sep.test.rhai")
        assert suite.error is None
        assert [t.passed for t in suite.tests] == [True]


def test_discover_expands_globs(tmp_path: Path) -> None:
    write_scripts(
        tmp_path,
        {
            "one.test.rhai": "",
            "nested/two.test.rhai": "",
            "nested/helper.rhai": "",
        },
    )
    (tmp_path / "dir.test.rhai").mkdir()

    found = discover([str(tmp_path / "**" / "*.test.rhai"), str(tmp_path / "one.test.rhai")])

    assert found == sorted([str(tmp_path / "nested" / "two.test.rhai"), str(tmp_path / "one.test.rhai")])
