from __future__ import annotations

import pytest

from rhai_test.coverage import Band, CoverageCell, CoverageRegistry, SiteKind
from rhai_test.errors import CoverageError


@pytest.mark.parametrize(
    "percent, band",
    [
        pytest.param(100.0, Band.GOOD, id="full"),
        pytest.param(80.0, Band.GOOD, id="good-boundary"),
        pytest.param(79.99, Band.WARN, id="just-below-good"),
        pytest.param(50.0, Band.WARN, id="warn-boundary"),
        pytest.param(49.9, Band.CRITICAL, id="just-below-warn"),
        pytest.param(0.0, Band.CRITICAL, id="none"),
    ],
)
def test_band_thresholds(percent: float, band: Band) -> None:
    assert Band.of(percent) is band


@pytest.mark.parametrize(
    "percent, text",
    [
        pytest.param(100.0, "100", id="integral"),
        pytest.param(50.0, "50", id="half"),
        pytest.param(100 / 3, "33.33", id="two-decimals"),
        pytest.param(12.5, "12.5", id="trailing-zero-stripped"),
        pytest.param(0.0, "0", id="zero"),
    ],
)
def test_cell_text(percent: float, text: str) -> None:
    assert str(CoverageCell(percent, Band.of(percent))) == text


def test_registration_is_idempotent() -> None:
    registry = CoverageRegistry()
    registry.add_statement("lib", 3)
    registry.add_statement("lib", 3)
    registry.add_function("f", "lib", 1)
    registry.add_function("f", "lib", 1)

    assert len(registry) == 2


def test_unregistered_hit_raises() -> None:
    registry = CoverageRegistry()
    registry.add_function("f", "lib", 1)

    with pytest.raises(CoverageError) as excinfo:
        registry.function_called("g", "lib", 1)
    assert str(excinfo.value) == "Unregistered function coverage site: g lib:1"

    with pytest.raises(CoverageError):
        registry.statement_called("lib", 1)
    with pytest.raises(CoverageError):
        registry.branch_called("other", 9)


def test_hit_marks_only_its_site() -> None:
    registry = CoverageRegistry()
    registry.add_statement("lib", 2)
    registry.add_statement("lib", 4)

    registry.statement_called("lib", 4)

    hits = {site.line: site.hit for site in registry.sites("lib")}
    assert hits == {2: False, 4: True}


def test_report_rows() -> None:
    registry = CoverageRegistry()
    registry.add_function("add", "calc", 1)
    registry.add_function("unused", "calc", 5)
    registry.add_statement("calc", 2)
    registry.add_statement("calc", 6)
    registry.add_statement("calc", 7)
    registry.add_statement("app", 1)

    registry.function_called("add", "calc", 1)
    registry.statement_called("calc", 2)
    registry.statement_called("app", 1)

    app, calc = registry.report()

    assert app.source == "app"
    assert str(app.statements) == "100"
    assert app.uncovered == []

    assert calc.source == "calc"
    assert str(calc.statements) == "33.33"
    assert calc.statements.band is Band.CRITICAL
    assert str(calc.functions) == "50"
    assert calc.functions.band is Band.WARN
    # no branch sites at all
    assert str(calc.branches) == "100"
    assert calc.branches.band is Band.GOOD
    assert calc.uncovered == [6, 7]
    assert calc.uncovered_text == "6,7"


def test_uncovered_lines_only_count_statements() -> None:
    registry = CoverageRegistry()
    registry.add_branch("lib", 3)
    registry.add_function("f", "lib", 1)

    (row,) = registry.report()

    assert row.uncovered == []
    assert [site.kind for site in registry.sites("lib")] == [SiteKind.BRANCH, SiteKind.FUNCTION]
