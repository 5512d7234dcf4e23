from __future__ import annotations

from pathlib import Path

import pytest

from rhai_test.coverage import CoverageRegistry, SiteKind
from rhai_test.engine import Engine, ErrorInModule, ErrorModuleNotFound, ErrorSystem, Position
from rhai_test.host import register_coverage_probes
from rhai_test.resolver import FileModuleResolver, ModuleCache
from tests.support.harness import ErrorParsing, write_scripts


def _engine(resolver: FileModuleResolver) -> Engine:
    return Engine().set_module_resolver(resolver)


def test_resolves_relative_to_base_path(tmp_path: Path) -> None:
    write_scripts(tmp_path, {"lib/math.rhai": "fn square(x) { x * x }\n"})
    resolver = FileModuleResolver(tmp_path)

    result = _engine(resolver).eval('import "lib/math" as m; m::square(7)')

    assert result == 49
    assert resolver.file_path("lib/math") == (tmp_path / "lib" / "math.rhai").resolve()


def test_chain_imports_are_cached(tmp_path: Path) -> None:
    write_scripts(
        tmp_path,
        {
            "a.rhai": 'import "b" as b;\nfn run() { b::twice(3) }\n',
            "b.rhai": 'import "c" as c;\nfn twice(x) { c::add(x, x) }\n',
            "c.rhai": "fn add(x, y) { x + y }\n",
        },
    )
    cache = ModuleCache()
    resolver = FileModuleResolver(tmp_path, cache=cache)
    engine = _engine(resolver)

    a = resolver.resolve(engine, "", "a", Position())
    b_first = cache.get(resolver.file_path("b"))
    b_again = resolver.resolve(engine, "", "b", Position())

    assert len(cache) == 3
    assert b_again is b_first
    assert engine.eval('import "a" as a; a::run()') == 6
    assert resolver.resolve(engine, "", "a", Position()) is a


def test_missing_module(tmp_path: Path) -> None:
    resolver = FileModuleResolver(tmp_path)

    with pytest.raises(ErrorModuleNotFound) as excinfo:
        _engine(resolver).eval('import "nope" as n;')
    assert excinfo.value.position.line == 1


def test_compile_error_is_wrapped_in_module_error(tmp_path: Path) -> None:
    write_scripts(tmp_path, {"broken.rhai": "let x = ;\n"})
    resolver = FileModuleResolver(tmp_path)

    with pytest.raises(ErrorInModule) as excinfo:
        _engine(resolver).eval('import "broken" as b;')

    assert excinfo.value.name == "broken"
    assert isinstance(excinfo.value.inner, ErrorParsing)
    assert len(resolver.cache) == 0


def test_eval_error_is_wrapped_in_module_error(tmp_path: Path) -> None:
    write_scripts(tmp_path, {"boom.rhai": 'throw "at load";\n'})
    resolver = FileModuleResolver(tmp_path)

    with pytest.raises(ErrorInModule) as excinfo:
        _engine(resolver).eval('import "boom" as b;')
    assert excinfo.value.inner.message == "at load"


def test_circular_import(tmp_path: Path) -> None:
    write_scripts(
        tmp_path,
        {
            "ping.rhai": 'import "pong" as pong;\n',
            "pong.rhai": 'import "ping" as ping;\n',
        },
    )
    resolver = FileModuleResolver(tmp_path)

    with pytest.raises(ErrorInModule) as excinfo:
        _engine(resolver).eval('import "ping" as p;')

    err = excinfo.value
    while isinstance(err, ErrorInModule):
        err = err.inner
    assert isinstance(err, ErrorSystem)
    assert err.detail == "circular import"


def test_modules_are_instrumented_under_their_import_path(tmp_path: Path) -> None:
    write_scripts(
        tmp_path,
        {
            "calc.rhai": (
                "fn add(a, b) {\n"
                "    let sum = a + b;\n"
                "    return sum;\n"
                "}\n"
                "fn unused(x) {\n"
                "    let y = x * 2;\n"
                "    return y;\n"
                "}\n"
            ),
        },
    )
    coverage = CoverageRegistry()
    resolver = FileModuleResolver(tmp_path, coverage)
    engine = _engine(resolver)
    register_coverage_probes(engine, coverage)

    assert engine.eval('import "calc" as calc; calc::add(1, 2)') == 3

    (row,) = coverage.report()
    assert row.source == "calc"
    assert str(row.functions) == "50"
    assert str(row.statements) == "50"
    assert row.uncovered == [6]
    kinds = sorted(site.kind.value for site in coverage.sites("calc"))
    assert kinds == [SiteKind.FUNCTION.value] * 2 + [SiteKind.STATEMENT.value] * 2
