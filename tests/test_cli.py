from __future__ import annotations

import json
from pathlib import Path

import pytest

from rhai_test import cli
from rhai_test.cli import EXIT_CONFIG_ERROR, Args, main, parse_args
from tests.support.harness import write_scripts


@pytest.mark.parametrize(
    "argv, expected",
    [
        pytest.param([], Args(), id="defaults"),
        pytest.param(["--watch"], Args(watch=True), id="watch"),
        pytest.param(["--config", "a.json"], Args(config="a.json"), id="config-separate"),
        pytest.param(["--config=b.json"], Args(config="b.json"), id="config-equals"),
        pytest.param(["-c", "c.json", "--log-level=debug"], Args(config="c.json", log_level="debug"), id="short-and-level"),
    ],
)
def test_parse_args(argv, expected: Args) -> None:
    assert parse_args(argv) == expected


@pytest.mark.parametrize(
    "argv",
    [
        pytest.param(["--config"], id="missing-value"),
        pytest.param(["--bogus"], id="unknown-flag"),
    ],
)
def test_parse_args_rejects(argv) -> None:
    with pytest.raises(SystemExit):
        parse_args(argv)


def _write_config(root: Path, **extra) -> Path:
    path = root / "rhai-test.config.json"
    data = {"testMatch": [str(root / "**" / "*.test.rhai")], "basePath": str(root)}
    data.update(extra)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_unreadable_config_exits_99_before_discovery(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    def no_run(*args, **kwargs):
        raise AssertionError("tests must not run without a config")

    monkeypatch.setattr(cli, "run_pipeline", no_run)

    code = main(["--config", str(tmp_path / "missing.json")])

    assert code == EXIT_CONFIG_ERROR
    assert "Could not load config" in capsys.readouterr().err


def test_exit_code_follows_suites(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    write_scripts(tmp_path, {"ok.test.rhai": 'test("ok", || { expect(true).to_be(true); });\n'})
    config = _write_config(tmp_path, coverage=True)

    assert main(["--config", str(config)]) == 0
    out = capsys.readouterr().out
    assert "PASS" in out
    assert "Test Suites: 1 passed, 1 total" in out

    write_scripts(tmp_path, {"no.test.rhai": 'test("no", || { expect(true).to_be(false); });\n'})

    assert main(["--config", str(config)]) == 1
    assert "FAIL" in capsys.readouterr().out


def test_watch_flag_dispatches_to_watch(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    seen = []

    def fake_watch(config, reporter):
        seen.append(config)
        return 0

    monkeypatch.setattr(cli, "watch", fake_watch)

    assert main(["--watch", "--config", str(_write_config(tmp_path))]) == 0
    assert seen[0].base_path == str(tmp_path)
