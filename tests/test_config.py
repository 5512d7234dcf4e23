from __future__ import annotations

import json
from pathlib import Path

import pytest

from rhai_test.config import Config, load_config, parse_config
from rhai_test.errors import ConfigError


def test_load_full_config(tmp_path: Path) -> None:
    path = tmp_path / "rhai-test.config.json"
    path.write_text(
        json.dumps({"testMatch": ["tests/**/*.test.rhai"], "basePath": "src", "coverage": True}),
        encoding="utf-8",
    )

    assert load_config(path) == Config(["tests/**/*.test.rhai"], "src", True)


def test_defaults_and_unknown_keys() -> None:
    config = parse_config({"testMatch": [], "coverage": None, "reporter": "dots"})
    assert config == Config([], ".", False)


@pytest.mark.parametrize(
    "data, reason",
    [
        pytest.param([], "expected a JSON object", id="not-an-object"),
        pytest.param({}, "missing required key 'testMatch'", id="missing-test-match"),
        pytest.param({"testMatch": "*.rhai"}, "'testMatch' must be a list of glob patterns", id="test-match-string"),
        pytest.param({"testMatch": [1]}, "'testMatch' entries must be strings, got 1", id="test-match-entry"),
        pytest.param({"testMatch": [], "basePath": 3}, "'basePath' must be a string", id="base-path"),
        pytest.param({"testMatch": [], "coverage": "yes"}, "'coverage' must be true or false", id="coverage"),
    ],
)
def test_invalid_documents(data: object, reason: str) -> None:
    with pytest.raises(ConfigError) as excinfo:
        parse_config(data, "cfg.json")

    assert excinfo.value.reason == reason
    assert str(excinfo.value) == f"Could not load config 'cfg.json': {reason}"


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError) as excinfo:
        load_config(tmp_path / "absent.json")
    assert excinfo.value.path == str(tmp_path / "absent.json")


def test_invalid_json(tmp_path: Path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{testMatch: ", encoding="utf-8")

    with pytest.raises(ConfigError) as excinfo:
        load_config(path)
    assert excinfo.value.reason.startswith("invalid JSON:")


def test_invalid_utf8(tmp_path: Path) -> None:
    path = tmp_path / "latin1.json"
    path.write_bytes(b'{"testMatch": ["\xe9"]}')

    with pytest.raises(ConfigError) as excinfo:
        load_config(path)
    assert excinfo.value.reason == "file is not valid UTF-8"
