from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Union

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "rhai-test.config.json"


@dataclass(frozen=True)
class Config:
    test_match: List[str] = field(default_factory=list)
    base_path: str = "."
    coverage: bool = False


def parse_config(data: object, origin: str = "<config>") -> Config:
    """Validate a decoded JSON document. Unknown keys are ignored."""
    if not isinstance(data, dict):
        raise ConfigError(origin, "expected a JSON object")

    test_match = data.get("testMatch")
    if test_match is None:
        raise ConfigError(origin, "missing required key 'testMatch'")
    if not isinstance(test_match, list):
        raise ConfigError(origin, "'testMatch' must be a list of glob patterns")
    for pattern in test_match:
        if not isinstance(pattern, str):
            raise ConfigError(origin, f"'testMatch' entries must be strings, got {pattern!r}")

    base_path = data.get("basePath", ".")
    if not isinstance(base_path, str):
        raise ConfigError(origin, "'basePath' must be a string")

    coverage = data.get("coverage", False)
    if coverage is None:
        coverage = False
    if not isinstance(coverage, bool):
        raise ConfigError(origin, "'coverage' must be true or false")

    return Config(list(test_match), base_path, coverage)


def load_config(path: Union[str, Path]) -> Config:
    origin = str(path)
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(origin, exc.strerror or str(exc)) from exc
    except UnicodeDecodeError as exc:
        raise ConfigError(origin, "file is not valid UTF-8") from exc

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(origin, f"invalid JSON: {exc}") from exc

    config = parse_config(data, origin)
    logger.debug("loaded %s: %s", origin, config)
    return config
