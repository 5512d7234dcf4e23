from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Dict, List

import pytest

BASE_DIR = Path(__file__).resolve().parent.parent
SRC_DIR = (BASE_DIR / "src").resolve()

if str(BASE_DIR) not in sys.path:
    sys.path.append(str(BASE_DIR))
if str(SRC_DIR) not in sys.path:
    sys.path.append(str(SRC_DIR))


@pytest.fixture(autouse=True)
def _isolated_run(monkeypatch: pytest.MonkeyPatch):
    """Keep env-driven log levels and script log state out of every test."""
    monkeypatch.delenv("RHAI_TEST_LOG_LEVEL", raising=False)
    level = logging.getLogger("rhai_test").level
    yield
    logging.getLogger("rhai_test").setLevel(level)


def pytest_collection_modifyitems(
    session: pytest.Session,
    config: pytest.Config,
    items: List[pytest.Item],
) -> None:
    """Reject duplicate parametrize ids across the suite."""
    del session
    del config

    counts: Dict[str, int] = {}
    for item in items:
        counts[item.nodeid] = counts.get(item.nodeid, 0) + 1

    duplicates = sorted(nodeid for nodeid, n in counts.items() if n > 1)
    if duplicates:
        lines = "\n".join(f"- {nodeid}" for nodeid in duplicates)
        raise pytest.UsageError(f"Duplicate test ids:\n{lines}")
