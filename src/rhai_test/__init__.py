"""Jest-style test runner for Rhai scripts."""

from .config import Config, load_config
from .coverage import CoverageRegistry
from .errors import ConfigError, CoverageError, RhaiTestError
from .runner import RunResult, TestRunner, discover, run_pipeline

__all__ = [
    "Config",
    "ConfigError",
    "CoverageError",
    "CoverageRegistry",
    "RhaiTestError",
    "RunResult",
    "TestRunner",
    "discover",
    "load_config",
    "run_pipeline",
]
