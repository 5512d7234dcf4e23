from __future__ import annotations


class RhaiTestError(Exception):
    """Base class for failures of the test runner itself (not of scripts)."""


class ConfigError(RhaiTestError):
    def __init__(self, path: str, reason: str):
        super().__init__(f"Could not load config '{path}': {reason}")
        self.path = path
        self.reason = reason


class CoverageError(RhaiTestError):
    """A coverage callback fired for a site that was never registered."""

    def __init__(self, kind: str, key: str):
        super().__init__(f"Unregistered {kind} coverage site: {key}")
        self.kind = kind
        self.key = key
