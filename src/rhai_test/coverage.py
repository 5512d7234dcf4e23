"""Coverage sites per source file and the per-file report derived from them."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Tuple

from .errors import CoverageError

logger = logging.getLogger(__name__)

GOOD_PERCENT = 80.0
WARN_PERCENT = 50.0


class SiteKind(Enum):
    FUNCTION = "function"
    STATEMENT = "statement"
    BRANCH = "branch"


class Band(Enum):
    GOOD = "good"
    WARN = "warn"
    CRITICAL = "critical"

    @classmethod
    def of(cls, percent: float) -> 'Band':
        if percent >= GOOD_PERCENT:
            return cls.GOOD
        if percent >= WARN_PERCENT:
            return cls.WARN
        return cls.CRITICAL


SiteKey = Tuple[SiteKind, str, str, int]


@dataclass
class CoverageSite:
    kind: SiteKind
    label: str
    source: str
    line: int
    hit: bool = False

    @property
    def key(self) -> SiteKey:
        return (self.kind, self.label, self.source, self.line)


@dataclass
class SourceCoverage:
    """Every site registered for one source file, in registration order."""
    source: str
    sites: Dict[SiteKey, CoverageSite] = field(default_factory=dict)

    def of_kind(self, kind: SiteKind) -> List[CoverageSite]:
        return [site for site in self.sites.values() if site.kind is kind]

    def percent(self, kind: SiteKind) -> float:
        sites = self.of_kind(kind)
        if not sites:
            return 100.0
        hit = sum(1 for site in sites if site.hit)
        return hit * 100.0 / len(sites)

    def uncovered_lines(self) -> List[int]:
        return sorted({site.line for site in self.of_kind(SiteKind.STATEMENT) if not site.hit})


@dataclass(frozen=True)
class CoverageCell:
    percent: float
    band: Band

    def __str__(self) -> str:
        return f"{self.percent:.2f}".rstrip("0").rstrip(".")


@dataclass(frozen=True)
class CoverageRow:
    source: str
    statements: CoverageCell
    branches: CoverageCell
    functions: CoverageCell
    uncovered: List[int]

    @property
    def uncovered_text(self) -> str:
        return ",".join(str(line) for line in self.uncovered)


class CoverageRegistry:
    """Lock-guarded store of coverage sites.

    Registration is idempotent. Marking a site that was never registered is a
    CoverageError: the probes injected into a script and the registry have
    drifted apart.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sources: Dict[str, SourceCoverage] = {}

    def _add(self, kind: SiteKind, label: str, source: str, line: int) -> None:
        with self._lock:
            bucket = self._sources.get(source)
            if bucket is None:
                bucket = self._sources[source] = SourceCoverage(source)
            site = CoverageSite(kind, label, source, line)
            if site.key not in bucket.sites:
                logger.debug("registered %s site %s:%d %s", kind.value, source, line, label)
                bucket.sites[site.key] = site

    def _hit(self, kind: SiteKind, label: str, source: str, line: int) -> None:
        key = (kind, label, source, line)
        with self._lock:
            bucket = self._sources.get(source)
            site = bucket.sites.get(key) if bucket is not None else None
            if site is None:
                label_part = f"{label} " if label else ""
                raise CoverageError(kind.value, f"{label_part}{source}:{line}")
            site.hit = True

    def add_function(self, name: str, source: str, line: int) -> None:
        self._add(SiteKind.FUNCTION, name, source, line)

    def add_statement(self, source: str, line: int) -> None:
        self._add(SiteKind.STATEMENT, "", source, line)

    def add_branch(self, source: str, line: int) -> None:
        self._add(SiteKind.BRANCH, "", source, line)

    def function_called(self, name: str, source: str, line: int) -> None:
        self._hit(SiteKind.FUNCTION, name, source, line)

    def statement_called(self, source: str, line: int) -> None:
        self._hit(SiteKind.STATEMENT, "", source, line)

    def branch_called(self, source: str, line: int) -> None:
        self._hit(SiteKind.BRANCH, "", source, line)

    def sites(self, source: str) -> List[CoverageSite]:
        with self._lock:
            bucket = self._sources.get(source)
            return list(bucket.sites.values()) if bucket is not None else []

    def __len__(self) -> int:
        with self._lock:
            return sum(len(bucket.sites) for bucket in self._sources.values())

    def report(self) -> List[CoverageRow]:
        rows: List[CoverageRow] = []
        with self._lock:
            for source in sorted(self._sources):
                bucket = self._sources[source]
                cells = []
                for kind in (SiteKind.STATEMENT, SiteKind.BRANCH, SiteKind.FUNCTION):
                    percent = bucket.percent(kind)
                    cells.append(CoverageCell(percent, Band.of(percent)))
                rows.append(CoverageRow(source, *cells, bucket.uncovered_lines()))
        return rows
