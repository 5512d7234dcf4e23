"""Line-oriented coverage instrumentation.

Each source line is classified by a handful of regular expressions and, when
it looks like a function header, a statement or a branch, rewritten to call a
coverage probe. The rewrite never adds or removes lines, so line numbers in
error positions still point at the original file.

Lines are classified textually: a pattern inside a string literal or a
comment is treated like code.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum, auto

from .coverage import CoverageRegistry

logger = logging.getLogger(__name__)

FUNCTION_PROBE = "coverage_hit_function"
STATEMENT_PROBE = "coverage_hit_statement"
BRANCH_PROBE = "coverage_hit_branch"


class LineKind(Enum):
    FUNCTION_DEF = auto()
    CALL_STATEMENT = auto()
    ASSIGNMENT = auto()
    BRANCH = auto()
    THROW = auto()
    PLAIN = auto()


@dataclass(frozen=True)
class LineClass:
    kind: LineKind
    label: str = ""
    # end offset of the opening brace; function headers only
    brace_end: int = 0


# Tried in order; the first pattern that matches decides the line's kind.
_PATTERNS = (
    (LineKind.FUNCTION_DEF, re.compile(r"fn (.+?)\(.*?\)\s*?\{")),
    (LineKind.CALL_STATEMENT, re.compile(r".+?\(.*?\);")),
    (LineKind.ASSIGNMENT, re.compile(r"(let )?.+?=.+?;")),
    (LineKind.BRANCH, re.compile(r"(else|else if|if).+?\{")),
    (LineKind.THROW, re.compile(r"\bthrow\b")),
)


def classify_line(line: str) -> LineClass:
    for kind, pattern in _PATTERNS:
        m = pattern.search(line)
        if m is None:
            continue
        if kind is LineKind.FUNCTION_DEF:
            return LineClass(kind, m.group(1).strip(), m.end())
        return LineClass(kind)
    return LineClass(LineKind.PLAIN)


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def _probe(name: str, *args: object) -> str:
    rendered = ",".join(_quote(a) if isinstance(a, str) else str(a) for a in args)
    return f"{name}({rendered});"


def instrument_line(index: int, line: str, source: str, registry: CoverageRegistry) -> str:
    """Register the coverage site ``line`` represents and return the rewritten line.

    ``index`` is zero based; sites and probes carry ``index + 1``.
    """
    line_no = index + 1
    cls = classify_line(line)

    match cls.kind:
        case LineKind.FUNCTION_DEF:
            registry.add_function(cls.label, source, line_no)
            probe = _probe(FUNCTION_PROBE, cls.label, source, line_no)
            return f"{line[:cls.brace_end]} {probe} {line[cls.brace_end:]}"
        case LineKind.CALL_STATEMENT | LineKind.ASSIGNMENT:
            registry.add_statement(source, line_no)
            return f"{line} {_probe(STATEMENT_PROBE, source, line_no)}"
        case LineKind.BRANCH:
            registry.add_branch(source, line_no)
            return f"{line} {_probe(BRANCH_PROBE, source, line_no)}"
        case LineKind.THROW:
            # probe goes first: the throw aborts everything after it
            registry.add_statement(source, line_no)
            return f"{_probe(STATEMENT_PROBE, source, line_no)} {line}"

    return line


def instrument_source(text: str, source: str, registry: CoverageRegistry) -> str:
    # lines end at \n only, as in the lexer
    raw = [line[:-1] if line.endswith("\r") else line for line in text.split("\n")]
    lines = [instrument_line(i, line, source, registry) for i, line in enumerate(raw)]
    logger.debug("instrumented %s (%d lines)", source, len(lines))
    return "\n".join(lines)
