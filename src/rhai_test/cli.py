from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from typing import List, Optional

from .config import DEFAULT_CONFIG_FILE, load_config
from .errors import ConfigError
from .report import ConsoleReporter
from .runner import run_pipeline
from .watch import watch

logger = logging.getLogger(__name__)

EXIT_CONFIG_ERROR = 99
LOG_LEVEL_ENV = "RHAI_TEST_LOG_LEVEL"

USAGE = "usage: rhai-test [--config PATH] [--watch] [--log-level LEVEL]"


@dataclass
class Args:
    config: str = DEFAULT_CONFIG_FILE
    watch: bool = False
    log_level: Optional[str] = None


def _value(token: str, it) -> str:
    try:
        return next(it)
    except StopIteration:
        raise SystemExit(f"{token} flag requires a value\n{USAGE}") from None


def parse_args(argv: List[str]) -> Args:
    args = Args()
    it = iter(argv)

    for token in it:
        if token in ("-h", "--help"):
            print(USAGE)
            raise SystemExit(0)

        if token == "--watch":
            args.watch = True
            continue

        if token.startswith("--config="):
            args.config = token.split("=", 1)[1]
            continue

        if token in ("-c", "--config"):
            args.config = _value(token, it)
            continue

        if token.startswith("--log-level="):
            args.log_level = token.split("=", 1)[1]
            continue

        if token == "--log-level":
            args.log_level = _value(token, it)
            continue

        raise SystemExit(f"Unexpected argument: {token}\n{USAGE}")

    return args


def configure_logging(level_name: Optional[str]) -> None:
    name = (level_name or os.environ.get(LOG_LEVEL_ENV) or "WARNING").upper()
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        raise SystemExit(f"Unknown log level: {name}")
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging(args.log_level)

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        print(exc, file=sys.stderr)
        return EXIT_CONFIG_ERROR

    logger.debug("loaded %s: %d pattern(s), basePath=%s", args.config, len(config.test_match), config.base_path)

    reporter = ConsoleReporter()
    if args.watch:
        return watch(config, reporter)

    return run_pipeline(config, reporter).exit_code


if __name__ == "__main__":
    sys.exit(main())
