"""Watch mode: re-run every suite whenever a script under watch changes."""

from __future__ import annotations

import logging
import os
from queue import Empty, Queue
from typing import Callable, Iterable, Optional, Set

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .config import Config
from .resolver import SCRIPT_EXTENSION
from .runner import Reporter, RunResult, discover, run_pipeline

logger = logging.getLogger(__name__)

# events closer together than this are one change
SETTLE_SECONDS = 0.2


class ScriptChangeHandler(FileSystemEventHandler):
    def __init__(self, queue: Queue) -> None:
        super().__init__()
        self.queue = queue

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        for path in (event.src_path, getattr(event, "dest_path", "")):
            if isinstance(path, bytes):
                path = os.fsdecode(path)
            if path and path.endswith(SCRIPT_EXTENSION):
                logger.debug("%s: %s", event.event_type, path)
                self.queue.put(path)
                return


def watch_dirs(config: Config, test_files: Iterable[str]) -> Set[str]:
    dirs = {os.path.abspath(config.base_path)}
    for path in test_files:
        dirs.add(os.path.abspath(os.path.dirname(path) or "."))
    return {d for d in dirs if os.path.isdir(d)}


def drain(queue: Queue, settle: float = SETTLE_SECONDS) -> Set[str]:
    """Block for one change, then collect whatever follows within ``settle`` seconds."""
    changed = {queue.get()}
    while True:
        try:
            changed.add(queue.get(timeout=settle))
        except Empty:
            return changed


def watch(
    config: Config,
    reporter: Optional[Reporter] = None,
    run: Callable[[Config, Optional[Reporter]], RunResult] = run_pipeline,
) -> int:
    """Run once, then again on every change until interrupted. Returns 0."""
    queue: Queue = Queue()
    handler = ScriptChangeHandler(queue)
    observer = Observer()
    for directory in sorted(watch_dirs(config, discover(config.test_match))):
        logger.info("watching %s", directory)
        observer.schedule(handler, directory, recursive=True)

    observer.start()
    try:
        run(config, reporter)
        while True:
            changed = drain(queue)
            logger.info("change detected in %s", ", ".join(sorted(changed)))
            run(config, reporter)
    except KeyboardInterrupt:
        logger.debug("watch interrupted")
    finally:
        observer.stop()
        observer.join()
    return 0
