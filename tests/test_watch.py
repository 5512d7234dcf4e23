from __future__ import annotations

from pathlib import Path
from queue import Queue

from watchdog.events import DirModifiedEvent, FileCreatedEvent, FileModifiedEvent, FileMovedEvent

from rhai_test.watch import ScriptChangeHandler, drain, watch, watch_dirs
from tests.support.harness import make_config, write_scripts


def test_handler_queues_only_scripts() -> None:
    queue: Queue = Queue()
    handler = ScriptChangeHandler(queue)

    handler.dispatch(FileModifiedEvent("/w/lib.rhai"))
    handler.dispatch(FileCreatedEvent("/w/notes.txt"))
    handler.dispatch(DirModifiedEvent("/w/dir.rhai"))
    handler.dispatch(FileMovedEvent("/w/tmp.swp", "/w/moved.rhai"))

    assert [queue.get_nowait(), queue.get_nowait()] == ["/w/lib.rhai", "/w/moved.rhai"]
    assert queue.empty()


def test_drain_collapses_bursts() -> None:
    queue: Queue = Queue()
    for path in ("a.rhai", "b.rhai", "a.rhai"):
        queue.put(path)

    assert drain(queue, settle=0.01) == {"a.rhai", "b.rhai"}


def test_watch_dirs_include_base_and_test_dirs(tmp_path: Path) -> None:
    written = write_scripts(tmp_path, {"suite/x.test.rhai": ""})
    config = make_config(tmp_path)

    dirs = watch_dirs(config, [str(written["suite/x.test.rhai"]), str(tmp_path / "gone" / "y.test.rhai")])

    assert dirs == {str(tmp_path), str(tmp_path / "suite")}


def test_watch_runs_once_and_stops_on_interrupt(tmp_path: Path) -> None:
    write_scripts(tmp_path, {"x.test.rhai": ""})
    calls = []

    def fake_run(config, reporter):
        calls.append(config)
        raise KeyboardInterrupt

    assert watch(make_config(tmp_path), None, run=fake_run) == 0
    assert len(calls) == 1

