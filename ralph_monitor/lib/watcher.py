"""
Background event sources for the state cache.

FileWatcher polls the artifacts' stat info and calls a callback (normally
StateCache.invalidate) when anything changes. HeartbeatTicker calls its
callback on a fixed interval. Neither does any real work inline.
"""

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from .artifacts import artifact_paths

logger = logging.getLogger(__name__)

Signature = tuple[tuple[str, Optional[int], Optional[int]], ...]


def stat_signature(paths: list[Path]) -> Signature:
    """(path, mtime_ns, size) per path; None fields for paths that don't exist."""
    entries = []
    for path in paths:
        try:
            stat = path.stat()
            entries.append((str(path), stat.st_mtime_ns, stat.st_size))
        except OSError:
            entries.append((str(path), None, None))
    return tuple(entries)


class _IntervalThread:
    """Runs tick() every interval seconds on a daemon thread until stopped."""

    name = "interval"

    def __init__(self, interval: float):
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def tick(self) -> None:
        raise NotImplementedError

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.tick()
            except Exception as e:
                logger.exception(f"{self.name} tick failed: {e}")

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval + 1)
            self._thread = None


class FileWatcher(_IntervalThread):
    """Calls on_change when the tasks directory or any artifact changes."""

    name = "file-watcher"

    def __init__(self, tasks_dir: Path, on_change: Callable[[], None], interval: float = 0.5):
        super().__init__(interval)
        self.paths = [tasks_dir] + artifact_paths(tasks_dir)
        self.on_change = on_change
        self._last = stat_signature(self.paths)

    def check(self) -> bool:
        """Poll once; returns True (after calling on_change) if something changed."""
        current = stat_signature(self.paths)
        if current == self._last:
            return False
        self._last = current
        logger.debug("Artifacts changed, invalidating snapshot")
        self.on_change()
        return True

    def tick(self) -> None:
        self.check()


class HeartbeatTicker(_IntervalThread):
    name = "heartbeat"

    def __init__(self, on_tick: Callable[[], object], interval: float = 15.0):
        super().__init__(interval)
        self.on_tick = on_tick

    def tick(self) -> None:
        self.on_tick()
