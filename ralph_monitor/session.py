"""
One monitoring session: the state cache, translation pipeline and
broadcaster for a single work directory, plus the background threads
that feed them.

Created once per process by the serve/watch commands and closed on exit.
"""

import logging
from functools import partial
from typing import Optional

from ralph_monitor.agents.claude import ClaudeTranslator, Translator
from ralph_monitor.lib.broadcast import ChangeBroadcaster
from ralph_monitor.lib.config import MonitorConfig
from ralph_monitor.lib.state import StateCache, StateSnapshot, build_snapshot
from ralph_monitor.lib.translation import TranslationPipeline
from ralph_monitor.lib.watcher import FileWatcher, HeartbeatTicker

logger = logging.getLogger(__name__)


class MonitorSession:
    def __init__(
        self,
        config: MonitorConfig,
        translator: Optional[Translator] = None,
        autostart_translation: bool = True,
    ):
        self.config = config
        self.broadcaster = ChangeBroadcaster()
        self.pipeline = TranslationPipeline(
            translator or ClaudeTranslator(cwd=config.work_dir),
            enabled=config.translate_enabled,
            autostart=autostart_translation,
        )
        self.cache = StateCache(
            partial(
                build_snapshot,
                config.work_dir,
                config.tasks_dir,
                config.stale_seconds,
                self.pipeline,
            ),
            broadcaster=self.broadcaster,
        )
        # Finished batches change rendered text, so viewers should re-fetch
        self.pipeline.on_batch_complete = self.cache.invalidate

        self.watcher = FileWatcher(config.tasks_dir, self.cache.invalidate, config.poll_interval)
        self.heartbeat = HeartbeatTicker(self.broadcaster.heartbeat, config.heartbeat_interval)

    def snapshot(self) -> StateSnapshot:
        return self.cache.get_snapshot()

    def invalidate(self) -> None:
        self.cache.invalidate()

    def start(self) -> None:
        """Start file watching and heartbeats."""
        logger.info(f"Watching {self.config.tasks_dir}")
        self.watcher.start()
        self.heartbeat.start()

    def close(self) -> None:
        self.watcher.stop()
        self.heartbeat.stop()
        self.pipeline.close()

    def __enter__(self) -> "MonitorSession":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.close()
