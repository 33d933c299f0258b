"""
ralph-monitor serve - HTTP dashboard backend.

Serves the snapshot at /api/state, pushes change notifications over
/events and serves screenshots. Runs until interrupted.
"""

import logging

from ralph_monitor.lib.config import MonitorConfig
from ralph_monitor.server import run_server
from ralph_monitor.session import MonitorSession

logger = logging.getLogger(__name__)


def cmd_serve(args, config: MonitorConfig) -> int:
    if not config.tasks_dir.exists():
        # Still serve: the dashboard reports missing-tasks until it appears
        logger.warning(f"Tasks directory not found: {config.tasks_dir}")

    if not config.translate_enabled:
        print("Translation disabled")

    try:
        with MonitorSession(config) as session:
            run_server(session)
    except OSError as e:
        print(f"ERROR: Could not listen on {config.host}:{config.port}: {e}")
        return 1
    return 0
