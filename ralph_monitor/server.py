"""
HTTP surface for the monitor.

    GET /                      minimal HTML viewer
    GET /api/state             current snapshot as JSON
    GET /events                server-sent events: "update" + keep-alives
    GET /screenshots/<name>    raw screenshot bytes
"""

import json
import logging
import mimetypes
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib import parse as urllib_parse

from ralph_monitor.lib.artifacts import resolve_screenshot_path
from ralph_monitor.lib.broadcast import EVENT_UPDATE
from ralph_monitor.session import MonitorSession

logger = logging.getLogger(__name__)

INDEX_HTML = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <title>Ralph Monitor</title>
  <style>
    body { font-family: ui-sans-serif, system-ui, sans-serif; margin: 0; padding: 16px; background: #f6f7f9; }
    pre { white-space: pre-wrap; word-break: break-word; background: #fff; border: 1px solid #ddd; padding: 12px; }
  </style>
</head>
<body>
  <h1 id="title">Ralph Monitor</h1>
  <p id="progress">Loading...</p>
  <pre id="state"></pre>
  <script>
    async function refresh() {
      const res = await fetch('/api/state');
      const state = await res.json();
      document.getElementById('title').textContent = state.display.prd_title || 'Ralph Session';
      const s = state.stats;
      document.getElementById('progress').textContent =
        `${s.done}/${s.total} done (${s.percent}%), ${s.in_progress} in progress`;
      document.getElementById('state').textContent = JSON.stringify(state.issues, null, 2);
    }
    new EventSource('/events').addEventListener('update', refresh);
    refresh();
  </script>
</body>
</html>
"""


def make_handler(session: MonitorSession) -> type[BaseHTTPRequestHandler]:
    class MonitorHandler(BaseHTTPRequestHandler):
        _session = session

        def log_message(self, format: str, *args: Any) -> None:  # noqa: A003
            logger.debug(f"{self.address_string()} {format % args}")

        def _send_bytes(self, status: int, data: bytes, content_type: str) -> None:
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Cache-Control", "no-store")
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()
            self.wfile.write(data)

        def _send_text(self, status: int, text: str, content_type: str = "text/plain; charset=utf-8") -> None:
            self._send_bytes(status, text.encode("utf-8"), content_type)

        def do_GET(self) -> None:  # noqa: N802
            path = urllib_parse.urlparse(self.path).path

            if path in ("/", "/index.html"):
                self._send_text(HTTPStatus.OK, INDEX_HTML, "text/html; charset=utf-8")
                return

            if path == "/api/state":
                payload = self._session.snapshot().to_dict()
                self._send_text(
                    HTTPStatus.OK,
                    json.dumps(payload, ensure_ascii=False),
                    "application/json; charset=utf-8",
                )
                return

            if path == "/events":
                self._stream_events()
                return

            if path.startswith("/screenshots/"):
                self._send_screenshot(urllib_parse.unquote(path[len("/screenshots/"):]))
                return

            self._send_text(HTTPStatus.NOT_FOUND, "Not found\n")

        def _send_screenshot(self, name: str) -> None:
            target = resolve_screenshot_path(self._session.config.tasks_dir, name)
            if target is None:
                self._send_text(HTTPStatus.FORBIDDEN, "Forbidden path\n")
                return
            if not target.is_file():
                self._send_text(HTTPStatus.NOT_FOUND, "Not found\n")
                return
            content_type = mimetypes.guess_type(target.name)[0] or "application/octet-stream"
            self._send_bytes(HTTPStatus.OK, target.read_bytes(), content_type)

        def _stream_events(self) -> None:
            idle_timeout = self._session.config.heartbeat_interval * 2
            # Subscribed before the headers go out, so nothing published after
            # the client sees the response is missed
            with self._session.broadcaster.subscribe() as sub:
                self.send_response(HTTPStatus.OK)
                self.send_header("Content-Type", "text/event-stream")
                self.send_header("Cache-Control", "no-cache")
                self.send_header("Connection", "keep-alive")
                self.end_headers()
                try:
                    self.wfile.write(b"\n")
                    self.wfile.flush()
                    while True:
                        event = sub.get(timeout=idle_timeout)
                        if event is not None and event.kind == EVENT_UPDATE:
                            data = json.dumps({"updated_at": event.updated_at})
                            chunk = f"event: update\ndata: {data}\n\n"
                        else:
                            chunk = ": keep-alive\n\n"
                        self.wfile.write(chunk.encode("utf-8"))
                        self.wfile.flush()
                except (BrokenPipeError, ConnectionResetError):
                    logger.debug("Event stream client disconnected")

    return MonitorHandler


def run_server(session: MonitorSession) -> None:
    """Serve until interrupted."""
    config = session.config
    server = ThreadingHTTPServer((config.host, int(config.port)), make_handler(session))
    server.daemon_threads = True
    print(f"Ralph monitor running at http://{config.host}:{server.server_port}/")
    print(f"Work dir: {config.work_dir}")
    print(f"Tasks dir: {config.tasks_dir}")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()
