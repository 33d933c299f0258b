"""
ralph-monitor watch - terminal monitor for a running session.

Interactive TUI over the same state cache the HTTP server uses. Polls the
cache, so file changes and finished translation batches show up within
one poll interval.
"""

from datetime import datetime
from typing import Optional

from rich.markup import escape
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.reactive import reactive
from textual.widgets import Footer, Header, Static

from ralph_monitor.lib.activity import ACTION_COMPLETED, ACTION_RESET, ACTION_STARTED
from ralph_monitor.lib.config import MonitorConfig
from ralph_monitor.lib.models import STATUS_IN_PROGRESS, STATUS_OPEN, StoryView
from ralph_monitor.lib.state import ActivityFeedItem, StateSnapshot
from ralph_monitor.session import MonitorSession

# Configuration
POLL_INTERVAL_SECONDS = 1.0
PROGRESS_BAR_WIDTH = 30
PENDING_DISPLAY_COUNT = 5
ACTIVITY_DISPLAY_COUNT = 5

ACTION_COLORS = {
    ACTION_STARTED: "yellow",
    ACTION_COMPLETED: "green",
    ACTION_RESET: "red",
}


def _progress_bar(percent: int, width: int = PROGRESS_BAR_WIDTH) -> str:
    """Block-character bar, clamped to 0..100."""
    percent = max(0, min(100, percent))
    filled = round(width * percent / 100)
    return "█" * filled + "░" * (width - filled)


def _format_elapsed(ms: Optional[int]) -> str:
    if ms is None or ms < 0:
        return ""
    seconds = ms // 1000
    if seconds < 60:
        return f"{seconds}s"
    minutes, seconds = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {seconds}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m"


def _current_story(stories: list[StoryView]) -> Optional[StoryView]:
    for story in stories:
        if story.status == STATUS_IN_PROGRESS:
            return story
    return None


def _pending_stories(stories: list[StoryView], limit: int = PENDING_DISPLAY_COUNT) -> list[StoryView]:
    return [story for story in stories if story.status == STATUS_OPEN][:limit]


def _format_activity_rich(item: ActivityFeedItem) -> str:
    """One feed line with Rich markup. Log text is escaped."""
    if item.ts is not None:
        ts_str = datetime.fromtimestamp(item.ts / 1000).strftime("%H:%M")
    else:
        ts_str = item.timestamp[:16]
    color = ACTION_COLORS.get(item.action, "")
    action = f"[{color}]{item.action}[/{color}]" if color else escape(item.action)
    return f"  [dim]{escape(ts_str)}[/dim] {escape(item.story_id)} {action} {escape(item.display_message)}"


class StatusWidget(Static):
    """Session header: title, progress bar and current story."""

    snapshot: reactive[Optional[StateSnapshot]] = reactive(None)
    now_ms: reactive[int] = reactive(0)

    def render(self) -> str:
        if not self.snapshot:
            return "Loading..."

        snap = self.snapshot
        stats = snap.stats
        title = snap.display.prd_title or "Ralph Session"
        lines = [
            f"[bold]{escape(title)}[/bold]",
            f"[green]{_progress_bar(stats.percent)}[/green] {stats.percent}%",
            f"Done: {stats.done}/{stats.total}  In progress: {stats.in_progress}  Open: {stats.open}",
        ]

        current = _current_story(snap.stories)
        if current:
            line = f"Current: [cyan]{escape(current.id)}[/cyan] {escape(current.display_title)}"
            if current.started_at and self.now_ms:
                line += f" [dim]({_format_elapsed(self.now_ms - current.started_at)})[/dim]"
            if current.stale:
                line += " [red]stale[/red]"
            lines.append(line)
        else:
            lines.append("[dim]No story in progress[/dim]")

        return "\n".join(lines)


class PendingWidget(Static):
    """Next open stories in document order."""

    stories: reactive[list] = reactive(list, always_update=True)

    def render(self) -> str:
        pending = _pending_stories(self.stories)
        if not pending:
            return "[dim]No pending stories[/dim]"

        lines = ["[bold]Pending:[/bold]"]
        for story in pending:
            lines.append(f"  {escape(story.id)} {escape(story.display_title)}")
        return "\n".join(lines)


class ActivityWidget(Static):
    """Most recent activity entries, newest first."""

    entries: reactive[list] = reactive(list, always_update=True)

    def render(self) -> str:
        if not self.entries:
            return "[dim]No activity yet[/dim]"

        lines = ["[bold]Recent:[/bold]"]
        for item in self.entries[:ACTIVITY_DISPLAY_COUNT]:
            lines.append(_format_activity_rich(item))
        return "\n".join(lines)


class IssuesWidget(Static):
    """Errors, warnings and notes from the last snapshot."""

    snapshot: reactive[Optional[StateSnapshot]] = reactive(None)

    def render(self) -> str:
        if not self.snapshot:
            return ""

        issues = self.snapshot.issues
        if not issues.count:
            return "[green]No issues[/green]"

        lines = []
        for issue in issues.errors:
            lines.append(f"[red]✗[/red] {escape(issue.message)}")
        for issue in issues.warnings:
            lines.append(f"[yellow]![/yellow] {escape(issue.message)}")
        for issue in issues.notes:
            lines.append(f"[dim]· {escape(issue.message)}[/dim]")
        return "\n".join(lines)


class MonitorApp(App):
    """Main monitor TUI application."""

    CSS = """
    #main-container {
        layout: vertical;
        padding: 1;
    }

    #status-box {
        border: solid green;
        padding: 0 1;
        height: auto;
    }

    #pending-box, #issues-box {
        border: solid blue;
        padding: 0 1;
        height: auto;
    }

    #activity-box {
        border: solid blue;
        padding: 0 1;
        height: 1fr;
    }
    """

    BINDINGS = [
        Binding("r", "refresh_state", "Refresh"),
        Binding("q", "quit", "Quit"),
    ]

    def __init__(self, session: MonitorSession) -> None:
        super().__init__()
        self.session = session
        self._error_notified = False

    def compose(self) -> ComposeResult:
        yield Header()
        yield Container(
            Container(StatusWidget(id="status"), id="status-box"),
            Container(PendingWidget(id="pending"), id="pending-box"),
            Container(ActivityWidget(id="activity"), id="activity-box"),
            Container(IssuesWidget(id="issues"), id="issues-box"),
            id="main-container",
        )
        yield Footer()

    def on_mount(self) -> None:
        self.refresh_data()
        self.set_interval(POLL_INTERVAL_SECONDS, self.refresh_data)

    def refresh_data(self) -> None:
        """Pull the current snapshot into the widgets."""
        try:
            snapshot = self.session.snapshot()
            self._error_notified = False
        except Exception as e:
            if not self._error_notified:
                self.notify(f"Failed to build state: {e}", severity="error")
                self._error_notified = True
            return

        status_widget = self.query_one("#status", StatusWidget)
        status_widget.now_ms = snapshot.meta.updated_at
        status_widget.snapshot = snapshot

        self.query_one("#pending", PendingWidget).stories = snapshot.stories
        self.query_one("#activity", ActivityWidget).entries = snapshot.activity.entries
        self.query_one("#issues", IssuesWidget).snapshot = snapshot

        self.title = f"ralph-monitor: {snapshot.display.prd_title or snapshot.meta.work_dir}"
        self.sub_title = f"{snapshot.stats.percent}% done"

    def action_refresh_state(self) -> None:
        """Force a rebuild on the next read."""
        self.session.invalidate()
        self.refresh_data()


def cmd_watch(args, config: MonitorConfig) -> int:
    """Run the terminal monitor."""
    with MonitorSession(config) as session:
        app = MonitorApp(session)
        app.run()
    return 0
