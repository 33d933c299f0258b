"""
ralph-monitor state - print one snapshot and exit.

Translation is not started here: a one-shot read would exit before any
batch finished, so display fields show source text.
"""

import json

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ralph_monitor.lib.config import MonitorConfig
from ralph_monitor.lib.state import StateSnapshot
from ralph_monitor.session import MonitorSession

STATUS_STYLES = {
    "done": "green",
    "in_progress": "yellow",
    "open": "dim",
}


def render_summary(snapshot: StateSnapshot, console: Console) -> None:
    stats = snapshot.stats
    title = snapshot.display.prd_title or "Ralph Session"
    console.print(f"[bold]{escape(title)}[/bold]")
    console.print(
        f"{stats.done}/{stats.total} done ({stats.percent}%), "
        f"{stats.in_progress} in progress, {stats.open} open"
    )

    if snapshot.stories:
        table = Table(show_header=True, header_style="bold")
        table.add_column("ID")
        table.add_column("Title")
        table.add_column("Status")
        for story in snapshot.stories:
            style = STATUS_STYLES.get(story.status, "")
            status = story.status + (" (stale)" if story.stale else "")
            table.add_row(
                escape(story.id),
                escape(story.display_title),
                f"[{style}]{status}[/{style}]" if style else status,
            )
        console.print(table)

    issues = snapshot.issues
    for label, style, items in (
        ("error", "red", issues.errors),
        ("warning", "yellow", issues.warnings),
        ("note", "cyan", issues.notes),
    ):
        for issue in items:
            console.print(f"[{style}]{label}[/{style}] {issue.type}: {escape(issue.message)}")

    if not issues.count:
        console.print("[green]No issues[/green]")


def cmd_state(args, config: MonitorConfig) -> int:
    session = MonitorSession(config, autostart_translation=False)
    try:
        snapshot = session.snapshot()
    finally:
        session.close()

    if args.json:
        print(json.dumps(snapshot.to_dict(), indent=2, ensure_ascii=False))
    else:
        render_summary(snapshot, Console())
    return 0
