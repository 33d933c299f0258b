"""
Activity log parsing for tasks/activity.log.

Each line has the form:

    [2025-01-15 10:30:00] [US-001] [started] Implementing login form

Lines that don't match are counted, not fatal. Entries keep log-append
order; the per-story summary is folded in that order (not by timestamp)
because the log is the source of truth for "first start wins".
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

ACTIVITY_LINE_PATTERN = re.compile(r'^\[([^\]]+)\] \[([^\]]+)\] \[([^\]]+)\] (.+)$')

ACTION_STARTED = "started"
ACTION_COMPLETED = "completed"
ACTION_RESET = "reset"


@dataclass(frozen=True)
class ActivityEntry:
    """One parsed log line."""
    timestamp: str                 # raw text between the first brackets
    story_id: str
    action: str
    message: str
    ts: Optional[int] = None       # epoch millis, None when unparseable


@dataclass
class ActivityLog:
    entries: list[ActivityEntry] = field(default_factory=list)
    parse_errors: int = 0


@dataclass
class ActivityStorySummary:
    """Everything the log says about one story."""
    id: str
    started_at: Optional[int] = None
    completed_at: Optional[int] = None
    elapsed_ms: Optional[int] = None
    resets: int = 0
    starts: int = 0
    completions: int = 0
    events: int = 0
    last_action: Optional[str] = None
    last_message: Optional[str] = None

    @property
    def incomplete(self) -> bool:
        """Started at least once but never completed."""
        return self.starts > 0 and self.completions == 0


@dataclass
class ActivitySummary:
    by_story: dict[str, ActivityStorySummary] = field(default_factory=dict)
    resets: int = 0
    incomplete: list[str] = field(default_factory=list)


def parse_timestamp(raw: Optional[str]) -> Optional[int]:
    """Parse 'YYYY-MM-DD HH:MM[:SS]' (or ISO 'T' form) to epoch millis.

    Naive times are local time. Returns None for anything unparseable.
    """
    if not raw:
        return None
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text.replace(" ", "T", 1))
    except ValueError:
        return None
    return int(parsed.timestamp() * 1000)


def parse_activity(raw: Optional[str]) -> ActivityLog:
    """Parse the whole log. Blank lines are skipped without counting."""
    if not raw:
        return ActivityLog()

    entries = []
    parse_errors = 0
    for line in raw.split("\n"):
        line = line.strip()
        if not line:
            continue
        match = ACTIVITY_LINE_PATTERN.match(line)
        if not match:
            parse_errors += 1
            continue
        timestamp, story_id, action, message = match.groups()
        entries.append(ActivityEntry(
            timestamp=timestamp,
            story_id=story_id,
            action=action,
            message=message,
            ts=parse_timestamp(timestamp),
        ))
    return ActivityLog(entries=entries, parse_errors=parse_errors)


def build_activity_summary(entries: list[ActivityEntry]) -> ActivitySummary:
    """Fold entries, in the order given, into per-story summaries.

    - first timestamped 'started' sets started_at; later ones don't overwrite it
    - every 'completed' overwrites completed_at
    - every 'reset' increments the story's and the global reset counters

    Always rebuilt from scratch so log truncation or rotation can't leave
    stale state behind.
    """
    by_story: dict[str, ActivityStorySummary] = {}
    total_resets = 0

    for entry in entries:
        story = by_story.get(entry.story_id)
        if story is None:
            story = ActivityStorySummary(id=entry.story_id)
            by_story[entry.story_id] = story

        story.events += 1
        story.last_action = entry.action
        story.last_message = entry.message

        if entry.action == ACTION_STARTED:
            if story.started_at is None:
                story.started_at = entry.ts
            story.starts += 1
        elif entry.action == ACTION_COMPLETED:
            story.completed_at = entry.ts
            story.completions += 1
        elif entry.action == ACTION_RESET:
            story.resets += 1
            total_resets += 1

    for story in by_story.values():
        if story.started_at is not None and story.completed_at is not None:
            story.elapsed_ms = max(0, story.completed_at - story.started_at)

    incomplete = [s.id for s in by_story.values() if s.incomplete]
    return ActivitySummary(by_story=by_story, resets=total_resets, incomplete=incomplete)
