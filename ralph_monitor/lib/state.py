"""
Snapshot assembly and the state cache.

build_snapshot() reads the artifacts, parses the activity log, runs the
issue checks and renders text fields through the translation pipeline.
It is synchronous and never waits on translation: fields without a
translation are rendered with their source text.

StateCache keeps the last snapshot and rebuilds lazily: on the next read
after invalidate(), or when the snapshot is older than the TTL. invalidate()
itself only flips a flag and notifies subscribers, so bursts of file events
cost one rebuild per read instead of one per event.
"""

import logging
import threading
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

from .activity import ActivityEntry, ActivitySummary, build_activity_summary, parse_activity
from .artifacts import (
    Screenshot,
    ScreenshotRefs,
    extract_latest_section,
    extract_screenshot_refs,
    guardrails_preview,
    load_artifacts,
)
from .broadcast import ChangeBroadcaster
from .issues import Issues, detect_issues
from .models import (
    STATUS_IN_PROGRESS,
    StoryStats,
    StoryView,
    compute_story_stats,
    normalize_story_status,
    parse_requirements,
)
from .translation import (
    PRIORITY_ACTIVITY,
    PRIORITY_DESCRIPTION,
    PRIORITY_NOTES,
    PRIORITY_TITLE,
    TranslationHealth,
    TranslationPipeline,
    content_hash,
)

logger = logging.getLogger(__name__)

RECOMPUTE_INTERVAL_SECONDS = 1.0
ACTIVITY_FEED_LIMIT = 120


@dataclass(frozen=True)
class SnapshotMeta:
    work_dir: str
    tasks_dir: str
    updated_at: int                    # epoch millis when built
    last_modified: Optional[float]     # newest artifact mtime, epoch millis
    stale_seconds: int


@dataclass(frozen=True)
class DisplayText:
    """Header texts, translated when a translation is available."""
    prd_title: str
    prd_description: str
    latest_learning: str
    guardrails_preview: str


@dataclass(frozen=True)
class ActivityFeedItem:
    timestamp: str
    story_id: str
    action: str
    message: str
    display_message: str
    ts: Optional[int] = None


@dataclass(frozen=True)
class ActivityFeed:
    entries: list[ActivityFeedItem]    # newest first
    summary: ActivitySummary
    parse_errors: int = 0


@dataclass(frozen=True)
class TextArtifact:
    raw: str
    excerpt: str                       # latest section / preview


@dataclass(frozen=True)
class ScreenshotInventory:
    items: list[Screenshot] = field(default_factory=list)
    count: int = 0


@dataclass(frozen=True)
class StateSnapshot:
    """Everything a viewer renders. Replaced wholesale on every rebuild."""
    meta: SnapshotMeta
    prd: Optional[dict]
    display: DisplayText
    translation: TranslationHealth
    stats: StoryStats
    stories: list[StoryView]
    activity: ActivityFeed
    progress: TextArtifact
    guardrails: TextArtifact
    screenshots: ScreenshotInventory
    artifacts: ScreenshotRefs
    issues: Issues

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation."""
        return asdict(self)


def activity_key(entry: ActivityEntry) -> str:
    """Translation key of one log line.

    Timestamps have minute precision, so the message hash keeps two lines
    logged in the same minute for the same story and action apart.
    """
    return f"activity.{entry.timestamp}.{entry.story_id}.{entry.action}.{content_hash(entry.message)[:12]}"


def _millis(epoch_seconds: Optional[float]) -> Optional[int]:
    return int(epoch_seconds * 1000) if epoch_seconds else None


def build_snapshot(
    work_dir: Path,
    tasks_dir: Path,
    stale_seconds: int,
    pipeline: TranslationPipeline,
    now_ms: Optional[int] = None,
) -> StateSnapshot:
    """Build a fresh snapshot from disk. Never raises on bad artifacts."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    rendered_keys: set[str] = set()

    def translate(key: str, source: str, priority: int) -> str:
        rendered_keys.add(key)
        return pipeline.enqueue_or_serve(key, source, priority)

    artifacts = load_artifacts(tasks_dir)
    activity = parse_activity(artifacts.activity_raw)
    summary = build_activity_summary(activity.entries)
    document = parse_requirements(artifacts.prd_data)

    stories = []
    for story in document.user_stories:
        status = normalize_story_status(story)
        logged = summary.by_story.get(story.id)
        # The document's own timestamps win; the log fills the gaps
        started_at = _millis(story.started_at) or (logged.started_at if logged else None)
        completed_at = _millis(story.completed_at) or (logged.completed_at if logged else None)
        stale = (
            status == STATUS_IN_PROGRESS
            and started_at is not None
            and (now_ms - started_at) / 1000 > stale_seconds
        )
        stories.append(StoryView(
            id=story.id,
            title=story.title,
            display_title=translate(f"story.{story.id}.title", story.title, PRIORITY_TITLE),
            status=status,
            priority=story.priority,
            passes=story.passes,
            started_at=started_at,
            completed_at=completed_at,
            stale=stale,
            stale_count=story.stale_count,
            description=story.description or None,
            display_description=translate(
                f"story.{story.id}.description", story.description, PRIORITY_DESCRIPTION
            ) or None,
            acceptance_criteria=story.acceptance_criteria,
        ))

    screenshot_refs = extract_screenshot_refs(
        artifacts.progress_raw, [shot.name for shot in artifacts.screenshots]
    )
    latest_section = extract_latest_section(artifacts.progress_raw)
    preview = guardrails_preview(artifacts.guardrails_raw)

    display = DisplayText(
        prd_title=translate("prd.title", document.title, PRIORITY_TITLE),
        prd_description=translate("prd.description", document.description, PRIORITY_TITLE),
        latest_learning=translate("progress.latest_section", latest_section, PRIORITY_NOTES),
        guardrails_preview=translate("guardrails.preview", preview, PRIORITY_NOTES),
    )

    feed = []
    for entry in reversed(activity.entries[-ACTIVITY_FEED_LIMIT:]):
        key = activity_key(entry)
        feed.append(ActivityFeedItem(
            timestamp=entry.timestamp,
            story_id=entry.story_id,
            action=entry.action,
            message=entry.message,
            display_message=translate(key, entry.message, PRIORITY_ACTIVITY),
            ts=entry.ts,
        ))

    pipeline.retain(rendered_keys)

    # Read after rendering so queue depth includes jobs queued above
    health = pipeline.health()

    issues = detect_issues(
        artifacts=artifacts,
        prd_stories=document.user_stories,
        stories=stories,
        activity=activity,
        summary=summary,
        screenshot_refs=screenshot_refs,
        translation=health,
        stale_seconds=stale_seconds,
    )

    return StateSnapshot(
        meta=SnapshotMeta(
            work_dir=str(work_dir),
            tasks_dir=str(tasks_dir),
            updated_at=now_ms,
            last_modified=artifacts.last_modified,
            stale_seconds=stale_seconds,
        ),
        prd=artifacts.prd_data,
        display=display,
        translation=health,
        stats=compute_story_stats(stories),
        stories=stories,
        activity=ActivityFeed(entries=feed, summary=summary, parse_errors=activity.parse_errors),
        progress=TextArtifact(raw=artifacts.progress_raw or "", excerpt=latest_section),
        guardrails=TextArtifact(raw=artifacts.guardrails_raw or "", excerpt=preview),
        screenshots=ScreenshotInventory(items=artifacts.screenshots, count=len(artifacts.screenshots)),
        artifacts=screenshot_refs,
        issues=issues,
    )


class StateCache:
    """Holds the current snapshot; rebuilds when dirty or older than the TTL.

    Args:
        builder: Zero-argument callable producing a new StateSnapshot
        broadcaster: Notified on every invalidate()
        ttl_seconds: Maximum age of a served snapshot
        clock: Monotonic seconds, injectable for tests
    """

    def __init__(
        self,
        builder: Callable[[], StateSnapshot],
        broadcaster: Optional[ChangeBroadcaster] = None,
        ttl_seconds: float = RECOMPUTE_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.builder = builder
        self.broadcaster = broadcaster
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._lock = threading.Lock()
        self._dirty = threading.Event()
        self._dirty.set()
        self._snapshot: Optional[StateSnapshot] = None
        self._computed_at = 0.0
        self.rebuilds = 0

    @property
    def dirty(self) -> bool:
        return self._dirty.is_set()

    def get_snapshot(self) -> StateSnapshot:
        """Current snapshot, rebuilt first if dirty or expired."""
        with self._lock:
            now = self.clock()
            expired = now - self._computed_at > self.ttl_seconds
            if self._snapshot is None or self._dirty.is_set() or expired:
                # Cleared before building: an invalidate() during the build
                # must trigger another one
                self._dirty.clear()
                try:
                    snapshot = self.builder()
                except Exception as e:
                    self._dirty.set()
                    if self._snapshot is None:
                        raise
                    logger.exception(f"Snapshot rebuild failed, serving previous snapshot: {e}")
                    return self._snapshot
                self._snapshot = snapshot
                self._computed_at = now
                self.rebuilds += 1
            return self._snapshot

    def invalidate(self) -> None:
        """Mark dirty and notify subscribers. Does not rebuild."""
        self._dirty.set()
        if self.broadcaster is not None:
            self.broadcaster.notify()
