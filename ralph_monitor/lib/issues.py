"""
Data-quality checks over a loaded session.

detect_issues() is a pure function: the same inputs always give the same
issues in the same order. Each issue has a stable type and a message, in
one of three buckets:

- errors:   data unusable
- warnings: data present but suspicious
- notes:    informational
"""

from dataclasses import dataclass, field

from .activity import ActivityLog, ActivitySummary
from .artifacts import ScreenshotRefs, SessionArtifacts
from .models import STATUS_DONE, PrdStory, StoryView, is_deprecated_status
from .translation import TranslationHealth


@dataclass(frozen=True)
class Issue:
    type: str
    message: str


@dataclass
class Issues:
    errors: list[Issue] = field(default_factory=list)
    warnings: list[Issue] = field(default_factory=list)
    notes: list[Issue] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.errors) + len(self.warnings) + len(self.notes)

    def types(self) -> list[str]:
        return [i.type for i in self.errors + self.warnings + self.notes]


def detect_issues(
    artifacts: SessionArtifacts,
    prd_stories: list[PrdStory],
    stories: list[StoryView],
    activity: ActivityLog,
    summary: ActivitySummary,
    screenshot_refs: ScreenshotRefs,
    translation: TranslationHealth,
    stale_seconds: int,
) -> Issues:
    """Run every rule independently and collect the findings."""
    issues = Issues()

    if not artifacts.tasks_dir_exists:
        issues.errors.append(Issue(
            "missing-tasks",
            f"Tasks directory not found at {artifacts.tasks_dir}",
        ))

    if artifacts.prd is None:
        issues.warnings.append(Issue("missing-prd", "prd.json not found"))
    elif artifacts.prd_error:
        issues.errors.append(Issue("invalid-prd", artifacts.prd_error))

    if not artifacts.activity_raw:
        issues.warnings.append(Issue("missing-activity", "activity.log not found"))
    elif activity.parse_errors > 0:
        issues.warnings.append(Issue(
            "activity-parse",
            f"activity.log had {activity.parse_errors} unparsable line(s)",
        ))

    if not artifacts.progress_raw:
        issues.warnings.append(Issue("missing-progress", "progress.txt not found"))

    if not artifacts.guardrails_raw:
        issues.warnings.append(Issue("missing-guardrails", "guardrails.md not found"))

    if summary.incomplete:
        issues.warnings.append(Issue(
            "incomplete-stories",
            f"Stories started but not completed in activity.log: {', '.join(summary.incomplete)}",
        ))

    if summary.resets > 0:
        issues.warnings.append(Issue(
            "reset-detected",
            f"{summary.resets} reset(s) detected in activity.log",
        ))

    if screenshot_refs.missing:
        issues.warnings.append(Issue(
            "missing-screenshots",
            f"Missing screenshot references: {', '.join(screenshot_refs.missing)}",
        ))

    deprecated = [s for s in prd_stories if is_deprecated_status(s)]
    if deprecated:
        values = sorted({s.status for s in deprecated})
        issues.warnings.append(Issue(
            "status-mismatch",
            f"Found {len(deprecated)} story(ies) with status={'/'.join(repr(v) for v in values)} "
            f"(Ralph expects \"{STATUS_DONE}\"). Progress may appear understated.",
        ))

    if stories and artifacts.activity_raw:
        without_log = []
        for story in stories:
            if story.status != STATUS_DONE:
                continue
            logged = summary.by_story.get(story.id)
            if logged is None or logged.completions == 0:
                without_log.append(story.id)
        if without_log:
            issues.notes.append(Issue(
                "missing-completed-logs",
                f"Stories marked done without completion logs: {', '.join(without_log)}",
            ))

    stale = [s.id for s in stories if s.stale]
    if stale:
        issues.warnings.append(Issue(
            "stale-stories",
            f"Stories in progress beyond {stale_seconds}s: {', '.join(stale)}",
        ))

    if translation.enabled and not translation.translator_available:
        issues.warnings.append(Issue(
            "translation-disabled",
            "Content translation is enabled but Claude CLI is not available. "
            "Set RALPH_DASHBOARD_TRANSLATE=0 to disable translation warnings.",
        ))

    if translation.enabled and translation.last_error:
        issues.warnings.append(Issue(
            "translation-error",
            f"Content translation error: {translation.last_error}",
        ))

    return issues
