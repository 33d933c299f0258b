"""Tests for ralph_monitor.lib.issues (through build_snapshot)."""

from conftest import FakeTranslator, write_session

from ralph_monitor.agents.claude import TranslatorUnavailable
from ralph_monitor.lib.activity import parse_timestamp
from ralph_monitor.lib.state import build_snapshot
from ralph_monitor.lib.translation import TranslationPipeline

COMPLETE_FILES = dict(progress="notes", guardrails="rules")


def _issues(tasks_dir, pipeline=None, stale_seconds=600, now_ms=None):
    if pipeline is None:
        pipeline = TranslationPipeline(FakeTranslator(), enabled=False, autostart=False)
    snapshot = build_snapshot(tasks_dir.parent, tasks_dir, stale_seconds, pipeline, now_ms=now_ms)
    return snapshot.issues


class TestMissingArtifacts:
    """Missing files and directories."""

    def test_missing_tasks_dir_is_error(self, tasks_dir):
        issues = _issues(tasks_dir)
        assert [i.type for i in issues.errors] == ["missing-tasks"]
        assert "missing-prd" in issues.types()

    def test_empty_tasks_dir_warnings(self, tasks_dir):
        tasks_dir.mkdir()
        issues = _issues(tasks_dir)
        assert issues.errors == []
        assert [i.type for i in issues.warnings] == [
            "missing-prd",
            "missing-activity",
            "missing-progress",
            "missing-guardrails",
        ]

    def test_invalid_prd_is_error(self, tasks_dir):
        write_session(tasks_dir, prd="{oops", **COMPLETE_FILES)
        issues = _issues(tasks_dir)
        assert [i.type for i in issues.errors] == ["invalid-prd"]
        assert "missing-prd" not in issues.types()


class TestActivityRules:
    """Rules over the activity log."""

    def test_parse_errors_warning(self, tasks_dir):
        write_session(
            tasks_dir,
            prd={"userStories": []},
            activity="[2025-01-15 10:00:00] [US-001] [started] go\nnot a log line\n",
            **COMPLETE_FILES,
        )
        issues = _issues(tasks_dir)
        warning = next(i for i in issues.warnings if i.type == "activity-parse")
        assert "1 unparsable" in warning.message

    def test_incomplete_stories(self, tasks_dir):
        write_session(
            tasks_dir,
            activity="[2025-01-15 10:00:00] [US-007] [started] go\n",
            **COMPLETE_FILES,
        )
        warning = next(i for i in _issues(tasks_dir).warnings if i.type == "incomplete-stories")
        assert "US-007" in warning.message

    def test_resets(self, tasks_dir):
        write_session(
            tasks_dir,
            activity="[2025-01-15 10:00:00] [US-001] [reset] again\n"
                     "[2025-01-15 10:01:00] [US-001] [reset] again\n",
            **COMPLETE_FILES,
        )
        warning = next(i for i in _issues(tasks_dir).warnings if i.type == "reset-detected")
        assert warning.message.startswith("2 reset(s)")


class TestStoryRules:
    """Rules over the requirements document."""

    def test_deprecated_status(self, tasks_dir):
        """'completed' warns and stays out of the done count."""
        write_session(
            tasks_dir,
            prd={"userStories": [
                {"id": "US-001", "status": "completed"},
                {"id": "US-002", "status": "done"},
            ]},
            **COMPLETE_FILES,
        )
        pipeline = TranslationPipeline(FakeTranslator(), enabled=False, autostart=False)
        snapshot = build_snapshot(tasks_dir.parent, tasks_dir, 600, pipeline)
        assert "status-mismatch" in snapshot.issues.types()
        assert snapshot.stats.done == 1
        assert snapshot.stats.percent == 50

    def test_done_without_completion_log_is_note(self, tasks_dir):
        write_session(
            tasks_dir,
            prd={"userStories": [{"id": "US-001", "status": "done"}]},
            activity="[2025-01-15 10:00:00] [US-001] [started] go\n",
            **COMPLETE_FILES,
        )
        notes = _issues(tasks_dir).notes
        assert [i.type for i in notes] == ["missing-completed-logs"]
        assert "US-001" in notes[0].message

    def test_no_completion_note_without_activity_log(self, tasks_dir):
        write_session(tasks_dir, prd={"userStories": [{"id": "US-001", "status": "done"}]}, **COMPLETE_FILES)
        assert _issues(tasks_dir).notes == []

    def test_stale_in_progress(self, tasks_dir):
        started = "2025-01-15 10:00:00"
        write_session(
            tasks_dir,
            prd={"userStories": [{"id": "US-001", "status": "in_progress"}]},
            activity=f"[{started}] [US-001] [started] go\n",
            **COMPLETE_FILES,
        )
        now_ms = parse_timestamp(started) + 601 * 1000
        stale = next(i for i in _issues(tasks_dir, now_ms=now_ms).warnings if i.type == "stale-stories")
        assert "US-001" in stale.message
        assert "600s" in stale.message

    def test_not_stale_within_threshold(self, tasks_dir):
        started = "2025-01-15 10:00:00"
        write_session(
            tasks_dir,
            prd={"userStories": [{"id": "US-001", "status": "in_progress"}]},
            activity=f"[{started}] [US-001] [started] go\n",
            **COMPLETE_FILES,
        )
        now_ms = parse_timestamp(started) + 599 * 1000
        assert "stale-stories" not in _issues(tasks_dir, now_ms=now_ms).types()


class TestScreenshotRule:
    """Screenshot references in progress notes."""

    def test_missing_references(self, tasks_dir):
        write_session(
            tasks_dir,
            progress="Captured tasks/screenshots/US-001-*.png and tasks/screenshots/gone.png\n",
            guardrails="rules",
            screenshots=["US-001-home.png"],
        )
        warning = next(i for i in _issues(tasks_dir).warnings if i.type == "missing-screenshots")
        assert warning.message == "Missing screenshot references: tasks/screenshots/gone.png"


class TestTranslationRules:
    """Pipeline health surfaced as issues."""

    def test_unavailable_translator(self, tasks_dir):
        write_session(tasks_dir, prd={"title": "Boutique"}, **COMPLETE_FILES)
        translator = FakeTranslator(error=TranslatorUnavailable("claude CLI not found (ENOENT)"))
        pipeline = TranslationPipeline(translator, autostart=False)

        assert "translation-disabled" not in _issues(tasks_dir, pipeline).types()
        assert pipeline.process_next_batch()

        types = _issues(tasks_dir, pipeline).types()
        assert "translation-disabled" in types
        assert "translation-error" in types

    def test_disabled_pipeline_reports_nothing(self, tasks_dir):
        write_session(tasks_dir, prd={"title": "Boutique"}, **COMPLETE_FILES)
        types = _issues(tasks_dir).types()
        assert "translation-disabled" not in types
        assert "translation-error" not in types


class TestIssueOrder:
    """Issue lists are stable across rebuilds."""

    def test_same_inputs_same_issues(self, tasks_dir):
        write_session(
            tasks_dir,
            prd={"userStories": [{"id": "US-001", "status": "completed"}]},
            activity="bad line\n[2025-01-15 10:00:00] [US-002] [reset] x\n",
        )
        assert _issues(tasks_dir, now_ms=0) == _issues(tasks_dir, now_ms=0)
