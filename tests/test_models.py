"""Tests for ralph_monitor.lib.models."""

import pytest

from ralph_monitor.lib.models import (
    STATUS_DONE,
    STATUS_IN_PROGRESS,
    STATUS_OPEN,
    PrdStory,
    StoryView,
    compute_story_stats,
    is_deprecated_status,
    normalize_story_status,
    parse_requirements,
)


def _view(status):
    return StoryView(id="US-X", title="t", display_title="t", status=status)


class TestParseRequirements:
    """Tests for parse_requirements."""

    def test_reads_camel_case_fields(self):
        """Document fields map onto the model."""
        doc = parse_requirements({
            "title": "Shop",
            "description": "An online shop",
            "userStories": [{
                "id": "US-001",
                "title": "Login",
                "status": "in_progress",
                "priority": 1,
                "startedAt": 1736935200,
                "staleCount": 2,
                "acceptanceCriteria": ["Form validates"],
            }],
        })
        assert doc.title == "Shop"
        story = doc.user_stories[0]
        assert story.id == "US-001"
        assert story.started_at == 1736935200.0
        assert story.stale_count == 2
        assert story.acceptance_criteria == ["Form validates"]

    def test_non_object_document(self):
        """Lists, strings and None give an empty document."""
        for data in (None, [], "prd", 3):
            doc = parse_requirements(data)
            assert doc.title == ""
            assert doc.user_stories == []

    def test_non_object_stories_skipped(self):
        """Stories that aren't objects are dropped."""
        doc = parse_requirements({"userStories": [{"id": "US-001"}, "junk", 5, None]})
        assert [s.id for s in doc.user_stories] == ["US-001"]

    def test_user_stories_wrong_type(self):
        """A non-list userStories is treated as empty."""
        assert parse_requirements({"userStories": {"id": "US-001"}}).user_stories == []

    def test_wrong_types_fall_back_to_defaults(self):
        """Bad field types never reject the story."""
        story = PrdStory.model_validate({
            "id": 17,
            "title": None,
            "status": 3,
            "passes": "true",
            "startedAt": "not a number",
            "completedAt": 0,
            "staleCount": None,
            "acceptanceCriteria": "one",
        })
        assert story.id == "UNKNOWN"
        assert story.title == ""
        assert story.status is None
        assert story.passes is False
        assert story.started_at is None
        assert story.completed_at is None
        assert story.stale_count == 0
        assert story.acceptance_criteria == []


class TestNormalizeStoryStatus:
    """Tests for normalize_story_status."""

    @pytest.mark.parametrize("status", [STATUS_OPEN, STATUS_IN_PROGRESS, STATUS_DONE])
    def test_canonical_kept(self, status):
        assert normalize_story_status(PrdStory(status=status)) == status

    def test_missing_status_uses_passes(self):
        """No status: passes=true means done, otherwise open."""
        assert normalize_story_status(PrdStory(passes=True)) == STATUS_DONE
        assert normalize_story_status(PrdStory()) == STATUS_OPEN

    def test_deprecated_synonym_is_not_done(self):
        """'completed' is recognized but does not count as done."""
        story = PrdStory(status="completed", passes=True)
        assert normalize_story_status(story) == STATUS_OPEN
        assert is_deprecated_status(story)

    def test_unknown_status_is_open(self):
        story = PrdStory(status="blocked")
        assert normalize_story_status(story) == STATUS_OPEN
        assert not is_deprecated_status(story)


class TestComputeStoryStats:
    """Tests for compute_story_stats."""

    def test_empty(self):
        """No stories means zero percent."""
        stats = compute_story_stats([])
        assert stats.total == 0
        assert stats.percent == 0

    def test_counts_sum_to_total(self):
        """done + in_progress + open always equals total."""
        stories = [_view(STATUS_DONE), _view(STATUS_IN_PROGRESS), _view(STATUS_OPEN), _view(STATUS_OPEN)]
        stats = compute_story_stats(stories)
        assert stats.done + stats.in_progress + stats.open == stats.total == 4
        assert stats.percent == 25

    @pytest.mark.parametrize("done,total,percent", [
        (1, 3, 33),
        (2, 3, 67),
        (1, 2, 50),
        (1, 8, 13),
        (3, 3, 100),
    ])
    def test_percent_rounding(self, done, total, percent):
        """percent is done/total*100 rounded, halves up."""
        stories = [_view(STATUS_DONE)] * done + [_view(STATUS_OPEN)] * (total - done)
        assert compute_story_stats(stories).percent == percent
