"""Tests for ralph_monitor.lib.artifacts."""

from conftest import write_session

from ralph_monitor.lib.artifacts import (
    ArtifactError,
    extract_latest_section,
    extract_screenshot_refs,
    guardrails_preview,
    list_screenshots,
    load_artifacts,
    resolve_screenshot_path,
)


class TestLoadArtifacts:
    """Tests for load_artifacts."""

    def test_missing_tasks_dir(self, tasks_dir):
        """Nothing on disk is reported, not raised."""
        artifacts = load_artifacts(tasks_dir)
        assert not artifacts.tasks_dir_exists
        assert artifacts.prd is None
        assert artifacts.activity_raw is None
        assert artifacts.screenshots == []
        assert artifacts.last_modified is None

    def test_reads_all_files(self, tasks_dir):
        write_session(
            tasks_dir,
            prd={"title": "Shop"},
            activity="[2025-01-15 10:00:00] [US-001] [started] go\n",
            progress="notes",
            guardrails="rules",
        )
        artifacts = load_artifacts(tasks_dir)
        assert artifacts.tasks_dir_exists
        assert artifacts.prd_data == {"title": "Shop"}
        assert artifacts.prd_error is None
        assert artifacts.progress_raw == "notes"
        assert artifacts.guardrails_raw == "rules"
        assert artifacts.last_modified is not None

    def test_invalid_json_is_error_marker(self, tasks_dir):
        """Malformed prd.json becomes an ArtifactError, not an exception."""
        write_session(tasks_dir, prd="{not json")
        artifacts = load_artifacts(tasks_dir)
        assert isinstance(artifacts.prd, ArtifactError)
        assert "Invalid JSON" in artifacts.prd_error
        assert artifacts.prd_data is None

    def test_non_object_json_is_error_marker(self, tasks_dir):
        """A JSON array is valid JSON but not a document."""
        write_session(tasks_dir, prd="[1, 2]")
        artifacts = load_artifacts(tasks_dir)
        assert "expected an object" in artifacts.prd_error

    def test_empty_prd_counts_as_missing(self, tasks_dir):
        write_session(tasks_dir, prd="")
        assert load_artifacts(tasks_dir).prd is None


class TestListScreenshots:
    """Tests for list_screenshots."""

    def test_sorted_with_story_ids(self, tasks_dir):
        """Files are sorted by name and tagged with a story id when named so."""
        write_session(tasks_dir, screenshots=["us-004-login.png", "US-001-home.png", "overview.png"])
        shots = list_screenshots(tasks_dir / "screenshots")
        assert [s.name for s in shots] == ["US-001-home.png", "overview.png", "us-004-login.png"]
        assert shots[0].story_id == "US-001"
        assert shots[1].story_id is None
        assert shots[2].story_id == "US-004"
        assert shots[0].size == 4

    def test_hidden_files_skipped(self, tasks_dir):
        write_session(tasks_dir, screenshots=[".DS_Store", "a.png"])
        assert [s.name for s in list_screenshots(tasks_dir / "screenshots")] == ["a.png"]

    def test_url_is_quoted(self, tasks_dir):
        write_session(tasks_dir, screenshots=["my shot.png"])
        assert list_screenshots(tasks_dir / "screenshots")[0].url == "/screenshots/my%20shot.png"

    def test_missing_dir(self, tasks_dir):
        assert list_screenshots(tasks_dir / "screenshots") == []


class TestExtractScreenshotRefs:
    """Tests for extract_screenshot_refs."""

    def test_reports_missing(self):
        raw = "Saved tasks/screenshots/US-001-home.png and tasks/screenshots/gone.png here"
        refs = extract_screenshot_refs(raw, ["US-001-home.png"])
        assert refs.references == ["tasks/screenshots/US-001-home.png", "tasks/screenshots/gone.png"]
        assert refs.missing == ["tasks/screenshots/gone.png"]

    def test_glob_reference(self):
        """A wildcard reference is satisfied by any matching file."""
        raw = "See `tasks/screenshots/US-002-*.png` and tasks/screenshots/US-003-*.png"
        refs = extract_screenshot_refs(raw, ["US-002-form.png"])
        assert refs.missing == ["tasks/screenshots/US-003-*.png"]

    def test_duplicates_collapsed(self):
        raw = "tasks/screenshots/a.png then tasks/screenshots/a.png again"
        assert extract_screenshot_refs(raw, []).references == ["tasks/screenshots/a.png"]

    def test_no_progress(self):
        refs = extract_screenshot_refs(None, ["a.png"])
        assert refs.references == []
        assert refs.missing == []


class TestExtractLatestSection:
    """Tests for extract_latest_section."""

    def test_between_last_two_delimiters(self):
        raw = "intro\n---\nfirst\n---\nsecond entry\nmore\n---\ntrailing"
        assert extract_latest_section(raw) == "second entry\nmore"

    def test_fewer_than_two_delimiters(self):
        """Falls back to the whole text."""
        assert extract_latest_section("  only one\n---\nsection  ") == "only one\n---\nsection"

    def test_empty_section_falls_back(self):
        raw = "notes\n---\n\n---\n"
        assert extract_latest_section(raw) == raw.strip()

    def test_nothing(self):
        assert extract_latest_section(None) == ""


class TestGuardrailsPreview:
    """Tests for guardrails_preview."""

    def test_first_thirty_lines(self):
        raw = "\n".join(f"line {i}" for i in range(40))
        preview = guardrails_preview(raw)
        assert preview.split("\n") == [f"line {i}" for i in range(30)]

    def test_short_text_unchanged(self):
        assert guardrails_preview("a\nb") == "a\nb"


class TestResolveScreenshotPath:
    """Tests for resolve_screenshot_path."""

    def test_plain_name(self, tasks_dir):
        write_session(tasks_dir, screenshots=["a.png"])
        path = resolve_screenshot_path(tasks_dir, "a.png")
        assert path == (tasks_dir / "screenshots" / "a.png").resolve()

    def test_traversal_refused(self, tasks_dir):
        """Nothing outside screenshots/ can be addressed."""
        for name in ("../prd.json", "..", "sub/a.png", "..\\prd.json", ".hidden", ""):
            assert resolve_screenshot_path(tasks_dir, name) is None
