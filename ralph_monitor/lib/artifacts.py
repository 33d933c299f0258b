"""
Loading of session artifacts from <workdir>/tasks/.

Nothing here raises on missing or malformed input: absent files come back
as None, unparsable JSON as an ArtifactError marker.
"""

import fnmatch
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union
from urllib.parse import quote

logger = logging.getLogger(__name__)

PRD_FILE = "prd.json"
ACTIVITY_FILE = "activity.log"
PROGRESS_FILE = "progress.txt"
GUARDRAILS_FILE = "guardrails.md"
SCREENSHOTS_DIR = "screenshots"

GUARDRAILS_PREVIEW_LINES = 30
SECTION_DELIMITER = "---"

SCREENSHOT_STORY_PATTERN = re.compile(r'(US-\d{3})', re.IGNORECASE)
SCREENSHOT_REF_PREFIX = "tasks/screenshots/"
SCREENSHOT_REF_PATTERN = re.compile(r'tasks/screenshots/[^\s`\'")]+')


@dataclass
class ArtifactError:
    """Marker for an artifact that exists but could not be parsed."""
    error: str


@dataclass
class Screenshot:
    name: str
    url: str
    size: Optional[int] = None
    mtime: Optional[float] = None      # epoch millis
    story_id: Optional[str] = None


@dataclass
class ScreenshotRefs:
    """Screenshot paths mentioned in progress notes."""
    references: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)


@dataclass
class SessionArtifacts:
    """Raw artifacts read from the tasks directory in one pass."""
    tasks_dir: Path
    tasks_dir_exists: bool
    prd: Union[dict, ArtifactError, None] = None
    activity_raw: Optional[str] = None
    progress_raw: Optional[str] = None
    guardrails_raw: Optional[str] = None
    screenshots: list[Screenshot] = field(default_factory=list)
    last_modified: Optional[float] = None   # epoch millis, newest artifact mtime

    @property
    def prd_error(self) -> Optional[str]:
        return self.prd.error if isinstance(self.prd, ArtifactError) else None

    @property
    def prd_data(self) -> Optional[dict]:
        """The parsed document, or None when missing or invalid."""
        return self.prd if isinstance(self.prd, dict) else None


def safe_read(path: Path) -> Optional[str]:
    """Read a text file, returning None if it is missing or unreadable."""
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.debug(f"Could not read {path}: {e}")
        return None


def read_json(path: Path) -> Union[Any, ArtifactError, None]:
    """Load JSON. Missing or empty file -> None; bad JSON -> ArtifactError."""
    raw = safe_read(path)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Invalid JSON in {path}: {e}")
        return ArtifactError(f"Invalid JSON in {path}: {e}")


def list_screenshots(screenshots_dir: Path) -> list[Screenshot]:
    """List screenshot files (hidden files skipped), sorted by name."""
    try:
        entries = sorted(p for p in screenshots_dir.iterdir() if p.is_file())
    except OSError:
        return []

    shots = []
    for path in entries:
        if path.name.startswith("."):
            continue
        try:
            stat = path.stat()
            size, mtime = stat.st_size, stat.st_mtime * 1000
        except OSError:
            size, mtime = None, None
        match = SCREENSHOT_STORY_PATTERN.search(path.name)
        shots.append(Screenshot(
            name=path.name,
            url=f"/screenshots/{quote(path.name)}",
            size=size,
            mtime=mtime,
            story_id=match.group(1).upper() if match else None,
        ))
    return shots


def extract_screenshot_refs(raw: Optional[str], available: list[str]) -> ScreenshotRefs:
    """Find tasks/screenshots/... references and report the ones not on disk.

    A reference containing '*' is a glob and counts as present if any file
    matches it.
    """
    if not raw:
        return ScreenshotRefs()

    references = list(dict.fromkeys(SCREENSHOT_REF_PATTERN.findall(raw)))
    names = set(available)
    missing = []
    for ref in references:
        file_part = ref[len(SCREENSHOT_REF_PREFIX):]
        if "*" in file_part:
            if not any(fnmatch.fnmatchcase(name, file_part) for name in names):
                missing.append(ref)
        elif file_part not in names:
            missing.append(ref)
    return ScreenshotRefs(references=references, missing=missing)


def extract_latest_section(raw: Optional[str]) -> str:
    """Return the text between the last two '---' lines.

    Falls back to the whole (stripped) text when there are fewer than two
    delimiters or the section is empty.
    """
    if not raw:
        return ""
    lines = raw.split("\n")
    delimiters = [i for i, line in enumerate(lines) if line.strip() == SECTION_DELIMITER]
    if len(delimiters) < 2:
        return raw.strip()
    start, end = delimiters[-2], delimiters[-1]
    section = "\n".join(lines[start + 1:end]).strip()
    return section or raw.strip()


def guardrails_preview(raw: Optional[str], max_lines: int = GUARDRAILS_PREVIEW_LINES) -> str:
    if not raw:
        return ""
    return "\n".join(raw.split("\n")[:max_lines])


def newest_mtime(paths: list[Path]) -> Optional[float]:
    """Newest modification time across paths in epoch millis, None if none exist."""
    latest = 0.0
    for path in paths:
        try:
            latest = max(latest, path.stat().st_mtime * 1000)
        except OSError:
            continue
    return latest or None


def artifact_paths(tasks_dir: Path) -> list[Path]:
    """Paths whose changes should refresh the snapshot."""
    return [
        tasks_dir / PRD_FILE,
        tasks_dir / PROGRESS_FILE,
        tasks_dir / ACTIVITY_FILE,
        tasks_dir / GUARDRAILS_FILE,
        tasks_dir / SCREENSHOTS_DIR,
    ]


def load_artifacts(tasks_dir: Path) -> SessionArtifacts:
    """Read everything the snapshot needs from the tasks directory."""
    prd_path = tasks_dir / PRD_FILE
    prd = read_json(prd_path)
    if prd is not None and not isinstance(prd, (dict, ArtifactError)):
        prd = ArtifactError(f"Invalid JSON in {prd_path}: expected an object")

    return SessionArtifacts(
        tasks_dir=tasks_dir,
        tasks_dir_exists=tasks_dir.is_dir(),
        prd=prd,
        activity_raw=safe_read(tasks_dir / ACTIVITY_FILE),
        progress_raw=safe_read(tasks_dir / PROGRESS_FILE),
        guardrails_raw=safe_read(tasks_dir / GUARDRAILS_FILE),
        screenshots=list_screenshots(tasks_dir / SCREENSHOTS_DIR),
        last_modified=newest_mtime(artifact_paths(tasks_dir)),
    )


def resolve_screenshot_path(tasks_dir: Path, name: str) -> Optional[Path]:
    """Resolve a screenshot file name, refusing anything outside screenshots/."""
    root = (tasks_dir / SCREENSHOTS_DIR).resolve()
    if not name or "/" in name or "\\" in name or name.startswith("."):
        return None
    candidate = (root / name).resolve()
    try:
        candidate.relative_to(root)
    except ValueError:
        return None
    return candidate
