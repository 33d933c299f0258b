"""
Data models for the requirements document (tasks/prd.json) and the
computed per-story view.

The document is written by an agent, so every field is optional and a
wrongly typed value falls back to its default instead of rejecting the
whole document.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

STATUS_OPEN = "open"
STATUS_IN_PROGRESS = "in_progress"
STATUS_DONE = "done"
CANONICAL_STATUSES = (STATUS_OPEN, STATUS_IN_PROGRESS, STATUS_DONE)

# Recognized but deprecated. Not counted as done: the session runner only
# treats the canonical marker as finished.
DEPRECATED_STATUS_SYNONYMS = {"completed": STATUS_DONE}

_STRING_DEFAULTS = {"id": "UNKNOWN", "title": "", "description": ""}


def _to_float(value: Any) -> Optional[float]:
    if value is None or value is False or value == "" or value == 0:
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if result != result:  # NaN
        return None
    return result


class PrdStory(BaseModel):
    """One entry of prd.json "userStories"."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = "UNKNOWN"
    title: str = ""
    description: str = ""
    status: Optional[str] = None
    priority: Any = None
    passes: bool = False
    started_at: Optional[float] = Field(default=None, alias="startedAt")        # epoch seconds
    completed_at: Optional[float] = Field(default=None, alias="completedAt")    # epoch seconds
    stale_count: int = Field(default=0, alias="staleCount")
    acceptance_criteria: list[Any] = Field(default_factory=list, alias="acceptanceCriteria")

    @field_validator("id", "title", "description", mode="before")
    @classmethod
    def _string_or_default(cls, value: Any, info: ValidationInfo) -> str:
        if isinstance(value, str):
            return value
        return _STRING_DEFAULTS[info.field_name]

    @field_validator("status", mode="before")
    @classmethod
    def _status_string(cls, value: Any) -> Optional[str]:
        return value if isinstance(value, str) else None

    @field_validator("priority", mode="before")
    @classmethod
    def _priority_or_none(cls, value: Any) -> Any:
        if isinstance(value, (int, float, str)) and not isinstance(value, bool) and value:
            return value
        return None

    @field_validator("passes", mode="before")
    @classmethod
    def _strict_true(cls, value: Any) -> bool:
        return value is True

    @field_validator("started_at", "completed_at", mode="before")
    @classmethod
    def _epoch_seconds(cls, value: Any) -> Optional[float]:
        return _to_float(value)

    @field_validator("stale_count", mode="before")
    @classmethod
    def _count(cls, value: Any) -> int:
        number = _to_float(value)
        return int(number) if number is not None else 0

    @field_validator("acceptance_criteria", mode="before")
    @classmethod
    def _list_or_empty(cls, value: Any) -> list:
        return value if isinstance(value, list) else []


class RequirementsDocument(BaseModel):
    """Top level of prd.json."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str = ""
    description: str = ""
    user_stories: list[PrdStory] = Field(default_factory=list, alias="userStories")

    @field_validator("title", "description", mode="before")
    @classmethod
    def _string_or_empty(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("user_stories", mode="before")
    @classmethod
    def _story_dicts(cls, value: Any) -> list:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]


def parse_requirements(data: Any) -> RequirementsDocument:
    """Build a RequirementsDocument from loaded JSON; non-objects give an empty one."""
    if not isinstance(data, dict):
        return RequirementsDocument()
    return RequirementsDocument.model_validate(data)


def normalize_story_status(story: PrdStory) -> str:
    """Map a raw story status onto open / in_progress / done.

    A missing status falls back to the "passes" flag. Unknown values and
    deprecated synonyms are treated as open.
    """
    status = story.status
    if status in CANONICAL_STATUSES:
        return status
    if status is None:
        return STATUS_DONE if story.passes else STATUS_OPEN
    return STATUS_OPEN


def is_deprecated_status(story: PrdStory) -> bool:
    return story.status in DEPRECATED_STATUS_SYNONYMS


@dataclass
class StoryView:
    """Rendered view of one story in the snapshot."""
    id: str
    title: str
    display_title: str
    status: str                                # open, in_progress, done
    priority: Any = None
    passes: bool = False
    started_at: Optional[int] = None           # epoch millis
    completed_at: Optional[int] = None         # epoch millis
    stale: bool = False
    stale_count: int = 0
    description: Optional[str] = None
    display_description: Optional[str] = None
    acceptance_criteria: list = field(default_factory=list)


@dataclass
class StoryStats:
    """Story counts by status."""
    total: int = 0
    done: int = 0
    in_progress: int = 0
    open: int = 0
    percent: int = 0


def compute_story_stats(stories: list[StoryView]) -> StoryStats:
    """Count stories by status; percent is round(done / total * 100), 0 when empty."""
    total = len(stories)
    done = sum(1 for s in stories if s.status == STATUS_DONE)
    in_progress = sum(1 for s in stories if s.status == STATUS_IN_PROGRESS)
    open_count = sum(1 for s in stories if s.status == STATUS_OPEN)
    # halves round up
    percent = int(done / total * 100 + 0.5) if total else 0
    return StoryStats(total=total, done=done, in_progress=in_progress, open=open_count, percent=percent)
