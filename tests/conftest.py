"""Shared fixtures for ralph-monitor tests."""

import json

import pytest


class FakeTranslator:
    """In-memory translator. Records every batch it is given."""

    def __init__(self, error=None, translate=None, omit=()):
        self.calls = []
        self.error = error
        self.translate = translate or (lambda text: f"EN:{text}")
        self.omit = set(omit)

    def translate_batch(self, items):
        self.calls.append(list(items))
        if self.error is not None:
            raise self.error
        return {key: self.translate(text) for key, text in items if key not in self.omit}


def write_session(tasks_dir, prd=None, activity=None, progress=None, guardrails=None, screenshots=()):
    """Write session artifacts; None leaves a file absent."""
    tasks_dir.mkdir(parents=True, exist_ok=True)
    if prd is not None:
        text = prd if isinstance(prd, str) else json.dumps(prd)
        (tasks_dir / "prd.json").write_text(text)
    if activity is not None:
        (tasks_dir / "activity.log").write_text(activity)
    if progress is not None:
        (tasks_dir / "progress.txt").write_text(progress)
    if guardrails is not None:
        (tasks_dir / "guardrails.md").write_text(guardrails)
    if screenshots:
        shots_dir = tasks_dir / "screenshots"
        shots_dir.mkdir(exist_ok=True)
        for name in screenshots:
            (shots_dir / name).write_bytes(b"\x89PNG")
    return tasks_dir


@pytest.fixture
def tasks_dir(tmp_path):
    return tmp_path / "tasks"


@pytest.fixture
def fake_translator():
    return FakeTranslator()
