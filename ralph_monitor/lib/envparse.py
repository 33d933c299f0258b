"""
Parser for tasks/monitor.env.

Only KEY=value lines are understood. Comments, blank lines and an
`export ` prefix are allowed and matching quotes around a value are
removed. Nothing is expanded or executed: values containing shell syntax
are rejected.
"""

import re
from pathlib import Path
from typing import Optional, Union

# Shell syntax that would do something if the file were sourced
UNSAFE_VALUE = re.compile(r'`|\$[({]|;|&&|\|')
ASSIGNMENT = re.compile(r'^(?:export\s+)?([^=\s]+)\s*=\s*(.*)$')
KEY_PATTERN = re.compile(r'^[A-Z][A-Z0-9_]*$')


class EnvFileError(ValueError):
    """A line of an env file could not be accepted."""

    def __init__(self, lineno: int, reason: str, source: Optional[str] = None):
        self.lineno = lineno
        self.source = source
        where = f"{source} line {lineno}" if source else f"Line {lineno}"
        super().__init__(f"{where}: {reason}")


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        return value[1:-1]
    return value


def parse_env_text(text: str, source: Optional[str] = None) -> dict[str, str]:
    """
    Parse env-file content into a dict. Later assignments win.

    Raises:
        EnvFileError: for a line without '=', a key that isn't UPPER_SNAKE,
            or a value containing shell syntax
    """
    values: dict[str, str] = {}
    for lineno, raw_line in enumerate(text.splitlines(), 1):
        line = raw_line.strip()
        if not line or line.startswith('#'):
            continue

        match = ASSIGNMENT.match(line)
        if match is None:
            raise EnvFileError(lineno, "Invalid syntax (no '=')", source)

        key, value = match.group(1), _unquote(match.group(2).strip())
        if not KEY_PATTERN.match(key):
            raise EnvFileError(lineno, f"Invalid key '{key}'", source)
        if UNSAFE_VALUE.search(value):
            raise EnvFileError(lineno, f"Forbidden pattern in value for {key}", source)

        values[key] = value
    return values


def load_env(filepath: Union[str, Path], required: bool = True) -> dict[str, str]:
    """
    Read and parse an env file.

    Returns {} for a missing file unless required.

    Raises:
        FileNotFoundError: if the file is missing and required
        EnvFileError: if any line is rejected
    """
    path = Path(filepath)
    if not path.is_file():
        if required:
            raise FileNotFoundError(f"Env file not found: {path}")
        return {}
    return parse_env_text(path.read_text(encoding="utf-8"), source=str(path))
