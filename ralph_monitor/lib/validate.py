"""
Structural checks for JSON produced by the Claude CLI.

Schemas ship as package data in ralph_monitor/schemas/<name>.schema.json.
Only shape is checked; the content of translations is taken as-is.
"""

import json
from functools import lru_cache
from importlib import resources
from typing import Any, Optional

import jsonschema
from jsonschema.exceptions import best_match

SCHEMA_DIR = "schemas"


class ValidationError(Exception):
    """A JSON document did not match its schema."""

    def __init__(self, schema_name: str, message: str, path: Optional[str] = None):
        self.schema_name = schema_name
        self.path = path
        location = f" at {path}" if path else ""
        super().__init__(f"{schema_name}: {message}{location}")


@lru_cache(maxsize=None)
def _validator(schema_name: str) -> jsonschema.Draft7Validator:
    resource = resources.files("ralph_monitor") / SCHEMA_DIR / f"{schema_name}.schema.json"
    if not resource.is_file():
        raise ValidationError(schema_name, f"Schema file not found: {resource}")
    schema = json.loads(resource.read_text(encoding="utf-8"))
    return jsonschema.Draft7Validator(schema)


def validate(data: Any, schema_name: str) -> None:
    """
    Check data against a named schema.

    Raises:
        ValidationError: with the most relevant violation and its JSON path
            ("(root)" for top-level problems)
    """
    error = best_match(_validator(schema_name).iter_errors(data))
    if error is None:
        return
    path = ".".join(str(p) for p in error.absolute_path) or "(root)"
    raise ValidationError(schema_name, error.message, path)
