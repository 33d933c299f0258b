"""Tests for ralph_monitor.lib.validate."""

import pytest

from ralph_monitor.lib.validate import ValidationError, validate


class TestValidate:
    """Tests for validate."""

    def test_valid_claude_result(self):
        validate({"type": "result", "result": "{}"}, "claude_result")

    def test_missing_required_field(self):
        with pytest.raises(ValidationError) as exc:
            validate({"type": "result"}, "claude_result")
        assert exc.value.schema_name == "claude_result"
        assert exc.value.path == "(root)"

    def test_wrong_type_reports_path(self):
        with pytest.raises(ValidationError) as exc:
            validate({"translations": {"prd.title": 3}}, "translations")
        assert exc.value.path == "translations.prd.title"

    def test_null_translation_allowed(self):
        validate({"translations": {"prd.title": None}}, "translations")

    def test_unknown_schema(self):
        with pytest.raises(ValidationError, match="Schema file not found"):
            validate({}, "no_such_schema")
