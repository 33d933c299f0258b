"""
Claude CLI as a batch translation backend.

Uses: echo "<prompt>" | claude -p --output-format json
The prompt goes via stdin to avoid CLI argument length limits.

This module only talks to the CLI and checks the shape of what comes back.
Retries, batching and the circuit breaker live in lib/translation.py.
"""

import json
import logging
import os
import subprocess
from pathlib import Path
from typing import Optional, Protocol, Sequence

from ralph_monitor.lib.validate import ValidationError, validate

logger = logging.getLogger(__name__)

DEFAULT_TARGET_LANGUAGE = "en"

TRANSLATION_PROMPT = """You are a translation engine.
Translate each item.text to natural English.

Rules:
- Preserve code, backticks, URLs, file paths, identifiers, and IDs exactly.
- Preserve newlines and markdown structure as closely as possible.
- If an item is already English, return it unchanged.
- Output ONLY valid JSON (no markdown, no commentary).

Return format:
{{"translations": {{"<key>": "<english>", ...}}}}
Include every key exactly once.

Input JSON:
{payload}"""


class TranslationError(Exception):
    """A translation batch failed as a whole."""


class TranslatorUnavailable(TranslationError):
    """The translation backend is not installed at all."""


class Translator(Protocol):
    """Anything that can translate a batch of (key, text) pairs.

    Returns a mapping of key -> translated text. Keys may be missing from
    the result; that only fails those items. Raises TranslationError when
    the whole batch failed.
    """

    def translate_batch(self, items: Sequence[tuple[str, str]]) -> dict[str, str]:
        ...


def strip_markdown_fences(text: str) -> str:
    """Strip markdown code fences from text if present."""
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        if lines and lines[0].strip().startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines)
    return text


def parse_json_object(text: str) -> Optional[dict]:
    """Parse a JSON object, tolerating fences and prose around it.

    Returns None if no object can be recovered.
    """
    text = strip_markdown_fences(text)
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        first = text.find("{")
        last = text.rfind("}")
        if first == -1 or last <= first:
            return None
        try:
            data = json.loads(text[first:last + 1])
        except json.JSONDecodeError:
            return None
    return data if isinstance(data, dict) else None


def build_translation_prompt(items: Sequence[tuple[str, str]], target_language: str = DEFAULT_TARGET_LANGUAGE) -> str:
    payload = {
        "targetLanguage": target_language,
        "items": [{"key": key, "text": text} for key, text in items],
    }
    return TRANSLATION_PROMPT.format(payload=json.dumps(payload, ensure_ascii=False))


def parse_translation_output(stdout: str) -> dict[str, str]:
    """Extract the key -> text mapping from the CLI's JSON wrapper.

    Raises:
        TranslationError: if the wrapper or the inner payload is malformed
    """
    wrapper = parse_json_object(stdout)
    if wrapper is None:
        raise TranslationError('Unexpected Claude CLI response (expected JSON with a string "result").')
    try:
        validate(wrapper, "claude_result")
    except ValidationError as e:
        raise TranslationError(f"Unexpected Claude CLI response: {e}") from None

    inner = parse_json_object(wrapper["result"])
    if inner is None:
        raise TranslationError("Claude CLI did not return valid JSON translations.")
    try:
        validate(inner, "translations")
    except ValidationError as e:
        raise TranslationError(f"Malformed translations payload: {e}") from None

    mapping = inner.get("translations")
    if not isinstance(mapping, dict):
        mapping = inner
    return {key: value for key, value in mapping.items() if isinstance(value, str)}


class ClaudeTranslator:
    """Translator backed by a one-shot `claude -p` subprocess per batch."""

    def __init__(
        self,
        cwd: Optional[Path] = None,
        target_language: str = DEFAULT_TARGET_LANGUAGE,
        timeout: Optional[int] = None,
        executable: str = "claude",
    ):
        self.cwd = cwd
        self.target_language = target_language
        # None: the CLI process bounds its own runtime
        self.timeout = timeout
        self.executable = executable

    def translate_batch(self, items: Sequence[tuple[str, str]]) -> dict[str, str]:
        cmd = [self.executable, "-p", "--output-format", "json"]
        prompt = build_translation_prompt(items, self.target_language)

        # Remove ANTHROPIC_API_KEY so Claude uses OAuth credentials instead
        env = {k: v for k, v in os.environ.items() if k != "ANTHROPIC_API_KEY"}

        try:
            result = subprocess.run(
                cmd,
                cwd=str(self.cwd) if self.cwd else None,
                input=prompt,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=env,
            )
        except FileNotFoundError:
            raise TranslatorUnavailable(f"{self.executable} CLI not found (ENOENT)") from None
        except subprocess.TimeoutExpired:
            raise TranslationError(f"{self.executable} timed out after {self.timeout}s") from None

        if result.returncode != 0:
            error_msg = result.stderr.strip() or result.stdout.strip()
            raise TranslationError(f"{self.executable} exited with code {result.returncode}: {error_msg}")

        translations = parse_translation_output(result.stdout)
        logger.debug(f"Translated {len(translations)}/{len(items)} item(s)")
        return translations
