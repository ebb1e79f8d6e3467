"""Turn raw vendor text into a validated AIAnalysisResult."""
from __future__ import annotations

import json
import logging
import re
import unicodedata
from typing import Any, Dict

from pydantic import ValidationError

from schemas.ai_analysis import AIAnalysisResult
from services.analysis.errors import ResponseParseError, ResponseValidationFailed

logger = logging.getLogger(__name__)

_TRAILING_COMMA = re.compile(r",(\s*[}\]])")


def clean_control_chars(s: str) -> str:
    return "".join(ch for ch in s if ch in "\n\t" or unicodedata.category(ch)[0] != "C")


def strip_code_fences(s: str) -> str:
    """Remove a leading ```/```json fence line and a trailing ``` fence."""
    s = s.strip()
    if s.startswith("```"):
        s = s.split("\n", 1)[1] if "\n" in s else ""
    s = s.rstrip()
    if s.endswith("```"):
        s = s[:-3]
    return s.strip()


def _outermost_object(text: str) -> str:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("no JSON object found")
    return text[start:end + 1]


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Parse the JSON object out of model output.

    Handles markdown fences, stray prose around the object, control
    characters and trailing commas.  Raises ValueError on failure.
    """
    body = _outermost_object(strip_code_fences(clean_control_chars(text or "")))
    try:
        obj = json.loads(body)
    except json.JSONDecodeError:
        obj = json.loads(_TRAILING_COMMA.sub(r"\1", body))

    if not isinstance(obj, dict):
        raise ValueError("expected a JSON object")
    return obj


def parse_response(provider: str, text: str) -> Dict[str, Any]:
    try:
        return extract_json_object(text)
    except ValueError as exc:  # JSONDecodeError is a ValueError
        logger.warning(
            "ai_response_parse_failed provider=%s chars=%d err=%s",
            provider, len(text or ""), exc,
            extra={"provider": provider},
        )
        raise ResponseParseError(provider, f"Failed to parse {provider} response as JSON") from exc


def _describe(err: ValidationError) -> str:
    first = err.errors()[0]
    loc = ".".join(str(p) for p in first.get("loc", ()))
    return f"{loc}: {first.get('msg', 'invalid value')}" if loc else first.get("msg", "invalid value")


def validate_response(provider: str, payload: Dict[str, Any]) -> AIAnalysisResult:
    try:
        return AIAnalysisResult.model_validate(payload)
    except ValidationError as exc:
        raise ResponseValidationFailed(
            provider, f"Invalid AI response from {provider}: {_describe(exc)}"
        ) from exc
