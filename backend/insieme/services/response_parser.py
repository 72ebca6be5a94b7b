"""
Parsing of AI backend responses.

Backend output is untrusted: every field is defaulted explicitly and scores
are clamped. Single-answer grading yields a tagged result so callers can
fall back instead of failing.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel

from ..errors import UpstreamParseError
from ..utils import clamp_unit, extract_json_text

logger = logging.getLogger(__name__)


class ParsedGrading(BaseModel):
    score: float
    feedback: str
    reasoning: Optional[str] = None
    confidence: float


class ParseFailed(BaseModel):
    reason: str
    raw_text: str = ""


ParseResult = Union[ParsedGrading, ParseFailed]


def _as_text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip() or default
    return str(value)


def parse_grading_response(response_text: str) -> ParseResult:
    """Parse a ``{score, feedback, reasoning, confidence}`` object."""
    try:
        data = json.loads(extract_json_text(response_text))
    except json.JSONDecodeError as e:
        return ParseFailed(reason=f"invalid JSON: {e}", raw_text=response_text or "")

    if isinstance(data, list) and len(data) == 1:
        data = data[0]
    if not isinstance(data, dict):
        return ParseFailed(reason="expected a JSON object", raw_text=response_text)
    if "score" not in data:
        return ParseFailed(reason="missing score", raw_text=response_text)

    return ParsedGrading(
        score=clamp_unit(data.get("score")),
        feedback=_as_text(data.get("feedback"), "Graded by AI system"),
        reasoning=_as_text(data.get("reasoning")) or None,
        confidence=clamp_unit(data.get("confidence"), default=0.5),
    )


def parse_json_array(response_text: str) -> List[Dict[str, Any]]:
    """
    Parse a top-level JSON array of objects.

    An object wrapping a single list value (``{"answers": [...]}``) is
    unwrapped. Non-object items are dropped.

    Raises:
        UpstreamParseError: not JSON, or no array found
    """
    try:
        data = json.loads(extract_json_text(response_text))
    except json.JSONDecodeError as e:
        raise UpstreamParseError(
            "Failed to parse AI response as JSON",
            details={"error": str(e), "response": (response_text or "")[:200]},
        ) from e

    if isinstance(data, dict):
        lists = [v for v in data.values() if isinstance(v, list)]
        if len(lists) == 1:
            data = lists[0]

    if not isinstance(data, list):
        raise UpstreamParseError(
            "AI response is not a JSON array",
            details={"type": type(data).__name__},
        )

    items = [item for item in data if isinstance(item, dict)]
    if len(items) != len(data):
        logger.warning(f"Dropped {len(data) - len(items)} non-object entries from AI response")
    return items
