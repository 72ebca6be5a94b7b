"""Utility functions for the Insieme backend."""

import base64
import binascii
import math
import re
from typing import Optional, Tuple

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w/+.-]+)?(?P<params>(;[\w-]+=[\w-]+)*)?;base64,(?P<data>.*)$", re.S)


def decode_data_url(data_url: str) -> Tuple[str, bytes]:
    """
    Decode a base64 data URL such as ``data:application/pdf;base64,JVBER...``.

    A bare base64 string (no ``data:`` prefix) is accepted as well.

    Returns:
        Tuple of (mime_type, raw_bytes); mime_type is "" when unknown

    Raises:
        ValueError: not valid base64
    """
    mime = ""
    payload = "".join(data_url.split())
    match = _DATA_URL_RE.match(payload)
    if match:
        mime = match.group("mime") or ""
        payload = match.group("data")
    elif payload.startswith("data:"):
        raise ValueError("Unsupported data URL (expected base64 encoding)")

    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e

    if not raw:
        raise ValueError("Empty payload")
    return mime, raw


def validate_file_size(file_bytes: bytes, max_size_mb: int) -> Tuple[bool, str]:
    """Validate file size in MB."""
    file_size_mb = len(file_bytes) / (1024 * 1024)

    if file_size_mb > max_size_mb:
        return False, f"File size {file_size_mb:.1f} MB exceeds limit of {max_size_mb} MB"

    return True, "OK"


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives (2.5 -> 3), unlike round()."""
    return int(math.floor(value + 0.5))


def format_percentage(obtained: float, total: int) -> int:
    """Whole-number percentage; 0 when there is nothing to score."""
    if total == 0:
        return 0
    return round_half_up(100 * obtained / total)


def extract_json_text(response_text: Optional[str]) -> str:
    """Strip Markdown code fences around a JSON payload, if any."""
    response_text = (response_text or "").strip()

    if "```json" in response_text:
        return response_text.split("```json")[1].split("```")[0].strip()
    if "```" in response_text:
        return response_text.split("```")[1].split("```")[0].strip()
    return response_text


def clamp_unit(value, default: float = 0.0) -> float:
    """
    Coerce an untrusted number into [0, 1].

    Non-numeric values, booleans and NaN collapse to ``default``.
    """
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        # JSON integers are unbounded; float() overflows past ~1e308
        return float(max(0, min(1, value)))
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return max(0.0, min(1.0, number))
