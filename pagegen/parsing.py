import json
import re
from typing import Any, Optional

_FENCE_OPEN_RE = re.compile(r"^```(?:json)?\s*\n?", re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r"\n?```\s*$")
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def strip_code_fences(text: str) -> str:
    cleaned = _FENCE_OPEN_RE.sub("", (text or "").strip())
    return _FENCE_CLOSE_RE.sub("", cleaned).strip()


def parse_json_object(text: str) -> Optional[dict]:
    """Parse model output as a JSON object, tolerating a surrounding code fence."""
    try:
        parsed: Any = json.loads(strip_code_fences(text))
    except (TypeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def extract_json_object(text: str) -> Optional[dict]:
    """Find the outermost ``{...}`` span in free text and parse it."""
    match = _OBJECT_RE.search(text or "")
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None
