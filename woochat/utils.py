import json
import re
from typing import Any, Dict, Optional

TAG_RE = re.compile(r"<[^>]*>")
WHITESPACE_RE = re.compile(r"\s+")


def strip_html(text: str) -> str:
    """Purpose: Remove markup tags from store-provided description HTML.
    Inputs/Outputs: Input is a raw string; output is the text with tags removed and
        whitespace collapsed.
    Side Effects / State: None; pure function.
    Dependencies: Uses regex; called by the context assembler when rendering products.
    Failure Modes: Returns an empty string when input is falsy; entities are kept as-is.
    Testing Notes: Validate "<p>Soft <b>grip</b></p>" becomes "Soft grip".
    """
    # Drop tags first, then collapse the whitespace they leave behind.
    if not text:
        return ""
    stripped = TAG_RE.sub("", text)
    return WHITESPACE_RE.sub(" ", stripped).strip()


def truncate_text(text: str, limit: int) -> str:
    """Return at most ``limit`` characters of ``text``."""
    if not text or limit <= 0:
        return ""
    return text[:limit]


def safe_json_loads(text: str) -> Optional[Dict[str, Any]]:
    """Purpose: Parse a JSON object from an upstream response body safely.
    Inputs/Outputs: Input is raw text; output is a dict or None if parsing fails.
    Side Effects / State: None; pure function.
    Dependencies: Uses json.loads; called when decoding upstream error bodies.
    Failure Modes: Returns None on JSONDecodeError or when the payload is not an object.
    Testing Notes: Validate valid JSON parses and HTML error pages return None.
    """
    # Only objects carry structured error details; anything else is ignored.
    if not text:
        return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    return data
