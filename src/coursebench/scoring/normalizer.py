# Copyright (c) Syntropy Systems
"""Turn raw model output into structured data."""
from __future__ import annotations

import json
import re

from pydantic import ValidationError

from coursebench.models.scores import Parsed, Unparsable

_FENCE_OPEN = re.compile(r"```[A-Za-z0-9_-]*[ \t]*\r?\n?")
_FENCE_CLOSE = re.compile(r"```")

_CLOSERS = {"{": "}", "[": "]"}


def strip_code_fences(text: str) -> str:
    """Remove markdown code-fence delimiters, keeping their contents."""
    text = _FENCE_OPEN.sub("", text)
    return _FENCE_CLOSE.sub("", text).strip()


def extract_structured_text(text: str) -> str:
    """Trim text to its outermost structural delimiters.

    Starts at the first ``{`` or ``[`` and ends at the last matching closer.
    Text without an opener is returned unchanged.
    """
    starts = [index for index in (text.find("{"), text.find("[")) if index != -1]
    if not starts:
        return text
    start = min(starts)
    end = text.rfind(_CLOSERS[text[start]])
    if end < start:
        return text[start:]
    return text[start : end + 1]


def normalize_response(raw_text: str) -> Parsed | Unparsable:
    """Parse raw model output, never raising.

    Returns Parsed with the decoded JSON value, or Unparsable carrying the
    decoder's message.
    """
    cleaned = strip_code_fences(raw_text)
    if not cleaned:
        return Unparsable(reason="Empty response")

    candidate = extract_structured_text(cleaned)
    try:
        return Parsed(data=json.loads(candidate))
    except json.JSONDecodeError as e:
        return Unparsable(reason=f"{e.msg} (line {e.lineno}, column {e.colno})")
    except ValidationError as e:
        return Unparsable(reason=f"Unsupported JSON structure: {e.errors()[0]['msg']}")
    except (ValueError, RecursionError) as e:
        return Unparsable(reason=str(e) or type(e).__name__)
