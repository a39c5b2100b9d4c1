"""Free-text scrubbing for admin and checkout input."""

from __future__ import annotations

import re

_SCRIPT_BLOCK = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_HTML_TAG = re.compile(r"<[^>]*>")
_EVENT_HANDLER = re.compile(r"on\w+\s*=\s*[\"'][^\"']*[\"']", re.IGNORECASE)
_JS_SCHEME = re.compile(r"javascript:", re.IGNORECASE)

MAX_TEXT_LENGTH = 1000


def sanitize_text(value: object, max_length: int = MAX_TEXT_LENGTH) -> str:
    """Strip markup, inline event handlers and ``javascript:`` URLs.

    The input is capped at ``max_length`` before and after scrubbing.
    """
    if value is None:
        return ""
    text = str(value)[:max_length]
    text = _SCRIPT_BLOCK.sub("", text)
    text = _HTML_TAG.sub("", text)
    text = _EVENT_HANDLER.sub("", text)
    text = _JS_SCHEME.sub("", text)
    return text.strip()[:max_length]
