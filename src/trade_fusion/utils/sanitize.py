"""Sanitization of free text returned by external collaborators.

Applies to narrative fragments, catalyst and setup text, review issue text
and every other free-text field a collaborator fills in.
"""

import re

from trade_fusion.utils.validators import coerce_str_list

# C0 and C1 control characters, including \n, \r and \t
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")

MAX_TEXT_LENGTH = 500


def sanitize_text(text: str | None, max_length: int = MAX_TEXT_LENGTH) -> str | None:
    """
    Remove control characters and surrounding whitespace, then truncate.

    Args:
        text: Text to sanitize (may be None)
        max_length: Maximum length before truncation; truncated text ends in "..."

    Returns:
        Sanitized text (possibly empty) or None if input was None
    """
    if text is None:
        return None
    cleaned = _CONTROL_CHARS.sub("", text).strip()
    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length].rstrip() + "..."
    return cleaned


def sanitize_required(text: object, default: str, max_length: int = MAX_TEXT_LENGTH) -> str:
    """Sanitize a free-text field that must be non-empty, falling back to default."""
    if not isinstance(text, str):
        return default
    return sanitize_text(text, max_length=max_length) or default


def sanitize_texts(value: object, limit: int = 10, max_length: int = MAX_TEXT_LENGTH) -> tuple[str, ...]:
    """Sanitized, non-empty entries of a string list (a bare string counts as one entry)."""
    cleaned = (sanitize_text(item, max_length=max_length) for item in coerce_str_list(value, limit))
    return tuple(item for item in cleaned if item)
