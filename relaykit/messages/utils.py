"""Input validation and sanitization for chat operations.

Validators raise :class:`relaykit.errors.ValidationError` and never touch
stored state, so they run before any lock is taken.
"""

import logging
import re

from relaykit.config import MAX_AGENT_NAME_LENGTH, MAX_MESSAGE_LENGTH, MAX_TITLE_LENGTH
from relaykit.errors import ValidationError
from relaykit.history.truncation import text_length

logger = logging.getLogger(__name__)

_SCRIPT_BLOCK = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_HTML_TAG = re.compile(r"<[^>]*>")
_JS_PROTOCOL = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+\s*=", re.IGNORECASE)
_INLINE_SPACE = re.compile(r"[^\S\n]+")
_SPACE_AROUND_NEWLINE = re.compile(r" *\n *")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")

_RISK_PATTERNS = [
    re.compile(r"script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"<[^>]*>"),
    re.compile(r"eval\s*\(", re.IGNORECASE),
    re.compile(r"exec\s*\(", re.IGNORECASE),
    re.compile(r"system\s*\(", re.IGNORECASE),
    re.compile(r"import\s+", re.IGNORECASE),
    re.compile(r"require\s*\(", re.IGNORECASE),
]


def validate_title(title: str, max_length: int = MAX_TITLE_LENGTH) -> str:
    """Return the trimmed title.

    Raises:
        ValidationError: If the title is blank or longer than ``max_length``.
    """
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("Chat title cannot be empty", "title", title)
    trimmed = title.strip()
    if text_length(trimmed) > max_length:
        raise ValidationError(f"Chat title cannot exceed {max_length} characters", "title", title)
    return trimmed


def validate_agent_name(agent: str, max_length: int = MAX_AGENT_NAME_LENGTH) -> str:
    if not isinstance(agent, str) or not agent.strip():
        raise ValidationError("Agent name cannot be empty", "agent", agent)
    if len(agent) > max_length:
        raise ValidationError(f"Agent name cannot exceed {max_length} characters", "agent", agent)
    if _CONTROL_CHARS.search(agent):
        raise ValidationError("Agent name contains control characters", "agent", agent)
    return agent


def validate_content(content: str, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("Message content cannot be empty", "content", None)
    if text_length(content) > max_length:
        raise ValidationError(
            f"Message exceeds maximum size limit of {max_length} characters", "content", None
        )
    return content


def sanitize_content(content: str) -> str:
    """Strip markup and script injection patterns, keeping line breaks.

    Examples:
        >>> sanitize_content("hi <b>there</b>  <script>alert(1)</script>")
        'hi there'
    """
    sanitized = _SCRIPT_BLOCK.sub("", content)
    sanitized = _HTML_TAG.sub("", sanitized)
    sanitized = _JS_PROTOCOL.sub("", sanitized)
    sanitized = _EVENT_HANDLER.sub("", sanitized)

    sanitized = sanitized.replace("\r\n", "\n").replace("\r", "\n").replace("\x00", "")
    sanitized = _INLINE_SPACE.sub(" ", sanitized)
    sanitized = _SPACE_AROUND_NEWLINE.sub("\n", sanitized)
    return sanitized.strip()


def prepare_content(content: str, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """Validate then sanitize message content for storage.

    Raises:
        ValidationError: If the content is invalid, or nothing is left once
            injection patterns are stripped.
    """
    validate_content(content, max_length)
    sanitized = sanitize_content(content)
    if not sanitized:
        raise ValidationError("Message content is empty after sanitization", "content", None)
    if sanitized != content.strip():
        logger.debug("Message content was altered by sanitization")
    return sanitized


def assess_risk_score(content: str) -> int:
    """Rough 0-100 score of how injection-like ``content`` looks."""
    score = sum(len(pattern.findall(content)) * 10 for pattern in _RISK_PATTERNS)
    return min(score, 100)
