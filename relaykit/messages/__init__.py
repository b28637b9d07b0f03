"""Message utilities for relaykit.

Validation of titles, agent names and message content, plus the basic
injection-pattern stripping applied before a message is stored.
"""

from .utils import (
    assess_risk_score,
    prepare_content,
    sanitize_content,
    validate_agent_name,
    validate_content,
    validate_title,
)

__all__ = [
    "assess_risk_score",
    "prepare_content",
    "sanitize_content",
    "validate_agent_name",
    "validate_content",
    "validate_title",
]
