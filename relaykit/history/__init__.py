"""Chat history policies.

Budgeting (oldest-first truncation), per-agent replay selection and the
transcript rendering handed to the reasoning CLI.
"""

from relaykit.history.formatting import build_prompt_with_history, format_history_for_gemini
from relaykit.history.truncation import TruncationPolicy, text_length, total_chars

__all__ = [
    "TruncationPolicy",
    "build_prompt_with_history",
    "format_history_for_gemini",
    "text_length",
    "total_chars",
]
