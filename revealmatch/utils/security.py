"""Security utilities for the RevealMatch service."""

import html

from revealmatch.config import settings
from revealmatch.utils.errors import ValidationError


def escape_html(text: str | None) -> str:
    """
    Escape HTML characters in a string to prevent HTML injection in chat clients.

    Args:
        text (str | None): The input string to escape. If None, returns an empty string.

    Returns:
        str: The escaped string safe for HTML rendering.
    """
    if text is None:
        return ""
    return html.escape(str(text))


def sanitize_message(content: str | None, max_length: int | None = None) -> str:
    """
    Clean user-supplied chat content before it is stored.

    Args:
        content (str | None): Raw message text.
        max_length (int | None): Length limit; defaults to MESSAGE_MAX_LENGTH.

    Returns:
        str: Trimmed and HTML-escaped content.

    Raises:
        ValidationError: If the message is empty or longer than the limit.
    """
    limit = max_length or settings.MESSAGE_MAX_LENGTH
    text = (content or "").strip()
    if not text:
        raise ValidationError("Message cannot be empty")
    if len(text) > limit:
        raise ValidationError(
            f"Message cannot exceed {limit} characters",
            details={"length": len(text), "max_length": limit},
        )
    return escape_html(text)
