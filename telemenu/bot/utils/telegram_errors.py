"""Classify Telegram API errors by their description."""


def is_noop_edit_error(error: Exception) -> bool:
    """Whether Telegram rejected an edit because nothing changed."""
    return "message is not modified" in str(error).lower()


def is_markdown_parse_error(error: Exception) -> bool:
    """Whether a send failed because the text entities could not be parsed."""
    error_text = str(error).lower()
    return "can't parse entities" in error_text or "cannot parse entities" in error_text
