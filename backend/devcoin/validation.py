"""
Question input validation.

Runs before any store access. Only length bounds and the category
whitelist are checked here.
"""
from typing import Any, Optional

from utils.errors import InvalidArgumentError

from .config import CATEGORY_TAGS, ERROR_MESSAGES, QUESTION_LIMITS


def _length_ok(value: Any, minimum: int, maximum: int) -> bool:
    return isinstance(value, str) and minimum <= len(value) <= maximum


def validate_post_question(
    title: Any,
    body: Any,
    attachment: Optional[Any],
    category: Any,
) -> None:
    """Raise InvalidArgumentError on the first violated field."""
    if not _length_ok(title, QUESTION_LIMITS["title_min"], QUESTION_LIMITS["title_max"]):
        raise InvalidArgumentError(ERROR_MESSAGES["TITLE_LENGTH"], field="title")

    if not _length_ok(body, QUESTION_LIMITS["body_min"], QUESTION_LIMITS["body_max"]):
        raise InvalidArgumentError(ERROR_MESSAGES["BODY_LENGTH"], field="body")

    if attachment is not None and not _length_ok(attachment, 0, QUESTION_LIMITS["attachment_max"]):
        raise InvalidArgumentError(ERROR_MESSAGES["ATTACHMENT_LENGTH"], field="attachment")

    if not isinstance(category, str) or category not in CATEGORY_TAGS:
        raise InvalidArgumentError(ERROR_MESSAGES["CATEGORY_INVALID"], field="category")
