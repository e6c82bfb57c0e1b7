"""
Page / limit validation shared by the list operations.
"""
from typing import Optional, Tuple

from ..config import settings
from ..exceptions import ValidationError


def page_window(page: int = 1, limit: Optional[int] = None) -> Tuple[int, int, int]:
    """
    Resolve page and limit into (page, limit, offset).

    Raises ValidationError when page < 1 or limit is outside 1..MAX_PAGE_SIZE.
    """
    if limit is None:
        limit = settings.ledger.DEFAULT_PAGE_SIZE
    errors = []
    if page < 1:
        errors.append("Page must be at least 1")
    if limit < 1 or limit > settings.ledger.MAX_PAGE_SIZE:
        errors.append(f"Limit must be between 1 and {settings.ledger.MAX_PAGE_SIZE}")
    if errors:
        raise ValidationError(errors=errors)
    return page, limit, (page - 1) * limit
