"""
Pagination Engine.

Cursor-based windows over ordered result sets. A cursor is the base64url
encoded identity of the last item of the previous page.
"""

import logging
from collections.abc import Callable, Sequence
from typing import TypeVar

from twin_engine.exceptions import InvalidInputError
from twin_engine.utils.encoding import decode_identifier, encode_identifier

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 100


def page(
    items: Sequence[T],
    get_id: Callable[[T], str],
    page_size: int | None = None,
    cursor: str | None = None,
    default_page_size: int = DEFAULT_PAGE_SIZE,
) -> tuple[list[T], str | None]:
    """
    Cut one page out of an ordered sequence.

    Args:
        items: Full ordered result set
        get_id: Identity of an item
        page_size: Requested size; non-positive or missing means default
        cursor: Encoded identity of the last item already seen
        default_page_size: Size used when none is requested

    Returns:
        Tuple of (page items, next cursor). The next cursor is set only
        when the page is full and more items follow.
    """
    start = 0
    if cursor:
        start = _start_after(items, get_id, cursor)

    size = page_size if page_size is not None and page_size > 0 else default_page_size
    window = list(items[start : start + size])

    next_cursor = None
    if len(window) == size and start + size < len(items):
        next_cursor = encode_identifier(get_id(window[-1]))
    return window, next_cursor


def _start_after(items: Sequence[T], get_id: Callable[[T], str], cursor: str) -> int:
    try:
        last_seen = decode_identifier(cursor)
    except InvalidInputError:
        logger.debug("Undecodable cursor, restarting at the first item")
        return 0

    for index, item in enumerate(items):
        if get_id(item) == last_seen:
            return index + 1
    logger.debug(f"Cursor '{last_seen}' matches no item, restarting at the first item")
    return 0


def validate_paging(limit: int | None, cursor: str | None) -> None:
    """
    Validate paging parameters at the API boundary.

    Raises:
        InvalidInputError: If the limit is not positive or the cursor is
            not valid base64url
    """
    if limit is not None and limit <= 0:
        raise InvalidInputError("Limit must be greater than 0")
    if cursor is not None:
        decode_identifier(cursor)
