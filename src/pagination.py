"""Cursor-based retrieval of complete collections from paged list endpoints."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Generic, Hashable, Optional, Sequence, TypeVar
from urllib.parse import parse_qs, urlparse

from config import get_logger

if TYPE_CHECKING:
    import requests

    from cancellation import CancelToken

logger = get_logger(service="pagination")

T = TypeVar("T")
Cursor = Hashable


@dataclass(frozen=True)
class Page(Generic[T]):
    """One response of a list endpoint.

    Attributes:
        items: Items on this page, possibly empty.
        next_cursor: Cursor for the following page; ``None`` means end of list.
        advertised_total: Total the server claims to have, informational only.
    """

    items: Sequence[T]
    next_cursor: Optional[Cursor] = None
    advertised_total: Optional[int] = None


def fetch_all(
    list_page: Callable[[Optional[Cursor]], Page[T]],
    initial_cursor: Optional[Cursor] = None,
    cancel: CancelToken | None = None,
) -> list[T]:
    """Call ``list_page`` until the server stops handing out cursors.

    Termination is decided only by the page's continuation cursor; the
    advertised total can be stale and is never used to stop early. Errors
    from ``list_page`` propagate unchanged and no partial list is returned.

    Raises:
        ValueError: if the server hands back a cursor it already served, which
            would otherwise loop forever.
    """
    items: list[T] = []
    cursor = initial_cursor
    seen: set[Cursor] = set()
    pages = 0

    while True:
        if cancel is not None:
            cancel.raise_if_cancelled()
        page = list_page(cursor)
        pages += 1
        items.extend(page.items)

        if page.next_cursor is None:
            break
        if page.next_cursor == cursor or page.next_cursor in seen:
            raise ValueError(f"list endpoint repeated cursor {page.next_cursor!r}")
        if cursor is not None:
            seen.add(cursor)
        cursor = page.next_cursor
        logger.debug(f"Fetching next page (loaded {len(items)} items so far)", extra={"cursor": cursor})

    if pages > 1 or items:
        logger.debug(f"Fetched {len(items)} items in {pages} pages")
    return items


def next_page_from_links(response: requests.Response) -> Optional[int]:
    """Page number of the ``rel="next"`` entry of a REST ``Link`` header, if any."""
    next_link = response.links.get("next", {}).get("url")
    if not next_link:
        return None
    page = parse_qs(urlparse(next_link).query).get("page")
    if not page:
        return None
    try:
        number = int(page[0])
    except ValueError:
        return None
    # A link to page 0 means there is no next page.
    return number or None


def next_scim_start_index(start_index: int, item_count: int) -> Optional[int]:
    """Next SCIM ``startIndex``, or ``None`` once a page comes back empty.

    A page shorter than the requested ``count`` is not the end: servers may cap
    the page size below what was asked for.
    """
    if item_count == 0:
        return None
    return start_index + item_count
