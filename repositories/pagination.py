# ============================================================================
# PAGINATION
# ============================================================================
# STATUS: Core - Keyset pagination for record store queries
# PURPOSE: Opaque continuation tokens and page streaming
# CREATED: 07 OCT 2026
# ============================================================================
"""
Pagination

Queries return a Page: the items plus an opaque ``next_page_identifier``
(None on the last page). The identifier encodes the key of the last row
returned, so the next query resumes after it (keyset pagination).
"""

import base64
import json
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 1000


@dataclass
class Page(Generic[T]):
    """One page of query results."""
    items: List[T] = field(default_factory=list)
    next_page_identifier: Optional[str] = None

    @property
    def has_more(self) -> bool:
        return self.next_page_identifier is not None


@dataclass
class PutResult(Generic[T]):
    """Images before and after a create/update. ``old_item`` is None for creates."""
    new_item: T
    old_item: Optional[T] = None


def encode_page_identifier(key: Sequence[str]) -> str:
    """Encode the last key of a page as an opaque token."""
    raw = json.dumps(list(key)).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_page_identifier(token: str, width: int) -> List[str]:
    """
    Decode a token produced by encode_page_identifier.

    Raises:
        ValueError: token is malformed or has the wrong key width
    """
    try:
        key = json.loads(base64.urlsafe_b64decode(token.encode("ascii")))
    except (ValueError, UnicodeDecodeError) as e:
        raise ValueError(f"Invalid page identifier: {e}") from e
    if not isinstance(key, list) or len(key) != width or not all(isinstance(k, str) for k in key):
        raise ValueError("Invalid page identifier")
    return key


def clamp_page_size(page_size: Optional[int]) -> int:
    if page_size is None:
        return DEFAULT_PAGE_SIZE
    return max(1, min(page_size, MAX_PAGE_SIZE))


async def stream_pages(
    fetch: Callable[[Optional[str]], Awaitable[Page[T]]],
) -> AsyncIterator[T]:
    """
    Yield every item across all pages.

    Args:
        fetch: Called with the page identifier (None for the first page)
    """
    page_identifier: Optional[str] = None
    while True:
        page = await fetch(page_identifier)
        for item in page.items:
            yield item
        if not page.has_more:
            return
        page_identifier = page.next_page_identifier


__all__ = [
    "Page",
    "PutResult",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "encode_page_identifier",
    "decode_page_identifier",
    "clamp_page_size",
    "stream_pages",
]
