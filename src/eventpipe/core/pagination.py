"""Cursor-based batch iteration over large record sets.

``batch_find_many`` walks a backing store one page at a time so that only a
single page is ever resident. The store is asked for ``take`` records
starting at the cursor record, and ``skip=1`` drops the cursor record itself
because it was the last record of the previous page.

Iteration ends on the first empty page. It is forward-only and not
isolated from concurrent writes: records deleted ahead of the cursor may be
skipped and records inserted behind the cursor may be seen twice. Callers
that need a consistent snapshot must provide it through the store.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from typing import Any, Protocol, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 100


class FetchPage(Protocol[T]):
    """Fetch one ordered page of records starting at *cursor*."""

    def __call__(
        self, *, take: int, skip: int, cursor: Any | None
    ) -> Awaitable[Sequence[T]]: ...


def record_id(record: Any) -> Any:
    """Return the cursor field of a record (attribute or mapping key)."""
    if isinstance(record, Mapping):
        return record["id"]
    return record.id


async def batch_find_many(
    fetch_page: FetchPage[T],
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    get_id: Callable[[Any], Any] = record_id,
) -> AsyncIterator[T]:
    """Lazily yield every record returned by *fetch_page*, page by page.

    Args:
        fetch_page: Async callable accepting ``take``, ``skip`` and
            ``cursor`` keyword arguments. It must order records by the
            cursor field and include the cursor record itself when
            ``skip`` is ``0``.
        batch_size: Page size requested from the store.
        get_id: Extracts the cursor value from a record.

    Raises:
        ValueError: If *batch_size* is not positive.

    Errors raised by *fetch_page* propagate to the consumer and end the
    iteration.
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    cursor: Any | None = None
    pages = 0

    while True:
        page = await fetch_page(
            take=batch_size,
            skip=1 if cursor is not None else 0,
            cursor=cursor,
        )
        pages += 1

        if not page:
            logger.debug("Batch iteration finished after %d pages", pages)
            return

        for item in page:
            yield item

        cursor = get_id(page[-1])
