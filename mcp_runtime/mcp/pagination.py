"""Cursor-based pagination for MCP list methods.

Pagination is used by ``tools/list``, ``prompts/list``, ``resources/list`` and
``resources/templates/list``. A cursor is the offset of the next page encoded
as a string; it is opaque to clients and only meaningful to the paginator that
issued it. The last page carries a blank cursor.
"""

from collections.abc import Sequence
from typing import Generic, TypeVar

from mcp_runtime.mcp.errors import ConfigurationError, InvalidArgumentError

T = TypeVar("T")


class Page(Generic[T]):
    """One slice of a paginated collection."""

    def __init__(self, items: Sequence[T], cursor: str = "", is_last: bool = True):
        self.items = tuple(items)
        self.cursor = cursor
        self.is_last = is_last

    def __repr__(self) -> str:
        return f"Page(items={len(self.items)}, cursor={self.cursor!r}, is_last={self.is_last})"


class Paginator(Generic[T]):
    """Splits an ordered, immutable collection into cursor-linked pages."""

    def __init__(self, items: Sequence[T], page_size: int):
        if page_size <= 0:
            raise ConfigurationError("Page size must be greater than zero")
        self._items = tuple(items)
        self._page_size = page_size

    @property
    def page_size(self) -> int:
        return self._page_size

    def first_page(self) -> Page[T]:
        return self._page_at(0)

    def page(self, cursor: str | None) -> Page[T]:
        """Page referenced by ``cursor``; a blank cursor means the first page."""
        if not cursor:
            return self.first_page()
        return self._page_at(self._decode(cursor))

    def content(self) -> tuple[T, ...]:
        return self._items

    def _page_at(self, offset: int) -> Page[T]:
        end = offset + self._page_size
        is_last = end >= len(self._items)
        cursor = "" if is_last else str(end)
        return Page(self._items[offset:end], cursor, is_last)

    def _decode(self, cursor: str) -> int:
        try:
            offset = int(cursor)
        except ValueError:
            raise InvalidArgumentError(f"Invalid cursor: {cursor}") from None
        if offset < 0 or offset >= max(len(self._items), 1) or offset % self._page_size:
            raise InvalidArgumentError(f"Invalid cursor: {cursor}")
        return offset
