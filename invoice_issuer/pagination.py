"""Helpers for paging through stored invoice listings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, List, Sequence, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Page(Generic[T]):
    items: List[T]
    page: int
    pages: int
    total: int

    def as_dict(self) -> dict:
        return {"current": self.page, "pages": self.pages, "total": self.total}


def page_count(total: int, limit: int) -> int:
    if total <= 0:
        return 0
    return (total + limit - 1) // limit


def page_bounds(page: int, limit: int) -> slice:
    start = (page - 1) * limit
    return slice(start, start + limit)


def paginate(rows: Sequence[T], page: int, limit: int) -> Page[T]:
    page = max(1, page)
    limit = max(1, limit)
    return Page(
        items=list(rows[page_bounds(page, limit)]),
        page=page,
        pages=page_count(len(rows), limit),
        total=len(rows),
    )
