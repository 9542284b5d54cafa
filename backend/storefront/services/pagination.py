from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class PagedResult:
    items: list[Any]
    page: int
    page_size: int
    total: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.page_size - 1) // self.page_size if self.total > 0 else 1

    def to_dict(self) -> dict:
        return {
            "items": [i.to_dict() if hasattr(i, "to_dict") else i for i in self.items],
            "count": len(self.items),
            "pagination": {
                "page": self.page,
                "page_size": self.page_size,
                "total": self.total,
                "total_pages": self.total_pages,
                "has_next": self.page < self.total_pages,
                "has_prev": self.page > 1,
            },
        }


def paginate(query, page: int, page_size: int) -> PagedResult:
    """Apply offset/limit to an ordered query. page/page_size must already be validated."""
    total = query.order_by(None).count()
    items = query.offset((page - 1) * page_size).limit(page_size).all()
    return PagedResult(items=items, page=page, page_size=page_size, total=total)
