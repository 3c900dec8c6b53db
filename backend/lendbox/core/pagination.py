"""Offset pagination for list endpoints."""
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Query

from lendbox.core.config import settings


@dataclass
class Page:
    items: List[Any]
    total: int
    page: int
    per_page: int

    @property
    def last_page(self) -> int:
        return max(1, math.ceil(self.total / self.per_page))

    def to_dict(self, serialize: Callable[[Any], Any]) -> Dict[str, Any]:
        return {
            "items": [serialize(item) for item in self.items],
            "total": self.total,
            "page": self.page,
            "per_page": self.per_page,
            "last_page": self.last_page,
        }


def paginate(query: Query, page: int = 1, per_page: Optional[int] = None) -> Page:
    """Slice an ordered query. ``per_page`` is clamped to settings.MAX_PAGE_SIZE."""
    per_page = per_page or settings.DEFAULT_PAGE_SIZE
    per_page = max(1, min(per_page, settings.MAX_PAGE_SIZE))
    page = max(1, page)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * per_page).limit(per_page).all()
    return Page(items=items, total=total, page=page, per_page=per_page)
