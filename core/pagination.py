"""Pagination helpers shared by list endpoints."""

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from core.settings import get_settings


@dataclass(frozen=True)
class PageRequest:
    page: int
    page_size: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


def normalize_pagination(page: Optional[int] = None, page_size: Optional[int] = None) -> PageRequest:
    """Clamp page to >= 1 and page_size to [1, max_page_size]."""
    settings = get_settings()
    page = max(1, page or 1)
    page_size = min(settings.max_page_size, max(1, page_size or settings.default_page_size))
    return PageRequest(page=page, page_size=page_size)


def build_pagination_meta(total_count: int, page: int, page_size: int) -> Dict[str, Any]:
    total_pages = math.ceil(total_count / page_size) if page_size > 0 else 0
    return {
        "page": page,
        "page_size": page_size,
        "total_count": total_count,
        "total_pages": total_pages,
        "has_next_page": page < total_pages,
        "has_prev_page": page > 1,
    }


def paginated_response(items: List[Any], total_count: int, request: PageRequest) -> Dict[str, Any]:
    return {
        "data": items,
        "pagination": build_pagination_meta(total_count, request.page, request.page_size),
    }
