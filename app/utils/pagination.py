"""
Pagination utilities for list endpoints
"""
from typing import List, Tuple
from math import ceil

from pydantic import BaseModel
from sqlalchemy.orm import Query

from app.core.config import settings


class PageInfo(BaseModel):
    """Pagination metadata"""
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_prev: bool


def clamp_page(page: int, page_size: int) -> Tuple[int, int]:
    """Clamp page and page_size to valid values"""
    if page_size > settings.MAX_PAGE_SIZE:
        page_size = settings.MAX_PAGE_SIZE
    if page_size < 1:
        page_size = settings.DEFAULT_PAGE_SIZE
    if page < 1:
        page = 1
    return page, page_size


def paginate_query(
    query: Query,
    page: int = 1,
    page_size: int = settings.DEFAULT_PAGE_SIZE
) -> Tuple[List, PageInfo]:
    """
    Paginate a SQLAlchemy query

    Args:
        query: SQLAlchemy query object
        page: Page number (1-indexed)
        page_size: Number of items per page

    Returns:
        Tuple of (items, page info)
    """
    page, page_size = clamp_page(page, page_size)

    total = query.count()
    total_pages = ceil(total / page_size) if total > 0 else 0
    items = query.offset((page - 1) * page_size).limit(page_size).all()

    return items, PageInfo(
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1
    )
