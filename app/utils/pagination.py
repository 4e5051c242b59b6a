"""
Pagination utilities for the versioned API.
"""
from typing import List, Tuple
from math import ceil

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Query

MAX_PAGE_SIZE = 100


class PageMeta(BaseModel):
    """Pagination metadata, rendered as {page, limit, total, totalPages, hasNext, hasPrev}."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


def build_page_meta(page: int, limit: int, total: int) -> PageMeta:
    total_pages = ceil(total / limit) if limit > 0 else 0
    return PageMeta(
        page=page,
        limit=limit,
        total=total,
        total_pages=total_pages,
        has_next=page * limit < total,
        has_prev=page > 1,
    )


def paginate(
    query: Query,
    page: int = 1,
    limit: int = 20,
    max_page_size: int = MAX_PAGE_SIZE
) -> Tuple[List, PageMeta]:
    """
    Paginate a SQLAlchemy query.

    Args:
        query: SQLAlchemy query object (already filtered and ordered)
        page: Page number (1-indexed)
        limit: Number of items per page
        max_page_size: Maximum allowed page size

    Returns:
        Tuple of (items, pagination_meta)
    """
    limit = max(1, min(limit, max_page_size))
    page = max(1, page)

    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, build_page_meta(page, limit, total)


def create_paginated_response(items: List, meta: PageMeta) -> dict:
    """Build the `{data, pagination}` envelope."""
    return {
        "data": items,
        "pagination": meta.model_dump(by_alias=True),
    }
