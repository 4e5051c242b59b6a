"""
Shared helpers for the versioned API: scoped lookups and response envelopes.
"""
from typing import Any, Dict, Iterable, List, Type

from fastapi import HTTPException, Query, status
from pydantic import BaseModel

from app.utils.pagination import MAX_PAGE_SIZE, PageMeta, create_paginated_response

DEFAULT_PAGE_SIZE = 20


class PageParams:
    """`page` / `limit` query parameters; oversized limits are clamped, not rejected."""

    def __init__(
        self,
        page: int = Query(1, ge=1),
        limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    ):
        self.page = page
        self.limit = min(limit, MAX_PAGE_SIZE)


def dump(schema: Type[BaseModel], rows: Iterable[Any]) -> List[Dict[str, Any]]:
    return [schema.model_validate(row).model_dump(mode="json", by_alias=True) for row in rows]


def dump_one(schema: Type[BaseModel], row: Any) -> Dict[str, Any]:
    return schema.model_validate(row).model_dump(mode="json", by_alias=True)


def page_response(schema: Type[BaseModel], items: List[Any], meta: PageMeta) -> Dict[str, Any]:
    return create_paginated_response(dump(schema, items), meta)


def not_found(resource: str) -> HTTPException:
    # Scoped lookups: records owned by someone else look exactly like missing ones
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{resource} not found")
