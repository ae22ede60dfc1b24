import math
from typing import Any, Optional

from fastapi import Query
from pydantic import BaseModel

from .. import config


class PageMeta(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class PageParams:
    def __init__(self, page: int, limit: int):
        self.page = page
        self.limit = limit

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def meta(self, total: int) -> PageMeta:
        return PageMeta(page=self.page, limit=self.limit, total=total,
                        pages=math.ceil(total / self.limit) if total else 0)


def pagination(default_limit: int = config.DEFAULT_PAGE_SIZE):
    """Query dependency for `page`/`limit` (limit capped at MAX_PAGE_SIZE)."""
    def dependency(
        page: int = Query(1, ge=1, description='Page must be a positive integer'),
        limit: int = Query(default_limit, ge=1, le=config.MAX_PAGE_SIZE),
    ) -> PageParams:
        return PageParams(page, limit)
    return dependency


def envelope(data: Any = None, message: Optional[str] = None) -> dict:
    body: dict = {'success': True}
    if message is not None:
        body['message'] = message
    if data is not None:
        body['data'] = data
    return body
