"""공통 페이지네이션 스키마."""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel


T = TypeVar("T")

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class PaginatedResponse(BaseModel, Generic[T]):
    """페이지네이션 응답 공통 스키마."""

    items: list[T]
    total: int
    page: int
    page_size: int


def normalize_page(page: int, page_size: int) -> tuple[int, int]:
    """잘못된 page/page_size 를 기본값으로 보정한다."""

    if page <= 0:
        page = 1
    if page_size <= 0 or page_size > MAX_PAGE_SIZE:
        page_size = DEFAULT_PAGE_SIZE
    return page, page_size
