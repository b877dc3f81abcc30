"""
Pagination Utility

Slices in-memory result lists into pages with navigation metadata.
"""
from math import ceil
from typing import Callable, Generic, List, Optional, Sequence, TypeVar

from fastapi import Query
from pydantic import BaseModel, Field


T = TypeVar("T")


class PaginationParams(BaseModel):
    page: int = Field(default=1, ge=1, description="Page number (starts at 1)")
    page_size: int = Field(default=20, ge=1, le=100, description="Items per page")

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.page_size


class PageInfo(BaseModel):
    total_items: int
    total_pages: int
    current_page: int
    page_size: int
    has_next: bool
    has_previous: bool
    next_page: Optional[int] = None
    previous_page: Optional[int] = None


class PaginatedResponse(BaseModel, Generic[T]):
    items: List[T]
    page_info: PageInfo


class Paginator:
    @staticmethod
    def paginate(
        items: Sequence,
        params: PaginationParams,
        transform: Optional[Callable] = None,
    ) -> PaginatedResponse:
        """
        Return one page of ``items``.

        ``transform`` is applied to the sliced items only, e.g. a response
        schema's ``model_validate``.
        """
        page = list(items[params.skip : params.skip + params.page_size])
        if transform:
            page = [transform(item) for item in page]
        return PaginatedResponse(
            items=page,
            page_info=Paginator.create_page_info(len(items), params.page, params.page_size),
        )

    @staticmethod
    def create_page_info(total_items: int, page: int, page_size: int) -> PageInfo:
        total_pages = ceil(total_items / page_size) if total_items > 0 else 0
        has_next = page < total_pages
        has_previous = page > 1

        return PageInfo(
            total_items=total_items,
            total_pages=total_pages,
            current_page=page,
            page_size=page_size,
            has_next=has_next,
            has_previous=has_previous,
            next_page=page + 1 if has_next else None,
            previous_page=page - 1 if has_previous else None,
        )


def get_pagination_params(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> PaginationParams:
    """
    Dependency for pagination parameters.

    Usage in route:
        pagination: PaginationParams = Depends(get_pagination_params)
    """
    return PaginationParams(page=page, page_size=page_size)
