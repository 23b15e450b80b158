"""
Shared pydantic types for API schemas
"""
from decimal import Decimal
from typing import Annotated, Any, Generic, List, TypeVar

from pydantic import BaseModel, PlainSerializer

# Money is held as Decimal and sent to the browser as a JSON number
Money = Annotated[Decimal, PlainSerializer(lambda v: float(v), return_type=float, when_used="json")]

T = TypeVar("T")


class Badge(BaseModel):
    label: str
    colour: str


class PageResponse(BaseModel, Generic[T]):
    items: List[T]
    page: int
    page_size: int
    total: int
    page_count: int
    start_index: int
    end_index: int

    @classmethod
    def from_page(cls, page: Any, items: List[T]):
        return cls(
            items=items,
            page=page.page,
            page_size=page.page_size,
            total=page.total,
            page_count=page.page_count,
            start_index=page.start_index,
            end_index=page.end_index,
        )
