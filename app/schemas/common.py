from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ListResponse(BaseModel, Generic[T]):
    """Paged listing returned by the product and audit endpoints."""

    items: list[T]
    count: int
    limit: int
    offset: int
    total: int
    has_more: bool = False
