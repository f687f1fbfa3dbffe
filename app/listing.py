from typing import Literal

from pydantic import BaseModel, Field

PAGE_SIZE = 50
MAX_PAGE_SIZE = 100

SORT_COLUMNS = {
    "reputation": "reputation",
    "vouches": "total_vouches_received",
    "positive": "positive_vouches",
    "recent": "last_active",
}

SortKey = Literal["reputation", "vouches", "positive", "recent"]


class ListView(BaseModel):
    """Pagination and sort state for one list request."""

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    sort: SortKey = "reputation"

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def order_column(self) -> str:
        return SORT_COLUMNS[self.sort]

    def rank(self, index: int) -> int:
        return self.offset + index + 1

    def page_of(self, items: list[dict]) -> dict:
        """Wrap a page of rows with rank numbers and pagination info."""
        return {
            "page": self.page,
            "limit": self.limit,
            "sort": self.sort,
            "has_more": len(items) == self.limit,
            "items": [{"rank": self.rank(i), **item} for i, item in enumerate(items)],
        }


class SearchView(ListView):
    q: str = ""
