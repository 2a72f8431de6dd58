from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional
from app.db.models.post import TITLE_MAX_LENGTH

SORT_FIELDS = ("id", "title", "content")


class PostBase(BaseModel):
    title: str = Field(..., max_length=TITLE_MAX_LENGTH)
    content: Optional[str] = None
    image_path: Optional[str] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Title should not be empty")
        return value


class PostCreate(PostBase):
    pass


class PostUpdate(PostBase):
    pass


class PostOut(BaseModel):
    id: int
    title: str
    content: Optional[str] = None
    image_path: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PostQueryParams(BaseModel):
    """Listing parameters after defaults and clamping have been applied."""

    search: Optional[str] = None
    sort: str = "id"
    order: str = "asc"
    page: int = 1
    page_size: int = 50

    @classmethod
    def from_raw(
        cls,
        search: Optional[str] = None,
        sort: Optional[str] = None,
        order: Optional[str] = None,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        default_page_size: int = 50,
        max_page_size: int = 1000,
    ) -> "PostQueryParams":
        sort_key = (sort or "").strip().lower()
        if sort_key not in SORT_FIELDS:
            sort_key = "id"
        order_key = "desc" if (order or "").strip().lower() == "desc" else "asc"
        # Zero or negative values fall back to the defaults, oversized pages are capped
        if page is None or page < 1:
            page = 1
        if page_size is None or page_size < 1:
            page_size = default_page_size
        page_size = min(page_size, max_page_size)
        return cls(
            search=search or None,
            sort=sort_key,
            order=order_key,
            page=page,
            page_size=page_size,
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    def cache_key(self) -> str:
        return f"posts:{self.search or ''}:{self.sort}:{self.order}:{self.page}:{self.page_size}"
