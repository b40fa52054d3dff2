"""Posting queue models."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.models import ConnectionType, DocType, PostingStatus


class PostingQueueItem(BaseModel):
    """One document's posting attempt history.

    Invariants:
    - attempts == 0 while PENDING, >= 1 once the item has been claimed
    - external_ref is set if and only if status is SUCCESS
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    tenant_id: str
    doc_type: DocType
    doc_id: str
    connection_type: Optional[ConnectionType] = Field(
        default=None, description="Pinned provider; None means use the tenant's posting route"
    )
    payload: Dict[str, Any] = Field(default_factory=dict, description="Document snapshot taken at enqueue")
    status: PostingStatus
    attempts: int = 0
    max_attempts: int
    last_error: Optional[str] = None
    external_ref: Optional[str] = None
    next_retry_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class PageMeta(BaseModel):
    """Pagination metadata."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class PostingQueuePage(BaseModel):
    """A page of queue items, FIFO by creation time."""
    data: List[PostingQueueItem]
    meta: PageMeta


def build_page(items: List[PostingQueueItem], total: int, page: int, limit: int) -> PostingQueuePage:
    total_pages = (total + limit - 1) // limit
    return PostingQueuePage(
        data=items,
        meta=PageMeta(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        ),
    )
