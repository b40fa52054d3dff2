"""Posting Queue.

Durable FIFO of documents waiting to be posted to an external accounting
system, with the retry state machine:

    PENDING -> PROCESSING -> SUCCESS
                   |
                   +-> RETRYING -> PROCESSING ...   (retryable, attempts left)
                   +-> FAILED   -> RETRYING         (operator retry)

Usage:
    queue = PostingQueue(db_path)
    item = queue.enqueue(tenant_id, "invoice", "INV-001", payload=snapshot)
    page = queue.list(tenant_id, status="FAILED")
    queue.retry(item.id, tenant_id=tenant_id)
"""

from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from core.config import Settings, get_settings
from core.db import utcnow
from core.errors import InvalidStateError, NotFoundError
from core.models import ConnectionType, DocType, PostingStatus
from core.observability.logging import get_logger, with_correlation
from posting_queue import db
from posting_queue.models import PostingQueueItem, PostingQueuePage, build_page


logger = get_logger(__name__)

DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 100


class PostingQueue:
    """Queue service over the posting_queue table."""

    def __init__(self, db_path: Union[str, Path], settings: Optional[Settings] = None):
        self.db_path = db_path
        self.settings = settings or get_settings()

    # -------------------------------------------------------------------------
    # Producer / operator side
    # -------------------------------------------------------------------------

    def enqueue(
        self,
        tenant_id: str,
        doc_type: Union[str, DocType],
        doc_id: str,
        payload: Optional[Dict[str, Any]] = None,
        connection_type: Optional[Union[str, ConnectionType]] = None,
    ) -> PostingQueueItem:
        """Queue a document for posting.

        If the document already has an item that has not succeeded, that
        item is returned unchanged and no new row is written.

        Raises:
            ValueError: Unknown doc type or connection type
        """
        doc_type = DocType(doc_type)
        pinned = ConnectionType(connection_type).value if connection_type else None

        item, created = db.enqueue_or_get(
            self.db_path,
            tenant_id,
            doc_type.value,
            doc_id,
            max_attempts=self.settings.max_attempts,
            payload=payload,
            connection_type=pinned,
        )

        with with_correlation(tenant_id=tenant_id, queue_item_id=item.id, doc_type=doc_type.value):
            if created:
                logger.info(f"Queued {doc_type.value} {doc_id} for posting")
            else:
                logger.debug(
                    f"{doc_type.value} {doc_id} already queued",
                    extra_fields={"status": item.status.value},
                )
        return item

    def list(
        self,
        tenant_id: str,
        status: Optional[Union[str, PostingStatus]] = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
    ) -> PostingQueuePage:
        """A page of the tenant's items, FIFO by creation time."""
        status_value = PostingStatus(status).value if status else None
        page = max(1, page)
        limit = min(max(1, limit), MAX_PAGE_LIMIT)

        items = db.list_items(
            self.db_path, tenant_id, status=status_value, limit=limit, offset=(page - 1) * limit
        )
        total = db.count_items(self.db_path, tenant_id, status=status_value)
        return build_page(items, total, page, limit)

    def get(self, item_id: str, tenant_id: Optional[str] = None) -> PostingQueueItem:
        """Fetch one item; another tenant's item counts as missing."""
        item = db.get_item(self.db_path, item_id)
        if item is None or (tenant_id is not None and item.tenant_id != tenant_id):
            raise NotFoundError("Posting queue item not found")
        return item

    def retry(self, item_id: str, tenant_id: Optional[str] = None) -> PostingQueueItem:
        """Operator retry: FAILED -> RETRYING, eligible on the next sweep.

        Raises:
            NotFoundError: No such item for this tenant
            InvalidStateError: Item is not FAILED (nothing is changed)
        """
        item = self.get(item_id, tenant_id=tenant_id)
        if item.status != PostingStatus.FAILED:
            raise InvalidStateError(
                f"Only FAILED items can be retried (item is {item.status.value})",
                current_status=item.status.value,
            )

        updated = db.retry_item(self.db_path, item_id)
        if updated is None:
            # Status changed between the read and the compare-and-set.
            current = self.get(item_id)
            raise InvalidStateError(
                f"Only FAILED items can be retried (item is {current.status.value})",
                current_status=current.status.value,
            )

        with with_correlation(tenant_id=item.tenant_id, queue_item_id=item_id, doc_type=item.doc_type.value):
            logger.info(f"Retry requested for {item.doc_type.value} {item.doc_id}")
        return updated

    # -------------------------------------------------------------------------
    # Dispatcher side
    # -------------------------------------------------------------------------

    def eligible(self, limit: Optional[int] = None, now: Optional[datetime] = None) -> List[PostingQueueItem]:
        """Items a sweep may attempt now, oldest first."""
        return db.find_eligible(
            self.db_path,
            now or utcnow(),
            limit or self.settings.sweep_batch_size,
        )

    def claim(self, item_id: str, now: Optional[datetime] = None) -> Optional[PostingQueueItem]:
        """Take exclusive ownership of an item for one attempt, or None if lost."""
        return db.claim_item(self.db_path, item_id, now=now)

    def complete(self, item_id: str, external_ref: str, now: Optional[datetime] = None) -> Optional[PostingQueueItem]:
        if not external_ref:
            raise ValueError("external_ref is required to complete an item")
        return db.complete_item(self.db_path, item_id, external_ref, now=now)

    def fail(
        self,
        item_id: str,
        error: str,
        retryable: bool = True,
        now: Optional[datetime] = None,
    ) -> Optional[PostingQueueItem]:
        return db.fail_item(
            self.db_path,
            item_id,
            error,
            retryable=retryable,
            backoff_seconds=self.settings.retry_backoff_seconds,
            now=now,
        )

    def recover_stale(self, now: Optional[datetime] = None) -> int:
        """Release PROCESSING items whose claim is older than the lease."""
        now = now or utcnow()
        older_than = now - timedelta(seconds=self.settings.claim_lease_seconds)
        recovered = db.recover_stale(self.db_path, older_than, now=now)
        if recovered:
            logger.warning(f"Recovered {recovered} stale PROCESSING item(s)")
        return recovered
