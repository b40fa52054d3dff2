"""Posting Queue Database Operations.

This module handles all database operations for the posting queue:
- Schema initialization
- Idempotent enqueue
- Compare-and-set status transitions (claim, complete, fail, retry)
- Eligibility scan and stale-claim recovery

Status transitions are single UPDATE statements guarded on the current
status, so two dispatchers racing for the same item cannot both win.
"""

import json
import sqlite3
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from core.db import from_db_time, read_connection, to_db_time, utcnow, write_transaction
from core.models import PostingStatus
from posting_queue.models import PostingQueueItem


DbPath = Union[str, Path]

STALE_CLAIM_ERROR = "Dispatcher stopped before the attempt finished"


def init_posting_queue_db(db_path: DbPath) -> None:
    """Initialize the posting queue table.

    `seq` keeps insertion order for items created in the same instant.
    The partial unique index allows one unfinished item per document;
    once an item reaches SUCCESS the document can be queued again.
    """
    with write_transaction(db_path) as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS posting_queue (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                tenant_id TEXT NOT NULL,
                doc_type TEXT NOT NULL,
                doc_id TEXT NOT NULL,
                connection_type TEXT,
                payload_json TEXT NOT NULL DEFAULT '{}',
                status TEXT NOT NULL CHECK(status IN ('PENDING', 'PROCESSING', 'SUCCESS', 'FAILED', 'RETRYING')),
                attempts INTEGER NOT NULL DEFAULT 0 CHECK(attempts >= 0),
                max_attempts INTEGER NOT NULL CHECK(max_attempts >= 1),
                last_error TEXT,
                external_ref TEXT,
                next_retry_at TEXT,
                processed_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                CHECK((status = 'SUCCESS') = (external_ref IS NOT NULL)),
                CHECK(status != 'PENDING' OR attempts = 0)
            )
        """)
        conn.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS uq_posting_queue_open_document
            ON posting_queue(tenant_id, doc_type, doc_id)
            WHERE status != 'SUCCESS'
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_posting_queue_eligible
            ON posting_queue(status, next_retry_at, created_at)
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_posting_queue_tenant
            ON posting_queue(tenant_id, status, created_at)
        """)


# =============================================================================
# Enqueue
# =============================================================================

def enqueue_or_get(
    db_path: DbPath,
    tenant_id: str,
    doc_type: str,
    doc_id: str,
    max_attempts: int,
    payload: Optional[Dict[str, Any]] = None,
    connection_type: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[PostingQueueItem, bool]:
    """Insert a PENDING item unless the document already has an unfinished one.

    The lookup and the insert run under the database write lock, so
    concurrent enqueues of the same document produce exactly one row.

    Returns:
        (item, created)
    """
    stamp = to_db_time(now or utcnow())
    with write_transaction(db_path) as conn:
        row = _find_open(conn, tenant_id, doc_type, doc_id)
        if row is not None:
            return _row_to_item(row), False

        item_id = str(uuid.uuid4())
        conn.execute("""
            INSERT INTO posting_queue (
                id, tenant_id, doc_type, doc_id, connection_type, payload_json,
                status, attempts, max_attempts, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, 'PENDING', 0, ?, ?, ?)
        """, (
            item_id,
            tenant_id,
            doc_type,
            doc_id,
            connection_type,
            json.dumps(payload or {}, sort_keys=True, default=str),
            max_attempts,
            stamp,
            stamp,
        ))
        row = _fetch(conn, item_id)
    return _row_to_item(row), True


# =============================================================================
# Reads
# =============================================================================

def get_item(db_path: DbPath, item_id: str) -> Optional[PostingQueueItem]:
    with read_connection(db_path) as conn:
        row = _fetch(conn, item_id)
    return _row_to_item(row) if row else None


def list_items(
    db_path: DbPath,
    tenant_id: str,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[PostingQueueItem]:
    """Tenant's items, oldest first."""
    query = "SELECT * FROM posting_queue WHERE tenant_id = ?"
    params: list = [tenant_id]
    if status:
        query += " AND status = ?"
        params.append(status)
    query += " ORDER BY created_at ASC, seq ASC LIMIT ? OFFSET ?"
    params.extend([limit, offset])

    with read_connection(db_path) as conn:
        rows = conn.execute(query, params).fetchall()
    return [_row_to_item(r) for r in rows]


def count_items(db_path: DbPath, tenant_id: str, status: Optional[str] = None) -> int:
    query = "SELECT COUNT(*) FROM posting_queue WHERE tenant_id = ?"
    params: list = [tenant_id]
    if status:
        query += " AND status = ?"
        params.append(status)
    with read_connection(db_path) as conn:
        return conn.execute(query, params).fetchone()[0]


def find_eligible(db_path: DbPath, now: datetime, limit: int) -> List[PostingQueueItem]:
    """PENDING/RETRYING items that are due, oldest first, across all tenants."""
    with read_connection(db_path) as conn:
        rows = conn.execute("""
            SELECT * FROM posting_queue
            WHERE status IN ('PENDING', 'RETRYING')
              AND (next_retry_at IS NULL OR next_retry_at <= ?)
            ORDER BY created_at ASC, seq ASC
            LIMIT ?
        """, (to_db_time(now), limit)).fetchall()
    return [_row_to_item(r) for r in rows]


# =============================================================================
# Transitions
# =============================================================================

def claim_item(db_path: DbPath, item_id: str, now: Optional[datetime] = None) -> Optional[PostingQueueItem]:
    """PENDING|RETRYING -> PROCESSING and count the attempt.

    Returns None when the item is not claimable (someone else won).
    """
    stamp = to_db_time(now or utcnow())
    with write_transaction(db_path) as conn:
        cursor = conn.execute("""
            UPDATE posting_queue
            SET status = 'PROCESSING', attempts = attempts + 1, updated_at = ?
            WHERE id = ? AND status IN ('PENDING', 'RETRYING')
        """, (stamp, item_id))
        if cursor.rowcount == 0:
            return None
        row = _fetch(conn, item_id)
    return _row_to_item(row)


def complete_item(
    db_path: DbPath,
    item_id: str,
    external_ref: str,
    now: Optional[datetime] = None,
) -> Optional[PostingQueueItem]:
    """PROCESSING -> SUCCESS. Returns None if the item was no longer PROCESSING."""
    stamp = to_db_time(now or utcnow())
    with write_transaction(db_path) as conn:
        cursor = conn.execute("""
            UPDATE posting_queue
            SET status = 'SUCCESS', external_ref = ?, next_retry_at = NULL,
                processed_at = ?, updated_at = ?
            WHERE id = ? AND status = 'PROCESSING'
        """, (external_ref, stamp, stamp, item_id))
        if cursor.rowcount == 0:
            return None
        row = _fetch(conn, item_id)
    return _row_to_item(row)


def fail_item(
    db_path: DbPath,
    item_id: str,
    error: str,
    retryable: bool,
    backoff_seconds: int,
    now: Optional[datetime] = None,
) -> Optional[PostingQueueItem]:
    """Record a failed attempt.

    Retryable failures with budget left go to RETRYING, due after
    backoff_seconds * attempts. Everything else goes to FAILED.
    Returns None if the item was no longer PROCESSING.
    """
    now = now or utcnow()
    with write_transaction(db_path) as conn:
        row = _fetch(conn, item_id)
        if row is None or row["status"] != PostingStatus.PROCESSING.value:
            return None

        attempts = row["attempts"]
        if retryable and attempts < row["max_attempts"]:
            status = PostingStatus.RETRYING.value
            next_retry_at = to_db_time(now + timedelta(seconds=backoff_seconds * attempts))
        else:
            status = PostingStatus.FAILED.value
            next_retry_at = None

        conn.execute("""
            UPDATE posting_queue
            SET status = ?, last_error = ?, next_retry_at = ?, updated_at = ?
            WHERE id = ? AND status = 'PROCESSING'
        """, (status, error, next_retry_at, to_db_time(now), item_id))
        row = _fetch(conn, item_id)
    return _row_to_item(row)


def retry_item(db_path: DbPath, item_id: str, now: Optional[datetime] = None) -> Optional[PostingQueueItem]:
    """FAILED -> RETRYING, due immediately. Returns None if the item was not FAILED."""
    stamp = to_db_time(now or utcnow())
    with write_transaction(db_path) as conn:
        cursor = conn.execute("""
            UPDATE posting_queue
            SET status = 'RETRYING', next_retry_at = NULL, updated_at = ?
            WHERE id = ? AND status = 'FAILED'
        """, (stamp, item_id))
        if cursor.rowcount == 0:
            return None
        row = _fetch(conn, item_id)
    return _row_to_item(row)


def recover_stale(db_path: DbPath, older_than: datetime, now: Optional[datetime] = None) -> int:
    """Release PROCESSING items not updated since older_than.

    Items with attempts left go back to RETRYING (due now); the rest are FAILED.
    Returns the number of recovered items.
    """
    stamp = to_db_time(now or utcnow())
    with write_transaction(db_path) as conn:
        cursor = conn.execute("""
            UPDATE posting_queue
            SET status = CASE WHEN attempts >= max_attempts THEN 'FAILED' ELSE 'RETRYING' END,
                last_error = ?, next_retry_at = NULL, updated_at = ?
            WHERE status = 'PROCESSING' AND updated_at < ?
        """, (STALE_CLAIM_ERROR, stamp, to_db_time(older_than)))
        return cursor.rowcount


# =============================================================================
# Helpers
# =============================================================================

def _fetch(conn: sqlite3.Connection, item_id: str) -> Optional[sqlite3.Row]:
    return conn.execute("SELECT * FROM posting_queue WHERE id = ?", (item_id,)).fetchone()


def _find_open(conn: sqlite3.Connection, tenant_id: str, doc_type: str, doc_id: str) -> Optional[sqlite3.Row]:
    return conn.execute("""
        SELECT * FROM posting_queue
        WHERE tenant_id = ? AND doc_type = ? AND doc_id = ? AND status != 'SUCCESS'
    """, (tenant_id, doc_type, doc_id)).fetchone()


def _row_to_item(row: sqlite3.Row) -> PostingQueueItem:
    return PostingQueueItem(
        id=row["id"],
        tenant_id=row["tenant_id"],
        doc_type=row["doc_type"],
        doc_id=row["doc_id"],
        connection_type=row["connection_type"],
        payload=json.loads(row["payload_json"] or "{}"),
        status=row["status"],
        attempts=row["attempts"],
        max_attempts=row["max_attempts"],
        last_error=row["last_error"],
        external_ref=row["external_ref"],
        next_retry_at=from_db_time(row["next_retry_at"]),
        processed_at=from_db_time(row["processed_at"]),
        created_at=from_db_time(row["created_at"]),
        updated_at=from_db_time(row["updated_at"]),
    )
