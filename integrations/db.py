"""Integration Registry Database Operations.

This module handles all database operations for integration connections:
- Schema initialization
- Connection CRUD (create, status updates, lookups)
- Posting routes (doc type -> connection type per tenant)

Connections are unique per (tenant_id, type) and are never deleted.
"""

import json
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from core.db import from_db_time, read_connection, to_db_time, utcnow, write_transaction
from core.models import ConnectionStatus
from integrations.models import IntegrationConnection, PostingRoute


DbPath = Union[str, Path]


def init_integrations_db(db_path: DbPath) -> None:
    """Initialize integration tables.

    Creates:
    - integration_connections: one row per (tenant_id, type)
    - integration_credentials: encrypted credential blob per connection
    - posting_routes: doc type -> connection type per tenant
    """
    with write_transaction(db_path) as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS integration_connections (
                id TEXT PRIMARY KEY,
                tenant_id TEXT NOT NULL,
                type TEXT NOT NULL,
                name TEXT NOT NULL,
                status TEXT NOT NULL CHECK(status IN ('CONNECTED', 'DISCONNECTED', 'ERROR', 'PENDING_AUTH')),
                config_json TEXT NOT NULL DEFAULT '{}',
                last_sync_at TEXT,
                error_message TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE(tenant_id, type)
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_integration_connections_tenant
            ON integration_connections(tenant_id)
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS integration_credentials (
                connection_id TEXT PRIMARY KEY REFERENCES integration_connections(id),
                ciphertext TEXT NOT NULL,
                nonce TEXT NOT NULL,
                key_version INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS posting_routes (
                tenant_id TEXT NOT NULL,
                doc_type TEXT NOT NULL,
                connection_type TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (tenant_id, doc_type)
            )
        """)


# =============================================================================
# Connections
# =============================================================================

def upsert_connection(
    db_path: DbPath,
    tenant_id: str,
    connection_type: str,
    name: str,
    status: ConnectionStatus,
    config: Optional[Dict[str, Any]] = None,
    refuse_if_status: Optional[ConnectionStatus] = None,
) -> tuple:
    """Create the tenant's connection of this type, or re-activate the existing row.

    The read and the write happen in one write transaction, so two concurrent
    connects for the same (tenant, type) cannot both succeed.

    Args:
        refuse_if_status: If the existing row has this status, nothing is written

    Returns:
        (connection, refused) where refused is True when refuse_if_status matched
    """
    now = to_db_time(utcnow())
    with write_transaction(db_path) as conn:
        row = conn.execute(
            "SELECT * FROM integration_connections WHERE tenant_id = ? AND type = ?",
            (tenant_id, connection_type),
        ).fetchone()

        if row is not None and refuse_if_status and row["status"] == refuse_if_status.value:
            return _row_to_connection(row), True

        if row is None:
            connection_id = str(uuid.uuid4())
            conn.execute("""
                INSERT INTO integration_connections
                    (id, tenant_id, type, name, status, config_json, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                connection_id,
                tenant_id,
                connection_type,
                name,
                status.value,
                json.dumps(config or {}),
                now,
                now,
            ))
        else:
            connection_id = row["id"]
            merged_config = json.loads(row["config_json"] or "{}")
            merged_config.update(config or {})
            conn.execute("""
                UPDATE integration_connections
                SET name = ?, status = ?, config_json = ?, error_message = NULL, updated_at = ?
                WHERE id = ?
            """, (name, status.value, json.dumps(merged_config), now, connection_id))

        row = conn.execute(
            "SELECT * FROM integration_connections WHERE id = ?", (connection_id,)
        ).fetchone()
        return _row_to_connection(row), False


def get_connection(db_path: DbPath, connection_id: str) -> Optional[IntegrationConnection]:
    with read_connection(db_path) as conn:
        row = conn.execute(
            "SELECT * FROM integration_connections WHERE id = ?", (connection_id,)
        ).fetchone()
    return _row_to_connection(row) if row else None


def get_connection_by_type(
    db_path: DbPath, tenant_id: str, connection_type: str
) -> Optional[IntegrationConnection]:
    with read_connection(db_path) as conn:
        row = conn.execute(
            "SELECT * FROM integration_connections WHERE tenant_id = ? AND type = ?",
            (tenant_id, connection_type),
        ).fetchone()
    return _row_to_connection(row) if row else None


def list_connections(db_path: DbPath, tenant_id: str) -> List[IntegrationConnection]:
    with read_connection(db_path) as conn:
        rows = conn.execute(
            "SELECT * FROM integration_connections WHERE tenant_id = ? ORDER BY name, type",
            (tenant_id,),
        ).fetchall()
    return [_row_to_connection(r) for r in rows]


def update_connection_status(
    db_path: DbPath,
    connection_id: str,
    status: ConnectionStatus,
    error_message: Optional[str] = None,
    touch_last_sync: bool = False,
) -> Optional[IntegrationConnection]:
    """Set status (and error message). Returns None if the connection does not exist."""
    now = to_db_time(utcnow())
    with write_transaction(db_path) as conn:
        if touch_last_sync:
            cursor = conn.execute("""
                UPDATE integration_connections
                SET status = ?, error_message = ?, last_sync_at = ?, updated_at = ?
                WHERE id = ?
            """, (status.value, error_message, now, now, connection_id))
        else:
            cursor = conn.execute("""
                UPDATE integration_connections
                SET status = ?, error_message = ?, updated_at = ?
                WHERE id = ?
            """, (status.value, error_message, now, connection_id))
        if cursor.rowcount == 0:
            return None
        row = conn.execute(
            "SELECT * FROM integration_connections WHERE id = ?", (connection_id,)
        ).fetchone()
    return _row_to_connection(row)


def touch_last_sync(db_path: DbPath, connection_id: str, when: Optional[datetime] = None) -> None:
    """Record a successful sync without changing status."""
    stamp = to_db_time(when or utcnow())
    with write_transaction(db_path) as conn:
        conn.execute(
            "UPDATE integration_connections SET last_sync_at = ?, updated_at = ? WHERE id = ?",
            (stamp, stamp, connection_id),
        )


# =============================================================================
# Posting routes
# =============================================================================

def set_route(db_path: DbPath, tenant_id: str, doc_type: str, connection_type: str) -> PostingRoute:
    now = to_db_time(utcnow())
    with write_transaction(db_path) as conn:
        conn.execute("""
            INSERT INTO posting_routes (tenant_id, doc_type, connection_type, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(tenant_id, doc_type) DO UPDATE SET
                connection_type = excluded.connection_type,
                updated_at = excluded.updated_at
        """, (tenant_id, doc_type, connection_type, now))
    return PostingRoute(
        tenant_id=tenant_id,
        doc_type=doc_type,
        connection_type=connection_type,
        updated_at=from_db_time(now),
    )


def get_route(db_path: DbPath, tenant_id: str, doc_type: str) -> Optional[str]:
    with read_connection(db_path) as conn:
        row = conn.execute(
            "SELECT connection_type FROM posting_routes WHERE tenant_id = ? AND doc_type = ?",
            (tenant_id, doc_type),
        ).fetchone()
    return row["connection_type"] if row else None


def list_routes(db_path: DbPath, tenant_id: str) -> List[PostingRoute]:
    with read_connection(db_path) as conn:
        rows = conn.execute(
            "SELECT * FROM posting_routes WHERE tenant_id = ? ORDER BY doc_type",
            (tenant_id,),
        ).fetchall()
    return [
        PostingRoute(
            tenant_id=r["tenant_id"],
            doc_type=r["doc_type"],
            connection_type=r["connection_type"],
            updated_at=from_db_time(r["updated_at"]),
        )
        for r in rows
    ]


# =============================================================================
# Helpers
# =============================================================================

def _row_to_connection(row: sqlite3.Row) -> IntegrationConnection:
    return IntegrationConnection(
        id=row["id"],
        tenant_id=row["tenant_id"],
        type=row["type"],
        name=row["name"],
        status=row["status"],
        config=json.loads(row["config_json"] or "{}"),
        last_sync_at=from_db_time(row["last_sync_at"]),
        error_message=row["error_message"],
        created_at=from_db_time(row["created_at"]),
        updated_at=from_db_time(row["updated_at"]),
    )
