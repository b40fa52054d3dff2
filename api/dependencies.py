"""Request dependencies: tenant, permissions and services.

The upstream auth layer (gateway or JWT middleware) forwards the caller's
tenant in X-Tenant-Id and granted permissions in X-Permissions. Tests and
deployments with a different auth layer override `get_permissions` /
`get_services` through FastAPI's dependency_overrides.
"""

from typing import Optional, Set
from uuid import UUID

from fastapi import Depends, Header, HTTPException

from core.events import EventBus
from sync_dispatcher.factory import PostingServices, build_services


INTEGRATION_MANAGE = "integration.manage"
POSTING_VIEW = "posting.view"
POSTING_RETRY = "posting.retry"


# =============================================================================
# Lazy initialization of services
# =============================================================================

_services: Optional[PostingServices] = None
_event_bus = EventBus()


def get_services() -> PostingServices:
    """Get or create the registry / queue / dispatcher (lazy init)."""
    global _services
    if _services is None:
        _services = build_services()
    return _services


def get_event_bus() -> EventBus:
    return _event_bus


# =============================================================================
# Tenant and permissions
# =============================================================================

def get_tenant_id(x_tenant_id: Optional[str] = Header(default=None)) -> str:
    """Tenant of the request, from X-Tenant-Id (must be a UUID)."""
    if not x_tenant_id:
        raise HTTPException(status_code=400, detail="Tenant ID is required")
    try:
        return str(UUID(x_tenant_id))
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid tenant ID format")


def get_permissions(x_permissions: Optional[str] = Header(default=None)) -> Set[str]:
    """Permissions granted to the caller (comma separated)."""
    if not x_permissions:
        return set()
    return {p.strip() for p in x_permissions.split(",") if p.strip()}


def require_permission(permission: str):
    """Dependency factory: 403 unless the caller holds `permission`."""
    def checker(permissions: Set[str] = Depends(get_permissions)) -> None:
        if permission not in permissions:
            raise HTTPException(status_code=403, detail=f"Missing permission: {permission}")
    return checker
