"""Integration and posting queue endpoints.

Routes:
- GET  /integrations                          - list connections
- POST /integrations/{type}/connect           - create / re-activate a connection
- GET  /integrations/posting-queue            - page through the tenant's queue
- POST /integrations/posting-queue/{id}/retry - operator retry of a FAILED item
- POST /integrations/post/{docType}/{docId}   - enqueue and post now
- GET  /integrations/routes                   - posting routes
- PUT  /integrations/routes/{docType}         - set a posting route
- GET  /integrations/{id}                     - one connection
- POST /integrations/{id}/disconnect          - disconnect

Static paths are declared before /{id} so they are not captured by it.
"""

from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from api.dependencies import (
    INTEGRATION_MANAGE,
    POSTING_RETRY,
    POSTING_VIEW,
    get_event_bus,
    get_services,
    get_tenant_id,
    require_permission,
)
from core.events import INTEGRATIONS_KEY, POSTING_QUEUE_KEY, EventBus
from core.models import ConnectionType, DocType, PostingStatus
from integrations.models import IntegrationConnection, PostingRoute
from posting_queue.models import PostingQueueItem, PostingQueuePage
from posting_queue.queue import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from sync_dispatcher.factory import PostingServices


router = APIRouter()


# =============================================================================
# Request / Response Models
# =============================================================================

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ConnectRequest(_CamelModel):
    """Request to connect an integration."""
    name: str = Field(..., min_length=1)
    auth_data: Optional[Dict[str, Any]] = Field(default=None, description="Provider credentials; stored encrypted")
    config: Optional[Dict[str, Any]] = Field(default=None, description="Non-secret provider settings")


class PostDocumentRequest(_CamelModel):
    """Request to post a document now."""
    payload: Dict[str, Any] = Field(default_factory=dict, description="Document snapshot")
    connection_type: Optional[ConnectionType] = Field(
        default=None, description="Pin a provider instead of using the posting route"
    )


class PostDocumentResponse(_CamelModel):
    """Outcome of an immediate post."""
    success: bool
    queue_item_id: str
    status: PostingStatus
    external_ref: Optional[str] = None
    error: Optional[str] = None
    item: PostingQueueItem


class SetRouteRequest(_CamelModel):
    connection_type: ConnectionType


# =============================================================================
# Connections
# =============================================================================

@router.get(
    "",
    response_model=List[IntegrationConnection],
    dependencies=[Depends(require_permission(INTEGRATION_MANAGE))],
)
async def list_connections(
    tenant_id: str = Depends(get_tenant_id),
    services: PostingServices = Depends(get_services),
) -> List[IntegrationConnection]:
    """List the tenant's connections in every status."""
    return services.registry.get(tenant_id)


@router.post(
    "/{connection_type}/connect",
    response_model=IntegrationConnection,
    dependencies=[Depends(require_permission(INTEGRATION_MANAGE))],
)
async def connect(
    connection_type: ConnectionType,
    request: ConnectRequest,
    tenant_id: str = Depends(get_tenant_id),
    services: PostingServices = Depends(get_services),
    events: EventBus = Depends(get_event_bus),
) -> IntegrationConnection:
    """Create or re-activate the tenant's connection of this type."""
    connection = services.registry.connect(
        tenant_id,
        connection_type,
        request.name,
        auth_data=request.auth_data,
        config=request.config,
    )
    events.invalidate(INTEGRATIONS_KEY, tenant_id, connection.id)
    return connection


# =============================================================================
# Posting queue
# =============================================================================

@router.get(
    "/posting-queue",
    response_model=PostingQueuePage,
    dependencies=[Depends(require_permission(POSTING_VIEW))],
)
async def list_posting_queue(
    status: Optional[PostingStatus] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    tenant_id: str = Depends(get_tenant_id),
    services: PostingServices = Depends(get_services),
) -> PostingQueuePage:
    """Page through the tenant's queue, oldest first."""
    return services.queue.list(tenant_id, status=status, page=page, limit=limit)


@router.post(
    "/posting-queue/{item_id}/retry",
    response_model=PostingQueueItem,
    dependencies=[Depends(require_permission(POSTING_RETRY))],
)
async def retry_posting(
    item_id: UUID,
    tenant_id: str = Depends(get_tenant_id),
    services: PostingServices = Depends(get_services),
    events: EventBus = Depends(get_event_bus),
) -> PostingQueueItem:
    """Move a FAILED item back to RETRYING."""
    item = services.queue.retry(str(item_id), tenant_id=tenant_id)
    events.invalidate(POSTING_QUEUE_KEY, tenant_id, item.id)
    return item


@router.post(
    "/post/{doc_type}/{doc_id}",
    response_model=PostDocumentResponse,
    dependencies=[Depends(require_permission(POSTING_RETRY))],
)
async def post_document(
    doc_type: DocType,
    doc_id: str,
    request: PostDocumentRequest,
    tenant_id: str = Depends(get_tenant_id),
    services: PostingServices = Depends(get_services),
    events: EventBus = Depends(get_event_bus),
) -> PostDocumentResponse:
    """Enqueue a document and attempt it immediately."""
    queued = services.queue.enqueue(
        tenant_id,
        doc_type,
        doc_id,
        payload=request.payload,
        connection_type=request.connection_type,
    )
    item = await services.dispatcher.dispatch_item(queued.id, tenant_id=tenant_id)

    events.invalidate(POSTING_QUEUE_KEY, tenant_id, item.id)
    events.invalidate(INTEGRATIONS_KEY, tenant_id)

    return PostDocumentResponse(
        success=item.status == PostingStatus.SUCCESS,
        queue_item_id=item.id,
        status=item.status,
        external_ref=item.external_ref,
        error=item.last_error if item.status != PostingStatus.SUCCESS else None,
        item=item,
    )


# =============================================================================
# Posting routes
# =============================================================================

@router.get(
    "/routes",
    response_model=List[PostingRoute],
    dependencies=[Depends(require_permission(INTEGRATION_MANAGE))],
)
async def list_routes(
    tenant_id: str = Depends(get_tenant_id),
    services: PostingServices = Depends(get_services),
) -> List[PostingRoute]:
    return services.registry.list_routes(tenant_id)


@router.put(
    "/routes/{doc_type}",
    response_model=PostingRoute,
    dependencies=[Depends(require_permission(INTEGRATION_MANAGE))],
)
async def set_route(
    doc_type: DocType,
    request: SetRouteRequest,
    tenant_id: str = Depends(get_tenant_id),
    services: PostingServices = Depends(get_services),
    events: EventBus = Depends(get_event_bus),
) -> PostingRoute:
    """Post `doc_type` documents through the tenant's connection of this type."""
    route = services.registry.set_route(tenant_id, doc_type, request.connection_type)
    events.invalidate(INTEGRATIONS_KEY, tenant_id)
    return route


# =============================================================================
# Single connection
# =============================================================================

@router.get(
    "/{connection_id}",
    response_model=IntegrationConnection,
    dependencies=[Depends(require_permission(INTEGRATION_MANAGE))],
)
async def get_connection(
    connection_id: UUID,
    tenant_id: str = Depends(get_tenant_id),
    services: PostingServices = Depends(get_services),
) -> IntegrationConnection:
    return services.registry.get_connection(str(connection_id), tenant_id=tenant_id)


@router.post(
    "/{connection_id}/disconnect",
    response_model=IntegrationConnection,
    dependencies=[Depends(require_permission(INTEGRATION_MANAGE))],
)
async def disconnect(
    connection_id: UUID,
    tenant_id: str = Depends(get_tenant_id),
    services: PostingServices = Depends(get_services),
    events: EventBus = Depends(get_event_bus),
) -> IntegrationConnection:
    """Disconnect; idempotent."""
    connection = services.registry.disconnect(str(connection_id), tenant_id=tenant_id)
    events.invalidate(INTEGRATIONS_KEY, tenant_id, connection.id)
    return connection
