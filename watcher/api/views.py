"""
Consumer API views.

REST endpoints the UI collaborator uses to read the activity feed and
store lists, and to add, sync and delete stores.

The agent is single-user and local, so no endpoint requires
authentication.
"""

import logging
import uuid
from dataclasses import asdict
from typing import Optional

from asgiref.sync import async_to_sync
from django.db import connection
from django.http import JsonResponse
from django.utils.dateparse import parse_datetime
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from watcher.services.errors import (
    LocalRateLimited,
    PersistenceFailed,
    StoreNotFound,
    StoreValidationFailed,
    SyncError,
    SyncFetchFailed,
)
from watcher.services.persistence import (
    ChangeKindGroup,
    EventFilter,
    ProductSort,
    StockScope,
    get_gateway,
)
from watcher.services.sync_orchestrator import get_orchestrator
from watcher.services.sync_state import get_sync_state

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200

ERROR_STATUS = {
    StoreNotFound: status.HTTP_404_NOT_FOUND,
    LocalRateLimited: status.HTTP_429_TOO_MANY_REQUESTS,
    SyncFetchFailed: status.HTTP_502_BAD_GATEWAY,
    StoreValidationFailed: status.HTTP_400_BAD_REQUEST,
    PersistenceFailed: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _sync_error_response(error: SyncError) -> Response:
    http_status = ERROR_STATUS.get(type(error), status.HTTP_500_INTERNAL_SERVER_ERROR)
    body = error.to_dict()
    response = Response(body, status=http_status)
    retry_after = body.get("retry_after")
    if retry_after:
        response["Retry-After"] = str(int(round(retry_after)))
    return response


def _bad_request(message: str) -> Response:
    return Response({"kind": "invalid_request", "message": message}, status=status.HTTP_400_BAD_REQUEST)


def _paging(params):
    """(offset, limit) from query params, limit clamped to MAX_PAGE_SIZE."""
    offset = int(params.get("offset", 0))
    limit = int(params.get("limit", DEFAULT_PAGE_SIZE))
    if offset < 0 or limit < 1:
        raise ValueError("offset must be >= 0 and limit >= 1")
    return offset, min(limit, MAX_PAGE_SIZE)


def _event_filter(params) -> EventFilter:
    """
    Build an EventFilter from request params.

    Raises:
        ValueError: on an unknown group or unparseable date
    """
    start_date = None
    since = params.get("since")
    if since:
        start_date = parse_datetime(since)
        if start_date is None:
            raise ValueError(f"Invalid since: {since}")

    store_id = params.get("store") or None
    if store_id is not None:
        store_id = uuid.UUID(str(store_id))

    return EventFilter(
        store_id=store_id,
        kind_group=ChangeKindGroup(params.get("group", ChangeKindGroup.ALL.value)),
        start_date=start_date,
        unread_only=str(params.get("unread", "")).lower() in ("1", "true", "yes"),
    )


def _store_dict(store, syncing: Optional[bool] = None) -> dict:
    data = asdict(store)
    data["id"] = str(store.id)
    data["preview_image_urls"] = list(store.preview_image_urls)
    state = get_sync_state()
    data["is_syncing"] = state.is_syncing(store.id) if syncing is None else syncing
    error = state.error_for(store.id)
    data["last_error"] = error.to_dict() if error else None
    return data


def _event_dict(event) -> dict:
    data = event.to_dict()
    data["id"] = str(event.id)
    data["store_id"] = str(event.store_id)
    data["price_change"] = str(event.price_change) if event.price_change is not None else None
    return data


def _product_dict(product) -> dict:
    data = asdict(product)
    data["store_id"] = str(product.store_id)
    data["price"] = str(product.price)
    data["image_urls"] = list(product.image_urls)
    return data


# ============================================================
# Stores
# ============================================================

@extend_schema(
    tags=["Stores"],
    summary="List stores or add a store",
    description="""
    GET returns all stores, newest first, with their cached product count
    and preview images.

    POST validates the domain with a one-page probe fetch, then creates
    the store and imports its catalog without emitting events.
    """,
    request={
        "application/json": {
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Display name; derived from the domain when blank"},
                "domain": {"type": "string", "description": "Store domain, e.g. shop.example.com"},
            },
            "required": ["domain"],
        }
    },
    responses={200: OpenApiTypes.OBJECT, 201: OpenApiTypes.OBJECT, 400: OpenApiTypes.OBJECT},
)
@api_view(["GET", "POST"])
@permission_classes([AllowAny])
def stores(request):
    gateway = get_gateway()

    if request.method == "GET":
        return Response({"stores": [_store_dict(s) for s in gateway.list_stores()]})

    domain = request.data.get("domain")
    if not domain:
        return _bad_request("domain is required")

    try:
        store_id = async_to_sync(get_orchestrator().add_store)(request.data.get("name"), domain)
    except SyncError as e:
        return _sync_error_response(e)

    return Response({"store": _store_dict(gateway.get_store(store_id))}, status=status.HTTP_201_CREATED)


@extend_schema(
    tags=["Stores"],
    summary="Delete a store",
    description="Deletes the store with all its products, variants, snapshots and events.",
    responses={204: None, 404: OpenApiTypes.OBJECT},
)
@api_view(["DELETE"])
@permission_classes([AllowAny])
def store_detail(request, store_id):
    try:
        deleted = get_orchestrator().delete_store(store_id)
    except StoreNotFound as e:
        return _sync_error_response(e)

    if not deleted:
        return _sync_error_response(StoreNotFound(store_id))
    return Response(status=status.HTTP_204_NO_CONTENT)


@extend_schema(
    tags=["Sync"],
    summary="Sync one store",
    description="""
    Fetches the store's catalog and records changes.

    Returns status "skipped" when a sync of the store is already running.
    A store synced too recently answers 429 with Retry-After.
    """,
    request=None,
    responses={200: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT, 429: OpenApiTypes.OBJECT, 502: OpenApiTypes.OBJECT},
)
@api_view(["POST"])
@permission_classes([AllowAny])
def sync_store(request, store_id):
    try:
        result = async_to_sync(get_orchestrator().sync_store)(store_id)
    except SyncError as e:
        return _sync_error_response(e)

    return Response({
        "store_id": str(result.store_id),
        "status": result.status.value,
        "events": [_event_dict(e) for e in result.events],
    })


@extend_schema(
    tags=["Sync"],
    summary="Sync all stores",
    description="Syncs every store one after another; per-store failures are reported, not raised.",
    request=None,
    responses={200: OpenApiTypes.OBJECT},
)
@api_view(["POST"])
@permission_classes([AllowAny])
def sync_all_stores(request):
    result = async_to_sync(get_orchestrator().sync_all_stores)()
    return Response({
        "outcomes": [o.to_dict() for o in result.outcomes],
        "total_events": result.total_events,
        "failed": len(result.failed),
        "error_summary": get_sync_state().error_summary(),
    })


@extend_schema(
    tags=["Sync"],
    summary="Current sync state",
    description="Stores that are syncing right now and the last error per store (not persisted).",
    responses={200: OpenApiTypes.OBJECT},
)
@api_view(["GET"])
@permission_classes([AllowAny])
def sync_status(request):
    state = get_sync_state()
    return Response({
        "syncing": [str(store_id) for store_id in state.syncing_store_ids()],
        "errors": [e.to_dict() for e in state.errors()],
        "error_summary": state.error_summary(),
    })


@extend_schema(
    tags=["Stores"],
    summary="List a store's products",
    parameters=[
        OpenApiParameter("search", OpenApiTypes.STR, description="Case and accent insensitive title search"),
        OpenApiParameter("stock", OpenApiTypes.STR, enum=[s.value for s in StockScope]),
        OpenApiParameter("sort", OpenApiTypes.STR, enum=[s.value for s in ProductSort]),
        OpenApiParameter("offset", OpenApiTypes.INT),
        OpenApiParameter("limit", OpenApiTypes.INT),
    ],
    responses={200: OpenApiTypes.OBJECT, 400: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
)
@api_view(["GET"])
@permission_classes([AllowAny])
def store_products(request, store_id):
    gateway = get_gateway()
    if gateway.get_store(store_id) is None:
        return _sync_error_response(StoreNotFound(store_id))

    params = request.query_params
    try:
        offset, limit = _paging(params)
        stock_scope = StockScope(params.get("stock", StockScope.ALL.value))
        sort = ProductSort(params.get("sort", ProductSort.NAME.value))
    except ValueError as e:
        return _bad_request(str(e))

    search = params.get("search", "")
    products = gateway.query_products(store_id, search, stock_scope, sort, offset, limit)
    return Response({
        "products": [_product_dict(p) for p in products],
        "total": gateway.count_products(store_id, search, stock_scope),
        "offset": offset,
        "limit": limit,
    })


# ============================================================
# Events
# ============================================================

EVENT_FILTER_PARAMETERS = [
    OpenApiParameter("store", OpenApiTypes.UUID, description="Only events of this store"),
    OpenApiParameter("group", OpenApiTypes.STR, enum=[g.value for g in ChangeKindGroup]),
    OpenApiParameter("since", OpenApiTypes.DATETIME, description="Only events at or after this time"),
    OpenApiParameter("unread", OpenApiTypes.BOOL),
]


@extend_schema(
    tags=["Events"],
    summary="Activity feed, or delete all events",
    description="GET returns a page of events, newest first. DELETE removes every event.",
    parameters=EVENT_FILTER_PARAMETERS + [
        OpenApiParameter("offset", OpenApiTypes.INT),
        OpenApiParameter("limit", OpenApiTypes.INT),
    ],
    responses={200: OpenApiTypes.OBJECT, 400: OpenApiTypes.OBJECT},
)
@api_view(["GET", "DELETE"])
@permission_classes([AllowAny])
def events(request):
    gateway = get_gateway()

    if request.method == "DELETE":
        deleted = get_orchestrator().delete_all_events()
        return Response({"deleted": deleted})

    try:
        event_filter = _event_filter(request.query_params)
        offset, limit = _paging(request.query_params)
    except ValueError as e:
        return _bad_request(str(e))

    page = gateway.query_events(event_filter, offset=offset, limit=limit)
    return Response({
        "events": [_event_dict(e) for e in page],
        "total": gateway.count_events(event_filter),
        "offset": offset,
        "limit": limit,
    })


@extend_schema(
    tags=["Events"],
    summary="Unread event count",
    parameters=[OpenApiParameter("store", OpenApiTypes.UUID)],
    responses={200: OpenApiTypes.OBJECT},
)
@api_view(["GET"])
@permission_classes([AllowAny])
def unread_count(request):
    store_id = request.query_params.get("store") or None
    if store_id is not None:
        try:
            store_id = uuid.UUID(store_id)
        except ValueError:
            return _bad_request(f"Invalid store: {store_id}")
    return Response({"unread": get_gateway().unread_count(store_id)})


@extend_schema(
    tags=["Events"],
    summary="Menu bar events",
    description="Unread events if there are any, otherwise the most recent ones.",
    parameters=[OpenApiParameter("limit", OpenApiTypes.INT)],
    responses={200: OpenApiTypes.OBJECT},
)
@api_view(["GET"])
@permission_classes([AllowAny])
def menu_bar_events(request):
    try:
        _, limit = _paging(request.query_params)
    except ValueError as e:
        return _bad_request(str(e))
    return Response({"events": [_event_dict(e) for e in get_gateway().menu_bar_events(limit)]})


@extend_schema(
    tags=["Events"],
    summary="Mark events read",
    description="""
    Marks events as read by id, by filter, or all of them.

    Body forms:
    - {"ids": ["<uuid>", ...]}
    - {"store": "<uuid>", "group": "price", "since": "<iso datetime>"}
    - {"all": true}
    """,
    request={
        "application/json": {
            "type": "object",
            "properties": {
                "ids": {"type": "array", "items": {"type": "string", "format": "uuid"}},
                "store": {"type": "string", "format": "uuid"},
                "group": {"type": "string", "enum": [g.value for g in ChangeKindGroup]},
                "since": {"type": "string", "format": "date-time"},
                "all": {"type": "boolean"},
            },
        }
    },
    responses={200: OpenApiTypes.OBJECT, 400: OpenApiTypes.OBJECT},
)
@api_view(["POST"])
@permission_classes([AllowAny])
def mark_read(request):
    gateway = get_gateway()
    data = request.data

    ids = data.get("ids")
    if ids is not None:
        if not isinstance(ids, list):
            return _bad_request("ids must be a list")
        try:
            ids = [uuid.UUID(str(event_id)) for event_id in ids]
        except ValueError:
            return _bad_request("ids must be UUIDs")
        return Response({"marked": gateway.mark_events_read(ids)})

    if data.get("all"):
        return Response({"marked": gateway.mark_all_read()})

    try:
        event_filter = _event_filter(data)
    except ValueError as e:
        return _bad_request(str(e))

    if event_filter == EventFilter():
        return _bad_request("Provide ids, a filter, or all=true")
    return Response({"marked": gateway.mark_all_read(event_filter)})


# ============================================================
# Health
# ============================================================

def health_check(request):
    """
    Health check endpoint for the watcher agent.

    Endpoint: GET /api/health/

    Response fields:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "error"
        - stores: number of monitored stores
        - syncing: number of stores syncing right now
        - failing: number of stores whose last sync failed

    Returns:
        JsonResponse: HTTP 200 for healthy, HTTP 503 for unhealthy
    """
    health_status = "healthy"
    http_status = 200

    database_status = "connected"
    store_count = None
    try:
        connection.ensure_connection()
        store_count = len(get_gateway().list_store_ids())
    except Exception as e:
        logger.error(f"Health check database error: {e}")
        database_status = "error"
        health_status = "unhealthy"
        http_status = 503

    state = get_sync_state()
    response_data = {
        "status": health_status,
        "database": database_status,
        "stores": store_count,
        "syncing": len(state.syncing_store_ids()),
        "failing": len(state.errors()),
    }

    return JsonResponse(response_data, status=http_status)
