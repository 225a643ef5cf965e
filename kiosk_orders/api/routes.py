"""
API routes for the kiosk order backend.

Order confirmation has no client-facing endpoint: orders are confirmed only
through a verified payment provider callback.
"""
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from kiosk_orders.database.models import utcnow
from kiosk_orders.monitoring.logging import order_context

from .dependencies import Services, get_services
from .schemas import (
    CreateOrderRequest,
    CreateOrderResponse,
    FavoritesResponse,
    HealthCheckResponse,
    MenuResponse,
    OrderHistoryResponse,
    OrderStatusResponse,
    ReadyResponse,
    StoreListResponse,
    ToggleFavoriteRequest,
    ToggleFavoriteResponse,
    UpsellResponse,
    UserContextRequest,
    UserContextResponse,
    WebhookResponse,
)

logger = structlog.get_logger(__name__)

# Create routers
order_router = APIRouter(prefix="/api/orders", tags=["orders"])
webhook_router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])
customer_router = APIRouter(prefix="/api", tags=["customers"])
monitoring_router = APIRouter(tags=["monitoring"])


# ----------------------------------------------------------------------
# Orders
# ----------------------------------------------------------------------


@order_router.post(
    "",
    response_model=CreateOrderResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    summary="Create an order",
    description="Price the cart server-side, persist a pending order and open a payment session",
)
async def create_order(
    request: CreateOrderRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    logger.info(
        "api_create_order_request",
        payment_method=request.payment_method,
        store_id=request.store_id,
        line_count=len(request.items),
    )

    created = await services.lifecycle.create_order(
        items=[(item.menu_item_id, item.quantity) for item in request.items],
        payment_method=request.payment_method,
        telegram_user_id=request.telegram_user_id,
        store_id=request.store_id,
    )
    return created.to_dict()


@order_router.get(
    "/history/{telegram_user_id}",
    response_model=OrderHistoryResponse,
    summary="Order history",
    description="Most recent orders for a user, newest first (default 10, max 50)",
)
async def order_history(
    telegram_user_id: str,
    limit: Optional[int] = Query(default=None),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    entries = await services.lifecycle.get_order_history(telegram_user_id, limit)
    return {"entries": entries}


@order_router.get(
    "/{order_id}",
    response_model=OrderStatusResponse,
    summary="Get order status",
)
async def get_order_status(
    order_id: str,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await services.lifecycle.get_order_status(order_id)


@order_router.post(
    "/{order_id}/ready",
    response_model=ReadyResponse,
    summary="Mark order ready",
    description="Operator trigger; a no-op unless the order is confirmed",
)
async def mark_ready(
    order_id: str,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    order = await services.lifecycle.mark_ready(order_id)
    return {"orderId": order.id, "status": order.status}


# ----------------------------------------------------------------------
# Webhooks
# ----------------------------------------------------------------------


def _callback_response(success: bool, order_id: Optional[str]) -> JSONResponse:
    if success:
        return JSONResponse(content={"received": True, "orderId": order_id})
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"received": False})


@webhook_router.post(
    "/stripe",
    response_model=WebhookResponse,
    summary="Stripe webhook endpoint",
    description="Verify a Stripe Checkout event and apply it to the order",
)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    services: Services = Depends(get_services),
) -> JSONResponse:
    # Raw body: the signature covers the exact bytes.
    body = await request.body()
    with order_context(provider="card"):
        event = services.gateway.verify_and_interpret_callback("card", body, stripe_signature)
        result = await services.lifecycle.handle_callback(event)
        logger.info(
            "api_stripe_webhook_handled",
            event_type=event.event_type,
            success=result.success,
            order_id=result.order_id,
        )
    return _callback_response(result.success, result.order_id)


@webhook_router.post(
    "/swish",
    response_model=WebhookResponse,
    summary="Swish callback endpoint",
    description="Apply a Swish payment request callback to the order",
)
async def swish_webhook(
    request: Request,
    services: Services = Depends(get_services),
) -> JSONResponse:
    body = await request.body()
    with order_context(provider="swish"):
        event = services.gateway.verify_and_interpret_callback("swish", body, dict(request.headers))
        result = await services.lifecycle.handle_callback(event)
        logger.info(
            "api_swish_callback_handled",
            status=event.event_type,
            success=result.success,
            order_id=result.order_id,
        )
    return _callback_response(result.success, result.order_id)


# ----------------------------------------------------------------------
# Stores, user context, favorites, upsell, menu
# ----------------------------------------------------------------------


@customer_router.get("/stores", response_model=StoreListResponse, response_model_exclude_none=True)
async def list_stores(
    lat: Optional[float] = Query(default=None),
    lon: Optional[float] = Query(default=None),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """All stores; nearest first with distanceKm when lat and lon are given."""
    return {"stores": await services.customers.list_stores(lat, lon)}


@customer_router.get("/user/context/{telegram_user_id}", response_model=UserContextResponse)
async def get_user_context(
    telegram_user_id: str,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await services.customers.get_context(telegram_user_id)


@customer_router.post("/user/context", response_model=UserContextResponse)
async def set_user_context(
    request: UserContextRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await services.customers.set_context(
        request.telegram_user_id,
        store_id=request.store_id,
        notifications_enabled=request.notifications_enabled,
    )


@customer_router.get("/favorites/{telegram_user_id}", response_model=FavoritesResponse)
async def list_favorites(
    telegram_user_id: str,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return {"menuItemIds": await services.customers.list_favorites(telegram_user_id)}


@customer_router.post("/favorites/toggle", response_model=ToggleFavoriteResponse)
async def toggle_favorite(
    request: ToggleFavoriteRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return await services.customers.toggle_favorite(request.telegram_user_id, request.menu_item_id)


@customer_router.get("/upsell", response_model=UpsellResponse)
async def upsell(
    cart_categories: Optional[str] = Query(default=None, alias="cartCategories"),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    category_ids = [c.strip() for c in (cart_categories or "").split(",") if c.strip()]
    return {"items": await services.upsell.suggestions(category_ids)}


@customer_router.get("/menu", response_model=MenuResponse)
async def menu(services: Services = Depends(get_services)) -> Dict[str, Any]:
    return {"items": services.catalog.to_list()}


@customer_router.get("/health", include_in_schema=False)
async def api_health() -> Dict[str, Any]:
    return {"status": "ok", "timestamp": utcnow().isoformat()}


# ----------------------------------------------------------------------
# Monitoring
# ----------------------------------------------------------------------


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
    description="Check overall system health",
)
async def health(services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Health check endpoint for monitoring."""
    try:
        return await services.health.check_all()
    except Exception as e:
        logger.error("health_check_error", error=str(e))
        return {
            "status": "unhealthy",
            "checks": {"error": str(e)},
        }


@monitoring_router.get(
    "/health/live",
    response_model=HealthCheckResponse,
    summary="Liveness probe",
)
async def liveness(services: Services = Depends(get_services)) -> Dict[str, Any]:
    return await services.health.liveness()


@monitoring_router.get(
    "/health/ready",
    response_model=HealthCheckResponse,
    summary="Readiness probe",
)
async def readiness(services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Readiness probe endpoint."""
    result = await services.health.readiness()
    if result["status"] != "healthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result)
    return result


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    include_in_schema=False,
)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
