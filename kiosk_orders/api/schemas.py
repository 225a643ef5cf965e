"""
Pydantic schemas for API request/response models.

Field names are snake_case in Python and camelCase on the wire.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ----------------------------------------------------------------------
# Orders
# ----------------------------------------------------------------------


class CartItemIn(CamelModel):
    """One cart line. Any client-side price is ignored."""

    menu_item_id: str = Field(..., description="Catalog item id")
    # Validated against the catalog rules, not by pydantic coercion.
    quantity: Any = Field(..., description="Integer >= 1")


class CreateOrderRequest(CamelModel):
    """Request schema for creating an order."""

    items: List[CartItemIn] = Field(default_factory=list, description="Cart lines")
    payment_method: Optional[str] = Field(default=None, description="'card' or 'swish'")
    telegram_user_id: Optional[str] = Field(default=None, description="Ordering user")
    store_id: Optional[str] = Field(default=None, description="Pickup store")

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "items": [{"menuItemId": "hotdog_classic", "quantity": 2}],
                    "paymentMethod": "card",
                    "telegramUserId": "123456789",
                    "storeId": "store-kungens-kurva",
                }
            ]
        },
    )


class CreateOrderResponse(CamelModel):
    """Exactly one of checkout_url / swish_url / client_secret is present."""

    order_id: str
    order_number: int
    status: str
    payment_session_id: str
    amount: int
    checkout_url: Optional[str] = None
    swish_url: Optional[str] = None
    client_secret: Optional[str] = None


class OrderStatusResponse(CamelModel):
    order_id: str
    order_number: int
    status: str
    total_price: int
    payment_method: str
    receipt_sent: bool
    store_id: str


class OrderLineOut(CamelModel):
    menu_item_id: str
    name: str
    quantity: int
    price_at_order: int


class OrderHistoryEntry(CamelModel):
    order_id: str
    order_number: int
    created_at: str
    total_price: int
    status: str
    store_id: str
    store_name: str
    lines: List[OrderLineOut]


class OrderHistoryResponse(CamelModel):
    entries: List[OrderHistoryEntry]


class ReadyResponse(CamelModel):
    order_id: str
    status: str


# ----------------------------------------------------------------------
# Webhooks
# ----------------------------------------------------------------------


class WebhookResponse(CamelModel):
    received: bool
    order_id: Optional[str] = None


# ----------------------------------------------------------------------
# Stores, users, favorites, upsell, menu
# ----------------------------------------------------------------------


class StoreOut(CamelModel):
    id: str
    name: str
    city: str
    latitude: float
    longitude: float
    distance_km: Optional[float] = None


class StoreListResponse(CamelModel):
    stores: List[StoreOut]


class UserContextRequest(CamelModel):
    telegram_user_id: Optional[str] = None
    store_id: Optional[str] = None
    notifications_enabled: Optional[bool] = None


class UserContextResponse(CamelModel):
    telegram_user_id: str
    store_id: Optional[str] = None
    notifications_enabled: bool
    created_at: str
    updated_at: str


class FavoritesResponse(CamelModel):
    menu_item_ids: List[str]


class ToggleFavoriteRequest(CamelModel):
    telegram_user_id: Optional[str] = None
    menu_item_id: Optional[str] = None


class ToggleFavoriteResponse(CamelModel):
    menu_item_id: str
    is_favorite: bool


class UpsellItem(CamelModel):
    item_id: str
    name: str
    price: int
    category_id: str


class UpsellResponse(CamelModel):
    items: List[UpsellItem]


class MenuItemOut(CamelModel):
    id: str
    name: str
    price: int
    category_id: str


class MenuResponse(CamelModel):
    items: List[MenuItemOut]


# ----------------------------------------------------------------------
# Monitoring
# ----------------------------------------------------------------------


class HealthCheckResponse(BaseModel):
    """Response schema for health check."""

    status: str = Field(..., description="Overall health status")
    checks: Optional[Dict[str, Any]] = Field(default=None, description="Individual checks")
    message: Optional[str] = Field(default=None, description="Status message")
