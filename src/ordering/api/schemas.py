"""Pydantic request/response schemas for the Ordering API.

These are external contracts (anti-corruption layer) — separate from the
Order aggregate. Business validation (positive quantities, non-negative
prices) is left to the engine so every rule reports through ``InvalidItems``.
"""

from datetime import date, datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    street: str
    city: str
    state: str | None = None
    postal_code: str
    country: str = "BR"


class OrderItemSchema(BaseModel):
    product_ref: str
    product_name: str | None = None
    quantity: int
    unit_price: float


class TrackingSchema(BaseModel):
    carrier_code: str | None = None
    tracking_number: str
    url: str | None = None
    estimated_delivery: datetime | None = None


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class CreatePatientOrderRequest(BaseModel):
    organization_id: str | None = None
    items: list[OrderItemSchema]
    tax: float = 0.0
    shipping: float = 0.0
    discount: float = 0.0
    customer_name: str | None = None
    description: str | None = None
    prescription_reference: str | None = None
    delivery_address: AddressSchema | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "items": [
                        {
                            "product_ref": "oil-cbd-10",
                            "product_name": "CBD Oil 10%",
                            "quantity": 2,
                            "unit_price": 12.5,
                        }
                    ],
                    "customer_name": "Maria Souza",
                    "prescription_reference": "RX-2024-0091",
                }
            ]
        }
    }


class CreateMarketplaceOrderRequest(BaseModel):
    organization_id: str | None = None
    counterparty_id: str
    items: list[OrderItemSchema]
    tax: float = 0.0
    shipping: float = 0.0
    discount: float = 0.0
    customer_name: str | None = None
    description: str | None = None
    shipping_address: AddressSchema | None = None
    billing_address: AddressSchema | None = None


class TransitionStatusRequest(BaseModel):
    status: str
    reason: str | None = Field(default=None, max_length=500)
    tracking: TrackingSchema | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"status": "approved"},
                {"status": "cancelled", "reason": "Patient withdrew the request"},
            ]
        }
    }


class RecordPaymentRequest(BaseModel):
    payment_method: str = Field(min_length=1, max_length=50)


class OrderListQuery(BaseModel):
    status: str = "all"
    organization_id: str | None = None
    counterparty_id: str | None = None
    search: str | None = None
    created_from: date | datetime | None = None
    created_to: date | datetime | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class CreatedOrderResponse(BaseModel):
    order_id: str
    order_number: str
    order: dict


class OrderResponse(BaseModel):
    order: dict
