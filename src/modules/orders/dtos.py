"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers)
and the Service layer.  DTOs are immutable (``frozen=True``).

- ``LineItemDTO`` / ``ShippingAddressDTO`` / ``PlaceOrderDTO``: placement input.
- ``StatusUpdateDTO``: admin status change input.
- ``VerifyPaymentDTO``: client return-from-checkout input.
- ``PlacementResult`` / ``StatusChangeResult`` / ``ConfirmationResult``:
  service outputs carrying the ORM instance back to the view.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from modules.orders.constants import OrderStatus, PaymentMethod

# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class LineItemDTO(BaseModel):
    """A cart line as submitted at checkout (price is a client snapshot)."""

    model_config = ConfigDict(frozen=True)

    product_id: str = ""
    name: str
    category: str = ""
    size: str = ""
    image: str = ""
    price: Decimal
    quantity: int

    @field_validator("price")
    @classmethod
    def price_must_be_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Price must be greater than zero.")
        return v

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        return v

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


class ShippingAddressDTO(BaseModel):
    """Delivery address; every field is optional and defaults to ``""``.

    ``first_name`` + ``last_name`` replace ``name`` only when both are given.
    """

    model_config = ConfigDict(frozen=True)

    first_name: str = ""
    last_name: str = ""
    name: str = ""
    email: str = ""
    phone: str = ""
    street: str = ""
    city: str = ""
    province: str = ""
    postal_code: str = ""
    country: str = ""

    @model_validator(mode="before")
    @classmethod
    def merge_names(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("first_name") and data.get("last_name"):
            data = {**data, "name": f"{data['first_name']} {data['last_name']}"}
        return data

    def snapshot(self) -> Dict[str, str]:
        return self.model_dump(exclude={"first_name", "last_name"})


class PlaceOrderDTO(BaseModel):
    """Immutable DTO for order placement.

    Validates:
    - ``items`` must contain at least one line.
    - ``amount`` must be positive (the total is re-checked by the service).
    """

    model_config = ConfigDict(frozen=True)

    user_id: int
    payment_method: PaymentMethod
    items: List[LineItemDTO]
    amount: Decimal
    address: ShippingAddressDTO = ShippingAddressDTO()

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(cls, v: List[LineItemDTO]) -> List[LineItemDTO]:
        if not v:
            raise ValueError("Order must have at least one item.")
        return v

    @field_validator("amount")
    @classmethod
    def amount_must_be_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Amount must be greater than zero.")
        return v

    @property
    def items_total(self) -> Decimal:
        return sum((item.line_total for item in self.items), Decimal("0"))


class StatusUpdateDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: UUID
    status: OrderStatus
    reason: str = ""


class VerifyPaymentDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: UUID
    success: bool
    method: Literal["stripe", "paypal", "cod"] = "stripe"

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v


# ---------------------------------------------------------------------------
# Output DTOs
# ---------------------------------------------------------------------------


class PlacementResult(BaseModel):
    """Outcome of ``OrderService.place_order``."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    order: Any
    redirect_url: Optional[str] = None


class StatusChangeResult(BaseModel):
    """Outcome of ``OrderService.update_status``."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    order: Any
    status_changed: bool
    payment_updated: bool


class ConfirmationResult(BaseModel):
    """Outcome of a reconciliation trigger.

    ``applied`` is ``True`` only for the call whose write flipped
    ``payment``; every other call for the same order sees ``False``.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    order_id: UUID
    applied: bool
    paid: bool
    cancelled: bool = False
