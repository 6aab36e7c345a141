"""Cart DTOs for the Service Layer (Pydantic v2, immutable)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, field_validator


class CartItemDTO(BaseModel):
    """A product/size pair, optionally with an absolute quantity."""

    model_config = ConfigDict(frozen=True)

    product_id: str
    size: str
    quantity: int = 1

    @field_validator("product_id", "size")
    @classmethod
    def must_not_be_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Must not be blank.")
        return v

    @field_validator("quantity")
    @classmethod
    def quantity_must_not_be_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Quantity cannot be negative.")
        return v
