"""Data models shared by the catalog and cart panels."""
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _to_decimal(value: Any) -> Decimal:
    """Convert prices via str so floats keep their printed precision."""
    if value is None:
        return Decimal("0")
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


class NotificationStatus(str, Enum):
    """Optional discriminant carried on a cart notification."""
    SUBMITTED = "submitted"


class ToastVariant(str, Enum):
    """Severity of a user-facing toast."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Product(BaseModel):
    """Active product as returned by the catalog read."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(alias="productId")
    name: str
    unit_price: Decimal = Field(alias="unitPrice")

    @field_validator("unit_price", mode="before")
    @classmethod
    def convert_price_to_decimal(cls, v):
        return _to_decimal(v)


class DraftRow(BaseModel):
    """Editable table row for one product.

    ``id`` is the table key and equals ``product_id``.
    """
    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    id: str
    product_id: str = Field(alias="productId")
    name: str
    unit_price: Decimal = Field(alias="unitPrice")
    quantity: int = 1
    selected: bool = False

    @classmethod
    def from_product(cls, product: Product) -> "DraftRow":
        return cls(
            id=product.id,
            product_id=product.id,
            name=product.name,
            unit_price=product.unit_price,
        )


class SelectionEntry(BaseModel):
    """One product/quantity pair queued for add-to-cart."""
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(alias="productId")
    quantity: int

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class CartLineItem(BaseModel):
    """Server-owned cart line. Unknown fields are kept for display."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    line_item_id: str = Field(alias="lineItemId")
    product_id: Optional[str] = Field(default=None, alias="productId")
    quantity: int = 0


class Cart(BaseModel):
    """Authoritative cart snapshot for an account."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    opportunity_id: Optional[str] = Field(default=None, alias="opportunityId")
    items: list[CartLineItem] = []

    @field_validator("items", mode="before")
    @classmethod
    def default_items(cls, v):
        return v or []


class Notification(BaseModel):
    """Message carried on the synchronization bus.

    Wire form is ``{"accountId": ..., "status"?: "submitted"}``; anything
    else is rejected.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    account_id: str = Field(alias="accountId", min_length=1)
    status: Optional[NotificationStatus] = None

    @property
    def is_submitted(self) -> bool:
        return self.status is NotificationStatus.SUBMITTED

    @classmethod
    def parse(cls, message: Union["Notification", dict]) -> "Notification":
        """Validate a bus payload given as a model or a wire mapping."""
        if isinstance(message, cls):
            return message
        return cls.model_validate(message)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class Toast(BaseModel):
    """User-facing signal handed to the presentation layer."""
    model_config = ConfigDict(frozen=True)

    title: str
    message: str
    variant: ToastVariant = ToastVariant.INFO
