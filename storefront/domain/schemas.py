# storefront/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Any
from decimal import Decimal
from datetime import datetime


class UserCreate(BaseModel):
    """Schema for creating a user profile."""

    id: int = Field(..., gt=0, description="User ID (must be > 0)")
    username: str = Field(..., min_length=1, max_length=100)
    email: str | None = Field(None, max_length=255)
    address: str | None = Field(None, max_length=255)
    role: str = Field("user", pattern="^(user|admin)$")


class UserRead(BaseModel):
    id: int
    username: str
    email: str | None = None
    address: str | None = None
    role: str

    model_config = ConfigDict(from_attributes=True)


class ProductOut(BaseModel):
    id: int
    product_name: str
    quantity: int
    price: Decimal
    image: str | None = None

    model_config = ConfigDict(from_attributes=True)


class ItemIn(BaseModel):
    """Schema for adding a product to the cart."""

    product_id: int = Field(..., gt=0, description="Product ID (must be > 0)")
    quantity: int = Field(1, gt=0, description="Quantity (must be > 0)")


class CartItemOut(BaseModel):
    product_id: int
    quantity: int
    price: Decimal
    total: Decimal


class CartOut(BaseModel):
    user_id: int
    items: List[CartItemOut]
    total: Decimal
    item_count: int
    notice: str | None = None


class RemovedItemOut(BaseModel):
    product_id: int
    name: str


class AdjustedItemOut(BaseModel):
    product_id: int
    name: str
    old: int
    now: int


class FailedDecrementOut(BaseModel):
    product_id: int
    quantity: int
    error: str


class CheckoutOut(BaseModel):
    """Result of turning a cart into an order."""

    order_id: int
    total: Decimal
    removed_items: List[RemovedItemOut] = []
    adjusted_items: List[AdjustedItemOut] = []
    failed_decrements: List[FailedDecrementOut] = []
    warning: str | None = None


class TransactionOut(BaseModel):
    order_id: int
    capture_id: str | None = None
    payer_id: str | None = None
    payer_email: str | None = None
    amount: Decimal
    currency: str
    status: str
    time: datetime
    refund_reason: str | None = None

    model_config = ConfigDict(from_attributes=True)


class PaymentCheckoutOut(CheckoutOut):
    transaction: TransactionOut
    message: str = "Payment successful and order created"


class OrderLineOut(BaseModel):
    product_id: int
    product_name: str | None = None
    quantity: int
    price: Decimal
    total: Decimal


class OrderSummaryOut(BaseModel):
    id: int
    total: Decimal
    address: str | None = None
    created_at: datetime
    payment_method: str
    payment_reference: str


class OrderDetailOut(BaseModel):
    id: int
    user_id: int
    total: Decimal
    address: str | None = None
    created_at: datetime
    items: List[OrderLineOut]
    grand_total: Decimal


class PayPalOrderOut(BaseModel):
    order_id: str = Field(..., description="Provider order id to approve and capture")


class PayPalCaptureIn(BaseModel):
    order_id: str = Field(..., min_length=1, description="Provider order id")
    address: str | None = Field(None, max_length=255)


class NetsQrIn(BaseModel):
    address: str | None = Field(None, max_length=255)


class NetsQrOut(BaseModel):
    total: Decimal
    qr_code_url: str
    txn_retrieval_ref: str
    network_status: Any = None
    timer_seconds: int


class RefundIn(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)
    amount: Decimal | None = Field(None, gt=0, description="Partial refund amount, full refund when omitted")
