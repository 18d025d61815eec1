# storefront/domain/types.py
from dataclasses import dataclass, field, asdict
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import NewType, Any

UserId = NewType("UserId", int)
ProductId = NewType("ProductId", int)
OrderId = NewType("OrderId", int)

CENT = Decimal("0.01")

NETS_PAYER_ID = "NETS"

INVENTORY_WARNING = (
    "Order placed but some inventory updates may be inconsistent. Contact support."
)


def money(value: Any) -> Decimal:
    """Quantize to 2 decimal places (currency precision)."""
    if isinstance(value, Decimal):
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    return Decimal(str(value or 0)).quantize(CENT, rounding=ROUND_HALF_UP)


class TransactionStatus(str, Enum):
    COMPLETED = "COMPLETED"
    COMPLETED_WITH_WARNINGS = "COMPLETED_WITH_WARNINGS"
    REFUNDED = "REFUNDED"


@dataclass
class CartLine:
    """One cart row as the orchestrator sees it (mutable during reconciliation)."""

    product_id: ProductId
    quantity: int
    price: Decimal
    total: Decimal

    @classmethod
    def from_model(cls, item) -> "CartLine":
        price = money(item.price)
        return cls(
            product_id=ProductId(item.product_id),
            quantity=int(item.quantity),
            price=price,
            total=money(item.total if item.total is not None else price * item.quantity),
        )

    def set_quantity(self, quantity: int) -> None:
        self.quantity = quantity
        self.total = money(self.price * quantity)


@dataclass(frozen=True)
class RemovedItem:
    product_id: ProductId
    name: str


@dataclass(frozen=True)
class AdjustedItem:
    product_id: ProductId
    name: str
    old: int
    now: int


@dataclass(frozen=True)
class FailedDecrement:
    product_id: ProductId
    quantity: int
    error: str = "insufficient_quantity"


@dataclass(frozen=True)
class PaymentRecord:
    """Provider side of a transaction row, before the order id is known."""

    capture_id: str | None
    payer_id: str
    payer_email: str | None
    amount: Decimal
    currency: str
    time: datetime


@dataclass
class CheckoutResult:
    order_id: OrderId
    total: Decimal
    removed_items: list[RemovedItem] = field(default_factory=list)
    adjusted_items: list[AdjustedItem] = field(default_factory=list)
    failed_decrements: list[FailedDecrement] = field(default_factory=list)

    @property
    def warning(self) -> str | None:
        return INVENTORY_WARNING if self.failed_decrements else None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["warning"] = self.warning
        return data
