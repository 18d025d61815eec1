# storefront/domain/errors.py
"""Error taxonomy of the storefront.

One exception class per failure kind. Each carries a machine readable
``kind``, a user facing ``message``, structured ``detail`` and the HTTP
status the routers answer with. Inventory inconsistencies found at commit
time are not exceptions, see ``FailedDecrement`` in ``domain.types``.
"""

from dataclasses import asdict, is_dataclass
from typing import Any


def _plain(value: Any) -> Any:
    if is_dataclass(value):
        return asdict(value)
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


class StorefrontError(Exception):
    kind = "storefront_error"
    status_code = 500

    def __init__(self, message: str, **detail: Any):
        super().__init__(message)
        self.message = message
        self.detail = {k: _plain(v) for k, v in detail.items()}

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message, **self.detail}


# -- user input ---------------------------------------------------------------

class UserInputError(StorefrontError):
    kind = "user_input"
    status_code = 400


class EmptyCartError(UserInputError):
    kind = "empty_cart"

    def __init__(self, message: str = "Your cart is empty."):
        super().__init__(message)


class InvalidAmountError(UserInputError):
    kind = "invalid_amount"

    def __init__(self, amount):
        super().__init__("Cart total must be greater than zero", amount=str(amount))


class NoPendingPaymentError(UserInputError):
    kind = "no_pending_payment"

    def __init__(self, message: str = "No pending NETS payment"):
        super().__init__(message)


class CheckoutInProgressError(UserInputError):
    kind = "checkout_in_progress"
    status_code = 409

    def __init__(self, user_id: int):
        super().__init__("A checkout for this account is already in progress", user_id=user_id)


class ProductNotFoundError(UserInputError):
    kind = "product_not_found"
    status_code = 404

    def __init__(self, product_id: int):
        super().__init__(f"Product not found: {product_id}", product_id=product_id)
        self.product_id = product_id


class OrderNotFoundError(UserInputError):
    kind = "order_not_found"
    status_code = 404

    def __init__(self, order_id: int):
        super().__init__("Order not found.", order_id=order_id)


class UserNotFoundError(UserInputError):
    kind = "user_not_found"
    status_code = 404

    def __init__(self, user_id: int):
        super().__init__("User not found", user_id=user_id)


class NoTransactionFoundError(UserInputError):
    kind = "no_transaction_found"
    status_code = 404

    def __init__(self, order_id: int):
        super().__init__("No PayPal transaction found for this order", order_id=order_id)


class AlreadyRefundedError(UserInputError):
    kind = "already_refunded"
    status_code = 409

    def __init__(self, order_id: int):
        super().__init__("Order has already been refunded", order_id=order_id)


# -- availability ---------------------------------------------------------------

class AvailabilityError(StorefrontError):
    kind = "availability"
    status_code = 409


class OutOfStockError(AvailabilityError):
    kind = "out_of_stock"

    def __init__(self, product_id: int, name: str = ""):
        super().__init__(f"{name or 'Product'} is out of stock.", product_id=product_id)


class CartDepletedError(AvailabilityError):
    kind = "cart_depleted"

    def __init__(self, removed_items=(), adjusted_items=()):
        parts = []
        if removed_items:
            parts.append("Some items were removed because they are out of stock.")
        if adjusted_items:
            parts.append("Some item quantities were reduced due to limited stock.")
        super().__init__(
            " ".join(parts) or "Nothing left in the cart to order.",
            removed_items=list(removed_items),
            adjusted_items=list(adjusted_items),
        )
        self.removed_items = list(removed_items)
        self.adjusted_items = list(adjusted_items)


# -- payment providers ----------------------------------------------------------

class ProviderError(StorefrontError):
    kind = "provider"
    status_code = 502


class PaymentProviderError(ProviderError):
    kind = "payment_provider"

    def __init__(self, message: str, provider: str, status_code: int | None = None, body: Any = None):
        super().__init__(message, provider=provider, provider_status=status_code, provider_body=body)
        self.provider_status = status_code
        self.body = body


class PaymentNotCompletedError(ProviderError):
    kind = "payment_not_completed"
    status_code = 402

    def __init__(self, status: Any, provider: str = "paypal"):
        super().__init__("Payment was not completed", provider=provider, status=status)
        self.status = status


class QrRequestError(ProviderError):
    kind = "qr_request_failed"

    def __init__(self, message: str, response_code: str | None = None, instructions: str = ""):
        super().__init__(message, provider="nets", response_code=response_code or "N.A.", instructions=instructions)


class RefundFailedError(ProviderError):
    kind = "refund_failed"

    def __init__(self, order_id: int, details: Any = None):
        super().__init__("Refund failed", order_id=order_id, details=details)


# -- persistence ----------------------------------------------------------------

class PersistenceError(StorefrontError):
    kind = "persistence"
    status_code = 500


class OrderItemsNotSavedError(PersistenceError):
    kind = "order_items_not_saved"

    def __init__(self, order_id: int):
        super().__init__("Order created but failed to save items. Contact support.", order_id=order_id)
        self.order_id = order_id


class TransactionNotRecordedError(PersistenceError):
    kind = "transaction_not_recorded"

    def __init__(self, order_id: int, capture_id: str | None = None):
        super().__init__(
            "Order created but the payment record failed to save. Contact support.",
            order_id=order_id,
            capture_id=capture_id,
        )
        self.order_id = order_id
