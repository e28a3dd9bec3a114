"""
Error types and user-facing messages.

Message strings are kept here so panels and tests share one copy.
"""

from typing import Optional

# Toast titles
TITLE_ERROR = "Error"
TITLE_NO_SELECTION = "No products selected"
TITLE_CART_UPDATED = "Cart Updated"
TITLE_REMOVED = "Removed"
TITLE_ORDER_SUBMITTED = "Order Submitted"

# Toast messages
MSG_SELECT_PRODUCT = "Please select at least one product."
MSG_PRODUCTS_ADDED = "Products added successfully!"
MSG_ITEM_REMOVED = "Item removed from cart"
MSG_ORDER_SUBMITTED = "Cart submitted successfully"
MSG_NO_ACTIVE_CART = "No active cart found."
MSG_UNKNOWN_ERROR = "Unknown error"
MSG_BAD_RESPONSE = "Cart service returned an unexpected response"


class CartSyncError(Exception):
    """Base class for cartsync errors."""


class UserInputError(CartSyncError):
    """Action rejected locally before any CartStore call was made."""


class RemoteOperationError(CartSyncError):
    """A CartStore call failed; ``message`` is safe to show to the user."""

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message or MSG_UNKNOWN_ERROR
        self.status_code = status_code
        super().__init__(self.message)


class QueryNotReady(CartSyncError):
    """The refreshable read has not produced a handle yet."""
