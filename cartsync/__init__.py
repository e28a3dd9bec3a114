"""Cart synchronization between a product catalog panel and a cart panel."""
from .bus import SynchronizationBus, get_bus
from .errors import CartSyncError, RemoteOperationError, UserInputError
from .models import Cart, CartLineItem, DraftRow, Notification, NotificationStatus, Product, SelectionEntry
from .panels import CartPanel, CartPanelState, CatalogPanel
from .retry import RetryPolicy
from .store import CartStore, HttpCartStore

__all__ = [
    "Cart",
    "CartLineItem",
    "CartPanel",
    "CartPanelState",
    "CartStore",
    "CartSyncError",
    "CatalogPanel",
    "DraftRow",
    "HttpCartStore",
    "Notification",
    "NotificationStatus",
    "Product",
    "RemoteOperationError",
    "RetryPolicy",
    "SelectionEntry",
    "SynchronizationBus",
    "UserInputError",
    "get_bus",
]
