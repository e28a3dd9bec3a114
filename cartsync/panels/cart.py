"""
Cart panel - owns the account's cart snapshot.

This is the only component that writes the cart. Other panels announce
mutations on the bus and the cart panel re-reads.

Refresh flow:
    notification for this account -> refresh_cart() -> task
    task: wait (RetryPolicy) until the initial read has produced a handle,
          then re-run that read once. Failures are logged, never shown.
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from cartsync.bus import ChannelSubscriber, SubscriptionState, SynchronizationBus, get_bus
from cartsync.config import CART_CHANNEL
from cartsync.errors import (
    MSG_ITEM_REMOVED,
    MSG_NO_ACTIVE_CART,
    MSG_ORDER_SUBMITTED,
    TITLE_ERROR,
    TITLE_ORDER_SUBMITTED,
    TITLE_REMOVED,
    QueryNotReady,
    RemoteOperationError,
    UserInputError,
)
from cartsync.logging import get_logger, sanitize_id_for_logging
from cartsync.models import Cart, CartLineItem, Notification, NotificationStatus, Toast, ToastVariant
from cartsync.query import RefreshableQuery
from cartsync.retry import RetryPolicy
from cartsync.store import CartStore
from cartsync.toasts import LoggingToastSink, ToastSink

logger = get_logger(__name__)

Spawn = Callable[[Awaitable[Any]], asyncio.Future]


class CartPanelState(str, Enum):
    """
    Cart panel lifecycle.

    Flow:
        uninitialized -> loading -> ready | empty
        ready/empty -> loading (refresh) -> ready | empty
    """
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    EMPTY = "empty"


class CartPanel:
    """Shopping cart for one account."""

    def __init__(
        self,
        account_id: str,
        store: CartStore,
        bus: Optional[SynchronizationBus] = None,
        toasts: Optional[ToastSink] = None,
        retry_policy: Optional[RetryPolicy] = None,
        channel: str = CART_CHANNEL,
        spawn: Optional[Spawn] = None,
    ):
        self.account_id = account_id
        self.store = store
        self.bus = bus or get_bus()
        self.toasts = toasts or LoggingToastSink()
        self.retry_policy = retry_policy or RetryPolicy()
        self.channel = channel
        self._spawn = spawn or asyncio.ensure_future

        self.cart: Optional[Cart] = None
        self.cart_result: Optional[RefreshableQuery[Optional[Cart]]] = None
        self.state = CartPanelState.UNINITIALIZED
        self._pending_refreshes: set[asyncio.Future] = set()
        self._subscriber = ChannelSubscriber(self.bus, channel, self._on_message)

    @property
    def items(self) -> list[CartLineItem]:
        return self.cart.items if self.cart is not None else []

    @property
    def subscription_state(self) -> SubscriptionState:
        return self._subscriber.state

    def _apply(self, cart: Optional[Cart]) -> None:
        self.cart = cart
        self.state = CartPanelState.READY if cart is not None else CartPanelState.EMPTY

    # ==================== LIFECYCLE ====================

    async def load(self) -> Optional[Cart]:
        """Initial read. The refresh handle exists only once this completes."""
        self.state = CartPanelState.LOADING
        query = RefreshableQuery(self.store.get_cart_for_account, self.account_id)
        try:
            cart = await query.execute()
        except RemoteOperationError as e:
            logger.error(
                f"Failed to load cart for account {sanitize_id_for_logging(self.account_id)}: {e.message}"
            )
            cart = None
        self.cart_result = query
        self._apply(cart)
        return cart

    def connect(self) -> None:
        """Subscribe to cart notifications (once)."""
        self._subscriber.subscribe()

    def disconnect(self) -> None:
        """Unsubscribe and drop any refresh still waiting or in flight."""
        self._subscriber.unsubscribe()
        for task in list(self._pending_refreshes):
            task.cancel()
        self._pending_refreshes.clear()

    def _on_message(self, notification: Notification) -> None:
        # The bus has no topics; filter by account here
        if notification.account_id != self.account_id:
            return
        self.refresh_cart()

    # ==================== REFRESH ====================

    def refresh_cart(self) -> asyncio.Future:
        """Schedule a refresh through ``spawn`` and return its task."""
        task = self._spawn(self.refresh_cart_now())
        self._pending_refreshes.add(task)
        task.add_done_callback(self._pending_refreshes.discard)
        return task

    async def _require_cart_result(self) -> RefreshableQuery:
        if self.cart_result is None:
            raise QueryNotReady("cart read has not completed yet")
        return self.cart_result

    async def refresh_cart_now(self) -> bool:
        """
        Re-run the initial cart read once its handle exists.

        Returns:
            True if a fresh snapshot was applied, False otherwise
        """
        try:
            query = await self.retry_policy.run(self._require_cart_result)
        except QueryNotReady:
            logger.warning(
                f"Cart read for account {sanitize_id_for_logging(self.account_id)} "
                f"not ready after {self.retry_policy.max_attempts} attempts, refresh dropped"
            )
            return False

        self.state = CartPanelState.LOADING
        try:
            cart = await query.refresh()
        except Exception as e:
            # Leave the cart as it is now: a removal or submission may have
            # landed while the read was in flight
            logger.error(f"Refresh error: {e}", exc_info=True)
            self._apply(self.cart)
            return False

        self._apply(cart)
        return True

    # ==================== ACTIONS ====================

    async def handle_remove(self, line_item_id: str) -> bool:
        """Remove a line item; the returned cart replaces the local one as-is."""
        try:
            result = await self.store.remove_line_item(line_item_id, self.account_id)
        except RemoteOperationError as e:
            logger.warning(f"Remove of line item {sanitize_id_for_logging(line_item_id)} failed: {e.message}")
            self._show_toast(TITLE_ERROR, e.message, ToastVariant.ERROR)
            return False

        self._apply(result)
        self._show_toast(TITLE_REMOVED, MSG_ITEM_REMOVED, ToastVariant.SUCCESS)
        self.refresh_cart()
        return True

    def _require_opportunity_id(self) -> str:
        if self.cart is None or not self.cart.opportunity_id:
            raise UserInputError(MSG_NO_ACTIVE_CART)
        return self.cart.opportunity_id

    async def handle_submit_order(self) -> bool:
        """Submit the cart as an order and tell other panels to reset."""
        try:
            opportunity_id = self._require_opportunity_id()
        except UserInputError as e:
            self._show_toast(TITLE_ERROR, str(e), ToastVariant.ERROR)
            return False

        try:
            await self.store.submit_order(opportunity_id, self.account_id)
        except RemoteOperationError as e:
            logger.warning(f"Order submission failed for {sanitize_id_for_logging(opportunity_id)}: {e.message}")
            self._show_toast(TITLE_ERROR, e.message, ToastVariant.ERROR)
            return False

        self._show_toast(TITLE_ORDER_SUBMITTED, MSG_ORDER_SUBMITTED, ToastVariant.SUCCESS)
        logger.info(f"Order submitted for account {sanitize_id_for_logging(self.account_id)}")

        self.bus.publish(
            self.channel,
            Notification(account_id=self.account_id, status=NotificationStatus.SUBMITTED),
        )
        self._apply(None)
        return True

    def _show_toast(self, title: str, message: str, variant: ToastVariant) -> None:
        self.toasts.show(Toast(title=title, message=message, variant=variant))
