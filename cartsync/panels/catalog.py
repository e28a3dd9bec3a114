"""
Catalog panel - product table with editable quantities and row selection.

Quantity edits land in ``data`` (the draft rows). Selection always takes
its quantities from ``data``, never from what the table widget carried,
so an edit and a selection arriving in the same tick cannot disagree.
"""

from typing import Any, Iterable, Optional, Protocol

from pydantic import TypeAdapter

from cartsync.bus import ChannelSubscriber, SubscriptionState, SynchronizationBus, get_bus
from cartsync.config import CART_CHANNEL
from cartsync.errors import (
    MSG_PRODUCTS_ADDED,
    MSG_SELECT_PRODUCT,
    TITLE_CART_UPDATED,
    TITLE_ERROR,
    TITLE_NO_SELECTION,
    RemoteOperationError,
    UserInputError,
)
from cartsync.logging import get_logger, sanitize_id_for_logging
from cartsync.models import DraftRow, Notification, SelectionEntry, Toast, ToastVariant
from cartsync.store import CartStore
from cartsync.toasts import LoggingToastSink, ToastSink

logger = get_logger(__name__)

_QUANTITY = TypeAdapter(int)


class SelectionTable(Protocol):
    """Table widget whose selected rows the panel can clear."""
    selected_rows: list


def _field(obj: Any, *names: str) -> Any:
    """Read the first present field from a mapping or an object."""
    for name in names:
        if isinstance(obj, dict):
            value = obj.get(name)
        else:
            value = getattr(obj, name, None)
        if value is not None:
            return value
    return None


class CatalogPanel:
    """Product selector for one account."""

    columns = [
        {"label": "Product Name", "fieldName": "name", "type": "text"},
        {"label": "Price", "fieldName": "unitPrice", "type": "currency"},
        {
            "label": "Qty",
            "fieldName": "quantity",
            "type": "number",
            "editable": True,
            "cellAttributes": {"alignment": "center"},
        },
    ]

    def __init__(
        self,
        account_id: str,
        store: CartStore,
        bus: Optional[SynchronizationBus] = None,
        toasts: Optional[ToastSink] = None,
        table: Optional[SelectionTable] = None,
        channel: str = CART_CHANNEL,
    ):
        self.account_id = account_id
        self.store = store
        self.bus = bus or get_bus()
        self.toasts = toasts or LoggingToastSink()
        self.table = table
        self.channel = channel

        self.data: list[DraftRow] = []
        self.draft_values: list = []
        self.selected_rows: list[SelectionEntry] = []
        self._subscriber = ChannelSubscriber(self.bus, channel, self.handle_cart_message)

    # ==================== LIFECYCLE ====================

    @property
    def subscription_state(self) -> SubscriptionState:
        return self._subscriber.state

    def connect(self) -> None:
        """Listen for order submission."""
        self._subscriber.subscribe()

    def disconnect(self) -> None:
        self._subscriber.unsubscribe()

    async def load_products(self) -> list[DraftRow]:
        """Load active products into fresh draft rows (quantity 1)."""
        try:
            products = await self.store.get_active_products()
        except RemoteOperationError as e:
            logger.error(f"Failed to load products: {e.message}")
            return self.data

        self.data = [DraftRow.from_product(product) for product in products]
        self.selected_rows = []
        logger.debug(f"Loaded {len(self.data)} products")
        return self.data

    # ==================== DRAFT & SELECTION ====================

    def _find_row(self, row_id: Any) -> Optional[DraftRow]:
        if row_id is None:
            return None
        return next((row for row in self.data if row.id == str(row_id)), None)

    def handle_cell_change(self, edits: Iterable[Any]) -> None:
        """
        Apply inline quantity edits to the matching draft rows.

        The batch is validated before any row changes, so a bad value leaves
        every row as it was. The draft buffer is cleared either way.

        Raises:
            pydantic.ValidationError: a quantity is not an integer
        """
        try:
            updates = []
            for edit in edits:
                row = self._find_row(_field(edit, "id"))
                quantity = _field(edit, "quantity")
                if row is not None and quantity is not None:
                    updates.append((row, _QUANTITY.validate_python(quantity)))

            for row, quantity in updates:
                row.quantity = quantity
        finally:
            self.draft_values = []

    def handle_row_selection(self, rows: Iterable[Any]) -> list[SelectionEntry]:
        """Replace the selection with ``rows``, quantities taken from draft rows."""
        selection: list[SelectionEntry] = []
        for r in rows:
            row = self._find_row(_field(r, "id", "product_id", "productId"))
            if row is None:
                # Row is gone from the table; it cannot be selected
                continue
            if any(entry.product_id == row.product_id for entry in selection):
                continue
            selection.append(SelectionEntry(product_id=row.product_id, quantity=row.quantity))

        selected_ids = {entry.product_id for entry in selection}
        for row in self.data:
            row.selected = row.product_id in selected_ids

        self.selected_rows = selection
        return selection

    def _build_payload(self) -> list[SelectionEntry]:
        """Re-read current quantities for the selection right before sending."""
        if not self.selected_rows:
            raise UserInputError(MSG_SELECT_PRODUCT)

        payload = []
        for entry in self.selected_rows:
            row = self._find_row(entry.product_id)
            quantity = row.quantity if row is not None else entry.quantity
            payload.append(SelectionEntry(product_id=entry.product_id, quantity=quantity))
        return payload

    def _clear_selection(self) -> None:
        if self.table is not None:
            self.table.selected_rows = []
        self.selected_rows = []
        for row in self.data:
            row.selected = False

    # ==================== ACTIONS ====================

    async def handle_add_to_cart(self) -> bool:
        """Send the selection to the cart. Returns True when the store accepted it."""
        try:
            payload = self._build_payload()
        except UserInputError as e:
            self._show_toast(TITLE_NO_SELECTION, str(e), ToastVariant.WARNING)
            return False

        try:
            await self.store.add_products_to_cart(self.account_id, payload)
        except RemoteOperationError as e:
            logger.warning(
                f"Add to cart failed for account {sanitize_id_for_logging(self.account_id)}: {e.message}"
            )
            self._show_toast(TITLE_ERROR, e.message, ToastVariant.ERROR)
            return False

        self._show_toast(TITLE_CART_UPDATED, MSG_PRODUCTS_ADDED, ToastVariant.SUCCESS)

        # Tell the cart panel its snapshot is stale
        self.bus.publish(self.channel, Notification(account_id=self.account_id))

        self._clear_selection()
        return True

    def handle_cart_message(self, notification: Notification) -> None:
        if notification.is_submitted:
            self.reset()

    def reset(self) -> None:
        """Back to the freshly loaded baseline: nothing selected, every quantity 1."""
        self._clear_selection()
        for row in self.data:
            row.quantity = 1
        self.draft_values = []

    def _show_toast(self, title: str, message: str, variant: ToastVariant) -> None:
        self.toasts.show(Toast(title=title, message=message, variant=variant))
