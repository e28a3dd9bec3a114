"""
CartStore - the backend collaborator behind both panels.

``CartStore`` is the interface the panels depend on. ``HttpCartStore`` talks
to a cart service over HTTP; each operation is a JSON POST to an endpoint
named after the service method, e.g. ``POST {base_url}/removeLineItem``.
"""

from typing import Any, Optional, Protocol, Sequence

import httpx
from pydantic import ValidationError

from cartsync.config import CART_SERVICE_TIMEOUT, CART_SERVICE_TOKEN, CART_SERVICE_URL
from cartsync.errors import MSG_BAD_RESPONSE, MSG_UNKNOWN_ERROR, RemoteOperationError
from cartsync.logging import get_logger, sanitize_id_for_logging
from cartsync.models import Cart, Product, SelectionEntry

logger = get_logger(__name__)


class CartStore(Protocol):
    """Source of truth for products, carts and order submission.

    Every method raises ``RemoteOperationError`` when the call fails.
    """

    async def get_active_products(self) -> list[Product]: ...

    async def get_cart_for_account(self, account_id: str) -> Optional[Cart]: ...

    async def add_products_to_cart(
        self, account_id: str, selected_products: Sequence[SelectionEntry]
    ) -> Optional[Cart]: ...

    async def remove_line_item(self, line_item_id: str, account_id: str) -> Optional[Cart]: ...

    async def submit_order(self, opportunity_id: str, account_id: str) -> None: ...


def _error_message(response: httpx.Response) -> str:
    """Pull a human-readable message out of an error response."""
    try:
        data = response.json()
    except ValueError:
        return response.text.strip() or MSG_UNKNOWN_ERROR

    # Service errors come back as a list of {message, errorCode}
    if isinstance(data, list) and data:
        data = data[0]
    if isinstance(data, dict):
        body = data.get("body")
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        if data.get("message"):
            return str(data["message"])
    return MSG_UNKNOWN_ERROR


def _to_cart(data: Any) -> Optional[Cart]:
    if not data:
        return None
    try:
        return Cart.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Malformed cart in response: {e}")
        raise RemoteOperationError(MSG_BAD_RESPONSE) from e


class HttpCartStore:
    """CartStore backed by the cart service HTTP API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or CART_SERVICE_URL).rstrip("/")
        self.token = token if token is not None else CART_SERVICE_TOKEN
        self.timeout = timeout if timeout is not None else CART_SERVICE_TIMEOUT
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Lazily create the shared client."""
        if self._http_client is None:
            if not self.base_url:
                raise RemoteOperationError("CART_SERVICE_URL must be set")
            headers = {"Accept": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=httpx.Timeout(self.timeout, connect=5.0),
                transport=self._transport,
            )
        return self._http_client

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def _call(self, operation: str, payload: dict) -> Any:
        client = await self._get_http_client()
        try:
            response = await client.post(f"/{operation}", json=payload)
        except httpx.HTTPError as e:
            logger.warning(f"Cart service call {operation} failed: {e}")
            raise RemoteOperationError(f"Cart service unavailable: {e}") from e

        if response.is_error:
            message = _error_message(response)
            logger.warning(f"Cart service {operation} returned {response.status_code}: {message}")
            raise RemoteOperationError(message, status_code=response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.warning(f"Cart service {operation} returned non-JSON body: {e}")
            raise RemoteOperationError(MSG_BAD_RESPONSE, status_code=response.status_code) from e

    async def get_active_products(self) -> list[Product]:
        data = await self._call("getActiveProducts", {})
        try:
            return [Product.model_validate(item) for item in data or []]
        except (ValidationError, TypeError) as e:
            logger.warning(f"Malformed product list in response: {e}")
            raise RemoteOperationError(MSG_BAD_RESPONSE) from e

    async def get_cart_for_account(self, account_id: str) -> Optional[Cart]:
        logger.debug(f"Fetching cart for account {sanitize_id_for_logging(account_id)}")
        return _to_cart(await self._call("getCartForAccount", {"accountId": account_id}))

    async def add_products_to_cart(
        self, account_id: str, selected_products: Sequence[SelectionEntry]
    ) -> Optional[Cart]:
        payload = {
            "accountId": account_id,
            "selectedProducts": [entry.to_wire() for entry in selected_products],
        }
        return _to_cart(await self._call("addProductsToCart", payload))

    async def remove_line_item(self, line_item_id: str, account_id: str) -> Optional[Cart]:
        payload = {"lineItemId": line_item_id, "accountId": account_id}
        return _to_cart(await self._call("removeLineItem", payload))

    async def submit_order(self, opportunity_id: str, account_id: str) -> None:
        await self._call("submitOrder", {"opportunityId": opportunity_id, "accountId": account_id})
