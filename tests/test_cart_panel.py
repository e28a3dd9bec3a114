"""
Tests for CartPanel
"""

import asyncio

import pytest

from cartsync.bus import SubscriptionState
from cartsync.errors import MSG_ITEM_REMOVED, MSG_NO_ACTIVE_CART, MSG_UNKNOWN_ERROR, RemoteOperationError
from cartsync.models import Cart, ToastVariant
from cartsync.panels import CartPanel, CartPanelState
from cartsync.query import RefreshableQuery
from cartsync.retry import RetryPolicy

ACCOUNT = "001-ACCT-B"


@pytest.fixture
def panel(mock_store, bus, toasts, retry_policy):
    return CartPanel(ACCOUNT, mock_store, bus=bus, toasts=toasts, retry_policy=retry_policy)


def blocking_policy():
    """Retry policy whose sleep never returns"""
    never = asyncio.Event()

    async def sleep(seconds):
        await never.wait()

    return RetryPolicy(interval=0.2, sleep=sleep)


class TestLoad:
    """Initial cart read."""

    def test_starts_uninitialized(self, panel):
        assert panel.state is CartPanelState.UNINITIALIZED
        assert panel.cart_result is None
        assert panel.items == []

    @pytest.mark.asyncio
    async def test_load_stores_snapshot_and_handle(self, panel, mock_store, sample_cart):
        cart = await panel.load()

        assert cart == sample_cart
        assert panel.state is CartPanelState.READY
        assert [item.line_item_id for item in panel.items] == ["00k-L1", "00k-L2"]
        assert isinstance(panel.cart_result, RefreshableQuery)
        mock_store.get_cart_for_account.assert_awaited_once_with(ACCOUNT)

    @pytest.mark.asyncio
    async def test_no_active_cart(self, panel, mock_store):
        mock_store.get_cart_for_account.return_value = None

        await panel.load()

        assert panel.state is CartPanelState.EMPTY
        assert panel.items == []

    @pytest.mark.asyncio
    async def test_failed_load_still_keeps_handle(self, panel, mock_store, toasts):
        mock_store.get_cart_for_account.side_effect = RemoteOperationError("timeout")

        await panel.load()

        assert panel.state is CartPanelState.EMPTY
        assert panel.cart_result is not None
        assert toasts.toasts == []


class TestRefresh:
    """Refresh-retry loop."""

    @pytest.mark.asyncio
    async def test_waits_for_handle_then_refetches_once(self, panel, mock_store, clock):
        query = RefreshableQuery(mock_store.get_cart_for_account, ACCOUNT)

        def publish_handle(sleep_count):
            if sleep_count == 3:
                panel.cart_result = query

        clock.on_sleep = publish_handle

        assert await panel.refresh_cart_now() is True

        assert clock.sleeps == [0.2, 0.2, 0.2]
        mock_store.get_cart_for_account.assert_awaited_once_with(ACCOUNT)
        assert panel.state is CartPanelState.READY

    @pytest.mark.asyncio
    async def test_refresh_failure_is_swallowed(self, panel, mock_store, toasts, sample_cart):
        await panel.load()
        mock_store.get_cart_for_account.side_effect = RemoteOperationError("boom")

        assert await panel.refresh_cart_now() is False

        assert panel.cart == sample_cart
        assert panel.state is CartPanelState.READY
        assert toasts.toasts == []

    @pytest.mark.asyncio
    async def test_refresh_applies_new_snapshot(self, panel, mock_store):
        await panel.load()
        mock_store.get_cart_for_account.return_value = None

        assert await panel.refresh_cart_now() is True

        assert panel.cart is None
        assert panel.state is CartPanelState.EMPTY

    @pytest.mark.asyncio
    async def test_bounded_policy_gives_up(self, mock_store, bus, toasts, clock):
        policy = RetryPolicy(interval=0.2, max_attempts=3, sleep=clock.sleep)
        panel = CartPanel(ACCOUNT, mock_store, bus=bus, toasts=toasts, retry_policy=policy)

        assert await panel.refresh_cart_now() is False

        assert len(clock.sleeps) == 2
        mock_store.get_cart_for_account.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_same_account_notification_refreshes(self, panel, bus, mock_store, drain):
        await panel.load()
        panel.connect()

        bus.publish(panel.channel, {"accountId": ACCOUNT})
        await drain()

        assert mock_store.get_cart_for_account.await_count == 2

    @pytest.mark.asyncio
    async def test_other_account_notification_ignored(self, panel, bus, mock_store, drain):
        await panel.load()
        panel.connect()

        bus.publish(panel.channel, {"accountId": "001-ACCT-A"})
        await drain()

        assert mock_store.get_cart_for_account.await_count == 1

    @pytest.mark.asyncio
    async def test_notification_before_load_completes(self, panel, bus, mock_store, drain):
        panel.connect()

        bus.publish(panel.channel, {"accountId": ACCOUNT})
        await asyncio.sleep(0)
        await panel.load()
        await drain()

        # One initial read plus exactly one refresh of the same read
        assert mock_store.get_cart_for_account.await_count == 2

    def test_connect_is_guarded(self, panel, bus):
        panel.connect()
        panel.connect()

        assert bus.subscriber_count(panel.channel) == 1
        assert panel.subscription_state is SubscriptionState.SUBSCRIBED

    @pytest.mark.asyncio
    async def test_disconnect_cancels_waiting_refresh(self, mock_store, bus, toasts):
        panel = CartPanel(ACCOUNT, mock_store, bus=bus, toasts=toasts, retry_policy=blocking_policy())
        panel.connect()
        task = panel.refresh_cart()
        await asyncio.sleep(0)

        panel.disconnect()
        await asyncio.gather(task, return_exceptions=True)

        assert task.cancelled()
        assert bus.subscriber_count(panel.channel) == 0
        mock_store.get_cart_for_account.assert_not_awaited()


class TestRemove:
    """Line item removal."""

    @pytest.mark.asyncio
    async def test_returned_cart_applied_before_refresh(self, mock_store, bus, toasts):
        panel = CartPanel(ACCOUNT, mock_store, bus=bus, toasts=toasts, retry_policy=blocking_policy())

        assert await panel.handle_remove("00k-L1") is True

        # The scheduled refresh is still waiting for a handle
        assert panel.items == []
        assert panel.state is CartPanelState.READY
        assert toasts.last.message == MSG_ITEM_REMOVED
        mock_store.remove_line_item.assert_awaited_once_with("00k-L1", ACCOUNT)
        mock_store.get_cart_for_account.assert_not_awaited()
        panel.disconnect()

    @pytest.mark.asyncio
    async def test_removal_followed_by_refresh(self, panel, mock_store, drain, sample_cart):
        await panel.load()
        refreshed = Cart(opportunity_id="006-OPP1", items=sample_cart.items[1:])
        mock_store.get_cart_for_account.return_value = refreshed

        await panel.handle_remove("00k-L1")
        assert panel.items == []
        await drain()

        assert mock_store.get_cart_for_account.await_count == 2
        assert panel.cart == refreshed

    @pytest.mark.asyncio
    async def test_removal_failure_keeps_cart(self, panel, mock_store, toasts, drain, sample_cart):
        await panel.load()
        mock_store.remove_line_item.side_effect = RemoteOperationError("Line item is locked")

        assert await panel.handle_remove("00k-L1") is False
        await drain()

        assert panel.cart == sample_cart
        assert toasts.last.variant is ToastVariant.ERROR
        assert toasts.last.message == "Line item is locked"
        assert mock_store.get_cart_for_account.await_count == 1

    @pytest.mark.asyncio
    async def test_removal_failure_without_message(self, panel, mock_store, toasts):
        mock_store.remove_line_item.side_effect = RemoteOperationError()

        await panel.handle_remove("00k-L1")

        assert toasts.last.message == MSG_UNKNOWN_ERROR


class TestSubmitOrder:
    """Order submission."""

    @pytest.mark.asyncio
    async def test_no_cart(self, panel, mock_store, toasts):
        assert await panel.handle_submit_order() is False

        mock_store.submit_order.assert_not_awaited()
        assert toasts.last.variant is ToastVariant.ERROR
        assert toasts.last.message == MSG_NO_ACTIVE_CART

    @pytest.mark.asyncio
    async def test_cart_without_opportunity(self, panel, mock_store, toasts):
        mock_store.get_cart_for_account.return_value = Cart(items=[])
        await panel.load()

        assert await panel.handle_submit_order() is False

        mock_store.submit_order.assert_not_awaited()
        assert toasts.last.message == MSG_NO_ACTIVE_CART

    @pytest.mark.asyncio
    async def test_success_publishes_and_clears(self, panel, mock_store, bus, toasts):
        received = []
        bus.subscribe(panel.channel, received.append)
        await panel.load()

        assert await panel.handle_submit_order() is True

        mock_store.submit_order.assert_awaited_once_with("006-OPP1", ACCOUNT)
        assert [n.to_wire() for n in received] == [{"accountId": ACCOUNT, "status": "submitted"}]
        assert panel.cart is None
        assert panel.items == []
        assert panel.state is CartPanelState.EMPTY
        assert toasts.last.variant is ToastVariant.SUCCESS

    @pytest.mark.asyncio
    async def test_failure_keeps_cart(self, panel, mock_store, bus, toasts, sample_cart):
        received = []
        bus.subscribe(panel.channel, received.append)
        mock_store.submit_order.side_effect = RemoteOperationError("Opportunity is closed")
        await panel.load()

        assert await panel.handle_submit_order() is False

        assert panel.cart == sample_cart
        assert received == []
        assert toasts.last.message == "Opportunity is closed"


def slow_failing_read(release):
    """Cart read that waits for ``release`` and then fails"""

    async def read(account_id):
        await release.wait()
        raise RemoteOperationError("read timed out")

    return read


class TestFailedRefreshInterleaving:
    """A refresh that fails after a mutation landed must not undo it."""

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_removal(self, panel, mock_store, drain):
        await panel.load()
        release = asyncio.Event()
        mock_store.get_cart_for_account.side_effect = slow_failing_read(release)
        panel.refresh_cart()
        await asyncio.sleep(0)

        await panel.handle_remove("00k-L1")
        assert panel.items == []
        release.set()
        await drain()

        assert panel.items == []
        assert panel.state is CartPanelState.READY

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_submission(self, panel, mock_store, toasts, drain):
        await panel.load()
        release = asyncio.Event()
        mock_store.get_cart_for_account.side_effect = slow_failing_read(release)
        panel.refresh_cart()
        await asyncio.sleep(0)

        assert await panel.handle_submit_order() is True
        release.set()
        await drain()

        assert panel.cart is None
        assert panel.state is CartPanelState.EMPTY
        # The order cannot be submitted a second time
        assert await panel.handle_submit_order() is False
        mock_store.submit_order.assert_awaited_once()
        assert toasts.last.message == MSG_NO_ACTIVE_CART


@pytest.mark.asyncio
async def test_refresh_runs_through_injected_spawn(mock_store, bus, toasts, retry_policy, drain):
    spawned = []

    def spawn(coro):
        task = asyncio.ensure_future(coro)
        spawned.append(task)
        return task

    panel = CartPanel(ACCOUNT, mock_store, bus=bus, toasts=toasts, retry_policy=retry_policy, spawn=spawn)
    await panel.load()
    panel.connect()

    bus.publish(panel.channel, {"accountId": ACCOUNT})
    await drain()

    assert len(spawned) == 1
    assert spawned[0].result() is True
    assert mock_store.get_cart_for_account.await_count == 2
