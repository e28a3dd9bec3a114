"""Pytest configuration and fixtures"""
import asyncio
import os
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

os.environ.setdefault("LOG_LEVEL", "DEBUG")

from cartsync.bus import SynchronizationBus
from cartsync.models import Cart, Product
from cartsync.retry import RetryPolicy
from cartsync.toasts import CollectingToastSink


class VirtualClock:
    """Async sleep replacement that only advances a counter."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []
        self.on_sleep = None

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds
        if self.on_sleep is not None:
            self.on_sleep(len(self.sleeps))
        # Yield so other tasks can run between retries
        await asyncio.sleep(0)


@pytest.fixture
def bus():
    """Fresh bus per test"""
    return SynchronizationBus()


@pytest.fixture
def toasts():
    return CollectingToastSink()


@pytest.fixture
def clock():
    return VirtualClock()


@pytest.fixture
def retry_policy(clock):
    """200 ms fixed retry driven by virtual time"""
    return RetryPolicy(interval=0.2, sleep=clock.sleep)


@pytest.fixture
def sample_products():
    return [
        Product(id="01t-P1", name="Laptop Stand", unit_price=Decimal("49.99")),
        Product(id="01t-P2", name="USB-C Hub", unit_price=Decimal("29.50")),
        Product(id="01t-P3", name="Desk Lamp", unit_price=Decimal("19.00")),
    ]


@pytest.fixture
def sample_cart():
    return Cart.model_validate({
        "opportunityId": "006-OPP1",
        "items": [
            {"lineItemId": "00k-L1", "productId": "01t-P1", "quantity": 2, "name": "Laptop Stand"},
            {"lineItemId": "00k-L2", "productId": "01t-P2", "quantity": 1, "name": "USB-C Hub"},
        ],
    })


@pytest.fixture
def mock_store(sample_products, sample_cart):
    """CartStore with every operation mocked"""
    store = AsyncMock()
    store.get_active_products = AsyncMock(return_value=sample_products)
    store.get_cart_for_account = AsyncMock(return_value=sample_cart)
    store.add_products_to_cart = AsyncMock(return_value=None)
    store.remove_line_item = AsyncMock(return_value=Cart(opportunity_id="006-OPP1", items=[]))
    store.submit_order = AsyncMock(return_value=None)
    return store


async def drain_tasks():
    """Run every other pending task on the loop to completion"""
    current = asyncio.current_task()
    pending = [t for t in asyncio.all_tasks() if t is not current]
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)


@pytest.fixture
def drain():
    return drain_tasks


class FakeTable:
    """Stand-in for the datatable widget"""

    def __init__(self):
        self.selected_rows = []


@pytest.fixture
def table():
    return FakeTable()
