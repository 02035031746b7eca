"""Shared pytest fixtures for catalog and checkout tests."""

from datetime import datetime, timedelta, timezone

import pytest

from catalog import CatalogService
from database import MemoryStorage
from orders import OrderManager
from schemas import (
    CheckoutProduct,
    CollectionIn,
    CreateCheckoutRequest,
    LocalizedProduct,
    ProductIn,
    Translation,
)


class TickingClock:
    """Returns a strictly increasing time on every call."""

    def __init__(self, start=None, step=timedelta(seconds=1)):
        self.current = start or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self):
        value = self.current
        self.current = self.current + self.step
        return value


class RecordingNotifier:
    def __init__(self):
        self.calls = []

    def notify(self, order, change):
        self.calls.append((order, change))


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def catalog(storage):
    return CatalogService(storage, base_language="en", max_page_size=50)


@pytest.fixture
def orders(storage, clock):
    return OrderManager(storage, base_language="en", max_page_size=50, clock=clock)


@pytest.fixture
def shirt():
    """The example product: en/th copy, base 10, TH override 8.5."""
    return LocalizedProduct(
        id=1,
        slug="shirt",
        default_language="en",
        translations={
            "en": Translation(name="Shirt", description="A shirt"),
            "th": Translation(name="เสื้อ", description="เสื้อตัวหนึ่ง"),
        },
        base_price=10,
        country_prices={"TH": 8.5},
    )


@pytest.fixture
def collection(catalog):
    return catalog.create_collection(CollectionIn(
        slug="core",
        translations={"en": Translation(name="Core"), "th": Translation(name="หลัก")},
    ))


def product_payload(slug, price, collection_id=None, **extra):
    data = dict(
        slug=slug,
        collection_id=collection_id,
        base_price=price,
        translations={"en": Translation(name=slug.replace("-", " ").title(), material="Cotton")},
    )
    data.update(extra)
    return ProductIn(**data)


@pytest.fixture
def products(catalog, collection):
    """Two active products priced 5 and 3."""
    first = catalog.create_product(product_payload("tee", 5, collection.id))
    second = catalog.create_product(product_payload("cap", 3, collection.id))
    return first, second


def checkout_payload(items, **overrides):
    data = dict(
        wallet_address="0xabc",
        email="buyer@example.com",
        country="TH",
        first_name="Somchai",
        last_name="Jaidee",
        address="1 Sukhumvit Rd",
        city="Bangkok",
        postcode="10110",
        phone="+66800000000",
        products=[CheckoutProduct(product_id=pid, quantity=qty) for pid, qty in items],
    )
    data.update(overrides)
    return CreateCheckoutRequest(**data)
