from decimal import Decimal

import pytest

from shop import services


@pytest.fixture
def electronics(db):
    return services.create_category("Electronics")


@pytest.fixture
def books(db):
    return services.create_category("Books")


@pytest.fixture
def alice(db):
    return services.create_customer("Alice", "alice@example.com")


@pytest.fixture
def bob(db):
    return services.create_customer("Bob", "bob@example.com")


@pytest.fixture
def make_product(db):
    def _make(name, category, price="10.00", stock=100):
        return services.create_product(name, category, Decimal(price), stock)
    return _make
