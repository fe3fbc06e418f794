from decimal import Decimal

import pytest

from . import services
from .exceptions import ConstraintViolationError, InsufficientStockError
from .models import Order, OrderItem

pytestmark = pytest.mark.django_db


def test_place_order_captures_price_and_decrements_stock(alice, electronics, make_product):
    lamp = make_product('Lamp', electronics, price='12.50', stock=5)

    order = services.place_order(alice, [(lamp, 2)])

    item = order.items.get()
    assert item.price_at_time == Decimal('12.50')
    assert item.quantity == 2
    lamp.refresh_from_db()
    assert lamp.stock_quantity == 3


def test_price_change_leaves_history_alone(alice, electronics, make_product):
    lamp = make_product('Lamp', electronics, price='12.50', stock=5)
    order = services.place_order(alice, [(lamp, 1)])

    services.change_price(lamp, '99.00')

    assert lamp.price == Decimal('99.00')
    assert order.items.get().price_at_time == Decimal('12.50')


def test_insufficient_stock_rolls_back_everything(alice, electronics, make_product):
    lamp = make_product('Lamp', electronics, stock=5)
    desk = make_product('Desk', electronics, stock=1)

    with pytest.raises(InsufficientStockError):
        services.place_order(alice, [(lamp, 2), (desk, 3)])

    assert Order.objects.count() == 0
    assert OrderItem.objects.count() == 0
    lamp.refresh_from_db()
    assert lamp.stock_quantity == 5


def test_repeated_product_lines_are_merged(alice, electronics, make_product):
    lamp = make_product('Lamp', electronics, stock=5)

    order = services.place_order(alice, [(lamp, 1), (lamp, 2)])

    assert order.items.get().quantity == 3


def test_order_needs_items(alice):
    with pytest.raises(ConstraintViolationError):
        services.place_order(alice, [])


def test_order_rejects_non_positive_quantity(alice, electronics, make_product):
    lamp = make_product('Lamp', electronics)
    with pytest.raises(ConstraintViolationError):
        services.place_order(alice, [(lamp, 0)])


def test_duplicate_email_is_a_constraint_violation(alice):
    with pytest.raises(ConstraintViolationError, match='email'):
        services.create_customer('Other Alice', 'alice@example.com')


def test_product_price_must_be_positive(electronics):
    with pytest.raises(ConstraintViolationError):
        services.create_product('Freebie', electronics, Decimal('0'))


def test_product_stock_must_not_be_negative(electronics):
    with pytest.raises(ConstraintViolationError):
        services.create_product('Ghost', electronics, Decimal('1.00'), stock_quantity=-3)


def test_restock_adds_and_removes(electronics, make_product):
    lamp = make_product('Lamp', electronics, stock=5)

    assert services.restock(lamp, 10).stock_quantity == 15
    assert services.restock(lamp, -15).stock_quantity == 0
    with pytest.raises(InsufficientStockError):
        services.restock(lamp, -1)


def test_change_price_rejects_non_positive(electronics, make_product):
    lamp = make_product('Lamp', electronics, price='5.00')
    with pytest.raises(ConstraintViolationError):
        services.change_price(lamp, '0')
    lamp.refresh_from_db()
    assert lamp.price == Decimal('5.00')


@pytest.mark.parametrize('price', ['123456789012.00', 'NaN', 'Infinity', '-Infinity', '1.005', 'ten'])
def test_change_price_rejects_unstorable_values(electronics, make_product, price):
    lamp = make_product('Lamp', electronics, price='5.00')
    with pytest.raises(ConstraintViolationError, match='price'):
        services.change_price(lamp, price)
    lamp.refresh_from_db()
    assert lamp.price == Decimal('5.00')


def test_change_price_accepts_strings_and_decimals(electronics, make_product):
    lamp = make_product('Lamp', electronics, price='5.00')
    assert services.change_price(lamp, '7.25').price == Decimal('7.25')
    assert services.change_price(lamp, Decimal('8')).price == Decimal('8.00')


@pytest.mark.parametrize('quantity', [1.9, 2.5, '3', None])
def test_order_quantity_must_be_a_whole_number(alice, electronics, make_product, quantity):
    lamp = make_product('Lamp', electronics, stock=10)
    with pytest.raises(ConstraintViolationError, match='whole number'):
        services.place_order(alice, [(lamp, quantity)])
    lamp.refresh_from_db()
    assert lamp.stock_quantity == 10
    assert not Order.objects.exists()


def test_whole_floats_are_accepted_as_quantities(alice, electronics, make_product):
    lamp = make_product('Lamp', electronics, stock=10)
    order = services.place_order(alice, [(lamp, 2.0)])
    assert OrderItem.objects.get(order=order).quantity == 2


@pytest.mark.parametrize('quantity', [2.5, -0.5])
def test_restock_quantity_must_be_a_whole_number(electronics, make_product, quantity):
    lamp = make_product('Lamp', electronics, stock=5)
    with pytest.raises(ConstraintViolationError, match='whole number'):
        services.restock(lamp, quantity)
    lamp.refresh_from_db()
    assert lamp.stock_quantity == 5
