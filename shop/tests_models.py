from decimal import Decimal

import pytest
from django.db import IntegrityError, transaction
from django.db.models import ProtectedError

from .exceptions import ImmutableRecordError
from .models import Category, Customer, Order, OrderItem, Product

pytestmark = pytest.mark.django_db


def test_product_price_must_be_positive(electronics):
    with pytest.raises(IntegrityError):
        with transaction.atomic():
            Product.objects.create(name='Free', category=electronics, price=Decimal('0.00'))


def test_product_stock_cannot_go_negative(electronics):
    product = Product.objects.create(name='Cable', category=electronics, price=Decimal('4.99'), stock_quantity=1)
    with pytest.raises(IntegrityError):
        with transaction.atomic():
            Product.objects.filter(pk=product.pk).update(stock_quantity=-1)


def test_customer_email_is_unique(alice):
    with pytest.raises(IntegrityError):
        with transaction.atomic():
            Customer.objects.create(name='Alice Again', email='alice@example.com')


def test_order_item_quantity_must_be_positive(alice, electronics):
    product = Product.objects.create(name='Mouse', category=electronics, price=Decimal('20.00'))
    order = Order.objects.create(customer=alice)
    with pytest.raises(IntegrityError):
        with transaction.atomic():
            OrderItem.objects.create(order=order, product=product, quantity=0, price_at_time=Decimal('20.00'))


def test_orders_are_append_only(alice):
    order = Order.objects.create(customer=alice)
    with pytest.raises(ImmutableRecordError):
        order.save()


def test_orders_cannot_be_deleted(alice, electronics):
    product = Product.objects.create(name='Lamp', category=electronics, price=Decimal('25.00'))
    order = Order.objects.create(customer=alice)
    OrderItem.objects.create(order=order, product=product, quantity=2, price_at_time=Decimal('25.00'))

    with pytest.raises(ImmutableRecordError):
        order.delete()
    with pytest.raises(ImmutableRecordError):
        Order.objects.filter(pk=order.pk).delete()

    assert Order.objects.filter(pk=order.pk).exists()
    assert OrderItem.objects.filter(order=order).count() == 1


def test_order_items_block_order_removal(alice, electronics):
    product = Product.objects.create(name='Lamp', category=electronics, price=Decimal('25.00'))
    order = Order.objects.create(customer=alice)
    OrderItem.objects.create(order=order, product=product, quantity=1, price_at_time=Decimal('25.00'))

    # Bypassing Order.delete still leaves the items protected
    with pytest.raises(ProtectedError):
        super(Order, order).delete()
    assert OrderItem.objects.filter(order=order).count() == 1


def test_price_at_time_cannot_be_rewritten(alice, electronics):
    product = Product.objects.create(name='Keyboard', category=electronics, price=Decimal('45.00'))
    order = Order.objects.create(customer=alice)
    item = OrderItem.objects.create(order=order, product=product, quantity=1, price_at_time=Decimal('45.00'))

    item.price_at_time = Decimal('1.00')
    with pytest.raises(ImmutableRecordError):
        item.save()
    item.refresh_from_db()
    assert item.price_at_time == Decimal('45.00')


def test_order_item_other_fields_can_be_saved(alice, electronics):
    product = Product.objects.create(name='Keyboard', category=electronics, price=Decimal('45.00'))
    order = Order.objects.create(customer=alice)
    item = OrderItem.objects.create(order=order, product=product, quantity=1, price_at_time=Decimal('45.00'))

    item.quantity = 2
    item.save()
    item.refresh_from_db()
    assert item.line_total == Decimal('90.00')


def test_referenced_rows_are_protected(alice, electronics):
    product = Product.objects.create(name='Monitor', category=electronics, price=Decimal('150.00'))
    order = Order.objects.create(customer=alice)
    OrderItem.objects.create(order=order, product=product, quantity=1, price_at_time=Decimal('150.00'))

    with pytest.raises(ProtectedError):
        product.delete()
    with pytest.raises(ProtectedError):
        alice.delete()
    with pytest.raises(ProtectedError):
        Category.objects.get(pk=electronics.pk).delete()
