from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from . import db, reports, services
from .exceptions import QueryTimeoutError
from .models import Order, OrderItem

pytestmark = pytest.mark.django_db


@pytest.fixture
def shop_with_sales(alice, bob, electronics, books, make_product):
    """Alice spends 50.00, Bob 87.50; one category never sells."""
    lamp = make_product('Lamp', electronics, price='25.00', stock=20)
    novel = make_product('Novel', books, price='12.50', stock=8)
    services.create_category('Garden')

    services.place_order(alice, [(lamp, 2)])
    services.place_order(bob, [(lamp, 1), (novel, 4)])
    services.place_order(bob, [(novel, 1)])
    return {'lamp': lamp, 'novel': novel}


def total_revenue():
    return sum((item.quantity * item.price_at_time for item in OrderItem.objects.all()), Decimal('0'))


# --- products per category ---

def test_empty_category_is_reported_with_zero():
    a = services.create_category('A')
    b = services.create_category('B')
    c = services.create_category('C')
    services.create_product('Apple', a, Decimal('1.00'))
    services.create_product('Cherry', c, Decimal('2.00'))
    services.create_product('Coconut', c, Decimal('3.00'))

    rows = reports.products_per_category()

    assert [(r['name'], r['product_count']) for r in rows] == [('A', 1), ('B', 0), ('C', 2)]
    assert rows[1]['id'] == b.pk


# --- top spenders ---

def test_top_spenders_orders_by_total(alice, bob, electronics, make_product):
    item = make_product('Gift card', electronics, price='25.00')
    services.place_order(alice, [(item, 2)])
    services.place_order(bob, [(item, 3)])

    rows = reports.top_spenders(limit=10)

    assert [(r['name'], r['total_spent']) for r in rows] == [
        ('Bob', Decimal('75.00')),
        ('Alice', Decimal('50.00')),
    ]


def test_top_spenders_ties_break_on_customer_id(electronics, make_product):
    item = make_product('Gift card', electronics, price='10.00')
    customers = [services.create_customer(f'C{i}', f'c{i}@example.com') for i in range(4)]
    for customer in customers:
        services.place_order(customer, [(item, 1)])

    rows = reports.top_spenders()

    assert [r['id'] for r in rows] == sorted(c.pk for c in customers)


def test_top_spenders_respects_limit(electronics, make_product):
    item = make_product('Gift card', electronics, price='10.00')
    for i in range(12):
        customer = services.create_customer(f'C{i}', f'c{i}@example.com')
        services.place_order(customer, [(item, i + 1)])

    rows = reports.top_spenders()

    assert len(rows) == 10
    assert rows[0]['total_spent'] == Decimal('120.00')


def test_top_spenders_totals_add_up_to_revenue(shop_with_sales, alice, bob):
    services.create_customer('Carol', 'carol@example.com')  # never orders

    rows = reports.top_spenders(limit=0)

    assert {r['email'] for r in rows} == {'alice@example.com', 'bob@example.com'}
    assert sum(r['total_spent'] for r in rows) == total_revenue()


# --- recent orders ---

def test_recent_orders_newest_first_with_customer(shop_with_sales):
    now = timezone.now()
    for offset, order in enumerate(Order.objects.order_by('id')):
        Order.objects.filter(pk=order.pk).update(created_at=now - timedelta(days=offset))

    rows = reports.recent_orders()

    assert len(rows) == 3
    stamps = [r['created_at'] for r in rows]
    assert stamps == sorted(stamps, reverse=True)
    assert {r['customer_email'] for r in rows} == {'alice@example.com', 'bob@example.com'}
    assert all(r['customer_name'] in ('Alice', 'Bob') for r in rows)


def test_recent_orders_window(shop_with_sales):
    now = timezone.now()
    orders = list(Order.objects.order_by('id'))
    for offset, order in enumerate(orders):
        Order.objects.filter(pk=order.pk).update(created_at=now - timedelta(days=10 * offset))

    rows = reports.recent_orders(created_after=now - timedelta(days=15))

    assert len(rows) == 2
    assert all(r['created_at'] >= now - timedelta(days=15) for r in rows)


def test_recent_orders_for_one_customer(shop_with_sales):
    rows = reports.recent_orders(customer_email='BOB@example.com')

    assert len(rows) == 2
    assert {r['customer_email'] for r in rows} == {'bob@example.com'}
    assert reports.recent_orders(customer_email='nobody@example.com') == []


def test_recent_orders_never_exceed_cap(alice):
    Order.objects.bulk_create([Order(customer=alice) for _ in range(reports.MAX_RECENT_ORDERS + 5)])

    assert len(reports.recent_orders(limit=5000)) == reports.MAX_RECENT_ORDERS
    assert len(reports.recent_orders(limit=3)) == 3


def test_recent_orders_rejects_bad_limit():
    with pytest.raises(ValueError):
        reports.recent_orders(limit=0)


# --- low stock ---

def test_low_stock_is_exactly_below_ten(electronics, books, make_product):
    empty = make_product('Empty', electronics, stock=0)
    nine = make_product('Nine', books, stock=9)
    make_product('Ten', electronics, stock=10)
    make_product('Plenty', books, stock=50)

    rows = reports.low_stock_products()

    assert [r['id'] for r in rows] == [empty.pk, nine.pk]
    assert rows[1]['category_name'] == 'Books'


def test_low_stock_follows_sales(shop_with_sales):
    # Novel started at 8 and sold 5; Lamp has 17 left
    rows = reports.low_stock_products()

    assert [(r['name'], r['stock_quantity']) for r in rows] == [('Novel', 3)]


def test_low_stock_custom_threshold(electronics, make_product):
    make_product('A', electronics, stock=3)
    make_product('B', electronics, stock=30)

    assert [r['name'] for r in reports.low_stock_products(threshold=31)] == ['A', 'B']


# --- revenue per category ---

def test_revenue_per_category(shop_with_sales):
    rows = reports.revenue_per_category()

    assert [(r['name'], r['revenue']) for r in rows] == [
        ('Electronics', Decimal('75.00')),
        ('Books', Decimal('62.50')),
        ('Garden', Decimal('0.00')),
    ]
    assert sum(r['revenue'] for r in rows) == total_revenue()


def test_money_comes_back_with_two_decimal_places(shop_with_sales):
    # 2 x 25.00 and 3 x 25.00 are whole sums; they still carry cents
    revenue = {r['name']: str(r['revenue']) for r in reports.revenue_per_category()}
    spent = {r['email']: str(r['total_spent']) for r in reports.top_spenders(limit=0)}

    assert revenue == {'Electronics': '75.00', 'Books': '62.50', 'Garden': '0.00'}
    assert spent == {'alice@example.com': '50.00', 'bob@example.com': '87.50'}


def test_revenue_uses_captured_prices(shop_with_sales):
    services.change_price(shop_with_sales['lamp'], '1000.00')

    electronics = next(r for r in reports.revenue_per_category() if r['name'] == 'Electronics')

    assert electronics['revenue'] == Decimal('75.00')


# --- timeouts and plans ---

def test_report_timeout_is_reported_distinctly(monkeypatch, electronics):
    monkeypatch.setattr(db, 'SQLITE_PROGRESS_STEPS', 1)

    with pytest.raises(QueryTimeoutError) as excinfo:
        reports.products_per_category(timeout=1e-9)

    assert excinfo.value.retryable
    # The connection is still usable afterwards
    assert reports.products_per_category()[0]['name'] == 'Electronics'


@pytest.mark.parametrize('report', sorted(reports.REPORTS))
def test_explain_returns_a_plan(report):
    plan = reports.explain(report)
    assert isinstance(plan, str) and plan


def test_explain_unknown_report():
    with pytest.raises(ValueError):
        reports.explain('best_sellers')
