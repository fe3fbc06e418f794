"""Read-only reports over the shop schema.

Each report builds a queryset, evaluates it inside ``statement_timeout`` and
returns a list of dict rows. None of them write.
"""
import logging
import time
from decimal import Decimal

from django.db.models import Count, DecimalField, F, Sum

from .conf import report_setting
from .db import statement_timeout
from .filters import OrderFilter, ProductFilter
from .models import Category, Customer, Order, Product

logger = logging.getLogger(__name__)

MONEY = DecimalField(max_digits=14, decimal_places=2)
CENTS = Decimal("0.01")

# Hard cap on rows returned by recent_orders, whatever the caller asks for
MAX_RECENT_ORDERS = 1000


def _line_total(path):
    return F(f'{path}quantity') * F(f'{path}price_at_time')


def _apply(filterset_class, data, queryset):
    filterset = filterset_class(data, queryset=queryset)
    if not filterset.is_valid():
        raise ValueError(f"Invalid report filter: {filterset.errors.as_json()}")
    return filterset.qs


# --- Queryset builders ---

def products_per_category_queryset():
    # Count over the reverse relation is a LEFT OUTER JOIN: empty categories count 0
    return (
        Category.objects
        .annotate(product_count=Count('products'))
        .order_by('name', 'id')
        .values('id', 'name', 'product_count')
    )


def top_spenders_queryset(limit=None):
    qs = (
        Customer.objects
        .annotate(total_spent=Sum(_line_total('orders__items__'), output_field=MONEY))
        .filter(total_spent__isnull=False)
        # Customer id breaks ties so equal totals come back in a stable order
        .order_by('-total_spent', 'id')
        .values('id', 'name', 'email', 'total_spent')
    )
    if limit is not None:
        if limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
        qs = qs[:limit]
    return qs


def recent_orders_queryset(limit=None, created_after=None, created_before=None, customer_email=None):
    if limit is None:
        limit = report_setting('RECENT_ORDERS_LIMIT')
    if limit < 1:
        raise ValueError(f"limit must be at least 1, got {limit}")
    limit = min(limit, MAX_RECENT_ORDERS)

    data = {}
    if created_after is not None:
        data['created_after'] = created_after
    if created_before is not None:
        data['created_before'] = created_before
    if customer_email is not None:
        data['customer_email'] = customer_email
    qs = _apply(OrderFilter, data, Order.objects.all())
    return (
        qs.order_by('-created_at', '-id')
        .values(
            'id',
            'created_at',
            'customer_id',
            customer_name=F('customer__name'),
            customer_email=F('customer__email'),
        )[:limit]
    )


def low_stock_products_queryset(threshold=None):
    if threshold is None:
        threshold = report_setting('LOW_STOCK_THRESHOLD')
    qs = _apply(ProductFilter, {'stock_below': threshold}, Product.objects.all())
    return (
        qs.order_by('stock_quantity', 'name', 'id')
        .values('id', 'name', 'price', 'stock_quantity', category_name=F('category__name'))
    )


def revenue_per_category_queryset():
    return (
        Category.objects
        .annotate(
            revenue=Sum(
                _line_total('products__order_items__'),
                output_field=MONEY,
                default=Decimal('0.00'),
            )
        )
        .order_by('-revenue', 'name', 'id')
        .values('id', 'name', 'revenue')
    )


REPORTS = {
    'products_per_category': products_per_category_queryset,
    'top_spenders': top_spenders_queryset,
    'recent_orders': recent_orders_queryset,
    'low_stock_products': low_stock_products_queryset,
    'revenue_per_category': revenue_per_category_queryset,
}


def _run(name, queryset, timeout, money=()):
    if timeout is None:
        timeout = report_setting('DEFAULT_TIMEOUT')
    started = time.monotonic()
    with statement_timeout(timeout):
        rows = list(queryset)
    # Computed sums come back unscaled on some backends (SQLite gives Decimal("10"))
    for row in rows:
        for key in money:
            row[key] = row[key].quantize(CENTS)
    logger.debug("%s returned %d rows in %.3fs", name, len(rows), time.monotonic() - started)
    return rows


# --- Reports ---

def products_per_category(*, timeout=None):
    """Every category with the number of products in it, empty categories included."""
    return _run('products_per_category', products_per_category_queryset(), timeout)


def top_spenders(limit=None, *, timeout=None):
    """
    Customers ranked by the sum of quantity x price_at_time over their order items.

    ``limit`` defaults to SHOP_REPORTS['TOP_SPENDERS_LIMIT']; pass ``0`` for every
    spending customer. Customers without order items are not listed.
    """
    if limit is None:
        limit = report_setting('TOP_SPENDERS_LIMIT')
    return _run('top_spenders', top_spenders_queryset(limit or None), timeout, money=('total_spent',))


def recent_orders(limit=None, created_after=None, created_before=None, customer_email=None, *, timeout=None):
    """
    Most recent orders, newest first, with the owning customer's name and email.

    Never more than MAX_RECENT_ORDERS rows. ``created_after``/``created_before``
    narrow the window, which is how a timed-out call is retried.
    ``customer_email`` restricts the listing to one customer's orders.
    """
    qs = recent_orders_queryset(limit, created_after, created_before, customer_email)
    return _run('recent_orders', qs, timeout)


def low_stock_products(threshold=None, *, timeout=None):
    """Products whose stock_quantity is strictly below ``threshold`` (default 10)."""
    return _run('low_stock_products', low_stock_products_queryset(threshold), timeout)


def revenue_per_category(*, timeout=None):
    """Revenue (quantity x price_at_time) per category; 0 for categories without sales."""
    return _run('revenue_per_category', revenue_per_category_queryset(), timeout, money=('revenue',))


def explain(report, *, timeout=None, **params):
    """Returns the database's execution plan for one of the REPORTS."""
    try:
        builder = REPORTS[report]
    except KeyError:
        raise ValueError(f"Unknown report: {report!r}. Choose one of {sorted(REPORTS)}") from None
    queryset = builder(**params)
    if timeout is None:
        timeout = report_setting('DEFAULT_TIMEOUT')
    with statement_timeout(timeout):
        return queryset.explain()
