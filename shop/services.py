import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F

from .db import translate_db_errors
from .exceptions import ConstraintViolationError, InsufficientStockError
from .models import Category, Customer, Order, OrderItem, Product

logger = logging.getLogger(__name__)


def _validated(instance):
    """Runs model validation so check-constraint violations are reported before the INSERT."""
    try:
        instance.full_clean()
    except ValidationError as exc:
        raise ConstraintViolationError(
            "; ".join(f"{field}: {' '.join(msgs)}" for field, msgs in exc.message_dict.items())
        ) from exc
    return instance


def _cleaned(instance, field_name, value):
    """Runs one field's conversion and validators (digits, bounds, finiteness)."""
    try:
        return instance._meta.get_field(field_name).clean(value, instance)
    except ValidationError as exc:
        raise ConstraintViolationError(f"{field_name}: {' '.join(exc.messages)}") from exc


def _whole_quantity(quantity):
    try:
        whole = int(quantity)
    except (TypeError, ValueError, OverflowError) as exc:
        raise ConstraintViolationError(f"Quantity must be a whole number, got {quantity!r}.") from exc
    if whole != quantity:
        raise ConstraintViolationError(f"Quantity must be a whole number, got {quantity!r}.")
    return whole


def create_customer(name, email):
    with translate_db_errors(), transaction.atomic():
        customer = _validated(Customer(name=name, email=email))
        customer.save()
    return customer


def create_category(name):
    with translate_db_errors(), transaction.atomic():
        category = _validated(Category(name=name))
        category.save()
    return category


def create_product(name, category, price, stock_quantity=0):
    with translate_db_errors(), transaction.atomic():
        product = _validated(
            Product(
                name=name,
                category=category,
                price=price,
                stock_quantity=stock_quantity,
            )
        )
        product.save()
    return product


def place_order(customer, items):
    """
    Creates an order for ``customer`` from ``items``, a list of ``(product, quantity)`` pairs.

    Products are locked for the duration of the transaction; stock is checked and
    decremented, and each item captures the product's current price. Nothing is
    written if any item fails.
    """
    items = list(items)
    if not items:
        raise ConstraintViolationError("Order must include at least one item.")

    # The same product listed twice is one line with the summed quantity
    wanted = {}
    for product, quantity in items:
        quantity = _whole_quantity(quantity)
        if quantity < 1:
            raise ConstraintViolationError(f"Quantity for {product} must be positive, got {quantity}.")
        wanted[product.pk] = wanted.get(product.pk, 0) + quantity

    with translate_db_errors(), transaction.atomic():
        # Locking in primary-key order keeps concurrent orders from deadlocking
        locked = {
            p.pk: p
            for p in Product.objects.select_for_update().filter(pk__in=wanted).order_by('pk')
        }
        missing = [str(pk) for pk in wanted if pk not in locked]
        if missing:
            raise ConstraintViolationError(f"Unknown product IDs: {', '.join(missing)}")

        order = Order.objects.create(customer=customer)
        lines = []
        for pk, quantity in wanted.items():
            product = locked[pk]
            if product.stock_quantity < quantity:
                raise InsufficientStockError(
                    f"Out of stock: {product.name} has {product.stock_quantity}, {quantity} requested."
                )
            Product.objects.filter(pk=pk).update(stock_quantity=F('stock_quantity') - quantity)
            lines.append(OrderItem(order=order, product=product, quantity=quantity, price_at_time=product.price))
        OrderItem.objects.bulk_create(lines)

    logger.info("Order %s placed for customer %s with %d item(s)", order.pk, customer.pk, len(lines))
    return order


def restock(product, quantity):
    """Adds ``quantity`` units (negative removes them). Stock never drops below zero."""
    quantity = _whole_quantity(quantity)
    with translate_db_errors(), transaction.atomic():
        current = Product.objects.select_for_update().get(pk=product.pk)
        if current.stock_quantity + quantity < 0:
            raise InsufficientStockError(
                f"Cannot remove {-quantity} units from {current.name}: only {current.stock_quantity} in stock."
            )
        Product.objects.filter(pk=product.pk).update(stock_quantity=F('stock_quantity') + quantity)
        current.refresh_from_db(fields=['stock_quantity'])

    logger.info("Restocked %s by %d, now %d", current.pk, quantity, current.stock_quantity)
    return current


def change_price(product, price):
    """Sets the current price. Prices already captured on order items are untouched."""
    price = _cleaned(product, 'price', price)
    with translate_db_errors(), transaction.atomic():
        Product.objects.filter(pk=product.pk).update(price=price)
        product.refresh_from_db(fields=['price'])

    logger.info("Price of %s changed to %s", product.pk, product.price)
    return product
