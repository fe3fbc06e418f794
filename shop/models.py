import uuid
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q

from .exceptions import ImmutableRecordError


# --- Customer Model ---
class Customer(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=100)
    email = models.EmailField(unique=True, help_text="Email must be unique across all customers.")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


# --- Category Model ---
class Category(models.Model):
    name = models.CharField(max_length=100, unique=True)

    class Meta:
        verbose_name_plural = 'categories'
        ordering = ['name']

    def __str__(self):
        return self.name


# --- Product Model ---
class Product(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=100)
    # Products keep their category for as long as they exist
    category = models.ForeignKey(Category, on_delete=models.PROTECT, related_name='products')
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))],
        help_text="Price must be positive.",
    )
    stock_quantity = models.IntegerField(
        default=0,
        validators=[MinValueValidator(0)],
        help_text="Stock quantity, cannot be negative.",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']
        constraints = [
            models.CheckConstraint(condition=Q(price__gt=0), name='product_price_positive'),
            models.CheckConstraint(condition=Q(stock_quantity__gte=0), name='product_stock_non_negative'),
        ]
        indexes = [
            models.Index(fields=['stock_quantity'], name='product_stock_idx'),
        ]

    def __str__(self):
        return self.name


class OrderQuerySet(models.QuerySet):
    def delete(self):
        raise ImmutableRecordError("Orders cannot be deleted; order history is append-only.")


# --- Order Model ---
class Order(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    # ForeignKey columns are indexed, which keeps the spender/revenue joins off full scans
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name='orders')
    created_at = models.DateTimeField(auto_now_add=True)

    objects = OrderQuerySet.as_manager()

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='order_created_idx'),
        ]

    def __str__(self):
        return f"Order {self.id.hex[:8]} for {self.customer.name}"

    def save(self, *args, **kwargs):
        # Orders are append-only history
        if not self._state.adding:
            raise ImmutableRecordError(f"Order {self.pk} cannot be modified once created.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError(f"Order {self.pk} cannot be deleted; order history is append-only.")


# --- OrderItem Model ---
class OrderItem(models.Model):
    # Items are never removed by deleting their order
    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='order_items')
    quantity = models.IntegerField(validators=[MinValueValidator(1)])
    # Captured when the order is placed; later price changes do not touch it
    price_at_time = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))],
    )

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(quantity__gt=0), name='order_item_quantity_positive'),
            models.CheckConstraint(condition=Q(price_at_time__gt=0), name='order_item_price_positive'),
        ]

    def __str__(self):
        return f"{self.product.name} x{self.quantity}"

    @property
    def line_total(self):
        return self.quantity * self.price_at_time

    def save(self, *args, **kwargs):
        if not self._state.adding:
            stored = (
                OrderItem.objects.filter(pk=self.pk)
                .values_list('price_at_time', flat=True)
                .first()
            )
            if stored is not None and Decimal(stored) != Decimal(self.price_at_time):
                raise ImmutableRecordError(
                    f"price_at_time of order item {self.pk} cannot be changed once written."
                )
        super().save(*args, **kwargs)
