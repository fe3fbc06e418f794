import logging

import graphene
from django.core.exceptions import ValidationError
from graphene_django.types import DjangoObjectType
from graphql import GraphQLError

from . import reports, services
from .db import retry_on_unavailable
from .exceptions import NotFoundError, ShopError
from .filters import CustomerFilter, ProductFilter
from .models import Category, Customer, Order, OrderItem, Product

logger = logging.getLogger(__name__)


# --- 1. Graphene Types (Outputs) ---

class CustomerType(DjangoObjectType):
    class Meta:
        model = Customer
        fields = ('id', 'name', 'email', 'created_at', 'orders')


class CategoryType(DjangoObjectType):
    class Meta:
        model = Category
        fields = ('id', 'name', 'products')


class ProductType(DjangoObjectType):
    class Meta:
        model = Product
        fields = ('id', 'name', 'category', 'price', 'stock_quantity', 'created_at')


class OrderItemType(DjangoObjectType):
    line_total = graphene.Decimal()

    class Meta:
        model = OrderItem
        fields = ('id', 'product', 'quantity', 'price_at_time')

    def resolve_line_total(self, info):
        return self.line_total


class OrderType(DjangoObjectType):
    # Ensure nested items are returned as a list of OrderItemType
    items = graphene.List(OrderItemType)

    class Meta:
        model = Order
        fields = ('id', 'customer', 'items', 'created_at')

    def resolve_items(self, info):
        return self.items.select_related('product').order_by('id')


# Report rows are plain dicts; the default resolver reads their keys.

class CategoryProductCountType(graphene.ObjectType):
    id = graphene.ID()
    name = graphene.String()
    product_count = graphene.Int()


class SpenderType(graphene.ObjectType):
    id = graphene.ID()
    name = graphene.String()
    email = graphene.String()
    total_spent = graphene.Decimal()


class RecentOrderType(graphene.ObjectType):
    id = graphene.ID()
    created_at = graphene.DateTime()
    customer_id = graphene.ID()
    customer_name = graphene.String()
    customer_email = graphene.String()


class LowStockProductType(graphene.ObjectType):
    id = graphene.ID()
    name = graphene.String()
    category_name = graphene.String()
    price = graphene.Decimal()
    stock_quantity = graphene.Int()


class CategoryRevenueType(graphene.ObjectType):
    id = graphene.ID()
    name = graphene.String()
    revenue = graphene.Decimal()


# --- 2. Graphene Inputs (Used for Arguments in Mutations) ---

class CustomerInput(graphene.InputObjectType):
    name = graphene.String(required=True)
    email = graphene.String(required=True)


class CategoryInput(graphene.InputObjectType):
    name = graphene.String(required=True)


class ProductInput(graphene.InputObjectType):
    name = graphene.String(required=True)
    category_id = graphene.ID(required=True)
    price = graphene.Decimal(required=True)
    stock_quantity = graphene.Int(required=False)


class OrderItemInput(graphene.InputObjectType):
    product_id = graphene.ID(required=True)
    quantity = graphene.Int(required=True)


class OrderInput(graphene.InputObjectType):
    customer_id = graphene.ID(required=True)
    items = graphene.List(graphene.NonNull(OrderItemInput), required=True)


# --- 3. Error Helpers ---

def as_graphql_error(exc):
    """Converts a shop error into a GraphQLError whose extensions carry the error kind."""
    return GraphQLError(
        str(exc),
        extensions={'code': exc.code, 'retryable': exc.retryable},
    )


def get_or_error(model, pk):
    try:
        return model.objects.get(pk=pk)
    except (model.DoesNotExist, ValidationError, ValueError):
        # ValidationError/ValueError catch malformed UUIDs
        raise as_graphql_error(NotFoundError(f"{model.__name__} '{pk}' was not found."))


def run_report(report, *args, **kwargs):
    try:
        return retry_on_unavailable()(report)(*args, **kwargs)
    except ShopError as exc:
        raise as_graphql_error(exc) from exc
    except ValueError as exc:
        raise GraphQLError(str(exc), extensions={'code': 'BAD_REQUEST', 'retryable': False}) from exc


def run_write(fn, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except ShopError as exc:
        logger.info("%s rejected: %s", fn.__name__, exc)
        raise as_graphql_error(exc) from exc


# --- 4. Mutation Classes ---

class CreateCustomer(graphene.Mutation):
    class Arguments:
        input = CustomerInput(required=True)

    customer = graphene.Field(CustomerType)
    message = graphene.String()

    @staticmethod
    def mutate(root, info, input=None):
        customer = run_write(services.create_customer, input.name, input.email)
        return CreateCustomer(customer=customer, message="Customer created successfully.")


class CreateCategory(graphene.Mutation):
    class Arguments:
        input = CategoryInput(required=True)

    category = graphene.Field(CategoryType)

    @staticmethod
    def mutate(root, info, input=None):
        return CreateCategory(category=run_write(services.create_category, input.name))


class CreateProduct(graphene.Mutation):
    class Arguments:
        input = ProductInput(required=True)

    product = graphene.Field(ProductType)

    @staticmethod
    def mutate(root, info, input=None):
        category = get_or_error(Category, input.category_id)
        # stock defaults to 0 if not provided
        stock_value = input.stock_quantity if input.stock_quantity is not None else 0
        product = run_write(services.create_product, input.name, category, input.price, stock_value)
        return CreateProduct(product=product)


class CreateOrder(graphene.Mutation):
    class Arguments:
        input = OrderInput(required=True)

    order = graphene.Field(OrderType)

    @staticmethod
    def mutate(root, info, input=None):
        customer = get_or_error(Customer, input.customer_id)
        items = [(get_or_error(Product, item.product_id), item.quantity) for item in input.items]
        order = run_write(services.place_order, customer, items)
        return CreateOrder(order=order)


class RestockProduct(graphene.Mutation):
    class Arguments:
        product_id = graphene.ID(required=True)
        quantity = graphene.Int(required=True)

    product = graphene.Field(ProductType)

    @staticmethod
    def mutate(root, info, product_id, quantity):
        product = get_or_error(Product, product_id)
        return RestockProduct(product=run_write(services.restock, product, quantity))


class ChangeProductPrice(graphene.Mutation):
    class Arguments:
        product_id = graphene.ID(required=True)
        price = graphene.Decimal(required=True)

    product = graphene.Field(ProductType)

    @staticmethod
    def mutate(root, info, product_id, price):
        product = get_or_error(Product, product_id)
        return ChangeProductPrice(product=run_write(services.change_price, product, price))


# --- 5. Shop App Root Query and Mutation ---

class ShopQuery(graphene.ObjectType):
    """
    Root query fields for the shop app: the five reports plus simple lookups.
    Every report takes an optional ``timeout`` in seconds.
    """
    products_per_category = graphene.List(
        graphene.NonNull(CategoryProductCountType), timeout=graphene.Float()
    )
    top_spenders = graphene.List(
        graphene.NonNull(SpenderType), limit=graphene.Int(), timeout=graphene.Float()
    )
    recent_orders = graphene.List(
        graphene.NonNull(RecentOrderType),
        limit=graphene.Int(),
        created_after=graphene.DateTime(),
        created_before=graphene.DateTime(),
        customer_email=graphene.String(),
        timeout=graphene.Float(),
    )
    low_stock_products = graphene.List(
        graphene.NonNull(LowStockProductType), threshold=graphene.Int(), timeout=graphene.Float()
    )
    revenue_per_category = graphene.List(
        graphene.NonNull(CategoryRevenueType), timeout=graphene.Float()
    )

    customer = graphene.Field(CustomerType, id=graphene.ID(required=True))
    all_customers = graphene.List(CustomerType, name=graphene.String(), email=graphene.String())
    all_categories = graphene.List(CategoryType)
    all_products = graphene.List(
        ProductType,
        name=graphene.String(),
        category=graphene.String(),
        in_stock=graphene.Boolean(),
        price_gte=graphene.Decimal(),
        price_lte=graphene.Decimal(),
    )

    def resolve_products_per_category(root, info, timeout=None):
        return run_report(reports.products_per_category, timeout=timeout)

    def resolve_top_spenders(root, info, limit=None, timeout=None):
        return run_report(reports.top_spenders, limit, timeout=timeout)

    def resolve_recent_orders(
        root, info, limit=None, created_after=None, created_before=None, customer_email=None, timeout=None
    ):
        return run_report(
            reports.recent_orders, limit, created_after, created_before, customer_email, timeout=timeout
        )

    def resolve_low_stock_products(root, info, threshold=None, timeout=None):
        return run_report(reports.low_stock_products, threshold, timeout=timeout)

    def resolve_revenue_per_category(root, info, timeout=None):
        return run_report(reports.revenue_per_category, timeout=timeout)

    def resolve_customer(root, info, id):
        try:
            return Customer.objects.get(id=id)
        except (Customer.DoesNotExist, ValidationError):
            return None

    def resolve_all_customers(root, info, **filters):
        filterset = CustomerFilter(filters, queryset=Customer.objects.order_by('name', 'id'))
        return filterset.qs

    def resolve_all_categories(root, info):
        # Sort for predictable results
        return Category.objects.all().order_by('name')

    def resolve_all_products(root, info, price_gte=None, price_lte=None, **filters):
        # Price bounds are inclusive
        if price_gte is not None:
            filters['price__gte'] = price_gte
        if price_lte is not None:
            filters['price__lte'] = price_lte
        filterset = ProductFilter(
            filters, queryset=Product.objects.select_related('category').order_by('name', 'id')
        )
        return filterset.qs


class ShopMutation(graphene.ObjectType):
    """
    Aggregates all the individual mutation classes.
    """
    create_customer = CreateCustomer.Field()
    create_category = CreateCategory.Field()
    create_product = CreateProduct.Field()
    create_order = CreateOrder.Field()
    restock_product = RestockProduct.Field()
    change_product_price = ChangeProductPrice.Field()
