from django_filters import BooleanFilter, CharFilter, DateTimeFilter, FilterSet, NumberFilter

from .models import Customer, Order, Product


class CustomerFilter(FilterSet):
    """
    Filter set for the Customer model, enabling searches by name and email.
    """
    # Case-insensitive partial match
    name = CharFilter(field_name='name', lookup_expr='icontains')
    email = CharFilter(field_name='email', lookup_expr='icontains')

    class Meta:
        model = Customer
        fields = ['name', 'email']


class ProductFilter(FilterSet):
    """
    Filter set for the Product model: name, category, price range and stock threshold.
    """
    name = CharFilter(field_name='name', lookup_expr='icontains')
    category = CharFilter(field_name='category__name', lookup_expr='iexact')

    price__gte = NumberFilter(field_name='price', lookup_expr='gte')
    price__lte = NumberFilter(field_name='price', lookup_expr='lte')

    # Products whose stock is strictly below the given threshold
    stock_below = NumberFilter(field_name='stock_quantity', lookup_expr='lt')
    in_stock = BooleanFilter(method='filter_in_stock')

    class Meta:
        model = Product
        fields = ['name', 'category']

    def filter_in_stock(self, queryset, name, value):
        if value is None:
            return queryset
        if value:
            return queryset.filter(stock_quantity__gt=0)
        return queryset.filter(stock_quantity=0)


class OrderFilter(FilterSet):
    """
    Filter set for the Order model: creation window and owning customer.
    """
    # Half-open window [created_after, created_before)
    created_after = DateTimeFilter(field_name='created_at', lookup_expr='gte')
    created_before = DateTimeFilter(field_name='created_at', lookup_expr='lt')

    customer_email = CharFilter(field_name='customer__email', lookup_expr='iexact')

    class Meta:
        model = Order
        fields = []
