from decimal import Decimal

import pytest
from graphene.test import Client

from ecommerce_reporting.schema import schema

from . import db, services
from .models import Order

pytestmark = pytest.mark.django_db


@pytest.fixture
def client():
    return Client(schema)


def test_reports_over_graphql(client, alice, bob, electronics, books, make_product):
    lamp = make_product('Lamp', electronics, price='25.00', stock=12)
    services.place_order(alice, [(lamp, 2)])
    services.place_order(bob, [(lamp, 3)])

    result = client.execute('''
        {
          productsPerCategory { name productCount }
          topSpenders(limit: 10) { name totalSpent }
          recentOrders { customerName customerEmail createdAt }
          lowStockProducts { name stockQuantity categoryName }
          revenuePerCategory { name revenue }
        }
    ''')

    assert 'errors' not in result
    data = result['data']
    assert data['productsPerCategory'] == [
        {'name': 'Books', 'productCount': 0},
        {'name': 'Electronics', 'productCount': 1},
    ]
    assert [(r['name'], Decimal(r['totalSpent'])) for r in data['topSpenders']] == [
        ('Bob', Decimal('75.00')),
        ('Alice', Decimal('50.00')),
    ]
    assert len(data['recentOrders']) == 2
    assert data['lowStockProducts'] == [{'name': 'Lamp', 'stockQuantity': 7, 'categoryName': 'Electronics'}]
    assert [Decimal(r['revenue']) for r in data['revenuePerCategory']] == [Decimal('125.00'), Decimal('0.00')]


def test_create_order_mutation(client, alice, electronics, make_product):
    lamp = make_product('Lamp', electronics, price='25.00', stock=12)

    result = client.execute(
        '''
        mutation Place($input: OrderInput!) {
          createOrder(input: $input) {
            order { customer { email } items { quantity priceAtTime lineTotal } }
          }
        }
        ''',
        variable_values={'input': {
            'customerId': str(alice.pk),
            'items': [{'productId': str(lamp.pk), 'quantity': 2}],
        }},
    )

    assert 'errors' not in result
    order = result['data']['createOrder']['order']
    assert order['customer']['email'] == 'alice@example.com'
    assert Decimal(order['items'][0]['lineTotal']) == Decimal('50.00')
    lamp.refresh_from_db()
    assert lamp.stock_quantity == 10


def test_out_of_stock_is_a_constraint_violation(client, alice, electronics, make_product):
    lamp = make_product('Lamp', electronics, stock=1)

    result = client.execute(
        '''
        mutation Place($input: OrderInput!) {
          createOrder(input: $input) { order { id } }
        }
        ''',
        variable_values={'input': {
            'customerId': str(alice.pk),
            'items': [{'productId': str(lamp.pk), 'quantity': 5}],
        }},
    )

    assert result['errors'][0]['extensions']['code'] == 'CONSTRAINT_VIOLATION'
    assert Order.objects.count() == 0


def test_unknown_customer_is_not_found(client):
    result = client.execute(
        '''
        mutation { createOrder(input: {customerId: "not-a-uuid", items: []}) { order { id } } }
        '''
    )

    assert result['errors'][0]['extensions']['code'] == 'NOT_FOUND'


def test_create_customer_and_duplicate(client):
    mutation = '''
        mutation { createCustomer(input: {name: "Dana", email: "dana@example.com"}) {
          customer { name } message } }
    '''
    first = client.execute(mutation)
    second = client.execute(mutation)

    assert first['data']['createCustomer']['message'] == 'Customer created successfully.'
    assert second['errors'][0]['extensions']['code'] == 'CONSTRAINT_VIOLATION'


def test_create_product_and_reprice(client, electronics):
    created = client.execute(
        '''
        mutation ($categoryId: ID!) {
          createProduct(input: {name: "Lamp", categoryId: $categoryId, price: "19.99"}) {
            product { id stockQuantity category { name } }
          }
        }
        ''',
        variable_values={'categoryId': str(electronics.pk)},
    )
    product = created['data']['createProduct']['product']
    assert product['stockQuantity'] == 0
    assert product['category']['name'] == 'Electronics'

    repriced = client.execute(
        '''
        mutation ($id: ID!) { changeProductPrice(productId: $id, price: "24.50") { product { price } } }
        ''',
        variable_values={'id': product['id']},
    )
    assert Decimal(repriced['data']['changeProductPrice']['product']['price']) == Decimal('24.50')

    restocked = client.execute(
        '''
        mutation ($id: ID!) { restockProduct(productId: $id, quantity: 4) { product { stockQuantity } } }
        ''',
        variable_values={'id': product['id']},
    )
    assert restocked['data']['restockProduct']['product']['stockQuantity'] == 4


def test_report_timeout_carries_its_code(client, monkeypatch, electronics):
    monkeypatch.setattr(db, 'SQLITE_PROGRESS_STEPS', 1)

    result = client.execute('{ productsPerCategory(timeout: 0.000000001) { name } }')

    error = result['errors'][0]
    assert error['extensions'] == {'code': 'QUERY_TIMEOUT', 'retryable': True}


def test_bad_report_argument(client):
    result = client.execute('{ recentOrders(limit: 0) { id } }')

    assert result['errors'][0]['extensions']['code'] == 'BAD_REQUEST'


def test_filtered_lookups(client, alice, bob, electronics, books, make_product):
    make_product('Lamp', electronics, stock=0)
    make_product('Desk Lamp', electronics, stock=3)
    make_product('Novel', books, stock=3)

    result = client.execute('''
        {
          allCustomers(name: "ali") { email }
          allProducts(category: "electronics", inStock: true) { name }
        }
    ''')

    assert 'errors' not in result
    assert result['data']['allCustomers'] == [{'email': 'alice@example.com'}]
    assert result['data']['allProducts'] == [{'name': 'Desk Lamp'}]


def test_price_and_customer_filters(client, alice, bob, electronics, books, make_product):
    lamp = make_product('Lamp', electronics, price='25.00')
    make_product('Novel', books, price='12.50')
    make_product('Monitor', electronics, price='150.00')
    services.place_order(alice, [(lamp, 1)])
    services.place_order(bob, [(lamp, 2)])

    result = client.execute('''
        {
          allProducts(priceGte: "12.50", priceLte: "25.00") { name }
          cheap: allProducts(priceLte: "20") { name }
          recentOrders(customerEmail: "alice@example.com") { customerName customerEmail }
        }
    ''')

    assert 'errors' not in result
    assert result['data']['allProducts'] == [{'name': 'Lamp'}, {'name': 'Novel'}]
    assert result['data']['cheap'] == [{'name': 'Novel'}]
    assert result['data']['recentOrders'] == [
        {'customerName': 'Alice', 'customerEmail': 'alice@example.com'}
    ]


@pytest.mark.parametrize('price', ['NaN', 'Infinity', '123456789012.00'])
def test_unstorable_price_is_a_constraint_violation(client, electronics, make_product, price):
    lamp = make_product('Lamp', electronics, price='5.00')

    result = client.execute(
        '''
        mutation ($id: ID!, $price: Decimal!) {
          changeProductPrice(productId: $id, price: $price) { product { price } }
        }
        ''',
        variable_values={'id': str(lamp.pk), 'price': price},
    )

    assert result['errors'][0]['extensions']['code'] == 'CONSTRAINT_VIOLATION'
    lamp.refresh_from_db()
    assert lamp.price == Decimal('5.00')
