"""
Integration tests for the orders blueprint: session cart, checkout and history.
"""

import pytest
from decimal import Decimal

from pharmapos.models import Medicine, Order


def add_item(client, medicine_id, quantity=1, **extra):
    return client.post('/orders/cart/items', json={'medicine_id': medicine_id, 'quantity': quantity, **extra})


def stock_of(session, medicine_id):
    return session.query(Medicine.quantity).filter(Medicine.id == medicine_id).scalar()


class TestCartEndpoints:
    """Session cart operations."""

    def test_add_and_view_cart(self, authenticated_client, paracetamol, amoxicillin):
        response = add_item(authenticated_client, paracetamol.id, 3, discount_percent=10)
        assert response.status_code == 200
        assert response.get_json()['message'] == '"Paracetamol 500mg" added to cart'

        add_item(authenticated_client, amoxicillin.id, 2)
        authenticated_client.post('/orders/cart/discount', json={'discount_amount': 8.06})

        cart = authenticated_client.get('/orders/cart').get_json()['cart']
        assert cart['subtotal'] == 208.06
        assert cart['global_discount'] == 8.06
        assert cart['grand_total'] == 200.0
        assert cart['profit'] == 62.3
        assert cart['item_count'] == 5
        assert [line['quantity'] for line in cart['lines']] == [3, 2]

    def test_quantity_defaults_to_one(self, authenticated_client, paracetamol):
        cart = add_item(authenticated_client, paracetamol.id, None).get_json()['cart']
        assert cart['item_count'] == 1

    def test_cumulative_stock_check(self, authenticated_client, amoxicillin):
        add_item(authenticated_client, amoxicillin.id, 4)

        response = add_item(authenticated_client, amoxicillin.id, 2)

        assert response.status_code == 409
        data = response.get_json()
        assert data['status'] == 'error'
        assert data['max_allowed'] == 1
        assert 'Already have 4 in cart' in data['message']

    def test_add_above_stock_with_line_in_cart(self, authenticated_client, amoxicillin):
        add_item(authenticated_client, amoxicillin.id, 4)

        response = add_item(authenticated_client, amoxicillin.id, 6)

        assert response.status_code == 409
        assert response.get_json()['max_allowed'] == 1

    def test_update_quantity_above_stock(self, authenticated_client, amoxicillin):
        add_item(authenticated_client, amoxicillin.id, 2)

        response = authenticated_client.patch(f'/orders/cart/items/{amoxicillin.id}', json={'quantity': 6})

        assert response.status_code == 409
        assert response.get_json()['max_allowed'] == 5

    def test_update_quantity_and_discount(self, authenticated_client, paracetamol):
        add_item(authenticated_client, paracetamol.id, 1)

        response = authenticated_client.put(
            f'/orders/cart/items/{paracetamol.id}', json={'quantity': 4, 'discount_percent': 50}
        )

        line = response.get_json()['cart']['lines'][0]
        assert line['quantity'] == 4
        assert line['line_discount'] == 20.0

    def test_update_to_zero_removes(self, authenticated_client, paracetamol):
        add_item(authenticated_client, paracetamol.id, 2)

        cart = authenticated_client.patch(
            f'/orders/cart/items/{paracetamol.id}', json={'quantity': 0}
        ).get_json()['cart']

        assert cart['lines'] == []

    def test_remove_and_clear(self, authenticated_client, paracetamol, amoxicillin):
        add_item(authenticated_client, paracetamol.id, 1)
        add_item(authenticated_client, amoxicillin.id, 1)

        cart = authenticated_client.delete(f'/orders/cart/items/{paracetamol.id}').get_json()['cart']
        assert [line['medicine_id'] for line in cart['lines']] == [amoxicillin.id]

        response = authenticated_client.delete(f'/orders/cart/items/{paracetamol.id}')
        assert response.status_code == 404

        cart = authenticated_client.delete('/orders/cart').get_json()['cart']
        assert cart['item_count'] == 0

    def test_invalid_quantity(self, authenticated_client, paracetamol):
        response = add_item(authenticated_client, paracetamol.id, '2.5')
        assert response.status_code == 400

    def test_medicine_of_other_organization(self, authenticated_client, medicine_org2):
        response = add_item(authenticated_client, medicine_org2.id, 1)
        assert response.status_code == 404

    @pytest.mark.parametrize('value', ['NaN', 'Infinity', '1e999'])
    def test_non_numeric_discount_percent(self, authenticated_client, paracetamol, value):
        response = add_item(authenticated_client, paracetamol.id, 1, discount_percent=value)

        assert response.status_code == 400
        assert response.get_json()['status'] == 'error'
        assert authenticated_client.get('/orders/cart').get_json()['cart']['item_count'] == 0

    @pytest.mark.parametrize('value', ['NaN', 'Infinity', '1e999'])
    def test_non_numeric_quantity(self, authenticated_client, paracetamol, value):
        assert add_item(authenticated_client, paracetamol.id, value).status_code == 400

    @pytest.mark.parametrize('value', ['NaN', '-Infinity', '1e999'])
    def test_non_numeric_cart_discount(self, authenticated_client, value):
        response = authenticated_client.post('/orders/cart/discount', json={'discount_amount': value})
        assert response.status_code == 400

    def test_counter_cart_hides_profit(self, counter_client, paracetamol):
        add_item(counter_client, paracetamol.id, 2)

        cart = counter_client.get('/orders/cart').get_json()['cart']

        assert cart['grand_total'] == 21.0
        assert 'profit' not in cart
        assert 'profit' not in cart['lines'][0]
        assert 'cost_price' not in cart['lines'][0]


class TestCheckout:
    """Submitting the session cart."""

    def test_checkout(self, authenticated_client, session, paracetamol, amoxicillin):
        paracetamol_id, amoxicillin_id = paracetamol.id, amoxicillin.id
        add_item(authenticated_client, paracetamol_id, 3, discount_percent=10)
        add_item(authenticated_client, amoxicillin_id, 2)
        authenticated_client.post('/orders/cart/discount', json={'discount_amount': '8.06'})

        response = authenticated_client.post('/orders/checkout', json={'payment_method': 'upi'})

        assert response.status_code == 201
        data = response.get_json()
        order = data['order']
        assert order['total_amount'] == 200.0
        assert order['profit'] == 62.3
        assert order['payment_method'] == 'upi'
        assert order['status'] == 'completed'
        assert len(order['items']) == 2
        assert data['receipt']['order_number'] == order['order_number']
        assert data['receipt']['customer_name'] == 'Walk-in Customer'

        # The cart is emptied after a successful checkout
        cart = authenticated_client.get('/orders/cart').get_json()['cart']
        assert cart['item_count'] == 0
        assert cart['global_discount'] == 0

        assert stock_of(session, paracetamol_id) == 97
        assert stock_of(session, amoxicillin_id) == 3

    def test_checkout_empty_cart(self, authenticated_client):
        response = authenticated_client.post('/orders/checkout', json={'payment_method': 'cash'})

        assert response.status_code == 400
        assert response.get_json()['message'] == 'Cart is empty'

    def test_checkout_without_payment_method_keeps_cart(self, authenticated_client, paracetamol):
        add_item(authenticated_client, paracetamol.id, 1)

        response = authenticated_client.post('/orders/checkout', json={})

        assert response.status_code == 400
        assert response.get_json()['message'] == 'Please select a payment method'
        assert authenticated_client.get('/orders/cart').get_json()['cart']['item_count'] == 1

    def test_checkout_after_stock_changed(self, authenticated_client, dealer_client, session, amoxicillin):
        amoxicillin_id = amoxicillin.id
        add_item(authenticated_client, amoxicillin_id, 4)

        # Someone else sells 3 of the 5 units first
        response = dealer_client.post('/orders/', json={
            'items': [{'medicine_id': amoxicillin_id, 'quantity': 3}],
            'payment_method': 'cash'
        })
        assert response.status_code == 201

        response = authenticated_client.post('/orders/checkout', json={'payment_method': 'cash'})

        assert response.status_code == 409
        data = response.get_json()
        assert data['message'] == 'Insufficient stock: Amoxicillin 250mg: requested 4, available 2'
        assert data['shortages'][0]['available'] == 2
        assert stock_of(session, amoxicillin_id) == 2
        # Nothing was lost from the cart
        assert authenticated_client.get('/orders/cart').get_json()['cart']['item_count'] == 4

    def test_save_as_pending(self, authenticated_client, paracetamol):
        add_item(authenticated_client, paracetamol.id, 2)

        response = authenticated_client.post('/orders/checkout', json={
            'mode': 'pending',
            'customer': {'name': 'Anita', 'phone': '9000000000'}
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['order']['status'] == 'pending'
        assert data['order']['payment_status'] == 'pending'
        assert data['order']['amount_due'] == 21.0
        assert 'receipt' not in data

    def test_counter_checkout_hides_profit(self, counter_client, session, paracetamol):
        add_item(counter_client, paracetamol.id, 2)

        data = counter_client.post('/orders/checkout', json={'payment_method': 'cash'}).get_json()

        assert 'profit' not in data['order']
        assert all('profit' not in item for item in data['order']['items'])
        assert 'profit' not in data['receipt']
        # Still stored for the owner
        stored = session.query(Order).filter_by(id=data['order']['id']).one()
        assert stored.profit == Decimal('9.00')


class TestDirectSubmission:
    """POST /orders/ with explicit items."""

    def test_dealer_order(self, dealer_client, paracetamol):
        response = dealer_client.post('/orders/', json={
            'items': [{'medicine_id': paracetamol.id, 'quantity': 10, 'discount_percent': 5}],
            'discount_amount': 5,
            'payment_method': 'bank transfer'
        })

        assert response.status_code == 201
        order = response.get_json()['order']
        # 100 - 5 + 5 GST - 5 global discount
        assert order['total_amount'] == 95.0
        assert order['payment_method'] == 'bank_transfer'
        assert order['profit'] == 35.0

    def test_items_must_be_a_list(self, authenticated_client):
        response = authenticated_client.post('/orders/', json={'items': {'medicine_id': 1}})
        assert response.status_code == 400

    @pytest.mark.parametrize('item', [
        {'quantity': 1, 'discount_percent': 'NaN'},
        {'quantity': 1, 'discount_percent': 'Infinity'},
        {'quantity': '1e999'},
    ])
    def test_non_numeric_line_values(self, authenticated_client, session, paracetamol, item):
        response = authenticated_client.post('/orders/', json={
            'items': [{'medicine_id': paracetamol.id, **item}],
            'payment_method': 'cash'
        })

        assert response.status_code == 400
        assert session.query(Order).count() == 0
        assert stock_of(session, paracetamol.id) == 100

    def test_non_numeric_order_discount(self, authenticated_client, paracetamol):
        response = authenticated_client.post('/orders/', json={
            'items': [{'medicine_id': paracetamol.id, 'quantity': 1}],
            'discount_amount': 'NaN',
            'payment_method': 'cash'
        })
        assert response.status_code == 400

    def test_idempotency_key(self, authenticated_client, session, paracetamol):
        body = {
            'items': [{'medicine_id': paracetamol.id, 'quantity': 1}],
            'payment_method': 'cash',
            'idempotency_key': 'tab-1-submit-7'
        }
        first = authenticated_client.post('/orders/', json=body)
        second = authenticated_client.post('/orders/', json=body)

        assert first.status_code == 201
        assert second.status_code == 409
        assert second.get_json()['order_id'] == first.get_json()['order']['id']
        assert session.query(Order).count() == 1

    def test_other_organization_medicine(self, authenticated_client, medicine_org2):
        response = authenticated_client.post('/orders/', json={
            'items': [{'medicine_id': medicine_org2.id, 'quantity': 1}],
            'payment_method': 'cash'
        })

        assert response.status_code == 404
        assert response.get_json()['missing_medicine_ids'] == [medicine_org2.id]


class TestOrderHistory:
    """Order list, detail, dues and receipts."""

    @pytest.fixture
    def orders(self, authenticated_client, paracetamol, customer):
        paid = authenticated_client.post('/orders/', json={
            'items': [{'medicine_id': paracetamol.id, 'quantity': 1}],
            'payment_method': 'cash'
        }).get_json()['order']
        due = authenticated_client.post('/orders/', json={
            'items': [{'medicine_id': paracetamol.id, 'quantity': 2}],
            'mode': 'pending',
            'customer': {'id': customer.id}
        }).get_json()['order']
        return paid, due

    def test_list_orders(self, authenticated_client, orders):
        data = authenticated_client.get('/orders/').get_json()

        assert data['pagination']['total'] == 2
        assert {o['id'] for o in data['orders']} == {o['id'] for o in orders}

        pending = authenticated_client.get('/orders/?status=pending').get_json()['orders']
        assert [o['id'] for o in pending] == [orders[1]['id']]

    def test_search_by_customer(self, authenticated_client, orders):
        found = authenticated_client.get('/orders/?q=Ravi').get_json()['orders']
        assert [o['id'] for o in found] == [orders[1]['id']]

    def test_dued_orders(self, authenticated_client, orders):
        data = authenticated_client.get('/orders/dued').get_json()

        assert [o['id'] for o in data['orders']] == [orders[1]['id']]
        assert data['total_due'] == 21.0

    def test_customers_with_dues(self, authenticated_client, orders, customer):
        customers = authenticated_client.get('/orders/customers-with-dues').get_json()['customers']

        assert len(customers) == 1
        assert customers[0]['customer_name'] == 'Ravi Kumar'
        assert customers[0]['amount_due'] == 21.0

    def test_get_order(self, authenticated_client, counter_client, orders):
        order_id = orders[0]['id']

        admin_view = authenticated_client.get(f'/orders/{order_id}').get_json()['order']
        counter_view = counter_client.get(f'/orders/{order_id}').get_json()['order']

        assert admin_view['profit'] == 4.5
        assert 'profit' not in counter_view
        assert counter_view['total_amount'] == admin_view['total_amount']

    def test_order_not_found(self, authenticated_client):
        assert authenticated_client.get('/orders/987654').status_code == 404

    def test_receipt_pdf(self, authenticated_client, orders):
        response = authenticated_client.get(f"/orders/{orders[0]['id']}/receipt.pdf")

        assert response.status_code == 200
        assert response.mimetype == 'application/pdf'
        assert response.data.startswith(b'%PDF')


class TestAccess:
    """Role and login checks on the orders blueprint."""

    def test_requires_login(self, client):
        response = client.get('/orders/cart')
        assert response.status_code == 401

    def test_warehouse_cannot_sell(self, warehouse_client, paracetamol):
        assert warehouse_client.get('/orders/cart').status_code == 403
        response = warehouse_client.post('/orders/', json={
            'items': [{'medicine_id': paracetamol.id, 'quantity': 1}],
            'payment_method': 'cash'
        })
        assert response.status_code == 403
