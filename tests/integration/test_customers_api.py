"""
Integration tests for customer records, history and balances.
"""

import pytest

from pharmapos.models import Customer, PosRole
from pharmapos.services import order_service


@pytest.fixture
def purchases(session, organization, admin_user, customer, paracetamol, amoxicillin):
    """One paid and one pending order for the customer (10.50 per paracetamol)."""
    placed = []
    for items, mode, method in (
        ([{'medicine_id': paracetamol.id, 'quantity': 2}, {'medicine_id': amoxicillin.id, 'quantity': 1}],
         'complete', 'upi'),
        ([{'medicine_id': paracetamol.id, 'quantity': 3}], 'pending', None),
    ):
        placed.append(order_service.submit_order(
            session, organization.id, admin_user.id, items,
            customer={'id': customer.id}, payment_method=method, mode=mode, role=PosRole.ADMIN.value
        ))
    return placed


class TestCustomerCrud:
    """Create, read, update and delete."""

    def test_create(self, counter_client):
        response = counter_client.post('/customers/', json={
            'name': ' Meera Shah ', 'phone': '9822222222', 'email': 'meera@example.com'
        })

        assert response.status_code == 201
        customer = response.get_json()['customer']
        assert customer['name'] == 'Meera Shah'
        assert customer['active'] is True

    def test_name_required(self, counter_client):
        assert counter_client.post('/customers/', json={'phone': '9833333333'}).status_code == 400

    def test_duplicate_phone(self, counter_client, customer):
        response = counter_client.post('/customers/', json={'name': 'Someone Else', 'phone': '9811111111'})
        assert response.status_code == 409

    def test_same_phone_in_other_organization(self, authenticated_client2, customer):
        response = authenticated_client2.post('/customers/', json={'name': 'Ravi K', 'phone': '9811111111'})
        assert response.status_code == 201

    def test_update_keeps_own_phone(self, counter_client, customer):
        response = counter_client.put(f'/customers/{customer.id}', json={
            'phone': '9811111111', 'address': '12 MG Road'
        })

        assert response.status_code == 200
        assert response.get_json()['customer']['address'] == '12 MG Road'

    def test_delete_without_orders(self, authenticated_client, session, customer):
        customer_id = customer.id
        assert authenticated_client.delete(f'/customers/{customer_id}').status_code == 200
        assert session.query(Customer).filter_by(id=customer_id).first() is None

    def test_delete_with_orders_deactivates(self, authenticated_client, session, customer, purchases):
        customer_id = customer.id
        assert authenticated_client.delete(f'/customers/{customer_id}').status_code == 200

        assert session.query(Customer.active).filter(Customer.id == customer_id).scalar() is False
        assert authenticated_client.get('/customers/').get_json()['customers'] == []
        listed = authenticated_client.get('/customers/?include_inactive=1').get_json()['customers']
        assert [c['id'] for c in listed] == [customer_id]

    def test_only_admin_deletes(self, counter_client, customer):
        assert counter_client.delete(f'/customers/{customer.id}').status_code == 403

    def test_warehouse_has_no_access(self, warehouse_client):
        assert warehouse_client.get('/customers/').status_code == 403

    def test_unknown_customer(self, counter_client):
        assert counter_client.get('/customers/987654').status_code == 404


class TestCustomerSearch:
    """Counter lookup."""

    @pytest.mark.parametrize('term', ['ravi', '98111', 'EXAMPLE.COM'])
    def test_search(self, counter_client, customer, term):
        customers = counter_client.get(f'/customers/search?q={term}').get_json()['customers']
        assert [c['name'] for c in customers] == ['Ravi Kumar']

    def test_no_match(self, counter_client, customer):
        assert counter_client.get('/customers/search?q=zzz').get_json()['customers'] == []


class TestCustomerHistory:
    """Orders, balance, stats and medications."""

    def test_orders(self, counter_client, customer, purchases):
        data = counter_client.get(f'/customers/{customer.id}/orders').get_json()

        assert data['pagination']['total'] == 2
        assert {o['id'] for o in data['orders']} == {o.id for o in purchases}
        assert all('profit' not in o for o in data['orders'])

    def test_balance(self, counter_client, customer, purchases):
        data = counter_client.get(f'/customers/{customer.id}/balance').get_json()

        assert data == {'customer_id': customer.id, 'pending_orders': 1, 'balance': 31.5}

    def test_stats(self, counter_client, customer, purchases):
        data = counter_client.get(f'/customers/{customer.id}/stats').get_json()

        assert data['total_orders'] == 2
        assert data['completed_orders'] == 1
        assert data['pending_orders'] == 1
        assert data['total_spent'] == float(purchases[0].total_amount)
        assert data['last_order_date'] is not None
        assert data['customer_since'] is not None

    def test_medications(self, counter_client, customer, purchases, paracetamol):
        medications = counter_client.get(f'/customers/{customer.id}/medications').get_json()['medications']

        by_name = {m['name']: m for m in medications}
        assert set(by_name) == {'Paracetamol 500mg', 'Amoxicillin 250mg'}
        assert by_name['Paracetamol 500mg']['total_quantity'] == 5
        assert by_name['Paracetamol 500mg']['times_purchased'] == 2
        assert by_name['Amoxicillin 250mg']['times_purchased'] == 1
        assert by_name['Paracetamol 500mg']['generic_name'] == 'Acetaminophen'

    def test_new_customer_has_no_balance(self, counter_client, customer):
        data = counter_client.get(f'/customers/{customer.id}/balance').get_json()
        assert data['pending_orders'] == 0
        assert data['balance'] == 0.0
