"""
Critical integration tests for organization isolation.
Every read and write is scoped to the organization selected in the session.
"""

import pytest

from pharmapos.exceptions import NotFoundError
from pharmapos.models import Medicine, PosRole
from pharmapos.services import customer_service, inventory_service, order_service


class TestMedicineIsolation:
    """Catalog and stock."""

    def test_list_only_shows_own_medicines(self, authenticated_client, authenticated_client2,
                                           paracetamol, medicine_org2):
        names = [m['name'] for m in authenticated_client.get('/medicines/').get_json()['medicines']]
        assert names == ['Paracetamol 500mg']

        names = [m['name'] for m in authenticated_client2.get('/medicines/').get_json()['medicines']]
        assert names == ['Cetirizine 10mg']

    def test_cannot_read_other_organization_medicine(self, authenticated_client, medicine_org2):
        assert authenticated_client.get(f'/medicines/{medicine_org2.id}').status_code == 404

    def test_cannot_adjust_other_organization_stock(self, authenticated_client, session, medicine_org2):
        medicine_id = medicine_org2.id
        response = authenticated_client.patch(f'/medicines/{medicine_id}/stock', json={
            'operation': 'set', 'quantity': 0
        })

        assert response.status_code == 404
        assert session.query(Medicine.quantity).filter(Medicine.id == medicine_id).scalar() == 50

    def test_search_is_scoped(self, session, organization, paracetamol, medicine_org2):
        assert inventory_service.search_medicines(session, organization.id, 'cetirizine') == []

    def test_stats_are_scoped(self, authenticated_client2, paracetamol, medicine_org2):
        data = authenticated_client2.get('/medicines/stats').get_json()
        assert data['total_medicines'] == 1
        assert data['total_units'] == 50


class TestOrderIsolation:
    """Orders, carts and order history."""

    def test_cannot_sell_other_organization_medicine(self, session, organization, admin_user, medicine_org2):
        medicine_id = medicine_org2.id
        with pytest.raises(NotFoundError):
            order_service.submit_order(
                session, organization.id, admin_user.id,
                [{'medicine_id': medicine_id, 'quantity': 1}],
                payment_method='cash', role=PosRole.ADMIN.value
            )

        assert session.query(Medicine.quantity).filter(Medicine.id == medicine_id).scalar() == 50

    def test_cart_rejects_other_organization_medicine(self, authenticated_client, medicine_org2):
        response = authenticated_client.post('/orders/cart/items', json={
            'medicine_id': medicine_org2.id, 'quantity': 1
        })
        assert response.status_code == 404

    def test_order_api_rejects_other_organization_medicine(self, authenticated_client, medicine_org2):
        response = authenticated_client.post('/orders/', json={
            'items': [{'medicine_id': medicine_org2.id, 'quantity': 1}],
            'payment_method': 'cash'
        })
        assert response.status_code == 404

    def test_orders_are_invisible_across_organizations(self, authenticated_client, authenticated_client2,
                                                        paracetamol):
        order = authenticated_client.post('/orders/', json={
            'items': [{'medicine_id': paracetamol.id, 'quantity': 1}],
            'payment_method': 'cash'
        }).get_json()['order']

        assert authenticated_client2.get(f"/orders/{order['id']}").status_code == 404
        assert authenticated_client2.get('/orders/').get_json()['orders'] == []
        assert authenticated_client2.get(f"/orders/{order['id']}/receipt.pdf").status_code == 404


class TestCustomerIsolation:
    """Customers and their history."""

    def test_cannot_read_other_organization_customer(self, authenticated_client2, customer):
        assert authenticated_client2.get(f'/customers/{customer.id}').status_code == 404
        assert authenticated_client2.get(f'/customers/{customer.id}/balance').status_code == 404

    def test_listing_is_scoped(self, authenticated_client2, customer):
        assert authenticated_client2.get('/customers/').get_json()['customers'] == []

    def test_order_cannot_use_other_organization_customer(self, session, organization2, admin_user2,
                                                          customer, medicine_org2):
        with pytest.raises(NotFoundError):
            order_service.submit_order(
                session, organization2.id, admin_user2.id,
                [{'medicine_id': medicine_org2.id, 'quantity': 1}],
                customer={'id': customer.id}, payment_method='cash', role=PosRole.ADMIN.value
            )

    def test_service_lookup_is_scoped(self, session, organization2, customer):
        with pytest.raises(NotFoundError):
            customer_service.get_customer(session, organization2.id, customer.id)


class TestSupplierIsolation:
    """Suppliers and purchase orders."""

    def test_cannot_read_other_organization_supplier(self, authenticated_client2, supplier):
        assert authenticated_client2.get(f'/suppliers/{supplier.id}').status_code == 404
        assert authenticated_client2.get('/suppliers/').get_json()['suppliers'] == []

    def test_purchase_order_needs_own_supplier(self, authenticated_client2, supplier, medicine_org2):
        response = authenticated_client2.post('/purchase-orders/', json={
            'supplier_id': supplier.id,
            'lines': [{'medicine_id': medicine_org2.id, 'quantity': 1, 'unit_cost': 1}]
        })
        assert response.status_code == 404

    def test_medicine_cannot_link_other_organization_supplier(self, authenticated_client2, supplier):
        response = authenticated_client2.post('/medicines/', json={
            'name': 'Loratadine', 'selling_price': 5, 'supplier_id': supplier.id
        })
        assert response.status_code == 404
