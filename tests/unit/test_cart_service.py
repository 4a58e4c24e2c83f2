"""
Unit tests for the session cart operations.
"""

import pytest
from decimal import Decimal

from pharmapos.exceptions import BusinessLogicError, NotFoundError
from pharmapos.models import Medicine
from pharmapos.services import cart_service


def make_medicine(medicine_id=1, quantity=10, price='10.00', cost='6.00', gst='0.50', active=True):
    return Medicine(
        id=medicine_id,
        name=f'Medicine {medicine_id}',
        selling_price=Decimal(price),
        cost_price=Decimal(cost) if cost is not None else None,
        gst_per_unit=Decimal(gst),
        quantity=quantity,
        is_active=active,
    )


@pytest.fixture
def cart():
    return cart_service.new_cart()


class TestAddLine:
    """Tests for add_line."""

    def test_add_new_line(self, cart):
        line = cart_service.add_line(cart, make_medicine(), 4)

        assert line.quantity == 4
        stored = cart['items']['1']
        assert stored['quantity'] == 4
        # Money is kept as strings so the session never holds floats
        assert stored['unit_price'] == '10.00'
        assert stored['cost_price'] == '6.00'

    def test_adding_twice_accumulates(self, cart):
        medicine = make_medicine()
        cart_service.add_line(cart, medicine, 4)
        cart_service.add_line(cart, medicine, 3)

        assert cart_service.get_line(cart, 1).quantity == 7
        assert len(cart_service.cart_lines(cart)) == 1

    def test_cumulative_quantity_is_checked(self, cart):
        medicine = make_medicine(quantity=10)
        cart_service.add_line(cart, medicine, 8)

        with pytest.raises(BusinessLogicError) as exc:
            cart_service.add_line(cart, medicine, 3)

        assert exc.value.status_code == 409
        assert exc.value.payload == {'max_allowed': 2}
        assert cart_service.get_line(cart, 1).quantity == 8

    def test_single_add_above_stock(self, cart):
        with pytest.raises(BusinessLogicError) as exc:
            cart_service.add_line(cart, make_medicine(quantity=5), 6)

        assert exc.value.payload == {'max_allowed': 5}
        assert cart['items'] == {}

    def test_inactive_medicine_rejected(self, cart):
        with pytest.raises(BusinessLogicError):
            cart_service.add_line(cart, make_medicine(active=False), 1)

    def test_missing_medicine(self, cart):
        with pytest.raises(NotFoundError):
            cart_service.add_line(cart, None, 1)

    @pytest.mark.parametrize('quantity', [0, -1, None])
    def test_quantity_must_be_positive(self, cart, quantity):
        with pytest.raises(BusinessLogicError):
            cart_service.add_line(cart, make_medicine(), quantity)

    def test_discount_out_of_range(self, cart):
        with pytest.raises(BusinessLogicError):
            cart_service.add_line(cart, make_medicine(), 1, discount_percent='150')

    def test_existing_discount_kept_when_not_given(self, cart):
        medicine = make_medicine()
        cart_service.add_line(cart, medicine, 1, discount_percent='5')
        line = cart_service.add_line(cart, medicine, 1)

        assert line.discount_percent == Decimal('5')

    def test_snapshot_refreshed_from_medicine(self, cart):
        cart_service.add_line(cart, make_medicine(price='10.00'), 1)
        line = cart_service.add_line(cart, make_medicine(price='11.00'), 1)

        assert line.unit_price == Decimal('11.00')


class TestUpdateLine:
    """Tests for update_line / remove_line / clear."""

    def test_set_quantity_is_not_cumulative(self, cart):
        medicine = make_medicine(quantity=10)
        cart_service.add_line(cart, medicine, 8)

        line = cart_service.update_line(cart, medicine, quantity=10)

        assert line.quantity == 10

    def test_set_quantity_above_stock(self, cart):
        """Price 100, 5 in stock and in cart: setting 6 fails with max_allowed 5."""
        medicine = make_medicine(quantity=5, price='100')
        cart_service.add_line(cart, medicine, 5)

        with pytest.raises(BusinessLogicError) as exc:
            cart_service.update_line(cart, medicine, quantity=6)

        assert exc.value.payload == {'max_allowed': 5}
        assert cart_service.get_line(cart, 1).quantity == 5

    def test_zero_quantity_removes_line(self, cart):
        medicine = make_medicine()
        cart_service.add_line(cart, medicine, 2)

        assert cart_service.update_line(cart, medicine, quantity=0) is None
        assert cart['items'] == {}

    def test_negative_quantity_rejected(self, cart):
        medicine = make_medicine()
        cart_service.add_line(cart, medicine, 2)

        with pytest.raises(BusinessLogicError):
            cart_service.update_line(cart, medicine, quantity=-1)

    def test_update_discount_only(self, cart):
        medicine = make_medicine()
        cart_service.add_line(cart, medicine, 2)

        line = cart_service.update_line(cart, medicine, discount_percent='12.5')

        assert line.quantity == 2
        assert line.discount_percent == Decimal('12.5')

    def test_update_line_not_in_cart(self, cart):
        with pytest.raises(NotFoundError):
            cart_service.update_line(cart, make_medicine(), quantity=1)

    def test_remove_line(self, cart):
        cart_service.add_line(cart, make_medicine(), 1)

        assert cart_service.remove_line(cart, 1) is True
        assert cart_service.remove_line(cart, 1) is False

    def test_clear_resets_discount(self, cart):
        cart_service.add_line(cart, make_medicine(), 1)
        cart_service.set_discount(cart, '5')

        cart_service.clear(cart)

        assert cart == cart_service.new_cart()


class TestCartTotals:
    """Tests for the global discount and cart totals."""

    def test_set_discount(self, cart):
        assert cart_service.set_discount(cart, 25.5) == Decimal('25.5')
        assert cart_service.discount_amount(cart) == Decimal('25.5')

    @pytest.mark.parametrize('amount', ['-1', 'abc'])
    def test_invalid_discount(self, cart, amount):
        with pytest.raises(BusinessLogicError):
            cart_service.set_discount(cart, amount)

    def test_totals_use_shared_calculator(self, cart):
        cart_service.add_line(cart, make_medicine(1, price='10.00', gst='0.50'), 3, discount_percent='10')
        cart_service.add_line(cart, make_medicine(2, price='85.50', cost=None, gst='4.28'), 2)
        cart_service.set_discount(cart, '8.06')

        totals = cart_service.cart_totals(cart, include_profit=True, cost_ratio=Decimal('0.7'))

        assert totals.subtotal == Decimal('208.06')
        assert totals.grand_total == Decimal('200.00')
        assert totals.profit == Decimal('62.30')

    def test_discount_capped_when_priced(self, cart):
        cart_service.add_line(cart, make_medicine(gst='0'), 1)
        cart_service.set_discount(cart, '50')

        totals = cart_service.cart_totals(cart)

        assert totals.global_discount == Decimal('10.00')
        assert totals.grand_total == Decimal('0.00')

    def test_empty_cart_totals(self, cart):
        totals = cart_service.cart_totals(cart, include_profit=False)

        assert totals.subtotal == Decimal('0.00')
        assert totals.grand_total == Decimal('0.00')
        assert totals.item_count == 0
        assert totals.profit is None
