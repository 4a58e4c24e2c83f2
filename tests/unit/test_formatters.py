"""
Unit tests for money / quantity / date helpers.
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

from pharmapos.utils.formatters import (
    to_decimal, to_int, quantize_money, money, money_display, iso, parse_date
)


class TestToDecimal:

    def test_float_goes_through_str(self):
        assert to_decimal(0.1) == Decimal('0.1')

    def test_string(self):
        assert to_decimal(' 12.50 ') == Decimal('12.50')

    def test_default_for_empty(self):
        assert to_decimal('', default=Decimal('0')) == Decimal('0')

    @pytest.mark.parametrize('value', [None, '', 'abc', True])
    def test_invalid(self, value):
        with pytest.raises(ValueError) as exc:
            to_decimal(value, 'price')
        assert 'price' in str(exc.value)

    @pytest.mark.parametrize('value', ['NaN', 'sNaN', 'Infinity', '-inf', float('nan'), float('inf')])
    def test_non_finite(self, value):
        with pytest.raises(ValueError) as exc:
            to_decimal(value, 'discount_percent')
        assert str(exc.value) == 'discount_percent must be a number'

    def test_huge_exponent(self):
        with pytest.raises(ValueError) as exc:
            to_decimal('1e999', 'unit_cost')
        assert str(exc.value) == 'unit_cost is too large'


class TestToInt:

    @pytest.mark.parametrize('value, expected', [(3, 3), ('4', 4), ('5.0', 5), (6.0, 6)])
    def test_whole_numbers(self, value, expected):
        assert to_int(value) == expected

    @pytest.mark.parametrize('value', ['2.5', 1.5, 'two', False])
    def test_rejects_fractions_and_garbage(self, value):
        with pytest.raises(ValueError):
            to_int(value, 'quantity')

    @pytest.mark.parametrize('value', ['NaN', 'Infinity', '1e999', '1e20'])
    def test_rejects_non_finite_and_huge(self, value):
        with pytest.raises(ValueError) as exc:
            to_int(value, 'quantity')
        assert str(exc.value).startswith('quantity ')


class TestMoney:

    def test_quantize_half_up(self):
        assert quantize_money(Decimal('1.005')) == Decimal('1.01')
        assert quantize_money(Decimal('1.004')) == Decimal('1.00')
        assert quantize_money(None) == Decimal('0.00')

    def test_money_is_json_number(self):
        assert money(Decimal('19.999')) == 20.0

    def test_money_display(self):
        assert money_display(Decimal('1234.5'), '₹') == '₹1,234.50'
        assert money_display(Decimal('-3'), 'Rs. ') == '-Rs. 3.00'


class TestDates:

    def test_iso(self):
        assert iso(date(2024, 3, 1)) == '2024-03-01'
        assert iso(datetime(2024, 3, 1, 9, 30)) == '2024-03-01T09:30:00'
        assert iso(None) is None

    def test_parse_date(self):
        assert parse_date('2024-03-01') == date(2024, 3, 1)
        assert parse_date('2024-03-01T10:00:00') == date(2024, 3, 1)
        assert parse_date('') is None

    def test_parse_date_invalid(self):
        with pytest.raises(ValueError):
            parse_date('01/03/2024', 'date_from')
