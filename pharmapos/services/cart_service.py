"""
Cart service - operations on the in-progress sale.

The cart is a plain dict so it can live in the Flask session:

    {
        'items': {'<medicine_id>': {...line snapshot, money as str...}},
        'discount_amount': '0'
    }

Money is stored as strings and converted to Decimal only when lines are
rebuilt, so nothing float-shaped reaches the pricing calculator.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pharmapos.exceptions import BusinessLogicError, NotFoundError
from pharmapos.services import stock_service
from pharmapos.services.pricing_service import (
    CartLine, OrderTotals, DEFAULT_COST_RATIO, calculate_totals, validate_line_inputs
)
from pharmapos.utils.formatters import to_decimal

ZERO = Decimal('0')


def new_cart() -> Dict[str, Any]:
    return {'items': {}, 'discount_amount': '0'}


def _serialize_line(line: CartLine) -> Dict[str, Any]:
    return {
        'medicine_id': line.medicine_id,
        'name': line.name,
        'manufacturer': line.manufacturer,
        'batch_number': line.batch_number,
        'unit_price': str(line.unit_price),
        'cost_price': str(line.cost_price) if line.cost_price is not None else None,
        'gst_per_unit': str(line.gst_per_unit),
        'discount_percent': str(line.discount_percent),
        'quantity': line.quantity,
        'available_stock': line.available_stock,
    }


def _deserialize_line(data: Dict[str, Any]) -> CartLine:
    return CartLine(
        medicine_id=int(data['medicine_id']),
        name=data['name'],
        unit_price=data['unit_price'],
        quantity=data['quantity'],
        discount_percent=data.get('discount_percent') or ZERO,
        gst_per_unit=data.get('gst_per_unit') or ZERO,
        cost_price=data.get('cost_price'),
        available_stock=data.get('available_stock', 0),
        manufacturer=data.get('manufacturer'),
        batch_number=data.get('batch_number'),
    )


def _stock_error(check: stock_service.StockCheck) -> BusinessLogicError:
    return BusinessLogicError(check.message, status_code=409, payload={'max_allowed': check.max_allowed})


def _build_line(medicine, quantity: int, discount_percent: Any) -> CartLine:
    try:
        line = CartLine.from_medicine(medicine, quantity, discount_percent)
    except ValueError as e:
        raise BusinessLogicError(str(e))
    validate_line_inputs(line)
    return line


def get_line(cart: Dict[str, Any], medicine_id: int) -> Optional[CartLine]:
    data = cart.get('items', {}).get(str(medicine_id))
    return _deserialize_line(data) if data else None


def cart_lines(cart: Dict[str, Any]) -> List[CartLine]:
    """Rebuild typed lines from the stored cart."""
    return [_deserialize_line(data) for data in cart.get('items', {}).values()]


def add_line(cart: Dict[str, Any], medicine, quantity: int, discount_percent: Any = None) -> CartLine:
    """
    Add a medicine to the cart, merging with an existing line.

    The cumulative quantity (already in cart + new) is checked against the
    medicine's current stock.

    Raises:
        NotFoundError: medicine missing
        BusinessLogicError: inactive medicine, bad quantity/discount, or not
            enough stock (409, payload carries max_allowed)
    """
    if medicine is None:
        raise NotFoundError('Medicine not found')
    if not medicine.is_active:
        raise BusinessLogicError(f'"{medicine.name}" is not available for sale')
    if quantity is None or quantity < 1:
        raise BusinessLogicError('Quantity must be at least 1')

    existing = get_line(cart, medicine.id)
    in_cart = existing.quantity if existing else 0

    check = stock_service.validate_quantity(quantity, medicine.quantity, in_cart)
    if not check.ok:
        raise _stock_error(check)

    if discount_percent is None:
        discount_percent = existing.discount_percent if existing else ZERO

    # Refresh the price/stock snapshot from the current medicine row
    line = _build_line(medicine, in_cart + quantity, discount_percent)

    cart.setdefault('items', {})[str(medicine.id)] = _serialize_line(line)
    return line


def update_line(
    cart: Dict[str, Any],
    medicine,
    quantity: Optional[int] = None,
    discount_percent: Any = None
) -> Optional[CartLine]:
    """
    Set a line's quantity and/or discount.

    A quantity of 0 removes the line (returns None). The new quantity is
    validated against the current stock, not added to the old one.
    """
    if medicine is None:
        raise NotFoundError('Medicine not found')

    existing = get_line(cart, medicine.id)
    if existing is None:
        raise NotFoundError('Medicine is not in the cart')

    new_quantity = existing.quantity
    if quantity is not None:
        if quantity < 0:
            raise BusinessLogicError('Quantity cannot be negative')
        if quantity == 0:
            remove_line(cart, medicine.id)
            return None
        check = stock_service.validate_quantity(quantity, medicine.quantity)
        if not check.ok:
            raise _stock_error(check)
        new_quantity = quantity

    if discount_percent is None:
        discount_percent = existing.discount_percent

    line = _build_line(medicine, new_quantity, discount_percent)
    cart['items'][str(medicine.id)] = _serialize_line(line)
    return line


def remove_line(cart: Dict[str, Any], medicine_id: int) -> bool:
    """Remove a line. Returns False if it was not in the cart."""
    return cart.get('items', {}).pop(str(medicine_id), None) is not None


def clear(cart: Dict[str, Any]) -> None:
    cart['items'] = {}
    cart['discount_amount'] = '0'


def set_discount(cart: Dict[str, Any], amount: Any) -> Decimal:
    """Set the order-level discount amount (capped at the subtotal when priced)."""
    try:
        value = to_decimal(amount, 'discount_amount', default=ZERO)
    except ValueError as e:
        raise BusinessLogicError(str(e))
    if value < ZERO:
        raise BusinessLogicError('Discount cannot be negative')
    cart['discount_amount'] = str(value)
    return value


def discount_amount(cart: Dict[str, Any]) -> Decimal:
    return to_decimal(cart.get('discount_amount'), 'discount_amount', default=ZERO)


def cart_totals(
    cart: Dict[str, Any],
    include_profit: bool = True,
    cost_ratio: Decimal = DEFAULT_COST_RATIO
) -> OrderTotals:
    """Price the cart with the shared calculator."""
    return calculate_totals(
        cart_lines(cart),
        discount_amount(cart),
        include_profit=include_profit,
        cost_ratio=cost_ratio,
    )
