"""
Pricing service - single source of truth for cart and order totals.

Used by the session cart, direct order submission, receipts and any other
caller that needs subtotal / discount / GST / profit figures. All arithmetic
is Decimal; rounding to 2 places happens only on the values returned in
OrderTotals, never per line.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from pharmapos.exceptions import BusinessLogicError
from pharmapos.utils.formatters import money, quantize_money, to_decimal

ZERO = Decimal('0')
HUNDRED = Decimal('100')
DEFAULT_COST_RATIO = Decimal('0.7')


@dataclass
class CartLine:
    """One medicine in an in-progress sale, with its pricing snapshot."""
    medicine_id: int
    name: str
    unit_price: Decimal
    quantity: int
    discount_percent: Decimal = ZERO
    gst_per_unit: Decimal = ZERO
    cost_price: Optional[Decimal] = None  # None = unknown
    available_stock: int = 0
    manufacturer: Optional[str] = None
    batch_number: Optional[str] = None

    def __post_init__(self):
        self.unit_price = to_decimal(self.unit_price, 'unit_price')
        self.discount_percent = to_decimal(self.discount_percent, 'discount_percent', default=ZERO)
        self.gst_per_unit = to_decimal(self.gst_per_unit, 'gst_per_unit', default=ZERO)
        if self.cost_price is not None:
            self.cost_price = to_decimal(self.cost_price, 'cost_price')
        self.quantity = int(self.quantity)
        self.available_stock = int(self.available_stock or 0)

    @classmethod
    def from_medicine(cls, medicine, quantity: int, discount_percent: Any = ZERO) -> 'CartLine':
        """Build a line from a Medicine row (current price, cost, GST and stock)."""
        return cls(
            medicine_id=medicine.id,
            name=medicine.name,
            unit_price=medicine.selling_price,
            quantity=quantity,
            discount_percent=discount_percent,
            gst_per_unit=medicine.gst_per_unit or ZERO,
            cost_price=medicine.cost_price,
            available_stock=medicine.quantity or 0,
            manufacturer=medicine.manufacturer,
            batch_number=medicine.batch_number,
        )

    def effective_cost_price(self, cost_ratio: Decimal = DEFAULT_COST_RATIO) -> Decimal:
        """Recorded cost price, or unit_price x cost_ratio when it is unknown."""
        if self.cost_price is not None:
            return self.cost_price
        return self.unit_price * cost_ratio


@dataclass
class LineTotals:
    """Unrounded amounts for a single line."""
    line: CartLine
    line_subtotal: Decimal
    line_discount: Decimal
    line_gst: Decimal
    line_total: Decimal
    cost_price: Decimal
    cost_total: Decimal

    @property
    def profit(self) -> Decimal:
        return self.line_total - self.cost_total

    def to_dict(self, include_profit: bool = True) -> Dict[str, Any]:
        data = {
            'medicine_id': self.line.medicine_id,
            'name': self.line.name,
            'manufacturer': self.line.manufacturer,
            'batch_number': self.line.batch_number,
            'quantity': self.line.quantity,
            'available_stock': self.line.available_stock,
            'unit_price': money(self.line.unit_price),
            'discount_percent': money(self.line.discount_percent),
            'gst_per_unit': money(self.line.gst_per_unit),
            'line_subtotal': money(self.line_subtotal),
            'line_discount': money(self.line_discount),
            'line_gst': money(self.line_gst),
            'line_total': money(self.line_total),
        }
        if include_profit:
            data['cost_price'] = money(self.cost_price)
            data['profit'] = money(self.profit)
        return data


@dataclass
class OrderTotals:
    """Totals of a cart, rounded to 2 decimal places."""
    subtotal: Decimal = ZERO
    net_subtotal: Decimal = ZERO
    tax_amount: Decimal = ZERO
    global_discount: Decimal = ZERO
    discount_percent: Decimal = ZERO
    grand_total: Decimal = ZERO
    profit: Optional[Decimal] = None  # None when suppressed for the caller's role
    item_count: int = 0
    lines: List[LineTotals] = field(default_factory=list)

    @property
    def profit_visible(self) -> bool:
        return self.profit is not None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'subtotal': money(self.subtotal),
            'net_subtotal': money(self.net_subtotal),
            'tax_amount': money(self.tax_amount),
            'global_discount': money(self.global_discount),
            'discount_percent': money(self.discount_percent),
            'grand_total': money(self.grand_total),
            'item_count': self.item_count,
            'lines': [lt.to_dict(include_profit=self.profit_visible) for lt in self.lines],
        }
        if self.profit_visible:
            data['profit'] = money(self.profit)
        return data


def validate_line_inputs(line: CartLine) -> None:
    """
    Reject values the calculator does not defend against.

    Raises:
        BusinessLogicError: on negative prices, non-positive quantity or a
        discount outside 0-100.
    """
    if line.quantity < 1:
        raise BusinessLogicError(f'Quantity for "{line.name}" must be at least 1')
    if line.unit_price < ZERO:
        raise BusinessLogicError(f'Price for "{line.name}" cannot be negative')
    if line.cost_price is not None and line.cost_price < ZERO:
        raise BusinessLogicError(f'Cost price for "{line.name}" cannot be negative')
    if line.gst_per_unit < ZERO:
        raise BusinessLogicError(f'GST for "{line.name}" cannot be negative')
    if line.discount_percent < ZERO or line.discount_percent > HUNDRED:
        raise BusinessLogicError(f'Discount for "{line.name}" must be between 0 and 100')


def calculate_line(line: CartLine, cost_ratio: Decimal = DEFAULT_COST_RATIO) -> LineTotals:
    """Line subtotal, discount, GST and total (no rounding)."""
    line_subtotal = line.unit_price * line.quantity
    line_discount = line_subtotal * line.discount_percent / HUNDRED
    line_gst = line.gst_per_unit * line.quantity
    cost_price = line.effective_cost_price(cost_ratio)

    return LineTotals(
        line=line,
        line_subtotal=line_subtotal,
        line_discount=line_discount,
        line_gst=line_gst,
        line_total=line_subtotal - line_discount + line_gst,
        cost_price=cost_price,
        cost_total=cost_price * line.quantity,
    )


def calculate_totals(
    lines: Iterable[CartLine],
    discount_amount: Any = ZERO,
    include_profit: bool = True,
    cost_ratio: Decimal = DEFAULT_COST_RATIO,
) -> OrderTotals:
    """
    Compute the totals of a cart.

    Args:
        lines: cart lines (already validated by the caller)
        discount_amount: requested order-level discount, capped at the subtotal
        include_profit: False suppresses profit (counter role)
        cost_ratio: cost estimate for lines without a recorded cost price

    Returns:
        OrderTotals; an empty cart yields all zeros.
    """
    line_totals = [calculate_line(line, cost_ratio) for line in lines]
    requested = to_decimal(discount_amount, 'discount_amount', default=ZERO)

    subtotal = sum((lt.line_total for lt in line_totals), ZERO)
    net_subtotal = sum((lt.line_subtotal - lt.line_discount for lt in line_totals), ZERO)
    tax_amount = sum((lt.line_gst for lt in line_totals), ZERO)

    global_discount = max(ZERO, min(requested, subtotal))
    grand_total = subtotal - global_discount
    discount_percent = (global_discount / subtotal * HUNDRED) if subtotal > ZERO else ZERO

    profit = None
    if include_profit:
        profit = quantize_money(sum((lt.profit for lt in line_totals), ZERO) - global_discount)

    return OrderTotals(
        subtotal=quantize_money(subtotal),
        net_subtotal=quantize_money(net_subtotal),
        tax_amount=quantize_money(tax_amount),
        global_discount=quantize_money(global_discount),
        discount_percent=quantize_money(discount_percent),
        grand_total=quantize_money(grand_total),
        profit=profit,
        item_count=sum(lt.line.quantity for lt in line_totals),
        lines=line_totals,
    )
