"""
Purchase order service - restocking from suppliers (organization-scoped).

Receiving goods increments stock, records an IN movement and refreshes the
medicine's cost price, all in the same transaction as the status change.
"""
import logging
import time
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pharmapos.exceptions import PosError, BusinessLogicError, NotFoundError
from pharmapos.models import (
    Medicine, Supplier, PurchaseOrder, PurchaseOrderLine, PurchaseOrderStatus,
    PURCHASE_ORDER_TRANSITIONS, StockMoveType, StockReferenceType
)
from pharmapos.services import stock_service
from pharmapos.services.cache_service import invalidate_dashboard
from pharmapos.utils.formatters import quantize_money, to_decimal, to_int, parse_date

logger = logging.getLogger(__name__)

ZERO = Decimal('0')
HUNDRED = Decimal('100')


def generate_po_number(organization_id: int) -> str:
    """PO-<organization>-<epoch millis>-<4 uppercase hex chars>."""
    return f"PO-{organization_id}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:4].upper()}"


def get_purchase_order(session, organization_id: int, po_id: int) -> PurchaseOrder:
    po = session.query(PurchaseOrder).filter_by(id=po_id, organization_id=organization_id).first()
    if not po:
        raise NotFoundError('Purchase order not found')
    return po


def list_purchase_orders(session, organization_id: int, status: Optional[str] = None,
                         supplier_id: Optional[int] = None) -> List[PurchaseOrder]:
    query = session.query(PurchaseOrder).filter(PurchaseOrder.organization_id == organization_id)
    if status:
        query = query.filter(PurchaseOrder.status == status)
    if supplier_id:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    return query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).all()


def _parse_lines(session, organization_id: int, raw_lines: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not raw_lines:
        raise BusinessLogicError('A purchase order needs at least one line')

    parsed = []
    try:
        for raw in raw_lines:
            parsed.append({
                'medicine_id': to_int(raw.get('medicine_id'), 'medicine_id'),
                'quantity': to_int(raw.get('quantity'), 'quantity'),
                'unit_cost': to_decimal(raw.get('unit_cost'), 'unit_cost'),
            })
    except (ValueError, AttributeError) as e:
        raise BusinessLogicError(str(e) if isinstance(e, ValueError) else 'Invalid purchase order line')

    for line in parsed:
        if line['quantity'] <= 0:
            raise BusinessLogicError('Quantity must be greater than 0')
        if line['unit_cost'] < 0:
            raise BusinessLogicError('Unit cost cannot be negative')

    ids = {line['medicine_id'] for line in parsed}
    found = {
        m.id for m in session.query(Medicine.id).filter(
            Medicine.id.in_(ids), Medicine.organization_id == organization_id
        ).all()
    }
    if ids - found:
        raise NotFoundError('One or more medicines were not found',
                            payload={'missing_medicine_ids': sorted(ids - found)})
    return parsed


def create_purchase_order(session, organization_id: int, user_id: Optional[int], data: Dict[str, Any]) -> PurchaseOrder:
    """
    Create a pending purchase order.

    Totals: subtotal = sum(qty x unit_cost), tax = subtotal x tax_percent / 100,
    total = subtotal + tax - discount (discount capped at subtotal + tax).
    """
    supplier = session.query(Supplier).filter_by(
        id=data.get('supplier_id'), organization_id=organization_id
    ).first()
    if not supplier:
        raise NotFoundError('Supplier not found')

    lines = _parse_lines(session, organization_id, data.get('lines') or data.get('items'))

    try:
        tax_percent = to_decimal(data.get('tax_percent'), 'tax_percent', default=ZERO)
        discount = to_decimal(data.get('discount'), 'discount', default=ZERO)
        expected = parse_date(data.get('expected_delivery_date'), 'expected_delivery_date')
    except ValueError as e:
        raise BusinessLogicError(str(e))
    if tax_percent < 0 or tax_percent > HUNDRED:
        raise BusinessLogicError('Tax percent must be between 0 and 100')
    if discount < 0:
        raise BusinessLogicError('Discount cannot be negative')

    subtotal = sum((line['unit_cost'] * line['quantity'] for line in lines), ZERO)
    tax_amount = subtotal * tax_percent / HUNDRED
    discount = min(discount, subtotal + tax_amount)

    po = PurchaseOrder(
        organization_id=organization_id,
        supplier_id=supplier.id,
        po_number=generate_po_number(organization_id),
        status=PurchaseOrderStatus.PENDING.value,
        expected_delivery_date=expected,
        subtotal=quantize_money(subtotal),
        tax_percent=quantize_money(tax_percent),
        tax_amount=quantize_money(tax_amount),
        discount=quantize_money(discount),
        total_amount=quantize_money(subtotal + tax_amount - discount),
        notes=(data.get('notes') or '').strip() or None,
        created_by=user_id
    )
    for line in lines:
        po.lines.append(PurchaseOrderLine(
            medicine_id=line['medicine_id'],
            quantity=line['quantity'],
            received_quantity=0,
            unit_cost=quantize_money(line['unit_cost']),
            total_cost=quantize_money(line['unit_cost'] * line['quantity'])
        ))

    session.add(po)
    session.commit()
    logger.info(f"[PURCHASE] {po.po_number} created: org={organization_id} total={po.total_amount}")
    return po


def _check_transition(po: PurchaseOrder, new_status: str) -> None:
    allowed = PURCHASE_ORDER_TRANSITIONS.get(po.status, set())
    if new_status not in allowed:
        raise BusinessLogicError(f'Cannot change purchase order from {po.status} to {new_status}')


def update_status(session, organization_id: int, po_id: int, new_status: str) -> PurchaseOrder:
    """
    Move a purchase order along its status machine.

    Received statuses are reached through receive_purchase_order only, since
    they change stock.
    """
    valid = {s.value for s in PurchaseOrderStatus}
    if new_status not in valid:
        raise BusinessLogicError(f'Invalid status: {new_status}')
    if new_status in (PurchaseOrderStatus.RECEIVED.value, PurchaseOrderStatus.PARTIALLY_RECEIVED.value):
        raise BusinessLogicError('Use the receive endpoint to record received goods')

    po = get_purchase_order(session, organization_id, po_id)
    _check_transition(po, new_status)
    po.status = new_status
    session.commit()
    logger.info(f"[PURCHASE] {po.po_number} -> {new_status}")
    return po


def receive_purchase_order(
    session,
    organization_id: int,
    po_id: int,
    received: Optional[List[Dict[str, Any]]] = None
) -> PurchaseOrder:
    """
    Record goods received against an ordered purchase order.

    Args:
        received: [{'line_id' or 'medicine_id', 'quantity'}]; None receives
            everything still outstanding

    Raises:
        BusinessLogicError: wrong status, unknown line, or more than outstanding
    """
    po = get_purchase_order(session, organization_id, po_id)
    if po.status not in (PurchaseOrderStatus.ORDERED.value, PurchaseOrderStatus.PARTIALLY_RECEIVED.value):
        raise BusinessLogicError(f'Cannot receive a purchase order that is {po.status}')

    quantities = _receipt_quantities(po, received)
    if not any(quantities.values()):
        raise BusinessLogicError('Nothing to receive')

    try:
        move_lines = []
        for line in po.lines:
            qty = quantities.get(line.id, 0)
            if not qty:
                continue
            if not stock_service.increment_stock(session, organization_id, line.medicine_id, qty):
                raise NotFoundError(f'Medicine {line.medicine_id} not found')
            line.received_quantity = (line.received_quantity or 0) + qty

            medicine = session.query(Medicine).filter_by(id=line.medicine_id, organization_id=organization_id).one()
            medicine.cost_price = line.unit_cost

            move_lines.append({'medicine_id': line.medicine_id, 'quantity': qty, 'unit_cost': line.unit_cost})

        stock_service.record_movement(
            session, organization_id, StockMoveType.IN, StockReferenceType.PURCHASE_ORDER, po.id,
            move_lines, notes=f'Purchase order {po.po_number}'
        )

        fully_received = all(line.outstanding_quantity == 0 for line in po.lines)
        new_status = PurchaseOrderStatus.RECEIVED.value if fully_received \
            else PurchaseOrderStatus.PARTIALLY_RECEIVED.value
        if new_status != po.status:
            _check_transition(po, new_status)
            po.status = new_status
        if fully_received:
            po.received_at = datetime.now()

        session.commit()
    except PosError:
        session.rollback()
        raise
    except Exception:
        session.rollback()
        logger.exception(f"[PURCHASE] Receive failed for {po_id}")
        raise

    logger.info(f"[PURCHASE] {po.po_number} received: status={po.status}")
    invalidate_dashboard(organization_id)
    return po


def _receipt_quantities(po: PurchaseOrder, received: Optional[List[Dict[str, Any]]]) -> Dict[int, int]:
    """Map line id -> quantity to receive, validated against outstanding."""
    if received is None:
        return {line.id: line.outstanding_quantity for line in po.lines}

    by_id = {line.id: line for line in po.lines}
    by_medicine = {line.medicine_id: line for line in po.lines}
    quantities: Dict[int, int] = {}

    for entry in received:
        try:
            qty = to_int(entry.get('quantity'), 'quantity')
            if entry.get('line_id') is not None:
                line = by_id.get(to_int(entry.get('line_id'), 'line_id'))
            else:
                line = by_medicine.get(to_int(entry.get('medicine_id'), 'medicine_id'))
        except ValueError as e:
            raise BusinessLogicError(str(e))

        if line is None:
            raise BusinessLogicError('Line does not belong to this purchase order')
        if qty < 0:
            raise BusinessLogicError('Received quantity cannot be negative')

        total = quantities.get(line.id, 0) + qty
        if total > line.outstanding_quantity:
            raise BusinessLogicError(
                f'Cannot receive {total} units of line {line.id}. '
                f'Only {line.outstanding_quantity} outstanding'
            )
        quantities[line.id] = total
    return quantities


def delete_purchase_order(session, organization_id: int, po_id: int) -> None:
    po = get_purchase_order(session, organization_id, po_id)
    if po.status != PurchaseOrderStatus.PENDING.value:
        raise BusinessLogicError('Only pending purchase orders can be deleted')
    session.delete(po)
    session.commit()
    logger.info(f"[PURCHASE] {po.po_number} deleted: org={organization_id}")
