"""
Order service with transactional submission - organization-scoped.

submit_order() is the only way an order gets written. Header, items, stock
decrements and the stock movement share one transaction: any failure rolls
all of them back.
"""
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from pharmapos.exceptions import (
    PosError, BusinessLogicError, NotFoundError, UnauthorizedError,
    InsufficientStockError, OrderPersistenceError
)
from pharmapos.models import (
    Order, OrderItem, Customer, OrderStatus, PaymentStatus, PosRole,
    StockMoveType, StockReferenceType, normalize_payment_method
)
from pharmapos.services import stock_service
from pharmapos.services.cache_service import invalidate_dashboard
from pharmapos.services.pricing_service import (
    CartLine, DEFAULT_COST_RATIO, calculate_totals, validate_line_inputs
)
from pharmapos.utils.formatters import quantize_money, to_decimal, to_int, parse_date

logger = logging.getLogger(__name__)

WALK_IN_CUSTOMER = 'Walk-in Customer'

MODE_COMPLETE = 'complete'
MODE_PENDING = 'pending'
SUBMIT_MODES = (MODE_COMPLETE, MODE_PENDING)

# Roles allowed to sell
SELLING_ROLES = {PosRole.ADMIN.value, PosRole.COUNTER.value, PosRole.DEALER.value}


@dataclass
class RequestedItem:
    medicine_id: int
    quantity: int
    discount_percent: Decimal


def generate_order_number() -> str:
    """ORD-<epoch millis>-<9 uppercase hex chars>."""
    millis = int(time.time() * 1000)
    return f"ORD-{millis}-{uuid.uuid4().hex[:9].upper()}"


def normalize_items(items: Optional[List[Any]]) -> List[RequestedItem]:
    """
    Turn request items (dicts or CartLines) into RequestedItems.

    Repeated medicines are merged by adding their quantities; the first
    discount wins.

    Raises:
        BusinessLogicError: empty cart or malformed quantity/discount
    """
    if not items:
        raise BusinessLogicError('Cart is empty')

    merged: Dict[int, RequestedItem] = {}
    for item in items:
        if isinstance(item, CartLine):
            medicine_id, quantity, discount = item.medicine_id, item.quantity, item.discount_percent
        else:
            try:
                medicine_id = to_int(item.get('medicine_id'), 'medicine_id')
                quantity = to_int(item.get('quantity'), 'quantity')
                discount = to_decimal(item.get('discount_percent'), 'discount_percent', default=Decimal('0'))
            except (ValueError, AttributeError) as e:
                raise BusinessLogicError(str(e) if isinstance(e, ValueError) else 'Invalid order item')

        if quantity < 1:
            raise BusinessLogicError('Quantity must be at least 1')

        if medicine_id in merged:
            merged[medicine_id].quantity += quantity
        else:
            merged[medicine_id] = RequestedItem(medicine_id, quantity, discount)

    return list(merged.values())


def _find_by_idempotency_key(session, organization_id: int, key: str) -> Optional[Order]:
    return session.query(Order).filter_by(organization_id=organization_id, idempotency_key=key).first()


def _already_processed(order: Order) -> BusinessLogicError:
    return BusinessLogicError(
        f'This order was already processed (ID: {order.id})',
        status_code=409,
        payload={'order_id': order.id, 'order_number': order.order_number}
    )


def _resolve_payment_method(payment_method: Optional[str], mode: str) -> Optional[str]:
    try:
        method = normalize_payment_method(payment_method)
    except ValueError as e:
        raise BusinessLogicError(str(e))
    if mode == MODE_COMPLETE and method is None:
        raise BusinessLogicError('Please select a payment method')
    return method


def _resolve_customer(session, organization_id: int, customer: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Customer id plus the denormalized name/phone/email stored on the order."""
    if not customer:
        return {'customer_id': None, 'customer_name': WALK_IN_CUSTOMER,
                'customer_phone': None, 'customer_email': None}

    customer_id = customer.get('id') or customer.get('customer_id')
    if customer_id:
        row = session.query(Customer).filter_by(id=customer_id, organization_id=organization_id).first()
        if not row:
            raise NotFoundError('Customer not found')
        return {'customer_id': row.id, 'customer_name': row.name,
                'customer_phone': row.phone, 'customer_email': row.email}

    return {
        'customer_id': None,
        'customer_name': (customer.get('name') or '').strip() or WALK_IN_CUSTOMER,
        'customer_phone': (customer.get('phone') or '').strip() or None,
        'customer_email': (customer.get('email') or '').strip() or None,
    }


def submit_order(
    session,
    organization_id: int,
    user_id: Optional[int],
    items: List[Any],
    customer: Optional[Dict[str, Any]] = None,
    payment_method: Optional[str] = None,
    mode: str = MODE_COMPLETE,
    discount_amount: Any = 0,
    role: Optional[str] = None,
    idempotency_key: Optional[str] = None,
    cost_ratio: Decimal = DEFAULT_COST_RATIO,
    notes: Optional[str] = None
) -> Order:
    """
    Validate, price and persist an order, decrementing stock.

    Prices, costs and GST always come from the medicine rows locked inside
    the transaction; anything the client sent besides medicine id, quantity
    and line discount is ignored.

    Args:
        items: dicts with medicine_id / quantity / discount_percent, or CartLines
        customer: {'id': ...} for a saved customer, or name/phone/email for a
            walk-in; None means "Walk-in Customer"
        mode: 'complete' (paid now) or 'pending' (saved as due)
        role: caller's organization role; must be allowed to sell
        idempotency_key: optional client key; a repeat is rejected

    Returns:
        The committed Order.

    Raises:
        BusinessLogicError, NotFoundError, InsufficientStockError,
        UnauthorizedError: nothing was written
        OrderPersistenceError: unexpected failure, nothing was written
    """
    if role is not None and role not in SELLING_ROLES:
        raise UnauthorizedError('Your role is not allowed to create orders')

    requested = normalize_items(items)

    if mode not in SUBMIT_MODES:
        raise BusinessLogicError(f'Invalid order mode: {mode}')
    method = _resolve_payment_method(payment_method, mode)

    try:
        discount = to_decimal(discount_amount, 'discount_amount', default=Decimal('0'))
    except ValueError as e:
        raise BusinessLogicError(str(e))
    if discount < 0:
        raise BusinessLogicError('Discount cannot be negative')

    try:
        # 1. Idempotency check
        if idempotency_key:
            existing = _find_by_idempotency_key(session, organization_id, idempotency_key)
            if existing:
                raise _already_processed(existing)

        customer_fields = _resolve_customer(session, organization_id, customer)

        # 2. Lock medicines and rebuild lines from server-side prices
        medicine_ids = [r.medicine_id for r in requested]
        medicines = stock_service.lock_stock(session, organization_id, medicine_ids)

        missing = [mid for mid in medicine_ids if mid not in medicines]
        if missing:
            raise NotFoundError(
                'One or more medicines were not found',
                payload={'missing_medicine_ids': missing}
            )

        lines = []
        for req in requested:
            medicine = medicines[req.medicine_id]
            if not medicine.is_active:
                raise BusinessLogicError(f'"{medicine.name}" is not available for sale')
            line = CartLine.from_medicine(medicine, req.quantity, req.discount_percent)
            validate_line_inputs(line)
            lines.append(line)

        # 3. Re-run stock reconciliation against the locked rows
        stock_service.ensure_available(lines, {m.id: m.quantity for m in medicines.values()})

        # 4. Totals from the shared calculator (profit always stored)
        totals = calculate_totals(lines, discount, include_profit=True, cost_ratio=cost_ratio)

        # 5. Order header
        completed = mode == MODE_COMPLETE
        now = datetime.now()
        order = Order(
            organization_id=organization_id,
            order_number=generate_order_number(),
            user_id=user_id,
            subtotal=totals.net_subtotal,
            tax_amount=totals.tax_amount,
            discount=totals.global_discount,
            discount_percent=totals.discount_percent,
            total_amount=totals.grand_total,
            profit=totals.profit,
            amount_paid=totals.grand_total if completed else Decimal('0'),
            payment_method=method,
            payment_status=PaymentStatus.PAID.value if completed else PaymentStatus.PENDING.value,
            status=OrderStatus.COMPLETED.value if completed else OrderStatus.PENDING.value,
            completed_at=now if completed else None,
            created_at=now,
            idempotency_key=idempotency_key or None,
            notes=notes,
            **customer_fields
        )
        session.add(order)
        try:
            session.flush()
        except IntegrityError:
            # Another submit with the same key committed after the check above
            session.rollback()
            existing = idempotency_key and _find_by_idempotency_key(session, organization_id, idempotency_key)
            if existing:
                raise _already_processed(existing)
            raise

        # 6. Items
        for lt in totals.lines:
            session.add(OrderItem(
                order_id=order.id,
                medicine_id=lt.line.medicine_id,
                quantity=lt.line.quantity,
                unit_price=quantize_money(lt.line.unit_price),
                discount_percent=quantize_money(lt.line.discount_percent),
                discount=quantize_money(lt.line_discount),
                gst_amount=quantize_money(lt.line_gst),
                cost_price=quantize_money(lt.cost_price),
                profit=quantize_money(lt.profit),
                total_price=quantize_money(lt.line_total)
            ))

        # 7. Conditional decrements; any rejection aborts the whole order
        shortages = []
        for line in lines:
            if not stock_service.decrement_stock(session, organization_id, line.medicine_id, line.quantity):
                shortages.append(stock_service.StockShortage(
                    medicine_id=line.medicine_id,
                    name=line.name,
                    requested=line.quantity,
                    available=medicines[line.medicine_id].quantity
                ))
        if shortages:
            raise InsufficientStockError(shortages)

        # 8. Stock movement
        stock_service.record_movement(
            session,
            organization_id,
            StockMoveType.OUT,
            StockReferenceType.ORDER,
            order.id,
            [{'medicine_id': lt.line.medicine_id, 'quantity': lt.line.quantity,
              'unit_cost': quantize_money(lt.cost_price)} for lt in totals.lines],
            notes=f'Order {order.order_number}'
        )

        session.commit()

    except PosError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.exception(f"[ORDER] Submission failed for org={organization_id}: {e}")
        raise OrderPersistenceError() from e

    logger.info(
        f"[ORDER] {order.order_number} created: org={organization_id} mode={mode} "
        f"total={order.total_amount} items={len(lines)}"
    )
    invalidate_dashboard(organization_id)
    return order


# =====================================================
# QUERIES
# =====================================================

def get_order(session, organization_id: int, order_id: int) -> Order:
    order = session.query(Order).filter_by(id=order_id, organization_id=organization_id).first()
    if not order:
        raise NotFoundError('Order not found')
    return order


def list_orders(
    session,
    organization_id: int,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    customer_id: Optional[int] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20
) -> Dict[str, Any]:
    """Paginated order list, newest first."""
    page = max(page, 1)
    limit = min(max(limit, 1), 100)

    query = session.query(Order).filter(Order.organization_id == organization_id)
    if status:
        query = query.filter(Order.status == status)
    if payment_status:
        query = query.filter(Order.payment_status == payment_status)
    if customer_id:
        query = query.filter(Order.customer_id == customer_id)
    try:
        start = parse_date(date_from, 'date_from')
        end = parse_date(date_to, 'date_to')
    except ValueError as e:
        raise BusinessLogicError(str(e))
    if start:
        query = query.filter(Order.created_at >= datetime.combine(start, datetime.min.time()))
    if end:
        query = query.filter(Order.created_at <= datetime.combine(end, datetime.max.time()))
    if search:
        term = f'%{search.strip()}%'
        query = query.filter(
            Order.order_number.ilike(term) |
            Order.customer_name.ilike(term) |
            Order.customer_phone.ilike(term)
        )

    total = query.count()
    orders = query.order_by(Order.created_at.desc(), Order.id.desc()) \
        .offset((page - 1) * limit).limit(limit).all()

    return {
        'orders': orders,
        'pagination': {
            'page': page,
            'limit': limit,
            'total': total,
            'pages': (total + limit - 1) // limit,
        }
    }


def list_dued_orders(session, organization_id: int) -> List[Order]:
    """Orders still awaiting payment, oldest first."""
    return session.query(Order).filter(
        Order.organization_id == organization_id,
        Order.payment_status == PaymentStatus.PENDING.value
    ).order_by(Order.created_at.asc(), Order.id.asc()).all()


def customers_with_dues(session, organization_id: int) -> List[Dict[str, Any]]:
    """Outstanding amounts grouped by customer name and phone."""
    rows = session.query(
        Order.customer_id,
        Order.customer_name,
        Order.customer_phone,
        func.count(Order.id),
        func.sum(Order.total_amount - Order.amount_paid),
        func.min(Order.created_at)
    ).filter(
        Order.organization_id == organization_id,
        Order.payment_status == PaymentStatus.PENDING.value
    ).group_by(
        Order.customer_id, Order.customer_name, Order.customer_phone
    ).all()

    result = [
        {
            'customer_id': customer_id,
            'customer_name': name or WALK_IN_CUSTOMER,
            'customer_phone': phone,
            'order_count': count,
            'amount_due': float(quantize_money(due or 0)),
            'oldest_order_at': oldest.isoformat() if oldest else None,
        }
        for customer_id, name, phone, count, due, oldest in rows
    ]
    result.sort(key=lambda r: r['amount_due'], reverse=True)
    return result
