"""
Inventory service - medicine CRUD, stock queries and manual adjustments.
All functions are scoped to one organization.
"""
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, func
from sqlalchemy.exc import IntegrityError

from pharmapos.exceptions import BusinessLogicError, NotFoundError
from pharmapos.models import Medicine, Supplier, StockMoveType, StockReferenceType
from pharmapos.services import stock_service
from pharmapos.utils.formatters import to_decimal, to_int, parse_date, quantize_money

logger = logging.getLogger(__name__)

STOCK_STATUSES = ('in_stock', 'low_stock', 'out_of_stock')
ADJUST_OPERATIONS = ('add', 'subtract', 'set')
SEARCH_LIMIT = 50

# Editable fields and how to parse them
_TEXT_FIELDS = ('name', 'generic_name', 'manufacturer', 'batch_number', 'category', 'description')


def get_medicine(session, organization_id: int, medicine_id: int) -> Medicine:
    medicine = session.query(Medicine).filter_by(id=medicine_id, organization_id=organization_id).first()
    if not medicine:
        raise NotFoundError('Medicine not found')
    return medicine


def _apply_fields(session, organization_id: int, medicine: Medicine, data: Dict[str, Any], creating: bool,
                  default_threshold: int = 10) -> None:
    """Validate and copy request data onto a medicine."""
    for field in _TEXT_FIELDS:
        if field in data:
            value = data.get(field)
            setattr(medicine, field, value.strip() if isinstance(value, str) and value.strip() else None)

    if creating or 'name' in data:
        if not medicine.name:
            raise BusinessLogicError('Medicine name is required')

    try:
        if creating or 'selling_price' in data:
            medicine.selling_price = to_decimal(data.get('selling_price'), 'selling_price')
        if 'cost_price' in data:
            value = data.get('cost_price')
            medicine.cost_price = None if value in (None, '') else to_decimal(value, 'cost_price')
        if creating or 'gst_per_unit' in data:
            medicine.gst_per_unit = to_decimal(data.get('gst_per_unit'), 'gst_per_unit', default=Decimal('0'))
        if creating:
            medicine.quantity = to_int(data.get('quantity'), 'quantity', default=0)
        if creating or 'low_stock_threshold' in data:
            medicine.low_stock_threshold = to_int(data.get('low_stock_threshold'), 'low_stock_threshold', default=default_threshold)
        if 'expiry_date' in data:
            medicine.expiry_date = parse_date(data.get('expiry_date'), 'expiry_date')
    except ValueError as e:
        raise BusinessLogicError(str(e))

    if 'is_active' in data:
        medicine.is_active = bool(data.get('is_active'))

    if 'supplier_id' in data:
        supplier_id = data.get('supplier_id')
        if supplier_id:
            supplier = session.query(Supplier).filter_by(id=supplier_id, organization_id=organization_id).first()
            if not supplier:
                raise NotFoundError('Supplier not found')
            medicine.supplier_id = supplier.id
        else:
            medicine.supplier_id = None

    if medicine.selling_price < 0:
        raise BusinessLogicError('Selling price cannot be negative')
    if medicine.cost_price is not None and medicine.cost_price < 0:
        raise BusinessLogicError('Cost price cannot be negative')
    if (medicine.gst_per_unit or 0) < 0:
        raise BusinessLogicError('GST cannot be negative')
    if (medicine.quantity or 0) < 0:
        raise BusinessLogicError('Quantity cannot be negative')
    if (medicine.low_stock_threshold or 0) < 0:
        raise BusinessLogicError('Low stock threshold cannot be negative')


def _commit_unique(session, medicine: Medicine) -> None:
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError(
            f'A medicine named "{medicine.name}" with batch "{medicine.batch_number or "-"}" already exists',
            status_code=409
        )


def create_medicine(session, organization_id: int, data: Dict[str, Any], default_threshold: int = 10) -> Medicine:
    """Create a medicine; opening stock is recorded as a manual IN movement."""
    medicine = Medicine(organization_id=organization_id, is_active=True)
    _apply_fields(session, organization_id, medicine, data, creating=True, default_threshold=default_threshold)
    session.add(medicine)
    session.flush()

    if medicine.quantity:
        stock_service.record_movement(
            session, organization_id, StockMoveType.IN, StockReferenceType.MANUAL, medicine.id,
            [{'medicine_id': medicine.id, 'quantity': medicine.quantity, 'unit_cost': medicine.cost_price}],
            notes='Opening stock'
        )

    _commit_unique(session, medicine)
    logger.info(f"[INVENTORY] Medicine {medicine.id} created: org={organization_id} name={medicine.name}")
    return medicine


def update_medicine(session, organization_id: int, medicine_id: int, data: Dict[str, Any]) -> Medicine:
    """Update a medicine. Stock is changed through adjust_stock only."""
    medicine = get_medicine(session, organization_id, medicine_id)
    if 'quantity' in data:
        raise BusinessLogicError('Use the stock adjustment endpoint to change quantity')
    _apply_fields(session, organization_id, medicine, data, creating=False)
    _commit_unique(session, medicine)
    return medicine


def deactivate_medicine(session, organization_id: int, medicine_id: int) -> Medicine:
    """Soft delete: order history keeps pointing at the row."""
    medicine = get_medicine(session, organization_id, medicine_id)
    medicine.is_active = False
    session.commit()
    logger.info(f"[INVENTORY] Medicine {medicine_id} deactivated: org={organization_id}")
    return medicine


def adjust_stock(
    session,
    organization_id: int,
    medicine_id: int,
    quantity: Any,
    operation: str = 'add',
    notes: Optional[str] = None
) -> Medicine:
    """
    Manually change a medicine's stock.

    Args:
        operation: 'add', 'subtract' or 'set'
        quantity: non-negative whole number

    Raises:
        BusinessLogicError: unknown operation, bad quantity or a result below zero
    """
    if operation not in ADJUST_OPERATIONS:
        raise BusinessLogicError(f'Invalid operation: {operation}. Use add, subtract or set')
    try:
        qty = to_int(quantity, 'quantity')
    except ValueError as e:
        raise BusinessLogicError(str(e))
    if qty < 0:
        raise BusinessLogicError('Quantity cannot be negative')

    medicine = stock_service.lock_stock(session, organization_id, [medicine_id]).get(medicine_id)
    if not medicine:
        raise NotFoundError('Medicine not found')

    current = medicine.quantity or 0
    if operation == 'add':
        delta = qty
    elif operation == 'subtract':
        if qty > current:
            raise BusinessLogicError(f'Cannot subtract {qty} units. Only {current} in stock')
        delta = -qty
    else:
        delta = qty - current

    if delta == 0:
        return medicine

    try:
        if delta > 0:
            stock_service.increment_stock(session, organization_id, medicine_id, delta)
        elif not stock_service.decrement_stock(session, organization_id, medicine_id, -delta):
            raise BusinessLogicError('Stock changed while adjusting. Please retry', status_code=409)

        stock_service.record_movement(
            session, organization_id, StockMoveType.ADJUST, StockReferenceType.MANUAL, medicine_id,
            [{'medicine_id': medicine_id, 'quantity': delta, 'unit_cost': medicine.cost_price}],
            notes=notes or f'Manual {operation} ({qty})'
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[INVENTORY] Stock adjusted: org={organization_id} medicine={medicine_id} delta={delta}")
    return medicine


# =====================================================
# QUERIES
# =====================================================

def _base_query(session, organization_id: int, include_inactive: bool = False):
    query = session.query(Medicine).filter(Medicine.organization_id == organization_id)
    if not include_inactive:
        query = query.filter(Medicine.is_active.is_(True))
    return query


def _stock_status_filter(query, status: str):
    if status == 'out_of_stock':
        return query.filter(Medicine.quantity <= 0)
    if status == 'low_stock':
        return query.filter(Medicine.quantity > 0, Medicine.quantity <= Medicine.low_stock_threshold)
    if status == 'in_stock':
        return query.filter(Medicine.quantity > Medicine.low_stock_threshold)
    raise BusinessLogicError(f'Invalid stock status: {status}')


def list_medicines(
    session,
    organization_id: int,
    category: Optional[str] = None,
    stock_status: Optional[str] = None,
    search: Optional[str] = None,
    include_inactive: bool = False,
    page: int = 1,
    limit: int = 20
) -> Dict[str, Any]:
    """Paginated, filtered medicine list sorted by name."""
    page = max(page, 1)
    limit = min(max(limit, 1), 100)

    query = _base_query(session, organization_id, include_inactive)
    if category:
        query = query.filter(Medicine.category == category)
    if stock_status:
        query = _stock_status_filter(query, stock_status)
    if search:
        query = query.filter(_search_filter(search))

    total = query.count()
    medicines = query.order_by(Medicine.name, Medicine.id).offset((page - 1) * limit).limit(limit).all()
    return {
        'medicines': medicines,
        'pagination': {
            'page': page,
            'limit': limit,
            'total': total,
            'pages': (total + limit - 1) // limit,
        }
    }


def _search_filter(term: str):
    like = f'%{term.strip().lower()}%'
    return or_(
        func.lower(Medicine.name).like(like),
        func.lower(Medicine.generic_name).like(like),
        func.lower(Medicine.manufacturer).like(like),
        func.lower(Medicine.batch_number).like(like),
    )


def search_medicines(session, organization_id: int, term: str, limit: int = SEARCH_LIMIT) -> List[Medicine]:
    """Active medicines matching name, generic name, manufacturer or batch."""
    if not term or not term.strip():
        return []
    return _base_query(session, organization_id) \
        .filter(_search_filter(term)) \
        .order_by(Medicine.name) \
        .limit(min(limit, SEARCH_LIMIT)).all()


def low_stock(session, organization_id: int) -> List[Medicine]:
    return _stock_status_filter(_base_query(session, organization_id), 'low_stock') \
        .order_by(Medicine.quantity, Medicine.name).all()


def out_of_stock(session, organization_id: int) -> List[Medicine]:
    return _stock_status_filter(_base_query(session, organization_id), 'out_of_stock') \
        .order_by(Medicine.name).all()


def expired(session, organization_id: int, today: Optional[date] = None) -> List[Medicine]:
    today = today or date.today()
    return _base_query(session, organization_id).filter(
        Medicine.expiry_date.isnot(None),
        Medicine.expiry_date < today
    ).order_by(Medicine.expiry_date).all()


def expiring_soon(session, organization_id: int, days: int = 30, today: Optional[date] = None) -> List[Medicine]:
    """Not yet expired, but expiring within `days`."""
    today = today or date.today()
    return _base_query(session, organization_id).filter(
        Medicine.expiry_date.isnot(None),
        Medicine.expiry_date >= today,
        Medicine.expiry_date <= today + timedelta(days=days)
    ).order_by(Medicine.expiry_date).all()


def inventory_stats(session, organization_id: int, cost_ratio: Decimal, today: Optional[date] = None) -> Dict[str, Any]:
    """
    Counts and stock value of the active catalog.

    Stock value is at cost; medicines without a cost price use the same
    fallback ratio as the pricing calculator.
    """
    today = today or date.today()
    medicines = _base_query(session, organization_id).all()

    stock_value = Decimal('0')
    retail_value = Decimal('0')
    for m in medicines:
        qty = max(m.quantity or 0, 0)
        cost = m.cost_price if m.cost_price is not None else m.selling_price * cost_ratio
        stock_value += cost * qty
        retail_value += m.selling_price * qty

    return {
        'total_medicines': len(medicines),
        'total_units': sum(max(m.quantity or 0, 0) for m in medicines),
        'stock_value': float(quantize_money(stock_value)),
        'retail_value': float(quantize_money(retail_value)),
        'low_stock_count': sum(1 for m in medicines if m.stock_status == 'low_stock'),
        'out_of_stock_count': sum(1 for m in medicines if m.stock_status == 'out_of_stock'),
        'expired_count': sum(1 for m in medicines if m.expiry_date and m.expiry_date < today),
        'categories': sorted({m.category for m in medicines if m.category}),
    }
