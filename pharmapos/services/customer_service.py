"""Customer service - customer records, purchase history and balances."""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, func
from sqlalchemy.exc import IntegrityError

from pharmapos.exceptions import BusinessLogicError, NotFoundError
from pharmapos.models import Customer, Medicine, Order, OrderItem, OrderStatus, PaymentStatus
from pharmapos.utils.formatters import quantize_money, iso

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 10
_FIELDS = ('name', 'phone', 'email', 'address', 'notes')


def get_customer(session, organization_id: int, customer_id: int) -> Customer:
    customer = session.query(Customer).filter_by(id=customer_id, organization_id=organization_id).first()
    if not customer:
        raise NotFoundError('Customer not found')
    return customer


def _apply_fields(session, organization_id: int, customer: Customer, data: Dict[str, Any]) -> None:
    for field in _FIELDS:
        if field in data:
            value = data.get(field)
            setattr(customer, field, value.strip() if isinstance(value, str) and value.strip() else None)

    if not customer.name:
        raise BusinessLogicError('Customer name is required')

    # Phone numbers identify returning customers at the counter
    if customer.phone:
        query = session.query(Customer.id).filter(
            Customer.organization_id == organization_id,
            Customer.phone == customer.phone
        )
        if customer.id:
            query = query.filter(Customer.id != customer.id)
        if query.first():
            raise BusinessLogicError(f'A customer with phone {customer.phone} already exists', status_code=409)


def create_customer(session, organization_id: int, data: Dict[str, Any]) -> Customer:
    customer = Customer(organization_id=organization_id, active=True)
    _apply_fields(session, organization_id, customer, data)
    session.add(customer)
    session.commit()
    logger.info(f"[CUSTOMER] Customer {customer.id} created: org={organization_id}")
    return customer


def update_customer(session, organization_id: int, customer_id: int, data: Dict[str, Any]) -> Customer:
    customer = get_customer(session, organization_id, customer_id)
    _apply_fields(session, organization_id, customer, data)
    session.commit()
    return customer


def delete_customer(session, organization_id: int, customer_id: int) -> None:
    """
    Delete a customer without orders; customers with orders are deactivated
    so the order history stays intact.
    """
    customer = get_customer(session, organization_id, customer_id)
    has_orders = session.query(Order.id).filter_by(customer_id=customer.id).first() is not None
    try:
        if has_orders:
            customer.active = False
        else:
            session.delete(customer)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError('Customer could not be deleted')


def list_customers(session, organization_id: int, search: Optional[str] = None,
                   include_inactive: bool = False) -> List[Customer]:
    query = session.query(Customer).filter(Customer.organization_id == organization_id)
    if not include_inactive:
        query = query.filter(Customer.active.is_(True))
    if search:
        query = query.filter(_search_filter(search))
    return query.order_by(Customer.name).all()


def _search_filter(term: str):
    like = f'%{term.strip().lower()}%'
    return or_(
        func.lower(Customer.name).like(like),
        func.lower(Customer.phone).like(like),
        func.lower(Customer.email).like(like),
    )


def search_customers(session, organization_id: int, term: str) -> List[Customer]:
    """Quick lookup for the counter (name, phone or email)."""
    if not term or not term.strip():
        return []
    return session.query(Customer).filter(
        Customer.organization_id == organization_id,
        Customer.active.is_(True),
        _search_filter(term)
    ).order_by(Customer.name).limit(SEARCH_LIMIT).all()


def customer_orders(session, organization_id: int, customer_id: int,
                    page: int = 1, limit: int = 20) -> Dict[str, Any]:
    get_customer(session, organization_id, customer_id)
    page = max(page, 1)
    limit = min(max(limit, 1), 100)

    query = session.query(Order).filter(
        Order.organization_id == organization_id,
        Order.customer_id == customer_id
    )
    total = query.count()
    orders = query.order_by(Order.created_at.desc(), Order.id.desc()) \
        .offset((page - 1) * limit).limit(limit).all()
    return {
        'orders': orders,
        'pagination': {'page': page, 'limit': limit, 'total': total,
                       'pages': (total + limit - 1) // limit},
    }


def customer_balance(session, organization_id: int, customer_id: int) -> Dict[str, Any]:
    """Amount still owed on the customer's pending orders."""
    get_customer(session, organization_id, customer_id)
    count, due = session.query(
        func.count(Order.id),
        func.sum(Order.total_amount - Order.amount_paid)
    ).filter(
        Order.organization_id == organization_id,
        Order.customer_id == customer_id,
        Order.payment_status == PaymentStatus.PENDING.value
    ).one()
    return {
        'customer_id': customer_id,
        'pending_orders': count,
        'balance': float(quantize_money(due or 0)),
    }


def customer_stats(session, organization_id: int, customer_id: int) -> Dict[str, Any]:
    customer = get_customer(session, organization_id, customer_id)
    orders = session.query(Order).filter(
        Order.organization_id == organization_id,
        Order.customer_id == customer_id
    ).all()

    completed = [o for o in orders if o.status == OrderStatus.COMPLETED.value]
    pending = [o for o in orders if o.status == OrderStatus.PENDING.value]
    last = max((o.created_at for o in orders if o.created_at), default=None)

    return {
        'customer_id': customer.id,
        'total_orders': len(orders),
        'completed_orders': len(completed),
        'pending_orders': len(pending),
        'total_spent': float(quantize_money(sum((o.total_amount for o in completed), 0))),
        'last_order_date': iso(last),
        'customer_since': iso(customer.created_at),
    }


def customer_medications(session, organization_id: int, customer_id: int) -> List[Dict[str, Any]]:
    """Medicines the customer has bought, most recent first."""
    get_customer(session, organization_id, customer_id)
    rows = session.query(
        Medicine.id,
        Medicine.name,
        Medicine.generic_name,
        func.sum(OrderItem.quantity),
        func.count(func.distinct(Order.id)),
        func.max(Order.created_at)
    ).join(OrderItem, OrderItem.medicine_id == Medicine.id) \
     .join(Order, Order.id == OrderItem.order_id) \
     .filter(
        Order.organization_id == organization_id,
        Order.customer_id == customer_id
    ).group_by(Medicine.id, Medicine.name, Medicine.generic_name).all()

    result = [
        {
            'medicine_id': medicine_id,
            'name': name,
            'generic_name': generic_name,
            'total_quantity': int(total_qty or 0),
            'times_purchased': times,
            'last_purchased_at': iso(last),
        }
        for medicine_id, name, generic_name, total_qty, times, last in rows
    ]
    result.sort(key=lambda r: r['last_purchased_at'] or '', reverse=True)
    return result
