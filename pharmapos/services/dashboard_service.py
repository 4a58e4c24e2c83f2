"""
Dashboard service for the pharmacy POS.
Provides aggregated sales metrics for a date range and the sales chart.

Aggregation happens in Python over the range's orders so the same code runs
on Postgres and SQLite.
"""

from collections import OrderedDict
from datetime import datetime, date, time, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import func

from pharmapos.exceptions import BusinessLogicError
from pharmapos.models import Medicine, Order, OrderItem, OrderStatus
from pharmapos.utils.formatters import quantize_money

RANGES = {
    'daily': None,  # since midnight
    'weekly': 7,
    'monthly': 30,
    'yearly': 365,
}

TOP_MEDICINES_LIMIT = 5


def get_range_bounds(range_name: str, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """
    Start and end datetimes for a named range.

    Returns:
        tuple: (start_dt, end_dt), end is `now`
    """
    if range_name not in RANGES:
        raise BusinessLogicError(f'Invalid range: {range_name}. Use daily, weekly, monthly or yearly')
    now = now or datetime.now()
    days = RANGES[range_name]
    if days is None:
        start_dt = datetime.combine(now.date(), time.min)
    else:
        start_dt = now - timedelta(days=days)
    return start_dt, now


def get_dashboard_data(session, organization_id: int, range_name: str = 'daily',
                       now: Optional[datetime] = None, include_profit: bool = True) -> Dict[str, Any]:
    """
    Sales figures for the organization in the requested range.

    Cancelled orders are excluded from revenue, profit and items sold.
    """
    start_dt, end_dt = get_range_bounds(range_name, now)

    orders = session.query(Order).filter(
        Order.organization_id == organization_id,
        Order.created_at >= start_dt,
        Order.created_at <= end_dt
    ).all()
    counted = [o for o in orders if o.status != OrderStatus.CANCELLED.value]

    revenue = sum((o.total_amount for o in counted), Decimal('0'))
    profit = sum((o.profit for o in counted), Decimal('0'))

    order_ids = [o.id for o in counted]
    items_sold = 0
    top_medicines = []
    if order_ids:
        items_sold = session.query(func.coalesce(func.sum(OrderItem.quantity), 0)).filter(
            OrderItem.order_id.in_(order_ids)
        ).scalar() or 0

        rows = session.query(
            Medicine.id,
            Medicine.name,
            func.sum(OrderItem.quantity).label('quantity'),
            func.sum(OrderItem.total_price).label('revenue')
        ).join(OrderItem, OrderItem.medicine_id == Medicine.id).filter(
            OrderItem.order_id.in_(order_ids)
        ).group_by(Medicine.id, Medicine.name).order_by(
            func.sum(OrderItem.quantity).desc(), Medicine.name
        ).limit(TOP_MEDICINES_LIMIT).all()

        top_medicines = [
            {
                'medicine_id': row.id,
                'name': row.name,
                'quantity': int(row.quantity or 0),
                'revenue': float(quantize_money(row.revenue or 0)),
            }
            for row in rows
        ]

    low_stock_count = session.query(func.count(Medicine.id)).filter(
        Medicine.organization_id == organization_id,
        Medicine.is_active.is_(True),
        Medicine.quantity > 0,
        Medicine.quantity <= Medicine.low_stock_threshold
    ).scalar() or 0

    data = {
        'range': range_name,
        'start': start_dt.isoformat(),
        'end': end_dt.isoformat(),
        'total_orders': len(orders),
        'completed_orders': sum(1 for o in orders if o.status == OrderStatus.COMPLETED.value),
        'pending_orders': sum(1 for o in orders if o.status == OrderStatus.PENDING.value),
        'revenue': float(quantize_money(revenue)),
        'items_sold': int(items_sold),
        'low_stock_count': int(low_stock_count),
        'top_medicines': top_medicines,
    }
    if include_profit:
        data['profit'] = float(quantize_money(profit))
    return data


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value)).date()


def _month_start(d: date, months_back: int) -> date:
    year, month = d.year, d.month - months_back
    while month < 1:
        month += 12
        year -= 1
    return date(year, month, 1)


def get_sales_chart(session, organization_id: int, today: Optional[date] = None) -> Dict[str, Any]:
    """
    Revenue and order counts for the last 7 days (by date) and the last
    12 months (by month), oldest first. Empty buckets are zero.
    """
    today = today or date.today()
    first_day = today - timedelta(days=6)
    first_month = _month_start(today, 11)

    daily = OrderedDict(
        ((first_day + timedelta(days=i)).isoformat(), {'revenue': Decimal('0'), 'orders': 0})
        for i in range(7)
    )
    monthly = OrderedDict(
        (_month_start(today, i).strftime('%Y-%m'), {'revenue': Decimal('0'), 'orders': 0})
        for i in range(11, -1, -1)
    )

    rows = session.query(Order.created_at, Order.total_amount).filter(
        Order.organization_id == organization_id,
        Order.status != OrderStatus.CANCELLED.value,
        Order.created_at >= datetime.combine(first_month, time.min)
    ).all()

    for created_at, total in rows:
        day = _as_date(created_at)
        amount = Decimal(str(total or 0))
        month_key = day.strftime('%Y-%m')
        if month_key in monthly:
            monthly[month_key]['revenue'] += amount
            monthly[month_key]['orders'] += 1
        day_key = day.isoformat()
        if day_key in daily:
            daily[day_key]['revenue'] += amount
            daily[day_key]['orders'] += 1

    return {
        'daily': [
            {'date': key, 'revenue': float(quantize_money(v['revenue'])), 'orders': v['orders']}
            for key, v in daily.items()
        ],
        'monthly': [
            {'month': key, 'revenue': float(quantize_money(v['revenue'])), 'orders': v['orders']}
            for key, v in monthly.items()
        ],
    }
