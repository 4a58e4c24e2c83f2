"""
Stock reconciliation and inventory movements (organization-scoped).

Quantities are checked when a line is added to a cart and again, against
freshly locked rows, when an order is submitted. The decrement itself is a
conditional UPDATE so concurrent checkouts can never oversell.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import update

from pharmapos.exceptions import InsufficientStockError
from pharmapos.models import Medicine, StockMove, StockMoveLine, StockMoveType, StockReferenceType

logger = logging.getLogger(__name__)


@dataclass
class StockCheck:
    """Result of validating one requested quantity."""
    ok: bool
    max_allowed: int
    message: Optional[str] = None


@dataclass
class StockShortage:
    """A line asking for more than is available."""
    medicine_id: int
    name: str
    requested: int
    available: int

    def to_dict(self):
        return {
            'medicine_id': self.medicine_id,
            'name': self.name,
            'requested': self.requested,
            'available': self.available,
        }


def validate_quantity(requested: int, available: int, in_cart: int = 0) -> StockCheck:
    """
    Check a requested quantity against available stock.

    Args:
        requested: units being added (or the new quantity when in_cart is 0)
        available: current stock of the medicine
        in_cart: units of the same medicine already in the cart; the
            cumulative total is what gets checked

    Returns:
        StockCheck with the largest quantity that would still be accepted.
    """
    available = max(int(available or 0), 0)
    if requested > available:
        return StockCheck(
            ok=False,
            max_allowed=max(available - in_cart, 0),
            message=f'Only {available} units available in stock',
        )

    total = in_cart + requested
    if total > available:
        return StockCheck(
            ok=False,
            max_allowed=max(available - in_cart, 0),
            message=(
                f'Cannot add {requested} more. Already have {in_cart} in cart. '
                f'Max available: {available}'
            ),
        )

    return StockCheck(ok=True, max_allowed=available - in_cart)


def reconcile(lines: Iterable, stock_by_medicine: Dict[int, int]) -> List[StockShortage]:
    """
    Compare every cart line with the latest known stock.

    Medicines missing from `stock_by_medicine` count as zero stock.
    Returns all shortages, not just the first.
    """
    shortages = []
    for line in lines:
        available = stock_by_medicine.get(line.medicine_id, 0)
        if line.quantity > available:
            shortages.append(StockShortage(
                medicine_id=line.medicine_id,
                name=line.name,
                requested=line.quantity,
                available=available,
            ))
    return shortages


def ensure_available(lines: Iterable, stock_by_medicine: Dict[int, int]) -> None:
    """Raise one aggregated InsufficientStockError when any line is short."""
    shortages = reconcile(lines, stock_by_medicine)
    if shortages:
        raise InsufficientStockError(shortages)


def lock_stock(session, organization_id: int, medicine_ids: List[int]) -> Dict[int, Medicine]:
    """Lock medicine rows FOR UPDATE and return them keyed by id."""
    if not medicine_ids:
        return {}

    medicines = session.query(Medicine).filter(
        Medicine.id.in_(medicine_ids),
        Medicine.organization_id == organization_id
    ).populate_existing().with_for_update().all()
    return {m.id: m for m in medicines}


def decrement_stock(session, organization_id: int, medicine_id: int, quantity: int) -> bool:
    """
    Atomically remove `quantity` units if at least that many are in stock.

    Returns False (and changes nothing) when the stock is insufficient or the
    medicine does not belong to the organization.
    """
    result = session.execute(
        update(Medicine)
        .where(
            Medicine.id == medicine_id,
            Medicine.organization_id == organization_id,
            Medicine.quantity >= quantity
        )
        .values(quantity=Medicine.quantity - quantity, updated_at=datetime.now())
        .execution_options(synchronize_session=False)
    )
    _expire_quantity(session, medicine_id)

    if result.rowcount != 1:
        logger.warning(
            f"[STOCK] Conditional decrement rejected: org={organization_id} "
            f"medicine={medicine_id} qty={quantity}"
        )
        return False
    return True


def increment_stock(session, organization_id: int, medicine_id: int, quantity: int) -> bool:
    """Add `quantity` units to a medicine. Returns False if it was not found."""
    result = session.execute(
        update(Medicine)
        .where(
            Medicine.id == medicine_id,
            Medicine.organization_id == organization_id
        )
        .values(quantity=Medicine.quantity + quantity, updated_at=datetime.now())
        .execution_options(synchronize_session=False)
    )
    _expire_quantity(session, medicine_id)
    return result.rowcount == 1


def record_movement(
    session,
    organization_id: int,
    move_type: StockMoveType,
    reference_type: StockReferenceType,
    reference_id: Optional[int],
    lines: List[Dict],
    notes: Optional[str] = None
) -> StockMove:
    """
    Write a stock movement header and its lines.

    Each line dict needs `medicine_id` and `quantity`; `unit_cost` is optional.
    """
    move = StockMove(
        organization_id=organization_id,
        date=datetime.now(),
        type=move_type,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes
    )
    session.add(move)
    session.flush()

    for line in lines:
        session.add(StockMoveLine(
            stock_move_id=move.id,
            medicine_id=line['medicine_id'],
            quantity=line['quantity'],
            unit_cost=line.get('unit_cost')
        ))
    return move


def _expire_quantity(session, medicine_id: int) -> None:
    """Drop the cached quantity of an in-session medicine after a bulk UPDATE."""
    obj = session.identity_map.get(session.identity_key(Medicine, medicine_id))
    if obj is not None:
        session.expire(obj, ['quantity', 'updated_at'])
