"""Order model (counter / dealer sale)."""
import enum
from sqlalchemy import Column, BigInteger, String, Text, Numeric, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pharmapos.database import Base, BigIntId
from pharmapos.utils.formatters import money, iso


class OrderStatus(str, enum.Enum):
    """Order lifecycle status."""
    PENDING = 'pending'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class PaymentStatus(str, enum.Enum):
    """Payment state of an order."""
    PAID = 'paid'
    PENDING = 'pending'


class PaymentMethod(str, enum.Enum):
    """Accepted payment methods."""
    CASH = 'cash'
    CARD = 'card'
    UPI = 'upi'
    BANK_TRANSFER = 'bank_transfer'
    CREDIT = 'credit'


def normalize_payment_method(method):
    """
    Normalize a client supplied payment method.

    Returns the enum value or None when the method is empty.
    Raises ValueError for unknown methods.
    """
    if method is None or str(method).strip() == '':
        return None
    value = str(method).strip().lower().replace(' ', '_')
    try:
        return PaymentMethod(value).value
    except ValueError:
        raise ValueError(f'Invalid payment method: {method}')


class Order(Base):
    """Order header with a snapshot of the totals at the time of sale."""

    __tablename__ = 'pos_order'
    __table_args__ = (
        UniqueConstraint('organization_id', 'idempotency_key', name='uq_order_org_idempotency_key'),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    organization_id = Column(BigInteger, ForeignKey('organization.id'), nullable=False, index=True)
    order_number = Column(String(40), nullable=False, unique=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=True)
    customer_id = Column(BigInteger, ForeignKey('customer.id'), nullable=True)

    # Denormalized customer info (walk-in sales have no customer row)
    customer_name = Column(String(200), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    customer_email = Column(String(255), nullable=True)

    subtotal = Column(Numeric(12, 2), nullable=False, default=0)  # after line discounts, before GST
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
    discount = Column(Numeric(12, 2), nullable=False, default=0)  # global discount applied
    discount_percent = Column(Numeric(7, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    profit = Column(Numeric(12, 2), nullable=False, default=0)
    amount_paid = Column(Numeric(12, 2), nullable=False, default=0, server_default='0')

    payment_method = Column(String(20), nullable=True)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    notes = Column(Text, nullable=True)

    # Idempotency key to prevent duplicate orders on double-submit (unique per organization)
    idempotency_key = Column(String(64), nullable=True, index=True)

    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    organization = relationship('Organization')
    user = relationship('AppUser')
    customer = relationship('Customer', back_populates='orders')
    items = relationship('OrderItem', back_populates='order', cascade='all, delete-orphan',
                         order_by='OrderItem.id')

    @property
    def amount_due(self):
        """Amount still owed: total - amount_paid."""
        return (self.total_amount or 0) - (self.amount_paid or 0)

    @property
    def item_count(self):
        return sum(item.quantity for item in self.items)

    def to_dict(self, include_profit=True, include_items=True):
        data = {
            'id': self.id,
            'order_number': self.order_number,
            'user_id': self.user_id,
            'customer_id': self.customer_id,
            'customer_name': self.customer_name,
            'customer_phone': self.customer_phone,
            'customer_email': self.customer_email,
            'subtotal': money(self.subtotal),
            'tax_amount': money(self.tax_amount),
            'discount': money(self.discount),
            'discount_percent': money(self.discount_percent),
            'total_amount': money(self.total_amount),
            'amount_paid': money(self.amount_paid),
            'amount_due': money(self.amount_due),
            'payment_method': self.payment_method,
            'payment_status': self.payment_status,
            'status': self.status,
            'notes': self.notes,
            'item_count': self.item_count,
            'completed_at': iso(self.completed_at),
            'created_at': iso(self.created_at),
        }
        if include_profit:
            data['profit'] = money(self.profit)
        if include_items:
            data['items'] = [item.to_dict(include_profit=include_profit) for item in self.items]
        return data

    def __repr__(self):
        return f"<Order(id={self.id}, number='{self.order_number}', total={self.total_amount}, status='{self.status}')>"
