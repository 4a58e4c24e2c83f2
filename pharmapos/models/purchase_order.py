"""Purchase Order model."""
import enum
from sqlalchemy import Column, BigInteger, String, Text, Numeric, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pharmapos.database import Base, BigIntId
from pharmapos.utils.formatters import money, iso


class PurchaseOrderStatus(str, enum.Enum):
    """Purchase order status."""
    PENDING = 'pending'
    ORDERED = 'ordered'
    PARTIALLY_RECEIVED = 'partially_received'
    RECEIVED = 'received'
    CANCELLED = 'cancelled'


# Allowed status transitions
PURCHASE_ORDER_TRANSITIONS = {
    PurchaseOrderStatus.PENDING.value: {PurchaseOrderStatus.ORDERED.value, PurchaseOrderStatus.CANCELLED.value},
    PurchaseOrderStatus.ORDERED.value: {
        PurchaseOrderStatus.PARTIALLY_RECEIVED.value,
        PurchaseOrderStatus.RECEIVED.value,
        PurchaseOrderStatus.CANCELLED.value,
    },
    PurchaseOrderStatus.PARTIALLY_RECEIVED.value: {PurchaseOrderStatus.RECEIVED.value},
    PurchaseOrderStatus.RECEIVED.value: set(),
    PurchaseOrderStatus.CANCELLED.value: set(),
}


class PurchaseOrder(Base):
    """Purchase Order (restock request sent to a supplier)."""

    __tablename__ = 'purchase_order'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    organization_id = Column(BigInteger, ForeignKey('organization.id'), nullable=False, index=True)
    supplier_id = Column(BigInteger, ForeignKey('supplier.id'), nullable=False)
    po_number = Column(String(60), nullable=False, unique=True)
    status = Column(String(30), nullable=False, default=PurchaseOrderStatus.PENDING.value)
    expected_delivery_date = Column(Date, nullable=True)
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    tax_percent = Column(Numeric(5, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)
    created_by = Column(BigInteger, ForeignKey('app_user.id'), nullable=True)
    received_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    organization = relationship('Organization')
    supplier = relationship('Supplier', back_populates='purchase_orders')
    lines = relationship('PurchaseOrderLine', back_populates='purchase_order', cascade='all, delete-orphan',
                         order_by='PurchaseOrderLine.id')

    def to_dict(self, include_lines=True):
        data = {
            'id': self.id,
            'po_number': self.po_number,
            'supplier_id': self.supplier_id,
            'supplier_name': self.supplier.name if self.supplier else None,
            'status': self.status,
            'expected_delivery_date': iso(self.expected_delivery_date),
            'subtotal': money(self.subtotal),
            'tax_percent': money(self.tax_percent),
            'tax_amount': money(self.tax_amount),
            'discount': money(self.discount),
            'total_amount': money(self.total_amount),
            'notes': self.notes,
            'received_at': iso(self.received_at),
            'created_at': iso(self.created_at),
        }
        if include_lines:
            data['lines'] = [line.to_dict() for line in self.lines]
        return data

    def __repr__(self):
        return f"<PurchaseOrder(id={self.id}, po_number='{self.po_number}', status='{self.status}')>"
