"""Purchase Order Line model."""
from sqlalchemy import Column, BigInteger, Integer, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from pharmapos.database import Base, BigIntId
from pharmapos.utils.formatters import money


class PurchaseOrderLine(Base):
    """Purchase Order Line (ordered and received quantities of one medicine)."""

    __tablename__ = 'purchase_order_line'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    purchase_order_id = Column(BigInteger, ForeignKey('purchase_order.id'), nullable=False, index=True)
    medicine_id = Column(BigInteger, ForeignKey('medicine.id'), nullable=False)
    quantity = Column(Integer, nullable=False)
    received_quantity = Column(Integer, nullable=False, default=0, server_default='0')
    unit_cost = Column(Numeric(10, 2), nullable=False)
    total_cost = Column(Numeric(12, 2), nullable=False)

    # Relationships
    purchase_order = relationship('PurchaseOrder', back_populates='lines')
    medicine = relationship('Medicine')

    @property
    def outstanding_quantity(self):
        return max(self.quantity - (self.received_quantity or 0), 0)

    def to_dict(self):
        return {
            'id': self.id,
            'medicine_id': self.medicine_id,
            'medicine_name': self.medicine.name if self.medicine else None,
            'quantity': self.quantity,
            'received_quantity': self.received_quantity,
            'outstanding_quantity': self.outstanding_quantity,
            'unit_cost': money(self.unit_cost),
            'total_cost': money(self.total_cost),
        }

    def __repr__(self):
        return f"<PurchaseOrderLine(id={self.id}, medicine_id={self.medicine_id}, quantity={self.quantity})>"
