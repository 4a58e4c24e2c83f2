"""Order Item model."""
from sqlalchemy import Column, BigInteger, Integer, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from pharmapos.database import Base, BigIntId
from pharmapos.utils.formatters import money


class OrderItem(Base):
    """Order Item - pricing snapshot of one medicine at time of sale."""

    __tablename__ = 'order_item'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    order_id = Column(BigInteger, ForeignKey('pos_order.id'), nullable=False, index=True)
    medicine_id = Column(BigInteger, ForeignKey('medicine.id'), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    discount_percent = Column(Numeric(5, 2), nullable=False, default=0)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    gst_amount = Column(Numeric(12, 2), nullable=False, default=0)
    cost_price = Column(Numeric(10, 2), nullable=False, default=0)
    profit = Column(Numeric(12, 2), nullable=False, default=0)
    total_price = Column(Numeric(12, 2), nullable=False)

    # Relationships
    order = relationship('Order', back_populates='items')
    medicine = relationship('Medicine')

    def to_dict(self, include_profit=True):
        data = {
            'id': self.id,
            'medicine_id': self.medicine_id,
            'medicine_name': self.medicine.name if self.medicine else None,
            'quantity': self.quantity,
            'unit_price': money(self.unit_price),
            'discount_percent': money(self.discount_percent),
            'discount': money(self.discount),
            'gst_amount': money(self.gst_amount),
            'total_price': money(self.total_price),
        }
        if include_profit:
            data['cost_price'] = money(self.cost_price)
            data['profit'] = money(self.profit)
        return data

    def __repr__(self):
        return f"<OrderItem(id={self.id}, medicine_id={self.medicine_id}, quantity={self.quantity})>"
