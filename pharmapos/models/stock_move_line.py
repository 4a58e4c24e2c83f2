"""Stock Move Line model."""
from sqlalchemy import Column, BigInteger, Integer, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from pharmapos.database import Base, BigIntId


class StockMoveLine(Base):
    """Stock Move Line (units moved for one medicine)."""

    __tablename__ = 'stock_move_line'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    stock_move_id = Column(BigInteger, ForeignKey('stock_move.id'), nullable=False)
    medicine_id = Column(BigInteger, ForeignKey('medicine.id'), nullable=False)
    quantity = Column(Integer, nullable=False)  # signed for ADJUST, positive for IN/OUT
    unit_cost = Column(Numeric(10, 2), nullable=True)

    # Relationships
    stock_move = relationship('StockMove', back_populates='lines')
    medicine = relationship('Medicine')

    def __repr__(self):
        return f"<StockMoveLine(id={self.id}, medicine_id={self.medicine_id}, quantity={self.quantity})>"
