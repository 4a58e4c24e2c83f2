"""Stock Move model."""
from sqlalchemy import Column, BigInteger, DateTime, Text, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pharmapos.database import Base, BigIntId
import enum


class StockMoveType(enum.Enum):
    """Stock move type enum."""
    IN = "IN"
    OUT = "OUT"
    ADJUST = "ADJUST"


class StockReferenceType(enum.Enum):
    """Stock move reference type enum."""
    ORDER = "ORDER"
    PURCHASE_ORDER = "PURCHASE_ORDER"
    MANUAL = "MANUAL"


class StockMove(Base):
    """Stock Move (inventory movement header)."""

    __tablename__ = 'stock_move'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    organization_id = Column(BigInteger, ForeignKey('organization.id'), nullable=False, index=True)
    date = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    type = Column(Enum(StockMoveType, name='stock_move_type'), nullable=False)
    reference_type = Column(Enum(StockReferenceType, name='stock_ref_type'), nullable=False)
    reference_id = Column(BigInteger, nullable=True)
    notes = Column(Text, nullable=True)

    # Relationships
    organization = relationship('Organization')
    lines = relationship('StockMoveLine', back_populates='stock_move', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<StockMove(id={self.id}, type={self.type.value}, reference_type={self.reference_type.value})>"
