"""Customer model."""
from sqlalchemy import Column, BigInteger, String, Text, DateTime, ForeignKey, Boolean
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pharmapos.database import Base, BigIntId
from pharmapos.utils.formatters import iso


class Customer(Base):
    """Customer (patient or dealer account)."""

    __tablename__ = 'customer'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    organization_id = Column(BigInteger, ForeignKey('organization.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    active = Column(Boolean, nullable=False, default=True, server_default='true')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    organization = relationship('Organization')
    orders = relationship('Order', back_populates='customer')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'phone': self.phone,
            'email': self.email,
            'address': self.address,
            'notes': self.notes,
            'active': self.active,
            'created_at': iso(self.created_at),
        }

    def __repr__(self):
        return f"<Customer(id={self.id}, name='{self.name}')>"
