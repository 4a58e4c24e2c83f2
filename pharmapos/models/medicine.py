"""Medicine model (inventory item)."""
from datetime import date
from sqlalchemy import Column, BigInteger, String, Text, Boolean, Integer, Numeric, Date, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pharmapos.database import Base, BigIntId
from pharmapos.utils.formatters import money, iso


class Medicine(Base):
    """Medicine model - one sellable batch of a medicine."""

    __tablename__ = 'medicine'
    __table_args__ = (
        UniqueConstraint('organization_id', 'name', 'batch_number', name='uq_medicine_org_name_batch'),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    organization_id = Column(BigInteger, ForeignKey('organization.id'), nullable=False, index=True)
    supplier_id = Column(BigInteger, ForeignKey('supplier.id'), nullable=True)
    name = Column(String(200), nullable=False)
    generic_name = Column(String(200), nullable=True)
    manufacturer = Column(String(200), nullable=True)
    batch_number = Column(String(100), nullable=True)
    category = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    selling_price = Column(Numeric(10, 2), nullable=False)
    cost_price = Column(Numeric(10, 2), nullable=True)  # NULL = unknown, priced with the fallback ratio
    gst_per_unit = Column(Numeric(10, 2), nullable=False, default=0, server_default='0')
    quantity = Column(Integer, nullable=False, default=0, server_default='0')
    low_stock_threshold = Column(Integer, nullable=False, default=10, server_default='10')
    expiry_date = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    organization = relationship('Organization')
    supplier = relationship('Supplier', back_populates='medicines')

    def __repr__(self):
        return f"<Medicine(id={self.id}, name='{self.name}', quantity={self.quantity})>"

    @property
    def stock_status(self):
        """in_stock, low_stock or out_of_stock."""
        qty = self.quantity or 0
        if qty <= 0:
            return 'out_of_stock'
        if qty <= (self.low_stock_threshold or 0):
            return 'low_stock'
        return 'in_stock'

    @property
    def is_expired(self):
        return self.expiry_date is not None and self.expiry_date < date.today()

    def to_dict(self, include_cost=True):
        data = {
            'id': self.id,
            'name': self.name,
            'generic_name': self.generic_name,
            'manufacturer': self.manufacturer,
            'batch_number': self.batch_number,
            'category': self.category,
            'description': self.description,
            'selling_price': money(self.selling_price),
            'gst_per_unit': money(self.gst_per_unit or 0),
            'quantity': self.quantity,
            'low_stock_threshold': self.low_stock_threshold,
            'expiry_date': iso(self.expiry_date),
            'is_active': self.is_active,
            'stock_status': self.stock_status,
            'supplier_id': self.supplier_id,
        }
        if include_cost:
            data['cost_price'] = money(self.cost_price) if self.cost_price is not None else None
        return data
