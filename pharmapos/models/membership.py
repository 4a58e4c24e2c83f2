"""Membership model - links users to organizations with a POS role."""
import enum
from sqlalchemy import Column, BigInteger, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pharmapos.database import Base, BigIntId


class PosRole(enum.Enum):
    """Roles a user can hold inside an organization."""
    ADMIN = 'ADMIN'
    COUNTER = 'COUNTER'      # counter staff: sells, never sees profit
    WAREHOUSE = 'WAREHOUSE'  # inventory, suppliers, purchase orders
    DEALER = 'DEALER'        # wholesale / dealer sales


# Roles allowed to see profit figures
PROFIT_VISIBLE_ROLES = {PosRole.ADMIN.value, PosRole.WAREHOUSE.value, PosRole.DEALER.value}


def can_view_profit(role):
    """Profit is hidden from the counter role only."""
    return role is not None and role in PROFIT_VISIBLE_ROLES


class Membership(Base):
    """Membership model - a user's role within one organization."""

    __tablename__ = 'membership'
    __table_args__ = (
        UniqueConstraint('user_id', 'organization_id', name='uq_membership_user_org'),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False)
    organization_id = Column(BigInteger, ForeignKey('organization.id'), nullable=False)
    role = Column(String(20), nullable=False, default=PosRole.COUNTER.value)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    user = relationship('AppUser', back_populates='memberships')
    organization = relationship('Organization', back_populates='memberships')

    def __repr__(self):
        return f"<Membership(user_id={self.user_id}, organization_id={self.organization_id}, role='{self.role}')>"

    def is_admin(self):
        """Check if member is an organization admin."""
        return self.role == PosRole.ADMIN.value
