"""Models package - exports all SQLAlchemy models."""
# Platform Models
from pharmapos.models.organization import Organization
from pharmapos.models.app_user import AppUser
from pharmapos.models.membership import Membership, PosRole, PROFIT_VISIBLE_ROLES, can_view_profit

# Business Models
from pharmapos.models.supplier import Supplier
from pharmapos.models.medicine import Medicine
from pharmapos.models.customer import Customer
from pharmapos.models.order import Order, OrderStatus, PaymentStatus, PaymentMethod, normalize_payment_method
from pharmapos.models.order_item import OrderItem
from pharmapos.models.stock_move import StockMove, StockMoveType, StockReferenceType
from pharmapos.models.stock_move_line import StockMoveLine
from pharmapos.models.purchase_order import PurchaseOrder, PurchaseOrderStatus, PURCHASE_ORDER_TRANSITIONS
from pharmapos.models.purchase_order_line import PurchaseOrderLine

__all__ = [
    # Platform
    'Organization', 'AppUser', 'Membership', 'PosRole', 'PROFIT_VISIBLE_ROLES', 'can_view_profit',
    # Business
    'Supplier', 'Medicine', 'Customer',
    'Order', 'OrderStatus', 'PaymentStatus', 'PaymentMethod', 'normalize_payment_method', 'OrderItem',
    'StockMove', 'StockMoveType', 'StockReferenceType', 'StockMoveLine',
    'PurchaseOrder', 'PurchaseOrderStatus', 'PURCHASE_ORDER_TRANSITIONS', 'PurchaseOrderLine',
]
