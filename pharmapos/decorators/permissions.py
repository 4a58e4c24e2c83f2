"""
Permission decorators for role-based access control.
Extends the basic require_login and require_organization decorators with role checks.
"""

from functools import wraps
from flask import g, jsonify

from pharmapos.models import PosRole, can_view_profit

ADMIN = PosRole.ADMIN.value
COUNTER = PosRole.COUNTER.value
WAREHOUSE = PosRole.WAREHOUSE.value
DEALER = PosRole.DEALER.value

SALES_ROLES = (ADMIN, COUNTER, DEALER)
INVENTORY_ROLES = (ADMIN, WAREHOUSE)


def require_role(*allowed_roles):
    """
    Decorator to restrict access to specific roles.

    Usage:
        @require_role('ADMIN')
        @require_role('ADMIN', 'WAREHOUSE')
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not g.get('user'):
                return jsonify({'status': 'error', 'message': 'Authentication required'}), 401

            if not g.get('organization_id'):
                return jsonify({'status': 'error', 'message': 'Select an organization first'}), 401

            user_role = g.get('user_role')
            if not user_role or user_role not in allowed_roles:
                return jsonify({
                    'status': 'error',
                    'message': 'You do not have permission to perform this action'
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def profit_visible():
    """Whether the current user's role may see profit figures."""
    return can_view_profit(g.get('user_role'))
