"""Middleware for authentication and organization context."""
from functools import wraps
from flask import session, g, jsonify
from pharmapos.database import get_session
from pharmapos.models import AppUser, Membership, Organization


def load_user_and_organization():
    """
    Load current user and organization into g (Flask's per-request global).

    Called before each request. Sets g.user, g.user_id, g.organization_id
    and g.user_role when the session carries a valid login.
    """
    g.user = None
    g.user_id = None
    g.organization_id = None
    g.user_role = None

    user_id = session.get('user_id')
    if not user_id:
        return

    db_session = get_session()
    user = db_session.query(AppUser).filter_by(id=user_id, active=True).first()
    if not user:
        session.clear()
        return

    g.user = user
    g.user_id = user.id

    organization_id = session.get('organization_id')
    if not organization_id:
        return

    # Verify the user still belongs to this organization
    membership = db_session.query(Membership).filter_by(
        user_id=user.id,
        organization_id=organization_id,
        active=True
    ).first()
    if not membership:
        session.pop('organization_id', None)
        return

    organization = db_session.query(Organization).filter_by(id=organization_id).first()
    if not organization or not organization.active or organization.is_suspended:
        session.pop('organization_id', None)
        return

    g.organization_id = organization.id
    g.user_role = membership.role


def require_login(f):
    """Decorator: 401 JSON unless a user is logged in."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            return jsonify({'status': 'error', 'message': 'Authentication required'}), 401
        return f(*args, **kwargs)
    return decorated_function


def require_organization(f):
    """
    Decorator: 401 JSON unless an organization is selected.

    Must be used AFTER require_login.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('organization_id') is None:
            return jsonify({'status': 'error', 'message': 'Select an organization first'}), 401
        return f(*args, **kwargs)
    return decorated_function
