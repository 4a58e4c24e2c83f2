"""
Authentication blueprint.
Handles login, logout and organization selection (JSON).
"""

import logging

from flask import Blueprint, request, session, g, jsonify
from flask_wtf.csrf import generate_csrf

from pharmapos.database import get_session
from pharmapos.exceptions import BusinessLogicError, AuthenticationError, UnauthorizedError
from pharmapos.middleware import require_login
from pharmapos.models import AppUser, Membership, Organization

logger = logging.getLogger(__name__)


auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


def _memberships(db_session, user_id):
    return db_session.query(Membership, Organization).join(
        Organization, Organization.id == Membership.organization_id
    ).filter(
        Membership.user_id == user_id,
        Membership.active.is_(True),
        Organization.active.is_(True),
        Organization.is_suspended.is_(False)
    ).order_by(Organization.name).all()


def _organizations_payload(memberships):
    return [
        {'id': org.id, 'slug': org.slug, 'name': org.name, 'role': membership.role}
        for membership, org in memberships
    ]


@auth_bp.route('/csrf-token', methods=['GET'])
def csrf_token():
    """Token for JSON clients; send it back in the X-CSRFToken header."""
    return jsonify({'csrf_token': generate_csrf()})


@auth_bp.route('/login', methods=['POST'])
def login():
    """Validate email + password and open a session."""
    data = request.get_json(silent=True) or request.form
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    if not email or not password:
        raise BusinessLogicError('Email and password are required')

    db_session = get_session()
    user = db_session.query(AppUser).filter_by(email=email).first()
    if not user or not user.active or not user.check_password(password):
        logger.warning(f"[AUTH] Failed login for {email}")
        raise AuthenticationError('Invalid email or password')

    memberships = _memberships(db_session, user.id)
    if not memberships:
        raise UnauthorizedError('Your account is not linked to any organization')

    session.clear()
    session['user_id'] = user.id
    session.permanent = True

    # A single organization is selected automatically
    if len(memberships) == 1:
        session['organization_id'] = memberships[0][1].id

    logger.info(f"[AUTH] User {user.id} logged in")
    return jsonify({
        'status': 'success',
        'user': user.to_dict(),
        'organizations': _organizations_payload(memberships),
        'organization_id': session.get('organization_id'),
    })


@auth_bp.route('/select-organization', methods=['POST'])
@require_login
def select_organization():
    """Switch the active organization (must be one of the user's)."""
    data = request.get_json(silent=True) or request.form
    try:
        organization_id = int(data.get('organization_id'))
    except (TypeError, ValueError):
        raise BusinessLogicError('organization_id is required')

    memberships = _memberships(get_session(), g.user.id)
    match = next(((m, org) for m, org in memberships if org.id == organization_id), None)
    if not match:
        raise UnauthorizedError('You do not have access to this organization')

    session['organization_id'] = organization_id
    return jsonify({
        'status': 'success',
        'organization': _organizations_payload([match])[0],
    })


@auth_bp.route('/logout', methods=['POST'])
def logout():
    """Clear the session (the cart goes with it)."""
    session.clear()
    return jsonify({'status': 'success'})


@auth_bp.route('/me', methods=['GET'])
@require_login
def me():
    return jsonify({
        'user': g.user.to_dict(),
        'organization_id': g.organization_id,
        'role': g.user_role,
        'organizations': _organizations_payload(_memberships(get_session(), g.user.id)),
    })
