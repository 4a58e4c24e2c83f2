"""Suppliers blueprint for CRUD operations - organization-scoped (JSON)."""
import logging

from flask import Blueprint, request, g, jsonify
from sqlalchemy import or_, func

from pharmapos.database import get_session
from pharmapos.decorators.permissions import require_role, INVENTORY_ROLES
from pharmapos.exceptions import BusinessLogicError, NotFoundError
from pharmapos.models import Supplier, Medicine, PurchaseOrder

logger = logging.getLogger(__name__)

suppliers_bp = Blueprint('suppliers', __name__, url_prefix='/suppliers')

_FIELDS = ('name', 'contact_person', 'phone', 'email', 'address', 'gst_number', 'notes')


def _get_supplier(session, supplier_id):
    supplier = session.query(Supplier).filter(
        Supplier.id == supplier_id,
        Supplier.organization_id == g.organization_id
    ).first()
    if not supplier:
        raise NotFoundError('Supplier not found')
    return supplier


def _apply_form(session, supplier, data):
    for field in _FIELDS:
        if field in data:
            value = data.get(field)
            setattr(supplier, field, value.strip() if isinstance(value, str) and value.strip() else None)
    if 'active' in data:
        supplier.active = bool(data.get('active'))

    if not supplier.name:
        raise BusinessLogicError('Supplier name is required')

    # Names are unique per organization
    query = session.query(Supplier.id).filter(
        Supplier.organization_id == g.organization_id,
        func.lower(Supplier.name) == supplier.name.lower()
    )
    if supplier.id:
        query = query.filter(Supplier.id != supplier.id)
    if query.first():
        raise BusinessLogicError(f'Supplier "{supplier.name}" already exists', status_code=409)


@suppliers_bp.route('/', methods=['GET'])
@require_role(*INVENTORY_ROLES)
def list_suppliers():
    """List suppliers, optionally filtered by ?q=."""
    session = get_session()
    search_query = request.args.get('q', '').strip()

    query = session.query(Supplier).filter(Supplier.organization_id == g.organization_id)
    if request.args.get('include_inactive') != '1':
        query = query.filter(Supplier.active.is_(True))

    if search_query:
        like = f'%{search_query.lower()}%'
        query = query.filter(or_(
            func.lower(Supplier.name).like(like),
            func.lower(Supplier.gst_number).like(like),
            func.lower(Supplier.phone).like(like),
            func.lower(Supplier.email).like(like)
        ))

    suppliers = query.order_by(Supplier.name).all()
    return jsonify({'suppliers': [s.to_dict() for s in suppliers]})


@suppliers_bp.route('/', methods=['POST'])
@require_role(*INVENTORY_ROLES)
def create_supplier():
    session = get_session()
    supplier = Supplier(organization_id=g.organization_id, active=True)
    _apply_form(session, supplier, request.get_json(silent=True) or {})

    session.add(supplier)
    session.commit()
    logger.info(f"[SUPPLIER] Supplier {supplier.id} created: org={g.organization_id}")
    return jsonify({'status': 'success', 'supplier': supplier.to_dict()}), 201


@suppliers_bp.route('/<int:supplier_id>', methods=['GET'])
@require_role(*INVENTORY_ROLES)
def get_supplier(supplier_id):
    supplier = _get_supplier(get_session(), supplier_id)
    return jsonify({'supplier': supplier.to_dict()})


@suppliers_bp.route('/<int:supplier_id>', methods=['PUT'])
@require_role(*INVENTORY_ROLES)
def update_supplier(supplier_id):
    session = get_session()
    supplier = _get_supplier(session, supplier_id)
    _apply_form(session, supplier, request.get_json(silent=True) or {})
    session.commit()
    return jsonify({'status': 'success', 'supplier': supplier.to_dict()})


@suppliers_bp.route('/<int:supplier_id>', methods=['DELETE'])
@require_role(*INVENTORY_ROLES)
def delete_supplier(supplier_id):
    """Delete a supplier; one with medicines or purchase orders is deactivated instead."""
    session = get_session()
    supplier = _get_supplier(session, supplier_id)

    in_use = (
        session.query(Medicine.id).filter_by(supplier_id=supplier.id).first() is not None or
        session.query(PurchaseOrder.id).filter_by(supplier_id=supplier.id).first() is not None
    )
    if in_use:
        supplier.active = False
        message = 'Supplier has history and was deactivated'
    else:
        session.delete(supplier)
        message = 'Supplier deleted'
    session.commit()
    return jsonify({'status': 'success', 'message': message})


@suppliers_bp.route('/<int:supplier_id>/history', methods=['GET'])
@require_role(*INVENTORY_ROLES)
def supplier_history(supplier_id):
    """Purchase orders placed with the supplier, newest first."""
    session = get_session()
    supplier = _get_supplier(session, supplier_id)
    orders = session.query(PurchaseOrder).filter(
        PurchaseOrder.organization_id == g.organization_id,
        PurchaseOrder.supplier_id == supplier.id
    ).order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).all()

    return jsonify({
        'supplier': supplier.to_dict(),
        'purchase_orders': [po.to_dict(include_lines=False) for po in orders],
        'total_purchased': round(sum(float(po.total_amount or 0) for po in orders), 2),
    })
