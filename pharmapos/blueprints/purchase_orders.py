"""Purchase orders blueprint - restocking from suppliers (JSON)."""
from flask import Blueprint, request, g, jsonify

from pharmapos.blueprints.metrics import purchase_order_receipts_total
from pharmapos.database import get_session
from pharmapos.decorators.permissions import require_role, INVENTORY_ROLES
from pharmapos.exceptions import BusinessLogicError
from pharmapos.services import purchase_order_service

purchase_orders_bp = Blueprint('purchase_orders', __name__, url_prefix='/purchase-orders')


@purchase_orders_bp.route('/', methods=['GET'])
@require_role(*INVENTORY_ROLES)
def list_purchase_orders():
    orders = purchase_order_service.list_purchase_orders(
        get_session(),
        g.organization_id,
        status=request.args.get('status') or None,
        supplier_id=request.args.get('supplier_id', type=int),
    )
    return jsonify({'purchase_orders': [po.to_dict(include_lines=False) for po in orders]})


@purchase_orders_bp.route('/', methods=['POST'])
@require_role(*INVENTORY_ROLES)
def create_purchase_order():
    data = request.get_json(silent=True) or {}
    po = purchase_order_service.create_purchase_order(get_session(), g.organization_id, g.user_id, data)
    return jsonify({'status': 'success', 'purchase_order': po.to_dict()}), 201


@purchase_orders_bp.route('/<int:po_id>', methods=['GET'])
@require_role(*INVENTORY_ROLES)
def get_purchase_order(po_id):
    po = purchase_order_service.get_purchase_order(get_session(), g.organization_id, po_id)
    return jsonify({'purchase_order': po.to_dict()})


@purchase_orders_bp.route('/<int:po_id>/status', methods=['PATCH'])
@require_role(*INVENTORY_ROLES)
def update_status(po_id):
    data = request.get_json(silent=True) or {}
    status = (data.get('status') or '').strip().lower()
    if not status:
        raise BusinessLogicError('status is required')
    po = purchase_order_service.update_status(get_session(), g.organization_id, po_id, status)
    return jsonify({'status': 'success', 'purchase_order': po.to_dict()})


@purchase_orders_bp.route('/<int:po_id>/receive', methods=['POST'])
@require_role(*INVENTORY_ROLES)
def receive(po_id):
    """Body (optional): {"lines": [{"line_id": 1, "quantity": 5}]}; empty receives everything."""
    data = request.get_json(silent=True) or {}
    po = purchase_order_service.receive_purchase_order(
        get_session(), g.organization_id, po_id, data.get('lines')
    )
    purchase_order_receipts_total.labels(status=po.status).inc()
    return jsonify({'status': 'success', 'purchase_order': po.to_dict()})


@purchase_orders_bp.route('/<int:po_id>', methods=['DELETE'])
@require_role(*INVENTORY_ROLES)
def delete_purchase_order(po_id):
    purchase_order_service.delete_purchase_order(get_session(), g.organization_id, po_id)
    return jsonify({'status': 'success', 'message': 'Purchase order deleted'})
