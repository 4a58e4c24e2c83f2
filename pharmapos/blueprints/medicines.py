"""Medicines blueprint - inventory catalog and stock adjustments (JSON)."""
from decimal import Decimal

from flask import Blueprint, request, g, jsonify, current_app

from pharmapos.blueprints.metrics import stock_adjustments_total
from pharmapos.database import get_session
from pharmapos.decorators.permissions import require_role, profit_visible, ADMIN, INVENTORY_ROLES
from pharmapos.middleware import require_login, require_organization
from pharmapos.services import inventory_service

medicines_bp = Blueprint('medicines', __name__, url_prefix='/medicines')


def _serialize(medicines):
    include_cost = profit_visible()
    return [m.to_dict(include_cost=include_cost) for m in medicines]


@medicines_bp.route('/', methods=['GET'])
@require_login
@require_organization
def list_medicines():
    """List medicines with category / stock status filters and pagination."""
    result = inventory_service.list_medicines(
        get_session(),
        g.organization_id,
        category=request.args.get('category') or None,
        stock_status=request.args.get('stock_status') or None,
        search=request.args.get('q') or None,
        include_inactive=request.args.get('include_inactive') == '1',
        page=request.args.get('page', 1, type=int),
        limit=request.args.get('limit', 20, type=int),
    )
    return jsonify({
        'medicines': _serialize(result['medicines']),
        'pagination': result['pagination'],
    })


@medicines_bp.route('/search', methods=['GET'])
@require_login
@require_organization
def search():
    """Counter lookup by name, generic name, manufacturer or batch."""
    medicines = inventory_service.search_medicines(get_session(), g.organization_id, request.args.get('q', ''))
    return jsonify({'medicines': _serialize(medicines)})


@medicines_bp.route('/low-stock', methods=['GET'])
@require_login
@require_organization
def low_stock():
    return jsonify({'medicines': _serialize(inventory_service.low_stock(get_session(), g.organization_id))})


@medicines_bp.route('/out-of-stock', methods=['GET'])
@require_login
@require_organization
def out_of_stock():
    return jsonify({'medicines': _serialize(inventory_service.out_of_stock(get_session(), g.organization_id))})


@medicines_bp.route('/expired', methods=['GET'])
@require_login
@require_organization
def expired():
    return jsonify({'medicines': _serialize(inventory_service.expired(get_session(), g.organization_id))})


@medicines_bp.route('/expiring-soon', methods=['GET'])
@require_login
@require_organization
def expiring_soon():
    days = request.args.get('days', current_app.config.get('EXPIRY_WARNING_DAYS', 30), type=int)
    medicines = inventory_service.expiring_soon(get_session(), g.organization_id, days=days)
    return jsonify({'days': days, 'medicines': _serialize(medicines)})


@medicines_bp.route('/stats', methods=['GET'])
@require_login
@require_organization
def stats():
    cost_ratio = Decimal(str(current_app.config.get('COST_PRICE_FALLBACK_RATIO', '0.7')))
    data = inventory_service.inventory_stats(get_session(), g.organization_id, cost_ratio)
    if not profit_visible():
        data.pop('stock_value', None)
    return jsonify(data)


@medicines_bp.route('/<int:medicine_id>', methods=['GET'])
@require_login
@require_organization
def get_medicine(medicine_id):
    medicine = inventory_service.get_medicine(get_session(), g.organization_id, medicine_id)
    return jsonify({'medicine': medicine.to_dict(include_cost=profit_visible())})


@medicines_bp.route('/', methods=['POST'])
@require_role(*INVENTORY_ROLES)
def create_medicine():
    data = request.get_json(silent=True) or {}
    medicine = inventory_service.create_medicine(
        get_session(), g.organization_id, data,
        default_threshold=current_app.config.get('LOW_STOCK_THRESHOLD', 10)
    )
    return jsonify({'status': 'success', 'medicine': medicine.to_dict()}), 201


@medicines_bp.route('/<int:medicine_id>', methods=['PUT'])
@require_role(*INVENTORY_ROLES)
def update_medicine(medicine_id):
    data = request.get_json(silent=True) or {}
    medicine = inventory_service.update_medicine(get_session(), g.organization_id, medicine_id, data)
    return jsonify({'status': 'success', 'medicine': medicine.to_dict()})


@medicines_bp.route('/<int:medicine_id>/stock', methods=['PATCH'])
@require_role(*INVENTORY_ROLES)
def adjust_stock(medicine_id):
    """Body: {"quantity": 5, "operation": "add" | "subtract" | "set", "notes": "..."}"""
    data = request.get_json(silent=True) or {}
    operation = data.get('operation', 'add')
    medicine = inventory_service.adjust_stock(
        get_session(),
        g.organization_id,
        medicine_id,
        data.get('quantity'),
        operation=operation,
        notes=data.get('notes'),
    )
    stock_adjustments_total.labels(operation=operation).inc()
    return jsonify({'status': 'success', 'medicine': medicine.to_dict()})


@medicines_bp.route('/<int:medicine_id>', methods=['DELETE'])
@require_role(ADMIN)
def delete_medicine(medicine_id):
    """Soft delete (deactivate)."""
    inventory_service.deactivate_medicine(get_session(), g.organization_id, medicine_id)
    return jsonify({'status': 'success', 'message': 'Medicine deactivated'})
