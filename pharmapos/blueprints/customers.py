"""Customers blueprint for CRUD operations and purchase history (JSON)."""
from flask import Blueprint, request, g, jsonify

from pharmapos.database import get_session
from pharmapos.decorators.permissions import require_role, profit_visible, ADMIN, SALES_ROLES
from pharmapos.services import customer_service

customers_bp = Blueprint('customers', __name__, url_prefix='/customers')


@customers_bp.route('/', methods=['GET'])
@require_role(*SALES_ROLES)
def list_customers():
    customers = customer_service.list_customers(
        get_session(),
        g.organization_id,
        search=request.args.get('q') or None,
        include_inactive=request.args.get('include_inactive') == '1',
    )
    return jsonify({'customers': [c.to_dict() for c in customers]})


@customers_bp.route('/search', methods=['GET'])
@require_role(*SALES_ROLES)
def search():
    customers = customer_service.search_customers(get_session(), g.organization_id, request.args.get('q', ''))
    return jsonify({'customers': [c.to_dict() for c in customers]})


@customers_bp.route('/', methods=['POST'])
@require_role(*SALES_ROLES)
def create_customer():
    data = request.get_json(silent=True) or {}
    customer = customer_service.create_customer(get_session(), g.organization_id, data)
    return jsonify({'status': 'success', 'customer': customer.to_dict()}), 201


@customers_bp.route('/<int:customer_id>', methods=['GET'])
@require_role(*SALES_ROLES)
def get_customer(customer_id):
    customer = customer_service.get_customer(get_session(), g.organization_id, customer_id)
    return jsonify({'customer': customer.to_dict()})


@customers_bp.route('/<int:customer_id>', methods=['PUT'])
@require_role(*SALES_ROLES)
def update_customer(customer_id):
    data = request.get_json(silent=True) or {}
    customer = customer_service.update_customer(get_session(), g.organization_id, customer_id, data)
    return jsonify({'status': 'success', 'customer': customer.to_dict()})


@customers_bp.route('/<int:customer_id>', methods=['DELETE'])
@require_role(ADMIN)
def delete_customer(customer_id):
    customer_service.delete_customer(get_session(), g.organization_id, customer_id)
    return jsonify({'status': 'success', 'message': 'Customer deleted'})


@customers_bp.route('/<int:customer_id>/orders', methods=['GET'])
@require_role(*SALES_ROLES)
def customer_orders(customer_id):
    result = customer_service.customer_orders(
        get_session(),
        g.organization_id,
        customer_id,
        page=request.args.get('page', 1, type=int),
        limit=request.args.get('limit', 20, type=int),
    )
    include_profit = profit_visible()
    return jsonify({
        'orders': [o.to_dict(include_profit=include_profit, include_items=False) for o in result['orders']],
        'pagination': result['pagination'],
    })


@customers_bp.route('/<int:customer_id>/balance', methods=['GET'])
@require_role(*SALES_ROLES)
def customer_balance(customer_id):
    return jsonify(customer_service.customer_balance(get_session(), g.organization_id, customer_id))


@customers_bp.route('/<int:customer_id>/stats', methods=['GET'])
@require_role(*SALES_ROLES)
def customer_stats(customer_id):
    return jsonify(customer_service.customer_stats(get_session(), g.organization_id, customer_id))


@customers_bp.route('/<int:customer_id>/medications', methods=['GET'])
@require_role(*SALES_ROLES)
def customer_medications(customer_id):
    medications = customer_service.customer_medications(get_session(), g.organization_id, customer_id)
    return jsonify({'medications': medications})
