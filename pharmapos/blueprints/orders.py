"""
Orders blueprint - session cart, checkout and order history (JSON).

The cart lives in the Flask session, one per organization. Checkout and
direct submission both go through order_service.submit_order, which
re-prices everything from the database.
"""
import logging
from decimal import Decimal

from flask import Blueprint, request, g, jsonify, session, current_app, send_file

from pharmapos.blueprints.metrics import orders_submitted_total, order_submission_failures_total
from pharmapos.database import get_session
from pharmapos.decorators.permissions import require_role, profit_visible, SALES_ROLES
from pharmapos.exceptions import PosError, BusinessLogicError
from pharmapos.services import cart_service, inventory_service, order_service, receipt_service
from pharmapos.utils.formatters import to_int

logger = logging.getLogger(__name__)

orders_bp = Blueprint('orders', __name__, url_prefix='/orders')


# =====================================================
# CART HELPERS
# =====================================================

def get_cart() -> dict:
    """Get cart from session for current organization."""
    if 'cart_by_organization' not in session:
        session['cart_by_organization'] = {}

    organization_id = str(g.organization_id)
    if organization_id not in session['cart_by_organization']:
        session['cart_by_organization'][organization_id] = cart_service.new_cart()
        session.modified = True

    return session['cart_by_organization'][organization_id]


def save_cart(cart: dict) -> None:
    """Save cart to session for current organization."""
    if 'cart_by_organization' not in session:
        session['cart_by_organization'] = {}
    session['cart_by_organization'][str(g.organization_id)] = cart
    session.modified = True


def _cost_ratio() -> Decimal:
    return Decimal(str(current_app.config.get('COST_PRICE_FALLBACK_RATIO', '0.7')))


def _cart_response(cart, status=200, **extra):
    totals = cart_service.cart_totals(cart, include_profit=profit_visible(), cost_ratio=_cost_ratio())
    payload = {'cart': totals.to_dict(), 'discount_amount': float(cart_service.discount_amount(cart))}
    payload.update(extra)
    return jsonify(payload), status


def _int_arg(data, field, default=None):
    try:
        return to_int(data.get(field), field, default=default)
    except ValueError as e:
        raise BusinessLogicError(str(e))


# =====================================================
# CART
# =====================================================

@orders_bp.route('/cart', methods=['GET'])
@require_role(*SALES_ROLES)
def view_cart():
    return _cart_response(get_cart())


@orders_bp.route('/cart/items', methods=['POST'])
@require_role(*SALES_ROLES)
def add_to_cart():
    """Body: {"medicine_id": 1, "quantity": 2, "discount_percent": 5}"""
    data = request.get_json(silent=True) or {}
    medicine_id = _int_arg(data, 'medicine_id')
    quantity = _int_arg(data, 'quantity', default=1)

    medicine = inventory_service.get_medicine(get_session(), g.organization_id, medicine_id)
    cart = get_cart()
    cart_service.add_line(cart, medicine, quantity, data.get('discount_percent'))
    save_cart(cart)
    return _cart_response(cart, message=f'"{medicine.name}" added to cart')


@orders_bp.route('/cart/items/<int:medicine_id>', methods=['PUT', 'PATCH'])
@require_role(*SALES_ROLES)
def update_cart_item(medicine_id):
    """Body: {"quantity": 3} and/or {"discount_percent": 10}; quantity 0 removes the line."""
    data = request.get_json(silent=True) or {}
    quantity = _int_arg(data, 'quantity') if data.get('quantity') is not None else None

    medicine = inventory_service.get_medicine(get_session(), g.organization_id, medicine_id)
    cart = get_cart()
    cart_service.update_line(cart, medicine, quantity=quantity, discount_percent=data.get('discount_percent'))
    save_cart(cart)
    return _cart_response(cart)


@orders_bp.route('/cart/items/<int:medicine_id>', methods=['DELETE'])
@require_role(*SALES_ROLES)
def remove_cart_item(medicine_id):
    cart = get_cart()
    if not cart_service.remove_line(cart, medicine_id):
        raise BusinessLogicError('Medicine is not in the cart', status_code=404)
    save_cart(cart)
    return _cart_response(cart)


@orders_bp.route('/cart', methods=['DELETE'])
@require_role(*SALES_ROLES)
def clear_cart():
    cart = get_cart()
    cart_service.clear(cart)
    save_cart(cart)
    return _cart_response(cart)


@orders_bp.route('/cart/discount', methods=['POST'])
@require_role(*SALES_ROLES)
def set_cart_discount():
    """Body: {"discount_amount": 50}. Capped at the subtotal when priced."""
    data = request.get_json(silent=True) or {}
    cart = get_cart()
    cart_service.set_discount(cart, data.get('discount_amount'))
    save_cart(cart)
    return _cart_response(cart)


# =====================================================
# SUBMISSION
# =====================================================

def _submit(items, data, discount_amount):
    mode = str(data.get('mode') or order_service.MODE_COMPLETE).strip().lower()
    try:
        order = order_service.submit_order(
            get_session(),
            g.organization_id,
            g.user_id,
            items,
            customer=data.get('customer'),
            payment_method=data.get('payment_method'),
            mode=mode,
            discount_amount=discount_amount,
            role=g.user_role,
            idempotency_key=(data.get('idempotency_key') or '').strip() or None,
            cost_ratio=_cost_ratio(),
            notes=(data.get('notes') or '').strip() or None,
        )
    except PosError as e:
        order_submission_failures_total.labels(reason=type(e).__name__).inc()
        logger.warning(f"[ORDER] Submission rejected for org={g.organization_id}: {e.message}")
        raise

    orders_submitted_total.labels(mode=mode).inc()

    include_profit = profit_visible()
    payload = {
        'status': 'success',
        'message': f'Order {order.order_number} created',
        'order': order.to_dict(include_profit=include_profit),
    }
    if mode == order_service.MODE_COMPLETE:
        payload['receipt'] = receipt_service.build_receipt(order, include_profit=include_profit)
    return payload


@orders_bp.route('/checkout', methods=['POST'])
@require_role(*SALES_ROLES)
def checkout():
    """
    Submit the session cart.

    Body: {"payment_method": "cash", "mode": "complete" | "pending",
           "customer": {...}, "idempotency_key": "...", "notes": "..."}
    """
    data = request.get_json(silent=True) or {}
    cart = get_cart()
    payload = _submit(cart_service.cart_lines(cart), data, cart_service.discount_amount(cart))

    cart_service.clear(cart)
    save_cart(cart)
    return jsonify(payload), 201


@orders_bp.route('/', methods=['POST'])
@require_role(*SALES_ROLES)
def create_order():
    """
    Submit explicit items (dealer / API clients).

    Body: {"items": [{"medicine_id": 1, "quantity": 2, "discount_percent": 0}],
           "discount_amount": 0, "payment_method": "upi", "mode": "complete", ...}
    Prices are always read from the catalog.
    """
    data = request.get_json(silent=True) or {}
    items = data.get('items')
    if items is not None and not isinstance(items, list):
        raise BusinessLogicError('items must be a list')
    payload = _submit(items, data, data.get('discount_amount', 0))
    return jsonify(payload), 201


# =====================================================
# HISTORY
# =====================================================

@orders_bp.route('/', methods=['GET'])
@require_role(*SALES_ROLES)
def list_orders():
    result = order_service.list_orders(
        get_session(),
        g.organization_id,
        status=request.args.get('status') or None,
        payment_status=request.args.get('payment_status') or None,
        customer_id=request.args.get('customer_id', type=int),
        date_from=request.args.get('date_from') or None,
        date_to=request.args.get('date_to') or None,
        search=request.args.get('q') or None,
        page=request.args.get('page', 1, type=int),
        limit=request.args.get('limit', 20, type=int),
    )
    include_profit = profit_visible()
    return jsonify({
        'orders': [o.to_dict(include_profit=include_profit, include_items=False) for o in result['orders']],
        'pagination': result['pagination'],
    })


@orders_bp.route('/dued', methods=['GET'])
@require_role(*SALES_ROLES)
def dued_orders():
    """Orders saved as pending (awaiting payment)."""
    orders = order_service.list_dued_orders(get_session(), g.organization_id)
    include_profit = profit_visible()
    return jsonify({
        'orders': [o.to_dict(include_profit=include_profit, include_items=False) for o in orders],
        'total_due': round(sum(float(o.amount_due or 0) for o in orders), 2),
    })


@orders_bp.route('/customers-with-dues', methods=['GET'])
@require_role(*SALES_ROLES)
def customers_with_dues():
    return jsonify({'customers': order_service.customers_with_dues(get_session(), g.organization_id)})


@orders_bp.route('/<int:order_id>', methods=['GET'])
@require_role(*SALES_ROLES)
def get_order(order_id):
    order = order_service.get_order(get_session(), g.organization_id, order_id)
    return jsonify({'order': order.to_dict(include_profit=profit_visible())})


@orders_bp.route('/<int:order_id>/receipt.pdf', methods=['GET'])
@require_role(*SALES_ROLES)
def receipt_pdf(order_id):
    order = order_service.get_order(get_session(), g.organization_id, order_id)
    config = current_app.config
    business_info = {
        'name': config.get('BUSINESS_NAME'),
        'address': config.get('BUSINESS_ADDRESS'),
        'phone': config.get('BUSINESS_PHONE'),
        'email': config.get('BUSINESS_EMAIL'),
        'currency_symbol': config.get('CURRENCY_SYMBOL', ''),
    }
    pdf = receipt_service.render_receipt_pdf(order, business_info)
    return send_file(
        pdf,
        mimetype='application/pdf',
        as_attachment=False,
        download_name=f'receipt_{order.order_number}.pdf'
    )
