"""
Dashboard blueprint.
Sales metrics for the current organization, cached in Redis.
"""

from flask import Blueprint, request, g, jsonify, current_app

from pharmapos.database import get_session
from pharmapos.decorators.permissions import require_role, ADMIN
from pharmapos.services.cache_service import get_cache
from pharmapos.services.dashboard_service import get_dashboard_data, get_sales_chart, get_range_bounds

dashboard_bp = Blueprint('dashboard', __name__, url_prefix='/dashboard')


@dashboard_bp.route('/', methods=['GET'])
@require_role(ADMIN)
def index():
    """Totals for ?range=daily|weekly|monthly|yearly (default daily)."""
    range_name = request.args.get('range', 'daily')
    get_range_bounds(range_name)  # validates before touching the cache

    organization_id = g.organization_id
    data = get_cache().memoize(
        organization_id,
        'dashboard',
        f'summary:{range_name}',
        lambda: get_dashboard_data(get_session(), organization_id, range_name),
        ttl=current_app.config.get('CACHE_DASHBOARD_TTL', 120)
    )
    return jsonify(data)


@dashboard_bp.route('/sales-chart', methods=['GET'])
@require_role(ADMIN)
def sales_chart():
    """Last 7 days and last 12 months of revenue."""
    organization_id = g.organization_id
    data = get_cache().memoize(
        organization_id,
        'dashboard',
        'sales_chart',
        lambda: get_sales_chart(get_session(), organization_id),
        ttl=current_app.config.get('CACHE_DASHBOARD_TTL', 120)
    )
    return jsonify(data)
