"""PharmaPOS: multi-organization pharmacy point of sale (Flask JSON API)."""
import os

from flask import Flask, jsonify
from flask_wtf.csrf import CSRFProtect, CSRFError
from werkzeug.exceptions import HTTPException

from pharmapos.database import init_db


def _error(message, status):
    return jsonify({'status': 'error', 'message': message}), status


def _init_sentry(app):
    dsn = os.getenv('SENTRY_DSN')
    if not dsn or app.config.get('ENV') != 'production':
        return
    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration

    sentry_sdk.init(
        dsn=dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=float(os.getenv('SENTRY_TRACES_SAMPLE_RATE', '0.1')),
        environment=app.config.get('ENV'),
        release=os.getenv('GIT_COMMIT', 'unknown'),
    )


def _register_error_handlers(app):
    from pharmapos.exceptions import PosError

    @app.errorhandler(CSRFError)
    def csrf_failed(e):
        app.logger.warning(f"CSRF rejected: {e.description}")
        return _error('The session expired or the CSRF token is missing.', 400)

    @app.errorhandler(PosError)
    def pos_error(error):
        log = app.logger.error if error.status_code >= 500 else app.logger.info
        log(f"{type(error).__name__} [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found(error):
        return _error('Not Found', 404)

    @app.errorhandler(405)
    def method_not_allowed(error):
        return _error('Method Not Allowed', 405)

    @app.errorhandler(Exception)
    def unhandled(error):
        if isinstance(error, HTTPException) and error.code and error.code < 500:
            return _error(error.description, error.code)
        app.logger.exception(f"Unhandled exception: {error}")
        return _error('Internal Server Error', 500)


def _register_blueprints(app):
    from pharmapos.blueprints.auth import auth_bp
    from pharmapos.blueprints.medicines import medicines_bp
    from pharmapos.blueprints.orders import orders_bp
    from pharmapos.blueprints.customers import customers_bp
    from pharmapos.blueprints.suppliers import suppliers_bp
    from pharmapos.blueprints.purchase_orders import purchase_orders_bp
    from pharmapos.blueprints.dashboard import dashboard_bp
    from pharmapos.blueprints.metrics import metrics_bp

    for bp in (auth_bp, medicines_bp, orders_bp, customers_bp, suppliers_bp,
               purchase_orders_bp, dashboard_bp, metrics_bp):
        app.register_blueprint(bp)


def create_app(config_object='config.Config'):
    """Application factory used by wsgi.py, the CLI and the tests."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # JSON clients send the token from /auth/csrf-token as X-CSRFToken
    CSRFProtect(app)
    _init_sentry(app)

    from pharmapos.services.cache_service import init_cache
    from pharmapos.blueprints.metrics import setup_metrics_instrumentation
    init_cache(app)
    setup_metrics_instrumentation(app)

    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    init_db(app)

    from pharmapos.middleware import load_user_and_organization
    app.before_request(load_user_and_organization)

    _register_error_handlers(app)
    _register_blueprints(app)

    from pharmapos.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
