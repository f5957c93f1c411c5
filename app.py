"""
Flask application factory for the charge billing service.
"""
from flask import Flask, jsonify
from flask_caching import Cache
from werkzeug.exceptions import RequestEntityTooLarge
import logging
import os

logging.basicConfig(
    level=os.getenv('LOG_LEVEL', 'INFO'),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

# Charge statuses memoized per (charge, ledger version); bound in create_app
cache = Cache()

MAX_LEDGER_UPLOAD_MB = int(os.getenv('MAX_LEDGER_UPLOAD_MB', '20'))


def _flask_settings(billing_config):
    """Flask settings derived from the billing configuration."""
    return {
        'SECRET_KEY': os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production'),
        'MAX_CONTENT_LENGTH': MAX_LEDGER_UPLOAD_MB * 1024 * 1024,
        # SimpleCache is per worker; point CACHE_TYPE at Redis when scaling out
        'CACHE_TYPE': billing_config.cache.cache_type,
        'CACHE_DEFAULT_TIMEOUT': billing_config.cache.default_timeout,
    }


def create_app(config_name='default', overrides=None):
    """
    Build the billing API.

    Args:
        config_name: Configuration name (for future environments)
        overrides: Flask settings applied last, e.g. TESTING in the test suite

    Returns:
        Flask application with the /api blueprint registered
    """
    from config import config

    app = Flask(__name__)
    app.config.update(_flask_settings(config))
    if overrides:
        app.config.update(overrides)

    cache.init_app(app)
    app.logger.info(
        f"[CACHE] {app.config['CACHE_TYPE']} with {app.config['CACHE_DEFAULT_TIMEOUT']}s timeout; "
        f"cadence policy '{config.reconciliation.cadence_policy}'"
    )

    from web.views import bp as billing_bp
    app.register_blueprint(billing_bp)

    @app.errorhandler(RequestEntityTooLarge)
    def ledger_too_large(error):
        return jsonify({
            "error": "ledger_too_large",
            "message": f"Ledger uploads are limited to {MAX_LEDGER_UPLOAD_MB}MB"
        }), 413

    return app
