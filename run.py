"""
Serve the billing API.

    PORT=8080 BILLING_CADENCE_POLICY=configured python run.py
"""
import logging
import os

from app import create_app

app = create_app()

if __name__ == '__main__':
    host = os.environ.get('HOST', '0.0.0.0')
    port = int(os.environ.get('PORT', 8080))
    debug = os.environ.get('FLASK_DEBUG', 'False').lower() == 'true'
    logging.getLogger(__name__).info(f"[SERVER] Billing API on {host}:{port} (debug={debug})")
    app.run(host=host, port=port, debug=debug)
