"""
Flask application factory for the clinic CRM API
"""
import logging
import os

from flask import Flask
from flask_cors import CORS

from clinic_crm.config import get_config
from clinic_crm.logging_config import configure_logging

logger = logging.getLogger(__name__)


def create_app(config=None):
    """
    Build the app.

    Args:
        config: Config class (defaults to the one selected by APP_ENV)
    """
    config = config or get_config()
    configure_logging(log_to_file=not getattr(config, 'TESTING', False))

    app = Flask(__name__)
    app.config.from_object(config)

    # No SQLite in production
    if os.getenv('APP_ENV', '').lower() == 'production' and app.config['SQLALCHEMY_DATABASE_URI'].startswith('sqlite'):
        raise RuntimeError("SQLite is not allowed in production! Set DATABASE_URL.")

    origins = [o.strip() for o in str(app.config.get('CORS_ORIGINS', '*')).split(',') if o.strip()]
    CORS(app,
         origins=origins,
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization", "If-Match"],
         methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"])

    from clinic_crm.db import db
    import clinic_crm.models_sql  # noqa: F401  (register models)

    db.init_app(app)
    with app.app_context():
        db.create_all()

    from clinic_crm.error_handlers import register_error_handlers
    from clinic_crm.health_endpoints import health_bp
    from clinic_crm.routes_booking import booking_bp
    from clinic_crm.routes_contacts import contacts_bp
    from clinic_crm.routes_customers import customers_bp
    from clinic_crm.routes_leads import leads_bp
    from clinic_crm.routes_records import records_bp
    from clinic_crm.routes_reminders import reminders_bp
    from clinic_crm.routes_settings import settings_bp
    from clinic_crm.routes_tickets import tickets_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(contacts_bp)
    app.register_blueprint(leads_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(tickets_bp)
    app.register_blueprint(records_bp)
    app.register_blueprint(reminders_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(settings_bp)
    register_error_handlers(app)

    logger.info(f"[App] clinic CRM ready ({config.__name__})")
    return app
