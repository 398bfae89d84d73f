"""
PetCare backend application factory.

Wires the record stores, push delivery, reminder scheduler and AI summary
service into one explicitly constructed container stored on the Flask app.
"""

import logging
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

logger = logging.getLogger(__name__)


def create_app(config_name=None, start_scheduler=None, **overrides):
    """Application factory.

    ``overrides`` may replace any of the service collaborators
    (``reminder_store``, ``token_store``, ``context_store``,
    ``push_service``, ``summary_service``), which is how tests inject fakes.
    ``start_scheduler`` overrides the START_SCHEDULER setting.
    """
    app = Flask(__name__)
    app.config.from_object(config_name or 'petcare.config.Config')

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    db.init_app(app)

    from .services import build_services
    services = build_services(app, **overrides)
    app.extensions['petcare'] = services

    if app.config['STORE_BACKEND'] == 'sql':
        from . import models  # noqa: F401 - registers tables
        with app.app_context():
            db.create_all()

    from .routes import reminders_bp, devices_bp, assistant_bp
    app.register_blueprint(reminders_bp)
    app.register_blueprint(devices_bp)
    app.register_blueprint(assistant_bp)

    if start_scheduler is None:
        start_scheduler = app.config.get('START_SCHEDULER')
    if start_scheduler:
        try:
            services.scheduler.start()
            app.logger.info("✅ Reminder scheduler initialized successfully")
        except Exception as e:
            app.logger.error(f"❌ Failed to initialize reminder scheduler: {str(e)}")

    @app.route('/health')
    def health_check():
        return jsonify({'status': 'healthy', 'store_backend': app.config['STORE_BACKEND']}), 200

    return app


def get_services(app=None):
    """Return the service container registered by :func:`create_app`."""
    from flask import current_app
    return (app or current_app).extensions['petcare']
