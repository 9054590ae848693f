"""
Application Initialization Module
Initializes the Flask app with its infrastructure and the billing services
"""
import os
from flask import Flask
from config import get_config
from logging_config import setup_logging
from security import setup_security
from health_checks import register_health_checks
from database.connection import build_engine, get_session_factory, init_db
from database.seed import seed_database
from services.row_store import SQLAlchemyRowStore
from services.billing_save import BillingSaveOrchestrator, SaveQueue, AutoSaveScheduler
import logging

logger = logging.getLogger(__name__)


def create_app(config_class=None, row_store=None):
    """
    Application factory that creates and configures Flask app with all infrastructure

    Args:
        config_class: Configuration class; defaults to the one selected by FLASK_ENV
        row_store: Pre-built RowStore; when given, no engine is created

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__)

    app.config.from_object(config_class or get_config())

    setup_logging(app)

    logger.info("=" * 60)
    logger.info("Initializing Property Billing Service")
    logger.info("=" * 60)
    logger.info(f"Environment: {os.environ.get('FLASK_ENV', 'development')}")
    logger.info(f"Debug mode: {app.debug}")

    # Setup security (CORS, headers, error handlers)
    setup_security(app, app.config)

    if row_store is None:
        row_store = initialize_row_store(app)
    else:
        app.session_factory = getattr(row_store, 'session_factory', None)
    app.row_store = row_store

    initialize_billing_services(app, row_store)

    # Register health check endpoints
    register_health_checks(app)

    from app import register_blueprints
    register_blueprints(app)

    logger.info("Application initialization complete")
    logger.info("=" * 60)

    return app


def initialize_row_store(app):
    """
    Build the engine, session factory and RowStore from config

    Args:
        app: Flask application instance

    Returns:
        SQLAlchemyRowStore instance
    """
    engine = build_engine(app.config.get('DATABASE_URL'),
                          **app.config.get('SQLALCHEMY_ENGINE_OPTIONS', {}))
    session_factory = get_session_factory(bind=engine)
    app.engine = engine
    app.session_factory = session_factory

    if app.config.get('AUTO_CREATE_TABLES'):
        init_db(bind=engine)
    if app.config.get('SEED_DATABASE'):
        seed_database(session_factory)

    # Capability resolved once here, never re-probed per request
    return SQLAlchemyRowStore(
        session_factory,
        sort_order_capability=app.config.get('BILLING_DETAILS_SORT_ORDER', 'auto')
    )


def initialize_billing_services(app, row_store):
    """
    Attach the save orchestrator, save queue and auto-save scheduler to the app

    Args:
        app: Flask application instance
        row_store: RowStore the billing core talks to
    """
    app.billing_orchestrator = BillingSaveOrchestrator(
        row_store,
        enable_legacy_extra_charges=app.config.get('ENABLE_LEGACY_EXTRA_CHARGES_DEFAULTS', False),
        strict_natural_keys=app.config.get('BILLING_STRICT_NATURAL_KEYS', False),
        notify=lambda event: logger.info(
            f"Billing save {'succeeded' if event['success'] else 'failed'} "
            f"for property {event['property_id']}: {event['message']}"
        )
    )
    app.save_queue = SaveQueue(app.billing_orchestrator)
    app.autosave = AutoSaveScheduler(
        app.save_queue,
        delay_seconds=app.config.get('BILLING_AUTOSAVE_DELAY_SECONDS', 2.0)
    )

    logger.info(
        f"Billing services initialized "
        f"(legacy extra charges: {app.billing_orchestrator.enable_legacy_extra_charges}, "
        f"line item sort_order: {row_store.supports_line_item_sort_order})"
    )
