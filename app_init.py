"""
Application Initialization Module
Properly initializes Flask app with all infrastructure components
"""
import atexit
import os
from dataclasses import dataclass
from flask import Flask
from config import PricingConfig, get_config
from logging_config import setup_logging
from security import setup_security
from health_checks import register_health_checks
from services.catalog import Catalog, load_catalog
from services.pricing import PricingEngine
from services.quote_assembler import QuotePolicy
from services.quote_pdf import CompanyInfo, RenderCoordinator
import logging

logger = logging.getLogger(__name__)


@dataclass
class QuoteServices:
    """Long-lived objects shared by every request"""
    catalog: Catalog
    engine: PricingEngine
    policy: QuotePolicy
    company: CompanyInfo
    renderer: RenderCoordinator


def create_app(config_name: str = None):
    """
    Application factory that creates and configures Flask app with all infrastructure

    Args:
        config_name: 'development', 'production' or 'testing'; FLASK_ENV when omitted

    Returns:
        Configured Flask application instance
    """
    # Create Flask app
    app = Flask(__name__)

    # Load configuration
    config_class = get_config(config_name)
    app.config.from_object(config_class)

    setup_logging(app)

    logger.info("=" * 60)
    logger.info("🚀 Initializing Firefly Tiny Homes Quote Builder")
    logger.info("=" * 60)
    logger.info(f"Environment: {config_name or os.environ.get('FLASK_ENV', 'development')}")
    logger.info(f"Debug mode: {app.debug}")

    # Setup security (CORS, headers, error handlers)
    setup_security(app, app.config)

    # Create required directories
    create_required_directories(app)

    # Catalog, pricing and PDF rendering
    app.quote_services = initialize_quote_services(app)

    # Register API routes
    from app import register_blueprints
    register_blueprints(app)

    # Register health check endpoints
    register_health_checks(app)

    logger.info("✅ Application initialization complete")
    logger.info("=" * 60)

    return app


def create_required_directories(app):
    """
    Create all required application directories

    Args:
        app: Flask application instance
    """
    directories = [
        app.config['OUTPUT_FOLDER'],
        app.config['DATA_FOLDER'],
        app.config.get('LOG_DIR', 'logs'),
    ]

    for directory in directories:
        try:
            os.makedirs(directory, exist_ok=True)
            logger.debug(f"Directory ensured: {directory}")
        except OSError as e:
            logger.error(f"Failed to create directory {directory}: {e}")

    logger.info(f"✅ Created {len(directories)} required directories")


def initialize_quote_services(app) -> QuoteServices:
    """
    Build the catalog, pricing engine and render coordinator from app config

    Args:
        app: Flask application instance

    Returns:
        QuoteServices instance

    Raises:
        ValueError: If the pricing configuration is invalid
    """
    pricing_config = PricingConfig.from_mapping(app.config)
    logger.info(
        f"Pricing: tax={pricing_config.tax_rate} delivery={pricing_config.delivery_policy} "
        f"apr={pricing_config.financing_apr} term={pricing_config.financing_term_months}mo"
    )

    catalog = load_catalog(app.config['DATA_FOLDER'])
    if not catalog.is_loaded:
        logger.warning("⚠️  Catalog is empty - check DATA_FOLDER")

    company = CompanyInfo.from_dict(app.config.get('COMPANY_INFO'))
    renderer = RenderCoordinator(company=company, max_workers=app.config.get('RENDER_WORKERS', 2))
    atexit.register(renderer.shutdown, wait=False)

    return QuoteServices(
        catalog=catalog,
        engine=PricingEngine(pricing_config),
        policy=QuotePolicy.from_mapping(app.config),
        company=company,
        renderer=renderer,
    )


def get_quote_services(app) -> QuoteServices:
    """
    Get the quote services from the app, creating them if needed

    Args:
        app: Flask application instance

    Returns:
        QuoteServices instance
    """
    if not hasattr(app, 'quote_services'):
        logger.warning("Quote services not initialized, creating new instance")
        app.quote_services = initialize_quote_services(app)

    return app.quote_services


def shutdown_quote_services(app, wait: bool = True):
    """
    Stop the render pool and drop its exit hook

    Args:
        app: Flask application instance
        wait: Whether to wait for running renders to finish
    """
    services = getattr(app, 'quote_services', None)
    if services is None:
        return

    atexit.unregister(services.renderer.shutdown)
    services.renderer.shutdown(wait=wait)
    logger.info("Render pool shut down")
