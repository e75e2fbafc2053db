"""
Health Check & Monitoring Endpoints
Readiness of the quote builder means a loaded catalog and writable data,
output and log folders.
"""
import os
import time
import psutil
from datetime import datetime, timezone
from typing import Dict, Any
from flask import Blueprint, current_app, jsonify
import logging

logger = logging.getLogger(__name__)

health_bp = Blueprint('health', __name__)

START_TIME = time.time()

SERVICE_NAME = 'tiny-home-quote-builder'
SERVICE_VERSION = '1.0.0'


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_system_metrics() -> Dict[str, Any]:
    """Memory and thread use of this worker process, or {} if unavailable"""
    try:
        process = psutil.Process()
        return {
            'memory_mb': round(process.memory_info().rss / 1024 / 1024, 1),
            'memory_percent': round(process.memory_percent(), 2),
            'threads': process.num_threads(),
        }
    except Exception as e:
        logger.warning(f"Failed to get system metrics: {e}")
        return {}


def get_uptime() -> Dict[str, Any]:
    return {
        'uptime_seconds': round(time.time() - START_TIME, 2),
        'started_at': datetime.fromtimestamp(START_TIME, timezone.utc).isoformat(),
    }


def check_quote_services(app) -> Dict[str, Any]:
    """
    Check that the catalog and pricing engine are in place

    Args:
        app: Flask application instance

    Returns:
        Dictionary of service status
    """
    services = getattr(app, 'quote_services', None)
    if services is None:
        return {'catalog_loaded': False, 'models': 0, 'delivery_policy': None, 'pdf_renderer': False}

    return {
        'catalog_loaded': services.catalog.is_loaded,
        'models': len(services.catalog.get_models()),
        'delivery_policy': services.engine.delivery_policy.name,
        'pdf_renderer': services.renderer is not None,
    }


def get_quote_activity(app) -> Dict[str, Any]:
    """Catalog size and PDF render outcomes for the metrics endpoint"""
    services = getattr(app, 'quote_services', None)
    if services is None:
        return {}

    options = services.catalog.get_options()
    return {
        'catalog': {
            'models': len(services.catalog.get_models()),
            'options': sum(len(items) for items in options.values()),
            'categories': len(options),
        },
        'renders': services.renderer.stats(),
    }


def check_filesystem(app) -> Dict[str, Dict[str, bool]]:
    """
    Check the catalog, PDF output and log folders

    Args:
        app: Flask application instance

    Returns:
        {name: {exists, writable, healthy}} per folder
    """
    folders = {
        'data': app.config['DATA_FOLDER'],
        'outputs': app.config['OUTPUT_FOLDER'],
        'logs': app.config.get('LOG_DIR', 'logs'),
    }

    status = {}
    for name, path in folders.items():
        exists = os.path.isdir(path)
        writable = exists and os.access(path, os.W_OK)
        status[name] = {'exists': exists, 'writable': writable, 'healthy': writable}
    return status


@health_bp.route('/health', methods=['GET'])
def health_check():
    """Liveness: the process is up and serving requests"""
    return jsonify({'status': 'healthy', 'timestamp': _now(), 'service': SERVICE_NAME}), 200


@health_bp.route('/ready', methods=['GET'])
def readiness_check():
    """Readiness: 200 once quotes can be priced and rendered, 503 otherwise"""
    services = check_quote_services(current_app)
    filesystem = check_filesystem(current_app)
    catalog_loaded = services['catalog_loaded']
    filesystem_healthy = all(folder['healthy'] for folder in filesystem.values())
    is_ready = catalog_loaded and filesystem_healthy

    if not is_ready:
        logger.warning(f"Not ready: catalog_loaded={catalog_loaded} filesystem_healthy={filesystem_healthy}")

    return jsonify({
        'status': 'ready' if is_ready else 'not_ready',
        'timestamp': _now(),
        'checks': {
            'services': services,
            'filesystem': filesystem,
            'catalog_loaded': catalog_loaded,
            'filesystem_healthy': filesystem_healthy,
        },
    }), 200 if is_ready else 503


@health_bp.route('/metrics', methods=['GET'])
def metrics():
    """Process, catalog and render statistics for dashboards"""
    return jsonify({
        'timestamp': _now(),
        'service': SERVICE_NAME,
        'version': SERVICE_VERSION,
        'uptime': get_uptime(),
        'system': get_system_metrics(),
        'services': check_quote_services(current_app),
        'quotes': get_quote_activity(current_app),
    }), 200


@health_bp.route('/ping', methods=['GET'])
def ping():
    return 'pong', 200


def register_health_checks(app):
    """
    Register health check blueprint with Flask app

    Args:
        app: Flask application instance
    """
    app.register_blueprint(health_bp, url_prefix='/api')
    logger.info("Health endpoints registered: /api/health, /api/ready, /api/metrics, /api/ping")
