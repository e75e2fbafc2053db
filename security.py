"""
Security Utilities & Middleware
Provides security hardening for production deployment of the quote builder
"""
import os
import secrets
import time
from typing import Dict, Any
from flask import Flask, g, request, jsonify, Response
from flask_cors import CORS
import logging

logger = logging.getLogger(__name__)

# Probe endpoints hit every few seconds by the platform
QUIET_PATHS = ('/api/health', '/api/ping', '/api/ready')

# Responses under these prefixes can carry client contact details
PRIVATE_PREFIXES = ('/api/selection', '/api/quote')


class SecurityConfig:
    """Security configuration and validation"""

    @staticmethod
    def generate_secret_key() -> str:
        """
        Generate a cryptographically secure secret key

        Returns:
            Hex-encoded secret key
        """
        return secrets.token_hex(32)

    @staticmethod
    def validate_secret_key(secret_key: str) -> bool:
        """
        Validate that secret key is sufficiently secure

        Args:
            secret_key: Secret key to validate

        Returns:
            True if key is secure, False otherwise
        """
        if not secret_key:
            return False

        # Check minimum length (32 characters for 128-bit security)
        if len(secret_key) < 32:
            logger.warning("Secret key is too short (minimum 32 characters)")
            return False

        # Check if it's a default/weak key
        weak_keys = ['dev', 'test', 'secret', 'password', '12345']
        if any(weak in secret_key.lower() for weak in weak_keys):
            logger.warning("Secret key appears to be weak or default")
            return False

        return True

    @staticmethod
    def ensure_secret_key(config: Dict[str, Any]) -> str:
        """
        Ensure a secure secret key is configured

        Args:
            config: Application configuration dictionary

        Returns:
            Secure secret key
        """
        secret_key = config.get('SECRET_KEY')

        # If no key or invalid key, generate a secure one
        if not secret_key or not SecurityConfig.validate_secret_key(secret_key):
            if os.environ.get('FLASK_ENV') == 'production':
                logger.error("No secure SECRET_KEY in production! Generating one...")
                logger.error("Add SECRET_KEY to environment variables for persistence!")

            secret_key = SecurityConfig.generate_secret_key()
            logger.warning(f"Generated new secret key (length: {len(secret_key)})")

        return secret_key


def setup_security_headers(app: Flask):
    """
    Add security headers to all responses. Quote PDFs and selection
    responses carry client contact details, so they are never cached.

    Args:
        app: Flask application instance
    """
    @app.after_request
    def add_security_headers(response: Response) -> Response:
        headers = response.headers
        headers['X-Frame-Options'] = 'SAMEORIGIN'
        headers['X-Content-Type-Options'] = 'nosniff'
        headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        headers['Permissions-Policy'] = 'geolocation=(), microphone=(), camera=()'
        # JSON API and PDF downloads only; nothing here loads scripts
        headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'self'"

        if not app.debug:
            headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'

        if response.mimetype == 'application/pdf' or request.path.startswith(PRIVATE_PREFIXES):
            headers['Cache-Control'] = 'private, no-store'

        return response

    logger.info("Security headers configured")


def setup_cors(app: Flask, config: Dict[str, Any]):
    """
    Configure CORS for the storefront calling the quote API

    Args:
        app: Flask application instance
        config: Application configuration dictionary
    """
    cors_origins = config.get('CORS_ORIGINS', ['*'])

    if not app.debug and '*' in cors_origins:
        logger.warning("⚠️  Using wildcard CORS in production! Set CORS_ORIGINS environment variable.")

    # Selection lives in the session cookie, so credentials must be allowed.
    # Content-Disposition is exposed so browsers can read the PDF filename.
    CORS(
        app,
        resources={r"/api/*": {"origins": cors_origins}},
        methods=config.get('CORS_METHODS', ['GET', 'POST', 'OPTIONS']),
        allow_headers=config.get('CORS_ALLOW_HEADERS', ['Content-Type']),
        expose_headers=['Content-Disposition'],
        supports_credentials=True,
        max_age=3600
    )

    logger.info(f"CORS configured: origins={cors_origins}")


def sanitize_error_response(error: Exception, include_details: bool = False) -> Dict[str, Any]:
    """
    Sanitize error response to prevent information leakage

    Args:
        error: Exception object
        include_details: Whether to include detailed error info (dev only)

    Returns:
        Sanitized error response dictionary
    """
    error_response = {
        'error': 'Internal Server Error',
        'message': 'An error occurred while processing your request'
    }

    # Only include details in development
    if include_details:
        error_response['details'] = str(error)
        error_response['type'] = type(error).__name__

    return error_response


# status -> (title, message) for errors raised outside the quote blueprint
ERROR_MESSAGES = {
    400: ('Bad Request', 'The request could not be understood or was missing required parameters'),
    404: ('Not Found', 'The requested resource was not found'),
    405: ('Method Not Allowed', 'The method is not allowed for the requested URL'),
    413: ('Payload Too Large', 'The request body is too large'),
    503: ('Service Unavailable', 'The quote service is temporarily unavailable. Please try again later'),
}


def setup_error_handlers(app: Flask):
    """
    Register JSON error handlers that don't expose stack traces

    Args:
        app: Flask application instance
    """
    include_details = app.debug

    def make_handler(status: int):
        title, message = ERROR_MESSAGES[status]

        def handler(error):
            return jsonify({'success': False, 'error': title, 'message': message}), status
        return handler

    for status in ERROR_MESSAGES:
        app.register_error_handler(status, make_handler(status))

    @app.errorhandler(500)
    def internal_server_error(error):
        logger.error(f"Internal server error on {request.path}: {error}", exc_info=True)
        response = sanitize_error_response(error, include_details)
        response['success'] = False
        return jsonify(response), 500

    logger.info(f"Error handlers registered for {sorted(ERROR_MESSAGES) + [500]}")


def setup_request_logging(app: Flask):
    """
    Log each API request with its status and duration

    Args:
        app: Flask application instance
    """
    @app.before_request
    def start_timer():
        g.request_started = time.perf_counter()

    @app.after_request
    def log_response(response: Response) -> Response:
        if request.path in QUIET_PATHS:
            return response

        started = g.get('request_started')
        elapsed_ms = (time.perf_counter() - started) * 1000 if started else 0.0
        logger.info(
            f"{request.method} {request.path} -> {response.status_code} "
            f"({elapsed_ms:.0f} ms, {response.content_length or 0} bytes) "
            f"from {request.remote_addr}"
        )
        return response

    logger.info("Request logging configured")


def validate_environment_variables(required_vars: list, app: Flask) -> bool:
    """
    Check that required environment variables are set

    Args:
        required_vars: List of required environment variable names
        app: Flask application instance

    Returns:
        True when all are present
    """
    missing_vars = [var for var in required_vars if not os.environ.get(var)]

    for var in missing_vars:
        logger.warning(f"Missing environment variable: {var}")

    if missing_vars and not app.debug:
        logger.error(f"Missing required environment variables in production: {missing_vars}")
        logger.error("Sessions will not survive a restart without a fixed SECRET_KEY")

    return not missing_vars


def setup_security(app: Flask, config: Dict[str, Any]):
    """
    Setup all security features for the application

    Args:
        app: Flask application instance
        config: Application configuration dictionary
    """
    logger.info("Configuring application security...")

    app.secret_key = SecurityConfig.ensure_secret_key(config)
    setup_cors(app, config)
    setup_security_headers(app)
    setup_error_handlers(app)
    setup_request_logging(app)

    if not app.debug:
        validate_environment_variables(['SECRET_KEY'], app)

    logger.info("✅ Security configuration complete")
