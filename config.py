"""
Centralized Configuration for the Firefly Tiny Homes Quote Builder
Manages environment-specific settings, pricing parameters and company details.
"""
import math
import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Mapping

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, default))


class Config:
    """Base configuration with defaults"""

    # Flask Settings
    SECRET_KEY = os.environ.get('SECRET_KEY') or os.urandom(32).hex()
    MAX_CONTENT_LENGTH = 1 * 1024 * 1024  # JSON bodies only

    # CORS Settings
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')
    CORS_METHODS = ['GET', 'POST', 'OPTIONS']
    CORS_ALLOW_HEADERS = ['Content-Type', 'Authorization', 'X-Requested-With']

    # File Storage Paths
    BASE_DIR = os.path.dirname(os.path.abspath(__file__))
    DATA_FOLDER = os.environ.get('DATA_FOLDER', os.path.join(BASE_DIR, 'data'))
    OUTPUT_FOLDER = os.environ.get('OUTPUT_FOLDER', 'outputs')

    # Pricing
    TAX_RATE = _env_float('TAX_RATE', 0.08)
    BASE_DELIVERY_FEE = _env_float('BASE_DELIVERY_FEE', 500)
    FINANCING_APR = _env_float('FINANCING_APR', 0.075)
    FINANCING_TERM_YEARS = _env_float('FINANCING_TERM_YEARS', 10)

    # Delivery: 'flat' charges BASE_DELIVERY_FEE for any ZIP, 'distance' uses the per-mile rule
    DELIVERY_POLICY = os.environ.get('DELIVERY_POLICY', 'flat')
    DELIVERY_RATE_PER_MILE = _env_float('DELIVERY_RATE_PER_MILE', 12.5)
    DELIVERY_INCLUDED_MILES = _env_float('DELIVERY_INCLUDED_MILES', 120)

    # Quote readiness
    QUOTE_REQUIRE_OPTION = os.environ.get('QUOTE_REQUIRE_OPTION', 'true').lower() == 'true'
    # Client fields needed before a quote is issued; add "email" to require it too
    QUOTE_REQUIRED_CLIENT_FIELDS = os.environ.get('QUOTE_REQUIRED_CLIENT_FIELDS', 'full_name,zip').split(',')

    # PDF rendering threads
    RENDER_WORKERS = int(os.environ.get('RENDER_WORKERS', 2))

    # Company details printed on quotes
    COMPANY_INFO = {
        'name': os.environ.get('COMPANY_NAME', 'Firefly Tiny Homes'),
        'tagline': 'Custom Tiny Home Quote',
        'address': os.environ.get('COMPANY_ADDRESS', '123 Tiny Home Lane | Tiny Town, TT 12345'),
        'phone': os.environ.get('COMPANY_PHONE', '(555) 123-4567'),
        'email': os.environ.get('COMPANY_EMAIL', 'info@fireflytinyhomes.com'),
    }

    # Logging Configuration
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    LOG_FILE = os.environ.get('LOG_FILE', 'app.log')
    LOG_DIR = os.environ.get('LOG_DIR', 'logs')

    # Session Configuration
    SESSION_PERMANENT = False
    PERMANENT_SESSION_LIFETIME = timedelta(days=7)


class DevelopmentConfig(Config):
    """Development-specific configuration"""
    DEBUG = True
    TESTING = False
    LOG_LEVEL = 'DEBUG'
    # Allow all CORS in development
    CORS_ORIGINS = ['*']


class ProductionConfig(Config):
    """Production-specific configuration"""
    DEBUG = False
    TESTING = False
    # Strict CORS in production
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', 'https://fireflytinyhomes.com').split(',')
    # Force HTTPS
    PREFERRED_URL_SCHEME = 'https'
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'


class TestingConfig(Config):
    """Testing-specific configuration"""
    DEBUG = True
    TESTING = True
    SECRET_KEY = 'qb-7f3a9c1e5d2b8a4f6e0c3b9d1a7e5f2c84'
    LOG_LEVEL = 'WARNING'
    # Fixed pricing so tests don't depend on the environment
    TAX_RATE = 0.08
    BASE_DELIVERY_FEE = 500
    FINANCING_APR = 0.075
    FINANCING_TERM_YEARS = 10
    DELIVERY_POLICY = 'flat'
    QUOTE_REQUIRE_OPTION = True
    CORS_ORIGINS = ['*']


# Configuration selector
config_by_name = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig,
}


def get_config(config_name: str = None):
    """Get configuration based on FLASK_ENV environment variable"""
    env = config_name or os.environ.get('FLASK_ENV', 'development')
    return config_by_name.get(env, DevelopmentConfig)


DELIVERY_POLICIES = ('flat', 'distance')


@dataclass(frozen=True)
class PricingConfig:
    """
    Pricing parameters, validated once at startup and injected into the
    pricing engine.
    """
    tax_rate: float = 0.08
    base_delivery_fee: float = 500.0
    financing_apr: float = 0.075
    financing_term_years: float = 10.0
    delivery_policy: str = 'flat'
    delivery_rate_per_mile: float = 12.5
    delivery_included_miles: float = 120.0

    def __post_init__(self):
        for name in ('tax_rate', 'base_delivery_fee', 'financing_apr',
                     'financing_term_years', 'delivery_rate_per_mile',
                     'delivery_included_miles'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{name} must be a number, got {value!r}")
            if math.isnan(value) or math.isinf(value):
                raise ValueError(f"{name} must be finite")
            if value < 0:
                raise ValueError(f"{name} must not be negative")

        if self.tax_rate >= 1:
            raise ValueError("tax_rate is a decimal fraction (0.08 for 8%)")
        if self.financing_apr >= 1:
            raise ValueError("financing_apr is a decimal fraction (0.075 for 7.5%)")
        if self.delivery_policy not in DELIVERY_POLICIES:
            raise ValueError(
                f"delivery_policy must be one of {', '.join(DELIVERY_POLICIES)}"
            )

    @property
    def financing_term_months(self) -> int:
        return max(1, round(self.financing_term_years * 12))

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> 'PricingConfig':
        """Build from a Flask config (or any mapping using the same keys)"""
        defaults = cls()
        return cls(
            tax_rate=float(mapping.get('TAX_RATE', defaults.tax_rate)),
            base_delivery_fee=float(mapping.get('BASE_DELIVERY_FEE', defaults.base_delivery_fee)),
            financing_apr=float(mapping.get('FINANCING_APR', defaults.financing_apr)),
            financing_term_years=float(mapping.get('FINANCING_TERM_YEARS', defaults.financing_term_years)),
            delivery_policy=str(mapping.get('DELIVERY_POLICY', defaults.delivery_policy)).lower(),
            delivery_rate_per_mile=float(mapping.get('DELIVERY_RATE_PER_MILE', defaults.delivery_rate_per_mile)),
            delivery_included_miles=float(mapping.get('DELIVERY_INCLUDED_MILES', defaults.delivery_included_miles)),
        )

    @classmethod
    def from_env(cls) -> 'PricingConfig':
        return cls.from_mapping(os.environ)
