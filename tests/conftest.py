"""
Pytest configuration and shared fixtures
"""
import os
import sys
import pytest
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

DATA_FOLDER = project_root / 'data'


@pytest.fixture
def app_config():
    """Fixture providing test configuration"""
    from config import TestingConfig
    return TestingConfig


@pytest.fixture
def test_env_vars():
    """Fixture providing test environment variables"""
    original_env = os.environ.copy()

    # Set test environment variables
    os.environ['FLASK_ENV'] = 'testing'
    os.environ['SECRET_KEY'] = 'qb-env-4b1d9e7a2c5f8e3d6a0b9c2e5f8a1d4c7'
    os.environ['TAX_RATE'] = '0.0625'
    os.environ['BASE_DELIVERY_FEE'] = '750'
    os.environ['DELIVERY_POLICY'] = 'distance'

    yield

    # Restore original environment
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def pricing_config():
    """Default pricing: 8% tax, $500 delivery, 7.5% APR over 10 years"""
    from config import PricingConfig
    return PricingConfig()


@pytest.fixture
def engine(pricing_config):
    from services.pricing import PricingEngine
    return PricingEngine(pricing_config)


@pytest.fixture
def magnolia():
    from services.catalog import Model, ModelSpecs
    return Model(
        id='aps-630',
        code='APS-630',
        name='The Magnolia',
        base_price=71475.0,
        description='1 BR / 1 Bath W/ 6ft Porch',
        specs=ModelSpecs(length="30'", width="8'6\"", height="13'6\"",
                         weight='16,000 lbs', bedrooms=1, bathrooms=1),
        features=('6-foot covered porch', 'Full kitchen with appliances'),
    )


@pytest.fixture
def sample_options():
    """Two upgrades, one credit and one package across three subjects"""
    from services.catalog import Option
    return [
        Option(id='single-loft', subject='Construction', name='Single Loft 12 Wide', price=5500.0),
        Option(id='omit-porch', subject='Construction', name='Omit Standard Porch per LF', price=-13.0),
        Option(id='grab-bar', subject='Master Bath', name='Grab Bar', price=100.0),
        Option(id='syp-trim-package', subject='Cabinetry / Molding', name='SYP Trim Package',
               price=2250.0, description='Solid yellow pine trim throughout', is_package=True),
    ]


@pytest.fixture
def sample_catalog(magnolia, sample_options):
    from services.catalog import Catalog, Model
    hilltop = Model(id='aps-544', code='APS-544', name='The Hilltop', base_price=62995.0)
    return Catalog([magnolia, hilltop], sample_options)


@pytest.fixture
def data_catalog():
    """Catalog shipped in data/"""
    from services.catalog import load_catalog
    return load_catalog(str(DATA_FOLDER))


@pytest.fixture
def selection(engine):
    from services.selection import SelectionState
    return SelectionState(engine)


@pytest.fixture
def ready_selection(selection, magnolia, sample_options):
    """Selection that satisfies the default readiness policy"""
    selection.select_model(magnolia)
    selection.toggle_option(sample_options[0])
    selection.toggle_option(sample_options[3])
    selection.update_client({
        'fullName': 'Jordan Rivera',
        'email': 'jordan@example.com',
        'phone': '(512) 555-0142',
        'address': '400 Lakeview Dr, Austin, TX',
        'zip': '78701',
    })
    return selection


@pytest.fixture
def app(tmp_path, monkeypatch):
    """Quote builder app using the shipped catalog and temporary output/log folders"""
    from config import TestingConfig
    from app_init import create_app, shutdown_quote_services

    monkeypatch.setattr(TestingConfig, 'DATA_FOLDER', str(DATA_FOLDER))
    monkeypatch.setattr(TestingConfig, 'OUTPUT_FOLDER', str(tmp_path / 'outputs'))
    monkeypatch.setattr(TestingConfig, 'LOG_DIR', str(tmp_path / 'logs'))

    flask_app = create_app('testing')
    yield flask_app
    shutdown_quote_services(flask_app)


@pytest.fixture
def client(app):
    """Create a test client"""
    return app.test_client()
