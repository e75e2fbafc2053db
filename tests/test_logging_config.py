"""
Tests for logging setup
"""
import logging
import logging.handlers
import pytest
from types import SimpleNamespace
from logging_config import setup_logging


def tagged_handlers():
    return [h for h in logging.getLogger().handlers if getattr(h, '_quote_builder', False)]


@pytest.fixture
def fake_app(tmp_path):
    return SimpleNamespace(
        config={
            'LOG_LEVEL': 'warning',
            'LOG_FORMAT': '%(levelname)s %(message)s',
            'LOG_FILE': 'quotes.log',
            'LOG_DIR': str(tmp_path / 'logs'),
        },
        logger=logging.getLogger('test-app'),
    )


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    level = root.level
    yield
    for handler in tagged_handlers():
        root.removeHandler(handler)
        handler.close()
    root.setLevel(level)


@pytest.mark.unit
class TestSetupLogging:
    """Tests for console and rotating file handlers"""

    def test_creates_log_file(self, fake_app, tmp_path):
        setup_logging(fake_app)
        assert (tmp_path / 'logs' / 'quotes.log').exists()
        assert logging.getLogger().level == logging.WARNING

    def test_repeat_setup_replaces_handlers(self, fake_app):
        """Test a second app instance doesn't stack handlers"""
        setup_logging(fake_app)
        setup_logging(fake_app)
        assert len(tagged_handlers()) == 2

    def test_file_handler_rotates(self, fake_app):
        setup_logging(fake_app)
        file_handlers = [h for h in tagged_handlers() if isinstance(h, logging.handlers.RotatingFileHandler)]
        assert len(file_handlers) == 1
        assert file_handlers[0].maxBytes == 10 * 1024 * 1024
        assert file_handlers[0].backupCount == 5
