"""
tests/conftest.py
Pytest configuration
"""

import logging
import warnings


def pytest_configure(config):
    """Configure pytest with custom settings"""
    # Unclosed SQLite connections from threaded tests surface as ResourceWarnings
    warnings.filterwarnings("ignore", category=ResourceWarning)
    config.addinivalue_line("filterwarnings", "ignore::ResourceWarning")

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
