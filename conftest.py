"""
Pytest configuration for custom-sso tests
"""

import os

# Configure pytest-asyncio mode for version 1.x
pytest_plugins = ('pytest_asyncio',)

# Defaults for the module-level app settings
os.environ.setdefault("SSO_OUTBOX_ENABLED", "false")
os.environ.setdefault("LOG_FORMAT", "console")


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as an asyncio test."
    )
