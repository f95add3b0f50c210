"""
Pytest configuration for the kiln test suite.

Integration tests call real compilers and version control clients. They
are marked `integration` and run with the --full flag.
"""

import pytest


def pytest_addoption(parser):
    """Add custom command-line options."""
    parser.addoption(
        "--full",
        action="store_true",
        default=False,
        help="Run full test suite including integration tests (slow)",
    )


def pytest_configure(config):
    """Configure pytest based on command-line options."""
    config.addinivalue_line("markers", "integration: tests that run real compilers or SCM clients")


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --full is given."""
    if config.getoption("--full"):
        return
    skip_integration = pytest.mark.skip(reason="integration test: run with --full")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)
