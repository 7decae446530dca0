"""
evpscope test suite.

Structure:
- unit/: Unit tests for individual components
- integration/: Pipeline, threaded runner and CLI tests

Usage:
    # Run all tests
    pytest

    # Run specific test category
    pytest -m unit
    pytest -m integration
"""

# Test categories and markers
TEST_CATEGORIES = {
    "unit": "Unit tests for individual components",
    "integration": "Integration tests for component interaction",
}
