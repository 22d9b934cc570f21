"""dwh-quality test suite.

Unit tests live in tests/unit/, one module per dwh_quality.lib module plus
test_cli.py for the command line. Shared fixtures (clean rows for the six
source tables, CSV export directories) are in conftest.py.
"""
