"""
Test suites package.

Keeps `testsuites` importable to support:
  - IDE navigation
  - programmatic runners (e.g., `run_tests.py`)
  - framework unit tests importing `testsuites.api_testing.framework`

All content is demo-safe and does not include production secrets.
"""
