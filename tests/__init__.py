"""Tests for mutual-tls-client.

Test Structure:
    tests/
    ├── conftest.py          # Shared pytest fixtures (throwaway PKI)
    ├── helpers.py           # Key and certificate generation
    └── unit/                # Unit tests (no external deps)
        ├── test_builder.py
        ├── test_certificates.py
        ├── test_config.py
        ├── test_error_handling.py
        ├── test_keys.py
        ├── test_keystore.py
        ├── test_managers.py
        ├── test_pem.py
        ├── test_resources.py
        └── test_tls.py

Usage:
    # Run all tests
    pytest

    # Run only unit tests
    pytest -m unit

    # Run with verbose output
    pytest -v
"""
