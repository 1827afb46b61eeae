"""
MedTrack Test Suite
===================

Test Structure:
- test_services/: adherence calculator, cache, mutation flow and data stores
- test_api/: API endpoint tests for FastAPI routes
- conftest.py: Shared pytest fixtures

Running Tests:
    # Run all tests
    pytest

    # Run specific test module
    pytest tests/test_api/

    # Run only marked tests
    pytest -m "unit"
    pytest -m "api"
"""

# Test users; the local identity resolver treats the bearer token as the user id
USER_ID = "user-1"
OTHER_USER_ID = "user-2"

__all__ = [
    "USER_ID",
    "OTHER_USER_ID",
]
