"""Tracker Test Suite

This package contains all tests for the tracker task engine.

Test organization:
- unit/tasks/: Task engine tests (stages, recurrence, sync, streak, storage, manager)
- unit/test_config_models.py: Configuration loading

Running tests:
    # All tests
    pytest

    # Specific module
    pytest tests/unit/tasks/test_sync.py

    # With coverage
    pytest --cov=tracker --cov-report=term-missing
"""
