"""
polish-solver test suite.

Usage:
    # Run all tests
    pytest tests/ -v

    # Run only unit tests (fast)
    pytest tests/ -m unit -v

    # Run only integration tests
    pytest tests/ -m integration -v
"""
