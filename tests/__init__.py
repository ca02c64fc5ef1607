"""
Test suite for the order gap reconciliation backend.

Run all tests: pytest
Run unit tests only: pytest tests/unit/
Run specific file: pytest tests/unit/test_gap_service.py -v
"""
