"""
Test suite for the Shopee link checker.

Run all tests: pytest
Run unit tests only: pytest tests/unit/
Run specific file: pytest tests/unit/test_link_checker_service.py -v
"""
