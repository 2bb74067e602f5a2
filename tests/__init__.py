"""
Tests Package - Unit Tests

Test structure:
- tests/conftest.py - Fake OpenSearch client, fake object store, shared fixtures
- tests/test_*.py - One module per component

No network access is needed; collaborators are replaced by in-memory fakes.
"""
