"""
paygate Test Suite

This package contains all tests for paygate including:
- Unit tests for the outcome builder, normalization tables, token codec and composition
- Contract tests for every adapter
- Per-adapter tests against mocked processor responses
- Settings and provider selection tests
"""
