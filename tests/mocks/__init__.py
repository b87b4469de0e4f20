"""Mock factories for tests."""
