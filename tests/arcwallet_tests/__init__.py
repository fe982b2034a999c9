"""Arcwallet test suite."""
