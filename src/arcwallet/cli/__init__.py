"""Arcwallet command line interface."""
