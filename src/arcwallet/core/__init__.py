"""
Arcwallet Core Module

Core functionality for abstracted accounts:
- Ledger model and atomic transaction groups
- Abstracted account contracts and their collaborators
- Configuration, logging and the exception hierarchy
"""

__all__ = []
