"""
Arcwallet - Abstracted Accounts with Plugin Delegation

An abstracted account owns signing authority over a controlled address and
lends it, briefly and under strict rules, to approved plugins.

Main Components:
- Permission Store: grants, named grants, passkey domains, admin record
- Admin Policy: admin / co-admin / revocation checks
- Grant Evaluator: existence, expiry and cooldown of plugin grants
- Abstracted Account: delegation controller
- Batch Verifier: authority must come back within the same group
"""

__version__ = "0.1.0"
__author__ = "Arcwallet Development Team"

__all__ = []
