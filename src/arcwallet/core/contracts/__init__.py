"""
Arcwallet Contracts.

- Abstracted Account: delegation controller over a controlled address
- Factory: mints abstracted accounts
- Recovery Plugin: secret-preimage admin recovery
- Permission store, admin policy, grant evaluator and batch verifier used by
  the abstracted account
"""

from .abstracted_account import AbstractedAccount
from .admin_policy import can_revoke, is_admin
from .batch_verifier import (
    VERIFY_AUTHORITY_METHOD,
    find_authority_return,
    require_authority_return,
)
from .factory import AbstractedAccountFactory
from .grant_evaluator import GrantStatus, evaluate_grant, is_grant_active, resolve_delegation
from .permission_store import (
    ANY_CALLER,
    AdminRecord,
    AllowedCaller,
    AnyCaller,
    Grant,
    GrantKey,
    PermissionStore,
    SpecificCaller,
    as_allowed_caller,
)
from .recovery_plugin import RecoveryPlugin, recovery_commitment

__all__ = [
    # Contracts
    "AbstractedAccount",
    "AbstractedAccountFactory",
    "RecoveryPlugin",
    "recovery_commitment",
    # Permissions
    "ANY_CALLER",
    "AdminRecord",
    "AllowedCaller",
    "AnyCaller",
    "Grant",
    "GrantKey",
    "PermissionStore",
    "SpecificCaller",
    "as_allowed_caller",
    # Policy & evaluation
    "is_admin",
    "can_revoke",
    "GrantStatus",
    "evaluate_grant",
    "is_grant_active",
    "resolve_delegation",
    # Batch verification
    "VERIFY_AUTHORITY_METHOD",
    "find_authority_return",
    "require_authority_return",
]
