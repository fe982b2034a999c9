"""
Abstracted account exception hierarchy.

Every failure inside a transaction group is fatal to the whole group. The
ledger's group executor is the only place that catches these, and it does so
only to restore state before re-raising the same exception.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class AbstractedAccountError(Exception):
    """Base exception for all abstracted account errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the same request may succeed later unchanged
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.kind,
            "message": self.message,
            "details": dict(self.details),
            "recoverable": self.recoverable,
        }


# ==================== Authorization Errors ====================


class AuthorizationDenied(AbstractedAccountError):
    """Raised when the caller fails the admin, revocation or grant checks."""
    pass


class GrantNotFound(AuthorizationDenied):
    """Raised when no grant exists for a plugin/caller pair or plugin name."""
    pass


class GrantExpired(AuthorizationDenied):
    """Raised when the current round is past the grant's last valid round."""
    pass


class GrantInCooldown(AuthorizationDenied):
    """Raised when not enough rounds have passed since the grant was last used."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details=details, recoverable=True)


class PluginNotInControl(AuthorizationDenied):
    """Raised when a plugin acts on the account without holding its authority."""
    pass


class MissingAdminPrivilege(AuthorizationDenied):
    """Raised when a plugin without admin privileges tries to change the admin."""
    pass


# ==================== Registration Errors ====================


class NameAlreadyRegistered(AbstractedAccountError):
    """Raised when a named plugin is added under a name that is already taken."""
    pass


class DomainBindingError(AbstractedAccountError):
    """Raised when a passkey domain binding request cannot be honoured."""
    pass


class DomainRequired(DomainBindingError):
    """Raised when a domain binding is requested with an empty domain label."""
    pass


class InvalidArgument(AbstractedAccountError):
    """Raised when an operation argument is structurally invalid."""
    pass


# ==================== Structural Errors ====================


class SelfDelegationInvariantViolated(AbstractedAccountError):
    """Raised when authority handed away is not returned within the group."""
    pass


class IdentityConflict(AbstractedAccountError):
    """Raised when the admin and the controlled address are the same."""
    pass


class UninitializedCaller(AbstractedAccountError):
    """Raised when a controller is created without going through a factory."""
    pass


# ==================== Ledger Errors ====================


class LedgerError(AbstractedAccountError):
    """Raised when a transaction breaks one of the ledger's own rules."""
    pass


class UnauthorizedSigner(LedgerError):
    """Raised when a transaction is not signed by its sender's auth address."""
    pass


class UnknownApplication(LedgerError):
    """Raised when a transaction targets an application that does not exist."""
    pass


class UnknownMethod(LedgerError):
    """Raised when an application call names a method the app does not expose."""
    pass


class InsufficientBalance(LedgerError):
    """Raised when a payment exceeds the sender's balance."""
    pass


class GroupTooLarge(LedgerError):
    """Raised when a transaction group exceeds the configured size limit."""
    pass
