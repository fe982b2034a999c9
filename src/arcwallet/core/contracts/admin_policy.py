"""
Admin policy: who may configure an abstracted account and who may revoke grants.

An address is an admin if it is the admin of record or if it is a passkey
bound to the co-admin domain. Binding to that domain is how a wallet adds a
second device with full admin rights.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..account_exceptions import AuthorizationDenied
from ..config import Config
from ..ledger import application_address
from ..logging_config import short_address
from .permission_store import PermissionStore

logger = logging.getLogger(__name__)

ONLY_ADMIN_CAN_UPDATE = "Only an admin can update the application"
ONLY_ADMIN_CAN_CHANGE_REVOKE = "Only an admin can change the revocation app"
ONLY_ADMIN_CAN_CHANGE_ADMIN = "Only an admin can change the admin account"
ONLY_ADMIN_CAN_REKEY = "Only an admin can rekey the account"
ONLY_ADMIN_CAN_ADD_PLUGIN = "Only an admin can add a plugin"
ONLY_ADMIN_OR_REVOCATION_APP_CAN_REMOVE_PLUGIN = "Only an admin or revocation app can remove plugins"


def is_admin(store: PermissionStore, caller: str, co_admin_domain: Optional[str] = None) -> bool:
    """True if ``caller`` is the admin or a co-admin passkey. No side effects."""
    if caller == store.admin:
        return True
    domain = co_admin_domain or Config.CO_ADMIN_DOMAIN
    return store.domain_of(caller) == domain


def can_revoke(store: PermissionStore, caller: str) -> bool:
    """True if ``caller`` is the revocation authority's address."""
    if store.revocation_app_id is None:
        return False
    return caller == application_address(store.revocation_app_id)


def require_admin(store: PermissionStore, caller: str, message: str) -> None:
    if is_admin(store, caller):
        return
    logger.warning(
        "Admin check failed",
        extra={"event": "account.admin_denied", "caller": short_address(caller), "reason": message},
    )
    raise AuthorizationDenied(message, details={"caller": caller})


def require_admin_or_revoker(store: PermissionStore, caller: str, message: str) -> None:
    if is_admin(store, caller) or can_revoke(store, caller):
        return
    logger.warning(
        "Revocation check failed",
        extra={"event": "account.revoke_denied", "caller": short_address(caller), "reason": message},
    )
    raise AuthorizationDenied(message, details={"caller": caller})
