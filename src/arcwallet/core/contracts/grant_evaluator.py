"""
Grant evaluation: may a plugin receive the account's authority right now?

Checks run in a fixed order: existence, then expiry, then cooldown. The first
failing check decides the reported status.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from ..account_exceptions import (
    AuthorizationDenied,
    GrantExpired,
    GrantInCooldown,
    GrantNotFound,
)
from ..logging_config import short_address
from .permission_store import ANY_CALLER, AllowedCaller, Grant, GrantKey, PermissionStore, SpecificCaller

logger = logging.getLogger(__name__)

SENDER_NOT_ALLOWED_TO_CALL_PLUGIN = "This sender is not allowed to trigger this plugin"


class GrantStatus(Enum):
    ACTIVE = "active"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    COOLDOWN = "cooldown"


def evaluate_grant(grant: Optional[Grant], current_round: int) -> GrantStatus:
    if grant is None:
        return GrantStatus.NOT_FOUND
    if current_round > grant.last_valid_round:
        return GrantStatus.EXPIRED
    if grant.last_called is not None and current_round - grant.last_called < grant.cooldown:
        return GrantStatus.COOLDOWN
    return GrantStatus.ACTIVE


def is_grant_active(
    store: PermissionStore,
    plugin_app_id: int,
    caller: AllowedCaller,
    current_round: int,
) -> bool:
    key = GrantKey(plugin_app_id, caller)
    return evaluate_grant(store.get_grant(key), current_round) is GrantStatus.ACTIVE


def resolve_delegation(
    store: PermissionStore,
    plugin_app_id: int,
    caller: str,
    current_round: int,
) -> GrantKey:
    """
    Find the grant that lets ``caller`` hand the account to ``plugin_app_id``.

    The wildcard grant is tried first; the caller-specific grant only when the
    wildcard one is not active.

    Returns:
        Key of the first active grant. Only this grant's usage gets stamped.

    Raises:
        GrantNotFound / GrantExpired / GrantInCooldown: Neither grant is
            active. The caller-specific grant's reason is reported unless that
            grant does not exist.
    """
    wildcard_key = GrantKey(plugin_app_id, ANY_CALLER)
    wildcard_status = evaluate_grant(store.get_grant(wildcard_key), current_round)
    if wildcard_status is GrantStatus.ACTIVE:
        return wildcard_key

    specific_key = GrantKey(plugin_app_id, SpecificCaller(caller))
    specific_grant = store.get_grant(specific_key)
    specific_status = evaluate_grant(specific_grant, current_round)
    if specific_status is GrantStatus.ACTIVE:
        return specific_key

    if specific_status is GrantStatus.NOT_FOUND:
        status, key, grant = wildcard_status, wildcard_key, store.get_grant(wildcard_key)
    else:
        status, key, grant = specific_status, specific_key, specific_grant

    logger.warning(
        "Plugin delegation denied",
        extra={
            "event": "account.delegation_denied",
            "plugin_app_id": plugin_app_id,
            "caller": short_address(caller),
            "status": status.value,
            "round": current_round,
        },
    )
    raise _denial(status, key, grant, current_round)


def _denial(
    status: GrantStatus,
    key: GrantKey,
    grant: Optional[Grant],
    current_round: int,
) -> AuthorizationDenied:
    details = {
        "plugin_app_id": key.plugin_app_id,
        "allowed_caller": str(key.allowed_caller),
        "round": current_round,
    }
    if status is GrantStatus.NOT_FOUND or grant is None:
        return GrantNotFound(SENDER_NOT_ALLOWED_TO_CALL_PLUGIN, details=details)
    if status is GrantStatus.EXPIRED:
        details["last_valid_round"] = grant.last_valid_round
        return GrantExpired(f"{SENDER_NOT_ALLOWED_TO_CALL_PLUGIN}: grant expired", details=details)
    details["last_called"] = grant.last_called
    details["cooldown"] = grant.cooldown
    details["available_at"] = (grant.last_called or 0) + grant.cooldown
    return GrantInCooldown(f"{SENDER_NOT_ALLOWED_TO_CALL_PLUGIN}: grant in cooldown", details=details)
