"""
Abstracted Account Implementation.

An abstracted account is an application that holds signing authority over a
controlled address and lends that authority out under strict rules:
- The admin (or a co-admin passkey) configures the account
- Plugins receive authority only through an active grant
  (not expired, not in cooldown, caller allowed)
- Authority handed away must come back within the same transaction group
- A revocation authority may strip grants but do nothing else
- Only a plugin with admin privileges, while in control, may replace the admin

The controlled address is either the application's own address or a separate
account that has been rekeyed to the application.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from ..account_exceptions import (
    AuthorizationDenied,
    DomainBindingError,
    DomainRequired,
    GrantNotFound,
    IdentityConflict,
    InvalidArgument,
    MissingAdminPrivilege,
    PluginNotInControl,
    SelfDelegationInvariantViolated,
    UninitializedCaller,
)
from ..config import Config
from ..ledger import Application, ApplicationCall, ExecutionContext, Ledger, Transaction, application_address
from ..logging_config import short_address
from . import admin_policy
from .admin_policy import (
    ONLY_ADMIN_CAN_ADD_PLUGIN,
    ONLY_ADMIN_CAN_CHANGE_ADMIN,
    ONLY_ADMIN_CAN_CHANGE_REVOKE,
    ONLY_ADMIN_CAN_REKEY,
    ONLY_ADMIN_CAN_UPDATE,
    ONLY_ADMIN_OR_REVOCATION_APP_CAN_REMOVE_PLUGIN,
)
from .batch_verifier import require_authority_return
from .grant_evaluator import resolve_delegation
from .permission_store import (
    AllowedCaller,
    AnyCaller,
    Grant,
    GrantKey,
    PermissionStore,
    as_allowed_caller,
)

logger = logging.getLogger(__name__)

PLUGIN_DOES_NOT_CONTROL_WALLET = "This plugin is not in control of the account"
PLUGIN_DOES_NOT_HAVE_ADMIN_PRIVILEGES = "This plugin does not have admin privileges"
DOMAIN_MUST_BE_LONGER_THAN_ZERO = "Domain must not be length 0"


@dataclass
class AbstractedAccount(Application):
    """
    Controller of one controlled address.

    Must be created by another application (a factory); direct creation from
    an external account is rejected.
    """

    version: str = ""
    factory_app_id: Optional[int] = None
    controlled_address: str = ""
    permissions: Optional[PermissionStore] = None

    ABI_METHODS = frozenset({
        "update_version",
        "change_revocation_authority",
        "change_admin",
        "change_admin_via_plugin",
        "verify_authority",
        "delegate_to_address",
        "delegate_to_plugin",
        "delegate_to_named_plugin",
        "add_plugin",
        "remove_plugin",
        "add_named_plugin",
        "remove_named_plugin",
    })

    DELEGATING_METHODS = frozenset({
        "delegate_to_address",
        "delegate_to_plugin",
        "delegate_to_named_plugin",
    })

    def create(
        self,
        ctx: ExecutionContext,
        version: str,
        controlled_address: Optional[str],
        admin: str,
        revocation_app_id: Optional[int] = None,
    ) -> None:
        """
        Initialize the account.

        Args:
            version: Implementation version label
            controlled_address: Address to control, or None for the app's own address
            admin: Admin of the account
            revocation_app_id: Application allowed to revoke plugins
        """
        if ctx.caller_app_id is None:
            raise UninitializedCaller("This contract must be deployed from a factory")
        if not admin:
            raise InvalidArgument("Admin address must not be empty")

        controlled = controlled_address or self.address
        if admin == controlled:
            raise IdentityConflict(
                "Admin and controlled address cannot be the same",
                details={"address": admin},
            )

        self.version = version
        self.factory_app_id = ctx.caller_app_id
        self.controlled_address = controlled
        self.permissions = PermissionStore(admin, revocation_app_id)

        logger.info(
            "Abstracted account created",
            extra={
                "event": "account.created",
                "app_id": self.app_id,
                "factory_app_id": self.factory_app_id,
                "admin": short_address(admin),
                "controlled": short_address(controlled),
            },
        )

    def preflight(self, group: Tuple[Transaction, ...], index: int) -> None:
        txn = group[index]
        if isinstance(txn, ApplicationCall) and txn.method in self.DELEGATING_METHODS:
            require_authority_return(group, index, self.app_id, self.controlled_address)

    # ==================== Views ====================

    @property
    def store(self) -> PermissionStore:
        if self.permissions is None:
            raise UninitializedCaller("Abstracted account has not been created")
        return self.permissions

    @property
    def admin(self) -> str:
        return self.store.admin

    @property
    def revocation_app_id(self) -> Optional[int]:
        return self.store.revocation_app_id

    @property
    def expected_auth_addr(self) -> Optional[str]:
        """
        Auth address of the controlled address while this app controls it:
        none when the app controls its own address, the app's address otherwise.
        """
        return None if self.controlled_address == self.address else self.address

    def current_delegate(self, ledger: Ledger) -> str:
        """Address currently holding signing authority over the controlled address."""
        return ledger.lookup(self.controlled_address).effective_signer

    def is_admin(self, address: str) -> bool:
        return admin_policy.is_admin(self.store, address)

    def can_revoke(self, address: str) -> bool:
        return admin_policy.can_revoke(self.store, address)

    def get_grant(self, plugin_app_id: int, allowed_caller: Union[AllowedCaller, str]) -> Optional[Grant]:
        return self.store.get_grant(GrantKey(plugin_app_id, as_allowed_caller(allowed_caller)))

    def get_named_plugin(self, name: str) -> Optional[GrantKey]:
        return self.store.get_named(name)

    def domain_of(self, address: str) -> Optional[str]:
        return self.store.domain_of(address)

    def describe(self) -> Dict[str, Any]:
        return {
            "app_id": self.app_id,
            "address": self.address,
            "version": self.version,
            "factory_app_id": self.factory_app_id,
            "controlled_address": self.controlled_address,
            "admin": self.admin,
            "revocation_app_id": self.revocation_app_id,
            "grants": {str(key): grant.to_dict() for key, grant in self.store.grants()},
            "named_plugins": {name: str(key) for name, key in self.store.names().items()},
            "domains": self.store.domains(),
        }

    # ==================== Administration ====================

    def update_version(self, ctx: ExecutionContext, version: str) -> None:
        admin_policy.require_admin(self.store, ctx.sender, ONLY_ADMIN_CAN_UPDATE)
        self.version = version

    def change_revocation_authority(self, ctx: ExecutionContext, revocation_app_id: Optional[int]) -> None:
        """Point revocation rights at another application."""
        admin_policy.require_admin(self.store, ctx.sender, ONLY_ADMIN_CAN_CHANGE_REVOKE)
        previous = self.store.replace_revocation_authority(revocation_app_id)
        logger.info(
            "Revocation authority changed",
            extra={
                "event": "account.revocation_changed",
                "app_id": self.app_id,
                "old": previous,
                "new": revocation_app_id,
            },
        )

    def change_admin(self, ctx: ExecutionContext, new_admin: str) -> None:
        admin_policy.require_admin(self.store, ctx.sender, ONLY_ADMIN_CAN_CHANGE_ADMIN)
        self._replace_admin(new_admin, via=ctx.sender)

    def change_admin_via_plugin(
        self,
        ctx: ExecutionContext,
        plugin_app_id: int,
        allowed_caller: Union[AllowedCaller, str],
        new_admin: str,
    ) -> None:
        """
        Replace the admin from inside a plugin.

        The call must come from the plugin's own address, the plugin must
        currently hold the controlled address's authority, and the grant at
        (plugin, allowed_caller) must carry admin privileges.
        """
        plugin_address = application_address(plugin_app_id)
        if ctx.sender != plugin_address:
            raise AuthorizationDenied(
                "Only the plugin itself can change the admin through a plugin",
                details={"sender": ctx.sender, "plugin_app_id": plugin_app_id},
            )

        if ctx.ledger.auth_addr(self.controlled_address) != plugin_address:
            raise PluginNotInControl(
                PLUGIN_DOES_NOT_CONTROL_WALLET,
                details={"plugin_app_id": plugin_app_id},
            )

        key = GrantKey(plugin_app_id, as_allowed_caller(allowed_caller))
        grant = self.store.get_grant(key)
        if grant is None or not grant.admin_privileges:
            raise MissingAdminPrivilege(
                PLUGIN_DOES_NOT_HAVE_ADMIN_PRIVILEGES,
                details={"plugin_app_id": plugin_app_id, "allowed_caller": str(key.allowed_caller)},
            )

        self._replace_admin(new_admin, via=plugin_address)

    def _replace_admin(self, new_admin: str, via: str) -> None:
        previous = self.store.replace_admin(new_admin)
        logger.info(
            "Admin changed",
            extra={
                "event": "account.admin_changed",
                "app_id": self.app_id,
                "old_admin": short_address(previous),
                "new_admin": short_address(new_admin),
                "via": short_address(via),
            },
        )

    # ==================== Authority ====================

    def verify_authority(self, ctx: ExecutionContext) -> None:
        """Assert this app is back in control of the controlled address."""
        current = ctx.ledger.auth_addr(self.controlled_address)
        if current != self.expected_auth_addr:
            raise SelfDelegationInvariantViolated(
                "Abstracted account is not in control of its address",
                details={"auth_addr": current, "expected": self.expected_auth_addr},
            )

    def delegate_to_address(self, ctx: ExecutionContext, address: str) -> None:
        """
        Rekey the controlled address to an arbitrary address, e.g. an external signer.

        The rest of the group must hand authority back.
        """
        admin_policy.require_admin(self.store, ctx.sender, ONLY_ADMIN_CAN_REKEY)
        if not address:
            raise InvalidArgument("Delegate address must not be empty")
        self._require_return(ctx)

        ctx.ledger.send_payment(
            ctx,
            sender=self.controlled_address,
            receiver=address,
            amount=0,
            rekey_to=address,
            note=Config.REKEY_NOTE,
        )

        logger.info(
            "Account delegated to address",
            extra={
                "event": "account.delegated_to_address",
                "app_id": self.app_id,
                "delegate": short_address(address),
                "round": ctx.round,
            },
        )

    def delegate_to_plugin(self, ctx: ExecutionContext, plugin_app_id: int) -> GrantKey:
        """
        Temporarily rekey the controlled address to an approved plugin.

        Returns:
            The grant key that authorized the delegation
        """
        key = resolve_delegation(self.store, plugin_app_id, ctx.sender, ctx.round)
        self._require_return(ctx)

        plugin_address = application_address(plugin_app_id)
        ctx.ledger.send_payment(
            ctx,
            sender=self.controlled_address,
            receiver=self.controlled_address,
            amount=0,
            rekey_to=plugin_address,
            note=Config.REKEY_NOTE,
        )
        self.store.stamp_usage(key, ctx.round)

        logger.info(
            "Account delegated to plugin",
            extra={
                "event": "account.delegated_to_plugin",
                "app_id": self.app_id,
                "plugin_app_id": plugin_app_id,
                "grant": str(key),
                "caller": short_address(ctx.sender),
                "round": ctx.round,
            },
        )
        return key

    def delegate_to_named_plugin(self, ctx: ExecutionContext, name: str) -> GrantKey:
        key = self.store.get_named(name)
        if key is None:
            raise GrantNotFound(f"No plugin named {name!r}", details={"name": name})
        return self.delegate_to_plugin(ctx, key.plugin_app_id)

    def _require_return(self, ctx: ExecutionContext) -> None:
        require_authority_return(ctx.group, ctx.group_index, self.app_id, self.controlled_address)

    # ==================== Plugins ====================

    def add_plugin(
        self,
        ctx: ExecutionContext,
        plugin_app_id: int,
        allowed_caller: Union[AllowedCaller, str],
        last_valid_round: int,
        cooldown: int,
        admin_privileges: bool = False,
        bind_domain: bool = False,
        domain: str = "",
    ) -> GrantKey:
        """
        Approve a plugin, overwriting any grant already at the same key.

        Args:
            plugin_app_id: The plugin application
            allowed_caller: Address allowed to trigger the plugin, or ANY_CALLER
            last_valid_round: Last round at which the plugin can be triggered
            cooldown: Rounds that must pass between two uses
            admin_privileges: Whether the plugin may replace the admin
            bind_domain: Bind ``allowed_caller`` (a passkey) to ``domain``
            domain: Domain label for the passkey
        """
        admin_policy.require_admin(self.store, ctx.sender, ONLY_ADMIN_CAN_ADD_PLUGIN)
        caller = as_allowed_caller(allowed_caller)
        _validate_limits(last_valid_round, cooldown)
        if bind_domain:
            if not domain:
                raise DomainRequired(DOMAIN_MUST_BE_LONGER_THAN_ZERO)
            if isinstance(caller, AnyCaller):
                raise DomainBindingError("Only a specific caller address can be bound to a domain")

        key = GrantKey(plugin_app_id, caller)
        self.store.put_grant(
            key,
            Grant(
                last_valid_round=last_valid_round,
                cooldown=cooldown,
                admin_privileges=bool(admin_privileges),
            ),
        )
        if bind_domain:
            self.store.bind_domain(caller.address, domain)

        logger.info(
            "Plugin added",
            extra={
                "event": "account.plugin_added",
                "app_id": self.app_id,
                "grant": str(key),
                "last_valid_round": last_valid_round,
                "cooldown": cooldown,
                "admin_privileges": bool(admin_privileges),
                "domain": domain if bind_domain else None,
            },
        )
        return key

    def remove_plugin(
        self,
        ctx: ExecutionContext,
        plugin_app_id: int,
        allowed_caller: Union[AllowedCaller, str],
    ) -> None:
        admin_policy.require_admin_or_revoker(
            self.store, ctx.sender, ONLY_ADMIN_OR_REVOCATION_APP_CAN_REMOVE_PLUGIN
        )
        key = GrantKey(plugin_app_id, as_allowed_caller(allowed_caller))
        names = self.store.delete_grant(key)

        logger.info(
            "Plugin removed",
            extra={
                "event": "account.plugin_removed",
                "app_id": self.app_id,
                "grant": str(key),
                "names": names,
                "by": short_address(ctx.sender),
            },
        )

    def add_named_plugin(
        self,
        ctx: ExecutionContext,
        name: str,
        plugin_app_id: int,
        allowed_caller: Union[AllowedCaller, str],
        last_valid_round: int,
        cooldown: int,
        admin_privileges: bool = False,
    ) -> GrantKey:
        """Approve a plugin under a discoverable name. Names are never overwritten."""
        admin_policy.require_admin(self.store, ctx.sender, ONLY_ADMIN_CAN_ADD_PLUGIN)
        _validate_name(name)
        _validate_limits(last_valid_round, cooldown)

        key = GrantKey(plugin_app_id, as_allowed_caller(allowed_caller))
        self.store.put_named(
            name,
            key,
            Grant(
                last_valid_round=last_valid_round,
                cooldown=cooldown,
                admin_privileges=bool(admin_privileges),
            ),
        )

        logger.info(
            "Named plugin added",
            extra={
                "event": "account.named_plugin_added",
                "app_id": self.app_id,
                "plugin_name": name,
                "grant": str(key),
            },
        )
        return key

    def remove_named_plugin(self, ctx: ExecutionContext, name: str) -> None:
        admin_policy.require_admin_or_revoker(
            self.store, ctx.sender, ONLY_ADMIN_OR_REVOCATION_APP_CAN_REMOVE_PLUGIN
        )
        key = self.store.delete_named(name)

        logger.info(
            "Named plugin removed",
            extra={
                "event": "account.named_plugin_removed",
                "app_id": self.app_id,
                "plugin_name": name,
                "grant": str(key),
                "by": short_address(ctx.sender),
            },
        )


def _validate_limits(last_valid_round: int, cooldown: int) -> None:
    if last_valid_round < 0:
        raise InvalidArgument("Last valid round must not be negative")
    if cooldown < 0:
        raise InvalidArgument("Cooldown must not be negative")


def _validate_name(name: str) -> None:
    if not name:
        raise InvalidArgument("Plugin name must not be empty")
    if len(name.encode()) > Config.MAX_PLUGIN_NAME_BYTES:
        raise InvalidArgument(
            f"Plugin name exceeds {Config.MAX_PLUGIN_NAME_BYTES} bytes",
            details={"name": name},
        )
