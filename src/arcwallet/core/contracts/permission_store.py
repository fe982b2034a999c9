"""
Permission store for abstracted accounts.

Holds everything the authorization engine reads:
- The admin record (replace-only)
- The revocation authority
- Plugin grants keyed by (plugin app, allowed caller)
- Named grants (name -> grant key)
- Passkey domain bindings (address -> domain)

The store does no authorization of its own. Callers go through the admin
policy and grant evaluator before mutating it.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Dict, Iterator, List, Optional, Tuple, Union

from ..account_exceptions import GrantNotFound, InvalidArgument, NameAlreadyRegistered
from ..logging_config import short_address

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnyCaller:
    """Grant caller variant meaning "any address may trigger this plugin"."""

    def __str__(self) -> str:
        return "*"


@dataclass(frozen=True)
class SpecificCaller:
    """Grant caller variant naming the one address allowed to trigger the plugin."""

    address: str

    def __post_init__(self) -> None:
        if not self.address:
            raise InvalidArgument("Allowed caller address must not be empty")

    def __str__(self) -> str:
        return self.address


ANY_CALLER = AnyCaller()

AllowedCaller = Union[AnyCaller, SpecificCaller]


def as_allowed_caller(value: Union[AllowedCaller, str]) -> AllowedCaller:
    """Accept either a caller variant or a plain address."""
    if isinstance(value, (AnyCaller, SpecificCaller)):
        return value
    if isinstance(value, str):
        return SpecificCaller(value)
    raise InvalidArgument(f"Unsupported allowed caller: {value!r}")


@dataclass(frozen=True)
class GrantKey:
    """Identity of a grant: the plugin app and the caller allowed to trigger it."""

    plugin_app_id: int
    allowed_caller: AllowedCaller

    def __str__(self) -> str:
        return f"{self.plugin_app_id}:{self.allowed_caller}"


@dataclass
class Grant:
    """
    Permission for a plugin to temporarily receive the account's authority.

    ``last_called`` stays None until the first delegation, so a fresh grant is
    never held back by its cooldown.
    """

    last_valid_round: int
    cooldown: int
    admin_privileges: bool = False
    last_called: Optional[int] = None

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass
class AdminRecord:
    """Single live admin value. Only ever replaced as a whole."""

    address: str

    def replace(self, new_address: str) -> str:
        if not new_address:
            raise InvalidArgument("Admin address must not be empty")
        previous = self.address
        self.address = new_address
        return previous


class PermissionStore:
    """Grant, name, domain and admin records of one abstracted account."""

    def __init__(self, admin: str, revocation_app_id: Optional[int] = None):
        if not admin:
            raise InvalidArgument("Admin address must not be empty")
        self._admin = AdminRecord(admin)
        self._revocation_app_id = revocation_app_id
        self._grants: Dict[GrantKey, Grant] = {}
        self._named: Dict[str, GrantKey] = {}
        self._domains: Dict[str, str] = {}

    # ==================== Admin & Revocation ====================

    @property
    def admin(self) -> str:
        return self._admin.address

    def replace_admin(self, new_admin: str) -> str:
        """Overwrite the admin. Returns the previous admin."""
        return self._admin.replace(new_admin)

    @property
    def revocation_app_id(self) -> Optional[int]:
        return self._revocation_app_id

    def replace_revocation_authority(self, revocation_app_id: Optional[int]) -> Optional[int]:
        previous = self._revocation_app_id
        self._revocation_app_id = revocation_app_id
        return previous

    # ==================== Grants ====================

    def get_grant(self, key: GrantKey) -> Optional[Grant]:
        return self._grants.get(key)

    def put_grant(self, key: GrantKey, grant: Grant) -> None:
        """Create or overwrite the grant at ``key``."""
        self._grants[key] = grant

    def delete_grant(self, key: GrantKey) -> List[str]:
        """
        Delete a grant and every name that refers to it.

        Returns:
            Names that were removed along with the grant

        Raises:
            GrantNotFound: No grant exists at ``key``
        """
        if key not in self._grants:
            raise GrantNotFound(
                f"No grant for plugin {key.plugin_app_id} and caller {key.allowed_caller}",
                details={"plugin_app_id": key.plugin_app_id, "allowed_caller": str(key.allowed_caller)},
            )
        del self._grants[key]
        dangling = [name for name, named_key in self._named.items() if named_key == key]
        for name in dangling:
            del self._named[name]
        return dangling

    def stamp_usage(self, key: GrantKey, round_: int) -> None:
        """Record that the grant at ``key`` was used at ``round_``."""
        grant = self._grants.get(key)
        if grant is None:
            raise GrantNotFound(f"No grant for {key}")
        if grant.last_called is not None and round_ < grant.last_called:
            raise InvalidArgument(
                "Grant usage round must not move backwards",
                details={"last_called": grant.last_called, "round": round_},
            )
        grant.last_called = round_

    def grants(self) -> Iterator[Tuple[GrantKey, Grant]]:
        return iter(list(self._grants.items()))

    # ==================== Named Grants ====================

    def get_named(self, name: str) -> Optional[GrantKey]:
        return self._named.get(name)

    def put_named(self, name: str, key: GrantKey, grant: Grant) -> None:
        """Register ``name`` together with its grant. Both or neither."""
        if name in self._named:
            raise NameAlreadyRegistered(
                f"A plugin named {name!r} already exists",
                details={"name": name},
            )
        self._grants[key] = grant
        self._named[name] = key

    def delete_named(self, name: str) -> GrantKey:
        """Remove ``name`` and the grant it refers to. Both or neither."""
        key = self._named.get(name)
        if key is None:
            raise GrantNotFound(f"No plugin named {name!r}", details={"name": name})
        self.delete_grant(key)
        logger.debug(
            "Named grant removed",
            extra={"event": "permissions.named_removed", "plugin_name": name, "key": str(key)},
        )
        return key

    def names(self) -> Dict[str, GrantKey]:
        return dict(self._named)

    # ==================== Domains ====================

    def bind_domain(self, address: str, domain: str) -> None:
        self._domains[address] = domain
        logger.debug(
            "Domain bound",
            extra={"event": "permissions.domain_bound", "address": short_address(address), "domain": domain},
        )

    def domain_of(self, address: str) -> Optional[str]:
        return self._domains.get(address)

    def domains(self) -> Dict[str, str]:
        return dict(self._domains)
