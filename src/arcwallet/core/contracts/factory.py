"""
Abstracted account factory.

Abstracted accounts refuse to be created directly by an external account; they
are minted through this factory, which also stamps the implementation version
and the revocation authority on every account it creates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..account_exceptions import AuthorizationDenied
from ..config import Config
from ..ledger import Application, ExecutionContext
from ..logging_config import short_address
from .abstracted_account import AbstractedAccount

logger = logging.getLogger(__name__)


@dataclass
class AbstractedAccountFactory(Application):
    """Mints abstracted accounts."""

    account_version: str = ""
    revocation_app_id: Optional[int] = None

    ABI_METHODS = frozenset({"mint", "update_version"})

    def create(
        self,
        ctx: ExecutionContext,
        version: Optional[str] = None,
        revocation_app_id: Optional[int] = None,
    ) -> None:
        self.account_version = version or Config.DEFAULT_ACCOUNT_VERSION
        self.revocation_app_id = revocation_app_id

    def update_version(self, ctx: ExecutionContext, version: str) -> None:
        """Change the version stamped on future accounts. Creator only."""
        if ctx.sender != self.creator:
            raise AuthorizationDenied(
                "Only the factory creator can update the factory",
                details={"sender": ctx.sender},
            )
        self.account_version = version

    def mint(self, ctx: ExecutionContext, admin: str, controlled_address: Optional[str] = None) -> int:
        """
        Create a new abstracted account.

        Args:
            admin: Admin of the new account
            controlled_address: Address to control, or None for the account's own address

        Returns:
            App id of the new abstracted account
        """
        app_id = ctx.ledger.create_application(
            ctx,
            AbstractedAccount(),
            self.account_version,
            controlled_address,
            admin,
            self.revocation_app_id,
        )
        logger.info(
            "Abstracted account minted",
            extra={
                "event": "factory.minted",
                "factory_app_id": self.app_id,
                "app_id": app_id,
                "admin": short_address(admin),
            },
        )
        return app_id
