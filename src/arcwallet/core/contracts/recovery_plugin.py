"""
Recovery plugin.

Lets whoever knows a secret replace the admin of one abstracted account. The
plugin stores only sha256(sha256(secret)). It must be granted admin
privileges on the account, and like any plugin it only acts while the account
has been delegated to it, handing authority back when done.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Optional, Union

from ..account_exceptions import AuthorizationDenied, InvalidArgument
from ..ledger import Application, ExecutionContext
from ..logging_config import short_address
from .abstracted_account import AbstractedAccount
from .permission_store import ANY_CALLER, AllowedCaller

logger = logging.getLogger(__name__)


def recovery_commitment(secret: bytes) -> bytes:
    """Double sha256 of the recovery secret."""
    return hashlib.sha256(hashlib.sha256(secret).digest()).digest()


@dataclass
class RecoveryPlugin(Application):
    """Recovers the admin of ``account_app_id`` given the committed secret."""

    account_app_id: Optional[int] = None
    commitment: bytes = b""

    ABI_METHODS = frozenset({"recover"})

    def create(self, ctx: ExecutionContext, account_app_id: int, commitment: bytes) -> None:
        if len(commitment) != 32:
            raise InvalidArgument("Recovery commitment must be a 32-byte sha256 digest")
        self.account_app_id = account_app_id
        self.commitment = commitment

    def recover(
        self,
        ctx: ExecutionContext,
        account_app_id: int,
        preimage: bytes,
        new_admin: str,
        allowed_caller: Union[AllowedCaller, str] = ANY_CALLER,
    ) -> None:
        """
        Replace the account's admin, then return authority to the account.

        Args:
            account_app_id: Must be the account this plugin was created for
            preimage: The recovery secret
            new_admin: Admin to install
            allowed_caller: Caller half of the grant key carrying admin privileges
        """
        if account_app_id != self.account_app_id:
            raise AuthorizationDenied("sender mismatch", details={"account_app_id": account_app_id})
        if not hmac.compare_digest(recovery_commitment(preimage), self.commitment):
            logger.warning(
                "Recovery preimage rejected",
                extra={"event": "recovery.preimage_mismatch", "plugin_app_id": self.app_id},
            )
            raise AuthorizationDenied("prehash mismatch")

        ctx.ledger.call_application(
            ctx,
            account_app_id,
            "change_admin_via_plugin",
            self.app_id,
            allowed_caller,
            new_admin,
        )

        account = ctx.ledger.application(account_app_id)
        if not isinstance(account, AbstractedAccount):
            raise InvalidArgument(f"Application {account_app_id} is not an abstracted account")
        ctx.ledger.send_payment(
            ctx,
            sender=account.controlled_address,
            receiver=account.controlled_address,
            amount=0,
            rekey_to=account.address,
        )

        logger.info(
            "Admin recovered",
            extra={
                "event": "recovery.executed",
                "plugin_app_id": self.app_id,
                "account_app_id": account_app_id,
                "new_admin": short_address(new_admin),
            },
        )
