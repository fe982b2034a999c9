from dataclasses import dataclass
from typing import Optional

import pytest

from arcwallet.core.contracts.abstracted_account import AbstractedAccount
from arcwallet.core.contracts.factory import AbstractedAccountFactory
from arcwallet.core.ledger import Application, ApplicationCall, ExecutionContext, Ledger, Payment

DEPLOYER = "0xdeployer"
ADMIN = "0xadmin"
CALLER = "0xcaller"
OTHER = "0xother"
MERCHANT = "0xmerchant"


@dataclass
class PaymentPlugin(Application):
    """Test plugin: pays out of the controlled address, then hands authority back."""

    ABI_METHODS = frozenset({"pay", "pay_and_keep"})

    def pay(self, ctx: ExecutionContext, account_app_id: int, receiver: str, amount: int) -> None:
        account = ctx.ledger.application(account_app_id)
        ctx.ledger.send_payment(ctx, account.controlled_address, receiver, amount)
        ctx.ledger.send_payment(
            ctx,
            account.controlled_address,
            account.controlled_address,
            rekey_to=account.address,
        )

    def pay_and_keep(self, ctx: ExecutionContext, account_app_id: int, receiver: str, amount: int) -> None:
        account = ctx.ledger.application(account_app_id)
        ctx.ledger.send_payment(ctx, account.controlled_address, receiver, amount)


@dataclass
class AdminSwapPlugin(Application):
    """Test plugin: replaces the admin while in control, then hands authority back."""

    ABI_METHODS = frozenset({"swap"})

    def swap(self, ctx: ExecutionContext, account_app_id: int, allowed_caller, new_admin: str) -> None:
        ctx.ledger.call_application(
            ctx, account_app_id, "change_admin_via_plugin", self.app_id, allowed_caller, new_admin
        )
        account = ctx.ledger.application(account_app_id)
        ctx.ledger.send_payment(
            ctx,
            account.controlled_address,
            account.controlled_address,
            rekey_to=account.address,
        )


@pytest.fixture
def ledger():
    """A fresh ledger at round 0."""
    return Ledger()


@pytest.fixture
def factory_id(ledger):
    return ledger.deploy(DEPLOYER, AbstractedAccountFactory())


@pytest.fixture
def mint(ledger, factory_id):
    """Mint an abstracted account through the factory."""

    def _mint(admin: str = ADMIN, controlled_address: Optional[str] = None) -> AbstractedAccount:
        app_id = ledger.submit(
            ApplicationCall(
                sender=DEPLOYER,
                app_id=factory_id,
                method="mint",
                args=(admin, controlled_address),
            )
        )
        return ledger.application(app_id)

    return _mint


@pytest.fixture
def account(ledger, mint):
    """Abstracted account controlling its own address, funded with 1000."""
    acct = mint()
    ledger.fund(acct.controlled_address, 1000)
    return acct


@pytest.fixture
def plugin_id(ledger):
    return ledger.deploy(DEPLOYER, PaymentPlugin())


@pytest.fixture
def admin_swap_plugin_id(ledger):
    return ledger.deploy(DEPLOYER, AdminSwapPlugin())


@pytest.fixture
def call(ledger, account):
    """Submit a single call to the account."""

    def _call(sender: str, method: str, *args, **kwargs):
        return ledger.submit(
            ApplicationCall(sender=sender, app_id=account.app_id, method=method, args=args, kwargs=kwargs)
        )

    return _call


@pytest.fixture
def plugin_group(account):
    """Build delegate -> plugin pay -> verify_authority for ``caller``."""

    def _group(plugin_app_id: int, caller: str = CALLER, amount: int = 10, method: str = "pay", verify: bool = True):
        group = [
            ApplicationCall(
                sender=caller,
                app_id=account.app_id,
                method="delegate_to_plugin",
                args=(plugin_app_id,),
            ),
            ApplicationCall(
                sender=caller,
                app_id=plugin_app_id,
                method=method,
                args=(account.app_id, MERCHANT, amount),
            ),
        ]
        if verify:
            group.append(ApplicationCall(sender=caller, app_id=account.app_id, method="verify_authority"))
        return group

    return _group


@pytest.fixture
def return_payment(account):
    """Payment from the controlled address that rekeys it back to the account."""

    def _payment(signer: str) -> Payment:
        return Payment(
            sender=account.controlled_address,
            receiver=account.controlled_address,
            rekey_to=account.address,
            signer=signer,
        )

    return _payment
