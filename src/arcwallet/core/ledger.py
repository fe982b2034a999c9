"""
In-memory ledger that abstracted accounts run against.

Only the parts of the ledger an abstracted account can observe are modelled:
- Accounts with balances and an optional auth address (rekeying)
- Applications (contracts) with deterministic addresses
- Atomic transaction groups
- Inner transactions issued by running applications (application addresses
  have no key, so only inner transactions can be signed by them)

Transaction groups are applied in two phases. Phase one validates the whole
group (size, targets, methods and each target's preflight hook) before any
effect is applied. Phase two snapshots all state, applies the transactions in
order, and restores the snapshot if any of them raises.
"""

from __future__ import annotations

import copy
import hashlib
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, FrozenSet, List, Optional, Sequence, Tuple, Union

from .account_exceptions import (
    AbstractedAccountError,
    GroupTooLarge,
    InsufficientBalance,
    InvalidArgument,
    LedgerError,
    UnauthorizedSigner,
    UnknownApplication,
    UnknownMethod,
)
from .config import Config
from .logging_config import short_address

logger = logging.getLogger(__name__)

FIRST_APP_ID = 1000


def application_address(app_id: int) -> str:
    """Deterministic account address of an application."""
    addr_hash = hashlib.sha3_256(f"app:{app_id}".encode()).digest()
    return f"0x{addr_hash[-20:].hex()}"


@dataclass
class LedgerAccount:
    """A ledger account. ``auth_addr`` of None means the account signs for itself."""

    address: str
    balance: int = 0
    auth_addr: Optional[str] = None

    @property
    def effective_signer(self) -> str:
        return self.auth_addr or self.address


@dataclass(frozen=True)
class Payment:
    """Value transfer, optionally rekeying the sender."""

    sender: str
    receiver: str
    amount: int = 0
    rekey_to: Optional[str] = None
    note: bytes = b""
    signer: Optional[str] = None


@dataclass(frozen=True)
class ApplicationCall:
    """Call of a public application method, optionally rekeying the sender."""

    sender: str
    app_id: int
    method: str
    args: Tuple[Any, ...] = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)
    rekey_to: Optional[str] = None
    signer: Optional[str] = None


Transaction = Union[Payment, ApplicationCall]


@dataclass
class ExecutionContext:
    """What a running application can see about the transaction invoking it."""

    ledger: "Ledger"
    sender: str
    round: int
    app_id: int
    group: Tuple[Transaction, ...] = ()
    group_index: int = 0
    caller_app_id: Optional[int] = None

    @property
    def app_address(self) -> str:
        return application_address(self.app_id)

    @property
    def is_inner(self) -> bool:
        return self.caller_app_id is not None


@dataclass
class Application:
    """
    Base class for ledger applications.

    Public methods are listed in ``ABI_METHODS`` and receive an
    ExecutionContext as their first argument. Applications never hold a
    reference to the ledger; everything they need arrives through the context.
    """

    app_id: int = 0
    creator: str = ""

    ABI_METHODS: ClassVar[FrozenSet[str]] = frozenset()

    @property
    def address(self) -> str:
        return application_address(self.app_id)

    def create(self, ctx: ExecutionContext, *args: Any, **kwargs: Any) -> None:
        """Initialize application state. Called once, when the app is installed."""

    def preflight(self, group: Tuple[Transaction, ...], index: int) -> None:
        """Validate a call at ``group[index]`` before any transaction is applied."""

    def snapshot(self) -> Dict[str, Any]:
        return copy.deepcopy(self.__dict__)

    def restore(self, state: Dict[str, Any]) -> None:
        self.__dict__.clear()
        self.__dict__.update(copy.deepcopy(state))


class Ledger:
    """
    Ledger state plus the atomic group executor.

    Groups are serialized: no group observes a partially applied effect of
    another.
    """

    def __init__(self, genesis_round: int = 0, max_group_size: Optional[int] = None):
        self.round = genesis_round
        self.max_group_size = max_group_size or Config.MAX_GROUP_SIZE
        self.accounts: Dict[str, LedgerAccount] = {}
        self.applications: Dict[int, Application] = {}
        self.committed_groups = 0
        self._next_app_id = FIRST_APP_ID
        self._lock = threading.RLock()

    # ==================== Accounts ====================

    def account(self, address: str) -> LedgerAccount:
        """Get an account, creating an empty one on first use."""
        if not address:
            raise InvalidArgument("Address must not be empty")
        acct = self.accounts.get(address)
        if acct is None:
            acct = LedgerAccount(address=address)
            self.accounts[address] = acct
        return acct

    def lookup(self, address: str) -> LedgerAccount:
        """Get an account without creating it. Unknown addresses read as empty."""
        if not address:
            raise InvalidArgument("Address must not be empty")
        acct = self.accounts.get(address)
        if acct is None:
            return LedgerAccount(address=address)
        return acct

    def auth_addr(self, address: str) -> Optional[str]:
        return self.lookup(address).auth_addr

    def balance(self, address: str) -> int:
        return self.lookup(address).balance

    def fund(self, address: str, amount: int) -> None:
        if amount < 0:
            raise InvalidArgument("Funding amount must not be negative")
        with self._lock:
            self.account(address).balance += amount

    # ==================== Rounds ====================

    def advance(self, rounds: int = 1) -> int:
        if rounds < 0:
            raise LedgerError("Rounds only move forward", details={"rounds": rounds})
        with self._lock:
            self.round += rounds
            return self.round

    def advance_to(self, round_: int) -> int:
        if round_ < self.round:
            raise LedgerError(
                "Rounds only move forward",
                details={"current": self.round, "requested": round_},
            )
        with self._lock:
            self.round = round_
            return self.round

    # ==================== Applications ====================

    def application(self, app_id: int) -> Application:
        app = self.applications.get(app_id)
        if app is None:
            raise UnknownApplication(f"Application {app_id} does not exist", details={"app_id": app_id})
        return app

    def deploy(self, sender: str, app: Application, *args: Any, **kwargs: Any) -> int:
        """Install an application from an external account. Atomic."""
        with self._lock:
            state = self._snapshot()
            try:
                return self._install(app, sender, None, args, kwargs)
            except Exception:
                self._restore(state)
                raise

    def create_application(
        self, ctx: ExecutionContext, app: Application, *args: Any, **kwargs: Any
    ) -> int:
        """Install an application from inside a running application."""
        return self._install(app, ctx.app_address, ctx.app_id, args, kwargs)

    def _install(
        self,
        app: Application,
        sender: str,
        caller_app_id: Optional[int],
        args: Tuple[Any, ...],
        kwargs: Dict[str, Any],
    ) -> int:
        app_id = self._next_app_id
        self._next_app_id += 1
        app.app_id = app_id
        app.creator = sender
        self.account(app.address)
        self.applications[app_id] = app

        ctx = ExecutionContext(
            ledger=self,
            sender=sender,
            round=self.round,
            app_id=app_id,
            caller_app_id=caller_app_id,
        )
        app.create(ctx, *args, **kwargs)

        logger.info(
            "Application created",
            extra={
                "event": "ledger.app_created",
                "app_id": app_id,
                "app_type": type(app).__name__,
                "creator": short_address(sender),
                "inner": caller_app_id is not None,
            },
        )
        return app_id

    # ==================== Transaction Groups ====================

    def submit(self, txn: Transaction) -> Any:
        """Submit a single transaction as a group of one."""
        return self.submit_group([txn])[0]

    def submit_group(self, transactions: Sequence[Transaction]) -> List[Any]:
        """
        Apply a transaction group atomically.

        Returns:
            One result per transaction (None for payments)

        Raises:
            AbstractedAccountError: The first failure; no effect of the group
                persists. ``details["group_index"]`` names the failing position.
        """
        group = tuple(transactions)
        with self._lock:
            self.validate_group(group)

            state = self._snapshot()
            results: List[Any] = []
            index = 0
            try:
                for index, txn in enumerate(group):
                    results.append(self._apply(group, index, txn))
            except AbstractedAccountError as exc:
                self._restore(state)
                exc.details.setdefault("group_index", index)
                logger.warning(
                    "Transaction group rejected",
                    extra={
                        "event": "ledger.group_rejected",
                        "round": self.round,
                        "size": len(group),
                        "group_index": index,
                        "error": exc.kind,
                        "reason": exc.message,
                    },
                )
                raise
            except Exception:
                self._restore(state)
                raise

            self.committed_groups += 1
            logger.debug(
                "Transaction group committed",
                extra={"event": "ledger.group_committed", "round": self.round, "size": len(group)},
            )
            return results

    def validate_group(self, group: Tuple[Transaction, ...]) -> None:
        """Phase one: reject a malformed group before anything is applied."""
        if not group:
            raise InvalidArgument("Transaction group is empty")
        if len(group) > self.max_group_size:
            raise GroupTooLarge(
                f"Group has {len(group)} transactions, limit is {self.max_group_size}",
                details={"size": len(group), "limit": self.max_group_size},
            )

        for index, txn in enumerate(group):
            if not isinstance(txn, ApplicationCall):
                continue
            app = self.application(txn.app_id)
            self._require_method(app, txn.method)
            try:
                app.preflight(group, index)
            except AbstractedAccountError as exc:
                exc.details.setdefault("group_index", index)
                raise

    def _apply(self, group: Tuple[Transaction, ...], index: int, txn: Transaction) -> Any:
        signer = txn.signer or txn.sender
        if self._is_application_address(signer):
            raise UnauthorizedSigner(
                f"Application address {short_address(signer)} can only sign inner transactions",
                details={"sender": txn.sender, "signer": signer},
            )
        self._require_signer(txn.sender, signer)

        if isinstance(txn, Payment):
            self._transfer(txn)
            return None

        app = self.application(txn.app_id)
        ctx = ExecutionContext(
            ledger=self,
            sender=txn.sender,
            round=self.round,
            app_id=txn.app_id,
            group=group,
            group_index=index,
        )
        result = getattr(app, txn.method)(ctx, *txn.args, **txn.kwargs)
        if txn.rekey_to is not None:
            self._rekey(txn.sender, txn.rekey_to)
        return result

    # ==================== Inner Transactions ====================

    def send_payment(
        self,
        ctx: ExecutionContext,
        sender: str,
        receiver: str,
        amount: int = 0,
        rekey_to: Optional[str] = None,
        note: bytes = b"",
    ) -> Payment:
        """Issue a payment signed by the running application."""
        payment = Payment(
            sender=sender,
            receiver=receiver,
            amount=amount,
            rekey_to=rekey_to,
            note=note,
            signer=ctx.app_address,
        )
        self._require_signer(sender, ctx.app_address)
        self._transfer(payment)
        return payment

    def call_application(
        self, ctx: ExecutionContext, app_id: int, method: str, *args: Any, **kwargs: Any
    ) -> Any:
        """Call another application from the running application."""
        app = self.application(app_id)
        self._require_method(app, method)
        self._require_signer(ctx.app_address, ctx.app_address)

        call = ApplicationCall(
            sender=ctx.app_address, app_id=app_id, method=method, args=args, kwargs=kwargs
        )
        inner_ctx = ExecutionContext(
            ledger=self,
            sender=ctx.app_address,
            round=self.round,
            app_id=app_id,
            group=(call,),
            group_index=0,
            caller_app_id=ctx.app_id,
        )
        return getattr(app, method)(inner_ctx, *args, **kwargs)

    # ==================== Internal ====================

    def _is_application_address(self, address: str) -> bool:
        return any(app.address == address for app in self.applications.values())

    def _require_method(self, app: Application, method: str) -> None:
        if method not in app.ABI_METHODS:
            raise UnknownMethod(
                f"{type(app).__name__} has no public method {method!r}",
                details={"app_id": app.app_id, "method": method},
            )

    def _require_signer(self, sender: str, signer: str) -> None:
        expected = self.lookup(sender).effective_signer
        if signer != expected:
            raise UnauthorizedSigner(
                f"Transaction from {short_address(sender)} must be signed by "
                f"{short_address(expected)}",
                details={"sender": sender, "signer": signer, "expected": expected},
            )

    def _transfer(self, payment: Payment) -> None:
        if payment.amount < 0:
            raise InvalidArgument("Payment amount must not be negative")
        source = self.account(payment.sender)
        if payment.amount > source.balance:
            raise InsufficientBalance(
                f"Balance {source.balance} is below payment amount {payment.amount}",
                details={"sender": payment.sender, "amount": payment.amount},
            )
        source.balance -= payment.amount
        self.account(payment.receiver).balance += payment.amount
        if payment.rekey_to is not None:
            self._rekey(payment.sender, payment.rekey_to)

    def _rekey(self, address: str, target: str) -> None:
        acct = self.account(address)
        acct.auth_addr = None if target == address else target
        logger.debug(
            "Account rekeyed",
            extra={
                "event": "ledger.rekey",
                "account": short_address(address),
                "auth_addr": short_address(acct.auth_addr),
            },
        )

    def _snapshot(self) -> Dict[str, Any]:
        return {
            "accounts": copy.deepcopy(self.accounts),
            "applications": {app_id: app.snapshot() for app_id, app in self.applications.items()},
            "next_app_id": self._next_app_id,
        }

    def _restore(self, state: Dict[str, Any]) -> None:
        self.accounts = copy.deepcopy(state["accounts"])
        saved = state["applications"]
        for app_id in list(self.applications):
            if app_id not in saved:
                del self.applications[app_id]
        for app_id, app_state in saved.items():
            self.applications[app_id].restore(app_state)
        self._next_app_id = state["next_app_id"]
