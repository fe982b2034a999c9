"""
Scenario runner for the ``arcwallet simulate`` command.

A scenario describes an abstracted account and a list of steps to run against
an in-memory ledger. Example::

    admin: "0xadmin"
    fund:
      "0xadmin": 1000
    recovery:
      name: recovery
      secret: "correct horse battery staple"
    steps:
      - name: grant recovery plugin
        group:
          - call: add_plugin
            sender: "0xadmin"
            args: ["$recovery", "$any", 1000, 0, true]
      - advance: 3
      - name: recover admin
        group:
          - call: delegate_to_plugin
            sender: "0xanyone"
            args: ["$recovery"]
          - call: recover
            app: "$recovery"
            sender: "0xanyone"
            args: ["$account", {text: "correct horse battery staple"}, "0xnewadmin"]
          - call: verify_authority
            sender: "0xanyone"

References: ``$account`` (app id), ``$account.address``,
``$account.controlled``, ``$<name>`` / ``$<name>.address`` for deployed apps,
``$any`` for the wildcard caller. ``{text: ...}`` and ``{hex: ...}`` become
bytes. Each step may set ``expect`` to ``ok`` (default) or an error kind.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..core.account_exceptions import AbstractedAccountError
from ..core.contracts.abstracted_account import AbstractedAccount
from ..core.contracts.factory import AbstractedAccountFactory
from ..core.contracts.permission_store import ANY_CALLER
from ..core.contracts.recovery_plugin import RecoveryPlugin, recovery_commitment
from ..core.ledger import ApplicationCall, Ledger, Payment, Transaction

logger = logging.getLogger(__name__)

DEFAULT_DEPLOYER = "0xdeployer"


class ScenarioError(ValueError):
    """Raised when a scenario file is malformed."""
    pass


@dataclass
class StepResult:
    index: int
    label: str
    kind: str
    round: int
    committed: bool
    expected: str = "ok"
    error: Optional[str] = None
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    matched: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_scenario(path: Path) -> Dict[str, Any]:
    """Load a YAML scenario into a dict."""
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ScenarioError(f"Scenario file {path} must contain a mapping.")
    return data


class ScenarioRunner:
    """Builds a ledger and an abstracted account, then runs scenario steps."""

    def __init__(self, scenario: Dict[str, Any], ledger: Optional[Ledger] = None):
        self.scenario = scenario
        self.ledger = ledger or Ledger(genesis_round=int(scenario.get("round", 0)))
        self.apps: Dict[str, int] = {}
        self.account: Optional[AbstractedAccount] = None

    def setup(self) -> None:
        admin = self.scenario.get("admin")
        if not admin:
            raise ScenarioError("Scenario must name an admin address")

        deployer = self.scenario.get("deployer", DEFAULT_DEPLOYER)
        factory_id = self.ledger.deploy(
            deployer,
            AbstractedAccountFactory(),
            self.scenario.get("version"),
            self.scenario.get("revocation_app"),
        )
        account_id = self.ledger.submit(
            ApplicationCall(
                sender=deployer,
                app_id=factory_id,
                method="mint",
                args=(admin, self.scenario.get("controlled")),
            )
        )
        self.apps["factory"] = factory_id
        self.apps["account"] = account_id
        account = self.ledger.application(account_id)
        if not isinstance(account, AbstractedAccount):
            raise ScenarioError(f"Application {account_id} is not an abstracted account")
        self.account = account

        recovery = self.scenario.get("recovery")
        if recovery:
            secret = str(recovery.get("secret", ""))
            if not secret:
                raise ScenarioError("Recovery plugin needs a secret")
            self.apps[recovery.get("name", "recovery")] = self.ledger.deploy(
                deployer,
                RecoveryPlugin(),
                account_id,
                recovery_commitment(secret.encode()),
            )

        for address, amount in (self.scenario.get("fund") or {}).items():
            self.ledger.fund(self.resolve(address), int(amount))

    def run(self) -> List[StepResult]:
        if self.account is None:
            self.setup()
        steps = self.scenario.get("steps") or []
        if not isinstance(steps, list):
            raise ScenarioError("'steps' must be a list")
        return [self._run_step(index, step) for index, step in enumerate(steps)]

    def _run_step(self, index: int, step: Dict[str, Any]) -> StepResult:
        if not isinstance(step, dict):
            raise ScenarioError(f"Step {index} must be a mapping")
        expected = str(step.get("expect", "ok"))

        if "advance" in step:
            self.ledger.advance(int(step["advance"]))
            return StepResult(index, step.get("name", "advance"), "advance", self.ledger.round, True)
        if "fund" in step:
            funding = step["fund"]
            self.ledger.fund(self.resolve(funding["address"]), int(funding["amount"]))
            return StepResult(index, step.get("name", "fund"), "fund", self.ledger.round, True)
        if "group" not in step:
            raise ScenarioError(f"Step {index} must be one of advance, fund or group")

        group = [self._build_transaction(entry) for entry in step["group"]]
        label = step.get("name", f"group of {len(group)}")
        try:
            self.ledger.submit_group(group)
        except AbstractedAccountError as exc:
            result = StepResult(
                index,
                label,
                "group",
                self.ledger.round,
                False,
                expected=expected,
                error=exc.kind,
                message=exc.message,
                details=dict(exc.details),
            )
            result.matched = expected != "ok" and expected in _kind_names(exc)
            return result

        return StepResult(index, label, "group", self.ledger.round, True, expected=expected, matched=expected == "ok")

    def _build_transaction(self, entry: Dict[str, Any]) -> Transaction:
        if "call" in entry:
            app_ref = entry.get("app", "$account")
            return ApplicationCall(
                sender=self.resolve(entry["sender"]),
                app_id=int(self.resolve(app_ref)),
                method=str(entry["call"]),
                args=tuple(self.resolve(arg) for arg in entry.get("args") or ()),
                kwargs={key: self.resolve(value) for key, value in (entry.get("kwargs") or {}).items()},
                rekey_to=self.resolve(entry.get("rekey_to")),
                signer=self.resolve(entry.get("signer")),
            )
        if "pay" in entry:
            payment = entry["pay"]
            return Payment(
                sender=self.resolve(payment["sender"]),
                receiver=self.resolve(payment["receiver"]),
                amount=int(payment.get("amount", 0)),
                rekey_to=self.resolve(payment.get("rekey_to")),
                signer=self.resolve(payment.get("signer")),
            )
        raise ScenarioError(f"Group entry must be a call or a pay: {entry!r}")

    def resolve(self, value: Any) -> Any:
        """Replace ``$`` references and byte literals in a scenario value."""
        if isinstance(value, dict):
            if "text" in value:
                return str(value["text"]).encode()
            if "hex" in value:
                return bytes.fromhex(str(value["hex"]))
            return {key: self.resolve(item) for key, item in value.items()}
        if isinstance(value, list):
            return [self.resolve(item) for item in value]
        if not isinstance(value, str) or not value.startswith("$"):
            return value

        if value == "$any":
            return ANY_CALLER
        name, _, attribute = value[1:].partition(".")
        if name not in self.apps:
            raise ScenarioError(f"Unknown reference {value!r}")
        app = self.ledger.application(self.apps[name])
        if not attribute:
            return app.app_id
        if attribute == "address":
            return app.address
        if attribute == "controlled" and isinstance(app, AbstractedAccount):
            return app.controlled_address
        raise ScenarioError(f"Unknown reference attribute in {value!r}")


def _kind_names(exc: BaseException) -> List[str]:
    return [cls.__name__ for cls in type(exc).__mro__]
