"""
Atomic batch verification.

Whenever an abstracted account hands its authority away, the rest of the
transaction group must contain one of:
  (a) a transaction from the controlled address that rekeys it back to the
      abstracted account, or
  (b) a call to this abstracted account's ``verify_authority`` method.
Otherwise the whole group is rejected.
"""

from __future__ import annotations

from typing import Optional, Sequence

from ..account_exceptions import SelfDelegationInvariantViolated
from ..ledger import ApplicationCall, Transaction, application_address

VERIFY_AUTHORITY_METHOD = "verify_authority"


def returns_authority(txn: Transaction, controlled_address: str, controller_address: str) -> bool:
    return txn.sender == controlled_address and txn.rekey_to == controller_address


def is_verify_call(txn: Transaction, controller_app_id: int) -> bool:
    return (
        isinstance(txn, ApplicationCall)
        and txn.app_id == controller_app_id
        and txn.method == VERIFY_AUTHORITY_METHOD
        and not txn.args
        and not txn.kwargs
    )


def find_authority_return(
    group: Sequence[Transaction],
    index: int,
    controller_app_id: int,
    controlled_address: str,
) -> Optional[int]:
    """Position of the first transaction after ``index`` that restores authority."""
    controller_address = application_address(controller_app_id)
    for position in range(index + 1, len(group)):
        txn = group[position]
        if returns_authority(txn, controlled_address, controller_address):
            return position
        if is_verify_call(txn, controller_app_id):
            return position
    return None


def require_authority_return(
    group: Sequence[Transaction],
    index: int,
    controller_app_id: int,
    controlled_address: str,
) -> int:
    position = find_authority_return(group, index, controller_app_id, controlled_address)
    if position is None:
        raise SelfDelegationInvariantViolated(
            "Authority must be returned to the abstracted account later in the same group",
            details={"app_id": controller_app_id, "group_index": index, "group_size": len(group)},
        )
    return position
