"""Task Contract - 委譲契約の永続化"""

from .machine import CONTRACT_TRANSITIONS, ContractStateMachine, TransitionError
from .models import (
    AcceptanceCriterion,
    ContractAuthority,
    ContractConstraint,
    ContractInputs,
    ContractOutcome,
    ContractResult,
    ContractStatus,
    ContractTimeout,
    ExpectedOutput,
    FailureHandling,
    TaskContract,
)
from .store import ContractStore

__all__ = [
    "AcceptanceCriterion",
    "ContractAuthority",
    "ContractConstraint",
    "ContractInputs",
    "ContractOutcome",
    "ContractResult",
    "ContractStatus",
    "ContractTimeout",
    "ExpectedOutput",
    "FailureHandling",
    "TaskContract",
    "ContractStore",
    "CONTRACT_TRANSITIONS",
    "ContractStateMachine",
    "TransitionError",
]
