"""契約の状態機械

TaskContract.status の遷移を管理する。
ストア自体は遷移を検証しないため、エージェント向けツール層がここを参照する。
"""

from __future__ import annotations

from dataclasses import dataclass

from .models import ContractStatus


class TransitionError(Exception):
    """不正な状態遷移"""

    pass


@dataclass(frozen=True)
class Transition:
    """状態遷移の定義"""

    from_state: ContractStatus
    to_state: ContractStatus


# 状態遷移:
# - PENDING -> ACCEPTED / IN_PROGRESS (受諾時) / CANCELLED
# - ACCEPTED -> IN_PROGRESS / CANCELLED
# - IN_PROGRESS -> COMPLETED / PARTIAL / FAILED / CANCELLED
# - PARTIAL -> IN_PROGRESS (継続作業時)
CONTRACT_TRANSITIONS: list[Transition] = [
    Transition(ContractStatus.PENDING, ContractStatus.ACCEPTED),
    Transition(ContractStatus.PENDING, ContractStatus.IN_PROGRESS),
    Transition(ContractStatus.PENDING, ContractStatus.CANCELLED),
    Transition(ContractStatus.ACCEPTED, ContractStatus.IN_PROGRESS),
    Transition(ContractStatus.ACCEPTED, ContractStatus.CANCELLED),
    Transition(ContractStatus.IN_PROGRESS, ContractStatus.COMPLETED),
    Transition(ContractStatus.IN_PROGRESS, ContractStatus.PARTIAL),
    Transition(ContractStatus.IN_PROGRESS, ContractStatus.FAILED),
    Transition(ContractStatus.IN_PROGRESS, ContractStatus.CANCELLED),
    Transition(ContractStatus.PARTIAL, ContractStatus.IN_PROGRESS),
]


class ContractStateMachine:
    """契約状態機械"""

    def __init__(self, initial_state: ContractStatus = ContractStatus.PENDING):
        self.current_state = initial_state
        self._transitions = {(t.from_state, t.to_state) for t in CONTRACT_TRANSITIONS}

    def can_transition(self, to_state: ContractStatus) -> bool:
        """指定状態へ遷移可能か確認"""
        return (self.current_state, to_state) in self._transitions

    def get_valid_targets(self) -> list[ContractStatus]:
        """現在の状態から遷移可能な状態一覧を取得"""
        return [to for (frm, to) in sorted(self._transitions) if frm == self.current_state]

    def transition(self, to_state: ContractStatus) -> ContractStatus:
        """状態遷移

        Raises:
            TransitionError: 不正な遷移の場合
        """
        if not self.can_transition(to_state):
            valid = [str(s) for s in self.get_valid_targets()]
            raise TransitionError(
                f"Invalid transition: {self.current_state} -> {to_state}. Valid targets: {valid}"
            )
        self.current_state = to_state
        return self.current_state
