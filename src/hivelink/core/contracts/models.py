"""Task Contract データモデル

委譲作業の条件（入力・制約・受け入れ基準・権限範囲・失敗時の扱い）を表す。
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from ..board.models import utcnow


class ContractStatus(StrEnum):
    """契約の状態"""

    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ContractOutcome(StrEnum):
    """契約完了時の結果種別"""

    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class ContractConstraint(BaseModel):
    """制約（hard=Trueは絶対遵守、Falseはベストエフォート）"""

    constraint: str
    hard: bool = False


class AcceptanceCriterion(BaseModel):
    """受け入れ基準"""

    criterion: str
    verification_method: str = ""


class ContractInputs(BaseModel):
    """委譲時の入力"""

    description: str
    artifacts: list[str] = Field(default_factory=list, description="入力成果物のref")
    constraints: list[ContractConstraint] = Field(default_factory=list)
    assumptions: list[str] = Field(default_factory=list)


class ExpectedOutput(BaseModel):
    """期待する出力"""

    model_config = ConfigDict(populate_by_name=True)

    format: str = ""
    output_schema: str | None = Field(default=None, alias="schema")
    deliverables: list[str] = Field(default_factory=list)


class ContractAuthority(BaseModel):
    """権限範囲"""

    autonomous_decisions: list[str] = Field(default_factory=list)
    must_consult: list[str] = Field(default_factory=list)
    escalation_triggers: list[str] = Field(default_factory=list)


class FailureHandling(BaseModel):
    """失敗時の扱い"""

    on_blocked: str = "Report blocker and wait."
    on_partial_completion: str = "Return partial results with explanation."
    on_assumption_violation: str = "Immediately report and pause."
    max_retries: int | None = Field(default=None, ge=0)


class ContractTimeout(BaseModel):
    """タイムアウト方針（エージェントループ側で消費される）"""

    max_steps: int | None = Field(default=None, ge=1)
    on_timeout: str = "Report current progress as partial."


class ContractResult(BaseModel):
    """完了時に記録される結果"""

    status: ContractOutcome
    summary: str
    artifacts: list[str] = Field(default_factory=list)
    deviations: list[str] = Field(default_factory=list)
    completed_at: datetime = Field(default_factory=utcnow)


class TaskContract(BaseModel):
    """タスク契約"""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1, description="契約ID（例: TC-01J...）")
    delegator: str = Field(..., description="委譲元セッションID")
    assignee: str = Field(..., description="担当セッションID")
    created_at: datetime = Field(default_factory=utcnow)
    status: ContractStatus = Field(default=ContractStatus.PENDING)
    inputs: ContractInputs
    expected_output: ExpectedOutput = Field(default_factory=ExpectedOutput)
    acceptance_criteria: list[AcceptanceCriterion] = Field(default_factory=list)
    authority: ContractAuthority = Field(default_factory=ContractAuthority)
    failure_handling: FailureHandling = Field(default_factory=FailureHandling)
    timeout: ContractTimeout = Field(default_factory=ContractTimeout)
    result: ContractResult | None = None

    def is_party(self, session_id: str) -> bool:
        """委譲元または担当者か"""
        return session_id in (self.delegator, self.assignee)

    def to_json(self) -> str:
        """JSON文字列にシリアライズ"""
        return self.model_dump_json(indent=2, by_alias=True)
