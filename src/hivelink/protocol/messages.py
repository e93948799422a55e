"""Typed Message Protocol

エージェント間メッセージのヘッダーと、タイプごとに固定されたペイロード。
PAYLOAD_TYPE_MAP で header.type からペイロードモデルを引き、
parse_message() で辞書/JSON文字列から TypedMessage を復元する。
"""

from __future__ import annotations

import json
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from ulid import ULID

from ..core.board.models import AgentStatus, utcnow

# 組織全体へのブロードキャストを表す宛先
BROADCAST = "*"


def generate_message_id() -> str:
    """メッセージIDを生成 (ULID形式)"""
    return str(ULID())


class MessageType(StrEnum):
    """メッセージタイプ"""

    TASK_HANDOFF = "TASK_HANDOFF"
    TASK_RESULT = "TASK_RESULT"
    DECISION_REQUEST = "DECISION_REQUEST"
    DECISION_RESULT = "DECISION_RESULT"
    STATUS_UPDATE = "STATUS_UPDATE"
    CONFLICT_REPORT = "CONFLICT_REPORT"
    KNOWLEDGE_SHARE = "KNOWLEDGE_SHARE"
    REVIEW_REQUEST = "REVIEW_REQUEST"
    REVIEW_RESULT = "REVIEW_RESULT"
    FREEFORM = "FREEFORM"


class MessagePriority(StrEnum):
    """メッセージ優先度"""

    BLOCKING = "blocking"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class StateRefType(StrEnum):
    """ボード上の参照先種別"""

    AGENT = "agent"
    DECISION = "decision"
    BLOCKER = "blocker"
    ARTIFACT = "artifact"


class StateRef(BaseModel):
    """ボード上のエンティティへの参照"""

    type: StateRefType
    id: str


class MessageHeader(BaseModel):
    """メッセージヘッダー

    sender はJSON上では "from" として入出力する。
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=generate_message_id, description="メッセージID")
    type: MessageType
    sender: str = Field(..., alias="from", description="送信元セッションID")
    to: str | list[str] = Field(..., description="宛先。'*' は組織全体へのブロードキャスト")
    priority: MessagePriority = Field(default=MessagePriority.NORMAL)
    timestamp: datetime = Field(default_factory=utcnow)
    context_summary: str = Field(default="", description="受信者にとっての意味")
    related_state_refs: list[StateRef] = Field(default_factory=list)

    def recipients(self) -> list[str]:
        """宛先をリストに正規化"""
        if isinstance(self.to, str):
            return [self.to]
        return list(self.to)

    def is_broadcast(self) -> bool:
        """ブロードキャストか"""
        return BROADCAST in self.recipients()


# ---------------------------------------------------------------------------
# ペイロード
# ---------------------------------------------------------------------------


class ExpectedHandoffOutput(BaseModel):
    format: str = ""
    success_criteria: list[str] = Field(default_factory=list)


class TaskHandoffPayload(BaseModel):
    """タスク委譲"""

    task_description: str
    input_artifacts: list[str] = Field(default_factory=list)
    expected_output: ExpectedHandoffOutput = Field(default_factory=ExpectedHandoffOutput)
    constraints: list[str] = Field(default_factory=list)
    authority_scope: str = ""
    fallback_on_failure: str = ""
    task_contract_id: str | None = None


class TaskOutcome(StrEnum):
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class TaskResultPayload(BaseModel):
    """タスク結果報告"""

    original_task_ref: str
    status: TaskOutcome
    output_artifacts: list[str] = Field(default_factory=list)
    summary: str
    deviations: list[str] | None = None
    open_questions: list[str] | None = None


class DecisionRequestOption(BaseModel):
    label: str
    analysis: str = ""
    recommendation_score: float | None = None


class DecisionRequestPayload(BaseModel):
    """意思決定の依頼"""

    decision_id: str
    question: str
    options: list[DecisionRequestOption] = Field(default_factory=list)
    recommended: str | None = None
    deadline_steps: int | None = None


class DecisionResultPayload(BaseModel):
    """意思決定の結果"""

    decision_id: str
    chosen_option: str
    rationale: str = ""
    additional_constraints: list[str] | None = None


class StatusUpdatePayload(BaseModel):
    """状態更新"""

    task_ref: str | None = None
    new_status: AgentStatus
    progress_summary: str = ""
    estimated_remaining: str | None = None
    blockers: list[str] | None = None


class ConflictSeverity(StrEnum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class ConflictReportPayload(BaseModel):
    """衝突の報告"""

    conflict_description: str
    conflicting_artifacts: list[str] = Field(default_factory=list)
    conflicting_decisions: list[str] | None = None
    suggested_resolution: str | None = None
    severity: ConflictSeverity = ConflictSeverity.WARNING


class KnowledgeSharePayload(BaseModel):
    """知見の共有"""

    topic: str
    content: str
    relevance_to_recipients: str = ""
    actionable: bool = False
    action_suggestion: str | None = None


class ReviewRequestPayload(BaseModel):
    """レビュー依頼"""

    artifact_ref: str
    review_focus: list[str] = Field(default_factory=list)
    blocking: bool = False


class ReviewVerdict(StrEnum):
    APPROVED = "approved"
    CHANGES_REQUESTED = "changes_requested"
    REJECTED = "rejected"


class FindingSeverity(StrEnum):
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"
    SUGGESTION = "suggestion"


class ReviewFinding(BaseModel):
    severity: FindingSeverity
    location: str = ""
    description: str
    suggested_fix: str | None = None


class ReviewResultPayload(BaseModel):
    """レビュー結果"""

    artifact_ref: str
    verdict: ReviewVerdict
    findings: list[ReviewFinding] = Field(default_factory=list)
    summary: str = ""


class FreeformPayload(BaseModel):
    """自由形式（型に当てはまらない場合のみ）"""

    intent_hint: str = ""
    body: str
    requires_response: bool = False
    urgency: MessagePriority = MessagePriority.NORMAL


MessagePayload = (
    TaskHandoffPayload
    | TaskResultPayload
    | DecisionRequestPayload
    | DecisionResultPayload
    | StatusUpdatePayload
    | ConflictReportPayload
    | KnowledgeSharePayload
    | ReviewRequestPayload
    | ReviewResultPayload
    | FreeformPayload
)

PAYLOAD_TYPE_MAP: dict[MessageType, type[BaseModel]] = {
    MessageType.TASK_HANDOFF: TaskHandoffPayload,
    MessageType.TASK_RESULT: TaskResultPayload,
    MessageType.DECISION_REQUEST: DecisionRequestPayload,
    MessageType.DECISION_RESULT: DecisionResultPayload,
    MessageType.STATUS_UPDATE: StatusUpdatePayload,
    MessageType.CONFLICT_REPORT: ConflictReportPayload,
    MessageType.KNOWLEDGE_SHARE: KnowledgeSharePayload,
    MessageType.REVIEW_REQUEST: ReviewRequestPayload,
    MessageType.REVIEW_RESULT: ReviewResultPayload,
    MessageType.FREEFORM: FreeformPayload,
}


def _header_type(header: Any) -> MessageType | None:
    raw = header.type if isinstance(header, MessageHeader) else None
    if isinstance(header, dict):
        raw = header.get("type")
    try:
        return MessageType(raw)
    except ValueError:
        return None


class TypedMessage(BaseModel):
    """型付きメッセージ（ヘッダー + タイプ固有ペイロード）"""

    header: MessageHeader
    payload: MessagePayload

    @model_validator(mode="before")
    @classmethod
    def _select_payload(cls, data: Any) -> Any:
        """header.type に対応するモデルでペイロードを検証する"""
        if not isinstance(data, dict):
            return data
        payload = data.get("payload")
        msg_type = _header_type(data.get("header"))
        if msg_type is None or isinstance(payload, BaseModel) or payload is None:
            return data
        return {**data, "payload": PAYLOAD_TYPE_MAP[msg_type].model_validate(payload)}

    @model_validator(mode="after")
    def _check_payload_type(self) -> TypedMessage:
        expected = PAYLOAD_TYPE_MAP[self.header.type]
        if not isinstance(self.payload, expected):
            raise ValueError(
                f"{self.header.type} message requires {expected.__name__}, "
                f"got {type(self.payload).__name__}"
            )
        return self

    @property
    def id(self) -> str:
        return self.header.id

    def to_json(self, indent: int | None = 2) -> str:
        """JSON文字列にシリアライズ（sender は "from" として出力）"""
        return self.model_dump_json(indent=indent, by_alias=True)


def create_message(
    message_type: MessageType,
    sender: str,
    to: str | list[str],
    payload: BaseModel | dict[str, Any],
    priority: MessagePriority = MessagePriority.NORMAL,
    context_summary: str = "",
    related_state_refs: list[StateRef] | None = None,
) -> TypedMessage:
    """新しいIDとタイムスタンプでメッセージを組み立てる"""
    header = MessageHeader(
        type=message_type,
        sender=sender,
        to=to,
        priority=priority,
        context_summary=context_summary,
        related_state_refs=related_state_refs or [],
    )
    return TypedMessage.model_validate({"header": header, "payload": payload})


def parse_message(data: dict[str, Any] | str) -> TypedMessage:
    """メッセージデータをパースして TypedMessage に変換

    Raises:
        pydantic.ValidationError: ヘッダーまたはペイロードが不正な場合
        json.JSONDecodeError: 文字列がJSONとして不正な場合
    """
    if isinstance(data, str):
        data = json.loads(data)
    return TypedMessage.model_validate(data)
