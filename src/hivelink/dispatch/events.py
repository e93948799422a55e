"""ディスパッチイベント

ボードの状態変化を表す不変イベント。name をタグとする判別共用体。
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from ..core.board.models import AgentStatus
from ..protocol.messages import ConflictSeverity


class DispatchEventName(StrEnum):
    """ディスパッチイベント名"""

    TASK_COMPLETED = "task_completed"
    TASK_BLOCKED = "task_blocked"
    DECISION_RESOLVED = "decision_resolved"
    CONFLICT_DETECTED = "conflict_detected"
    ARTIFACT_UPDATED = "artifact_updated"
    BLOCKER_RESOLVED = "blocker_resolved"
    AGENT_STATUS_CHANGED = "agent_status_changed"


class BaseDispatchEvent(BaseModel):
    """ディスパッチイベント基底クラス"""

    model_config = ConfigDict(frozen=True)

    org_id: str = Field(..., min_length=1)


class TaskCompletedEvent(BaseDispatchEvent):
    """タスク完了: この担当者を待っているエージェントのブロックを解除する"""

    name: Literal["task_completed"] = "task_completed"
    agent_id: str
    task_description: str = ""
    artifact_refs: list[str] = Field(default_factory=list)


class TaskBlockedEvent(BaseDispatchEvent):
    """タスクブロック: ブロック元のエージェントに知らせる"""

    name: Literal["task_blocked"] = "task_blocked"
    agent_id: str
    blocked_by: str
    task_description: str | None = None


class DecisionResolvedEvent(BaseDispatchEvent):
    """決定事項の解決"""

    name: Literal["decision_resolved"] = "decision_resolved"
    decision_id: str
    resolution: str
    owner_agent_id: str


class ConflictDetectedEvent(BaseDispatchEvent):
    """衝突の検出"""

    name: Literal["conflict_detected"] = "conflict_detected"
    reporter_agent_id: str
    conflict_description: str
    conflicting_artifacts: list[str] = Field(default_factory=list)
    severity: ConflictSeverity = ConflictSeverity.WARNING


class ArtifactUpdatedEvent(BaseDispatchEvent):
    """成果物の更新"""

    name: Literal["artifact_updated"] = "artifact_updated"
    agent_id: str
    artifact_ref: str
    old_version: int = 0
    new_version: int = 1
    change_summary: str = ""


class BlockerResolvedEvent(BaseDispatchEvent):
    """ブロッカーの解決"""

    name: Literal["blocker_resolved"] = "blocker_resolved"
    blocker_id: str
    resolved_by: str
    affected_agents: list[str] = Field(default_factory=list)


class AgentStatusChangedEvent(BaseDispatchEvent):
    """エージェント状態の変化（購読者向けのみ）"""

    name: Literal["agent_status_changed"] = "agent_status_changed"
    agent_id: str
    old_status: AgentStatus
    new_status: AgentStatus


DispatchEvent = Annotated[
    TaskCompletedEvent
    | TaskBlockedEvent
    | DecisionResolvedEvent
    | ConflictDetectedEvent
    | ArtifactUpdatedEvent
    | BlockerResolvedEvent
    | AgentStatusChangedEvent,
    Field(discriminator="name"),
]

_dispatch_event_adapter: TypeAdapter[DispatchEvent] = TypeAdapter(DispatchEvent)


def parse_dispatch_event(data: dict[str, Any] | str) -> DispatchEvent:
    """辞書/JSON文字列をイベントに変換

    Raises:
        pydantic.ValidationError: name が未知、またはフィールドが不正な場合
    """
    if isinstance(data, str):
        return _dispatch_event_adapter.validate_json(data)
    return _dispatch_event_adapter.validate_python(data)
