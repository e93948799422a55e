"""Shared State Board データモデル

組織ごとのプロジェクト状態（目標・フェーズ・エージェント・未決定事項・
ブロッカー・変更履歴）のPydanticモデル。
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utcnow() -> datetime:
    """現在時刻 (UTC)"""
    return datetime.now(UTC)


class AgentStatus(StrEnum):
    """エージェントの状態"""

    IDLE = "idle"
    WORKING = "working"
    BLOCKED = "blocked"
    COMPLETED = "completed"
    ERROR = "error"


class DecisionStatus(StrEnum):
    """未決定事項の状態"""

    OPEN = "open"
    RESOLVED = "resolved"


class ArtifactRef(BaseModel):
    """エージェントが生成した成果物への参照"""

    ref: str = Field(..., min_length=1, description="プロジェクト内で一意な成果物ID")
    description: str = Field(default="", description="成果物の説明")
    version: int = Field(default=1, ge=0, description="バージョン番号")
    path: str = Field(default="", description="ファイルパスまたはURI")


class AgentRecord(BaseModel):
    """ボード上のエージェントエントリ"""

    id: str = Field(..., min_length=1, description="セッションID（組織内で一意）")
    role: str = Field(default="unknown", description="役割")
    status: AgentStatus = Field(default=AgentStatus.IDLE, description="状態")
    current_task: str | None = Field(default=None, description="現在のタスク（idle時はNone）")
    blocked_by: str | None = Field(
        default=None, description="ブロック要因への参照（タスク/ブロッカー/エージェントID）"
    )
    artifacts: list[ArtifactRef] = Field(default_factory=list, description="生成した成果物")

    def find_artifact(self, ref: str) -> ArtifactRef | None:
        """refで成果物を検索"""
        for artifact in self.artifacts:
            if artifact.ref == ref:
                return artifact
        return None

    def upsert_artifact(self, artifact: ArtifactRef) -> bool:
        """成果物を追加または同一refを上書き

        Returns:
            内容が変化した場合True
        """
        for i, existing in enumerate(self.artifacts):
            if existing.ref == artifact.ref:
                if existing == artifact:
                    return False
                self.artifacts[i] = artifact
                return True
        self.artifacts.append(artifact)
        return True


class DecisionOption(BaseModel):
    """未決定事項の選択肢"""

    label: str
    pros: str = ""
    cons: str = ""


class Decision(BaseModel):
    """未決定事項

    不変条件: resolution は status == resolved のときに限り非None。
    """

    id: str = Field(..., min_length=1, description="決定ID（例: D-012）")
    question: str = Field(..., description="決定すべき問い")
    options: list[DecisionOption] = Field(default_factory=list)
    owner: str = Field(..., description="決定責任者のセッションID")
    deadline: datetime | None = Field(default=None, description="期限")
    status: DecisionStatus = Field(default=DecisionStatus.OPEN)
    resolution: str | None = Field(default=None)

    @model_validator(mode="after")
    def _check_resolution(self) -> Decision:
        if self.status == DecisionStatus.RESOLVED and self.resolution is None:
            raise ValueError("resolved decision requires a resolution")
        if self.status == DecisionStatus.OPEN and self.resolution is not None:
            raise ValueError("open decision must not carry a resolution")
        return self

    def resolve(self, resolution: str) -> None:
        """解決済みにする（statusとresolutionを同時に更新）"""
        self.resolution = resolution
        self.status = DecisionStatus.RESOLVED


class Blocker(BaseModel):
    """進行を妨げている障害"""

    id: str = Field(..., min_length=1, description="ブロッカーID")
    description: str
    affected_agents: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    resolved: bool = False


class ChangelogEntry(BaseModel):
    """変更履歴エントリ"""

    timestamp: datetime = Field(default_factory=utcnow)
    agent: str = Field(..., description="変更したエージェント")
    action: str = Field(..., description="人間が読める変更内容")
    diff_summary: str = Field(default="", description="差分の要約")


class ProjectState(BaseModel):
    """組織のプロジェクト状態（組織ごとに1つ）"""

    goal: str = ""
    current_phase: str = "initializing"
    updated_at: datetime = Field(default_factory=utcnow)
    agents: list[AgentRecord] = Field(default_factory=list)
    pending_decisions: list[Decision] = Field(default_factory=list)
    blockers: list[Blocker] = Field(default_factory=list)
    changelog: list[ChangelogEntry] = Field(default_factory=list)

    def find_agent(self, agent_id: str) -> AgentRecord | None:
        """IDでエージェントを検索"""
        for agent in self.agents:
            if agent.id == agent_id:
                return agent
        return None

    def find_decision(self, decision_id: str) -> Decision | None:
        """IDで未決定事項を検索"""
        for decision in self.pending_decisions:
            if decision.id == decision_id:
                return decision
        return None

    def find_blocker(self, blocker_id: str) -> Blocker | None:
        """IDでブロッカーを検索"""
        for blocker in self.blockers:
            if blocker.id == blocker_id:
                return blocker
        return None

    def find_artifact_owner(self, artifact_ref: str) -> AgentRecord | None:
        """成果物を所有するエージェントを検索（最初に見つかった1件）"""
        for agent in self.agents:
            if agent.find_artifact(artifact_ref) is not None:
                return agent
        return None

    def open_decisions(self) -> list[Decision]:
        """未解決の決定事項"""
        return [d for d in self.pending_decisions if d.status == DecisionStatus.OPEN]

    def active_blockers(self) -> list[Blocker]:
        """未解決のブロッカー"""
        return [b for b in self.blockers if not b.resolved]

    def append_changelog(self, entry: ChangelogEntry, limit: int) -> None:
        """変更履歴を追記し、上限を超えた古いエントリを削除"""
        self.changelog.append(entry)
        if len(self.changelog) > limit:
            self.changelog = self.changelog[-limit:]


class AgentStatusPatch(BaseModel):
    """エージェント状態の部分更新

    明示的に指定されたフィールドのみ適用する（model_fields_set で判定）。
    current_task / blocked_by に None を指定するとクリアになる。
    """

    model_config = ConfigDict(frozen=True)

    status: AgentStatus | None = None
    current_task: str | None = None
    blocked_by: str | None = None
    artifacts: list[ArtifactRef] = Field(default_factory=list)

    def is_set(self, field_name: str) -> bool:
        """フィールドが明示的に指定されたか"""
        return field_name in self.model_fields_set


class AgentStatusUpdate(BaseModel):
    """update_agent_status の結果"""

    state: ProjectState
    was_blocked: bool
    is_now_unblocked: bool


class DecisionResolution(BaseModel):
    """resolve_decision の結果"""

    state: ProjectState
    found: bool


class BlockerResolution(BaseModel):
    """resolve_blocker の結果

    found=False は「存在しない」または「解決済み」。後者は already_resolved=True。
    """

    state: ProjectState
    found: bool
    affected_agents: list[str] = Field(default_factory=list)
    already_resolved: bool = False
