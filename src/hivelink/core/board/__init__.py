"""Shared State Board - 組織ごとの共有プロジェクト状態"""

from .models import (
    AgentRecord,
    AgentStatus,
    AgentStatusPatch,
    AgentStatusUpdate,
    ArtifactRef,
    Blocker,
    BlockerResolution,
    ChangelogEntry,
    Decision,
    DecisionOption,
    DecisionResolution,
    DecisionStatus,
    ProjectState,
)
from .store import SharedStateBoard

__all__ = [
    "AgentRecord",
    "AgentStatus",
    "AgentStatusPatch",
    "AgentStatusUpdate",
    "ArtifactRef",
    "Blocker",
    "BlockerResolution",
    "ChangelogEntry",
    "Decision",
    "DecisionOption",
    "DecisionResolution",
    "DecisionStatus",
    "ProjectState",
    "SharedStateBoard",
]
