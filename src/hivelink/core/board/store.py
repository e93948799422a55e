"""Shared State Board ストレージ

Vault/organizations/{org_id}/project-state.json に組織のプロジェクト状態を保存する。
各変更操作は 読み込み → 変更 → 書き込み を1つのクリティカルセクションで行う。
プロセス内は RLock、プロセス間は portalocker のロックファイルで排他制御する。
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from pathlib import Path

import portalocker
from pydantic import ValidationError

from ..contracts.models import TaskContract
from ..contracts.store import ContractStore, write_json_atomic
from ..errors import BoardWriteError
from .models import (
    AgentRecord,
    AgentStatus,
    AgentStatusPatch,
    AgentStatusUpdate,
    Blocker,
    BlockerResolution,
    ChangelogEntry,
    Decision,
    DecisionResolution,
    DecisionStatus,
    ProjectState,
    utcnow,
)

logger = logging.getLogger(__name__)

STATE_FILENAME = "project-state.json"
LOCK_FILENAME = "project-state.lock"


class SharedStateBoard:
    """組織ごとの共有状態ボード

    Attributes:
        org_id: 組織ID
        org_dir: 組織ディレクトリ
        changelog_limit: 変更履歴の保持件数
    """

    def __init__(
        self,
        org_id: str,
        org_dir: Path | str,
        changelog_limit: int = 50,
        lock_timeout: float = 10,
    ):
        self.org_id = org_id
        self.org_dir = Path(org_dir)
        self.changelog_limit = changelog_limit
        self.lock_timeout = lock_timeout
        self.state_path = self.org_dir / STATE_FILENAME
        self._lock_path = self.org_dir / LOCK_FILENAME
        self._thread_lock = threading.RLock()
        self._contracts = ContractStore(org_id, self.org_dir)

    # ---- 永続化 ----

    def read(self) -> ProjectState:
        """現在の状態を読み込む

        未保存、または読み込み/パースに失敗した場合はデフォルト状態を返す。
        """
        if not self.state_path.exists():
            return ProjectState()
        try:
            with open(self.state_path, encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"JSONオブジェクトではありません: {type(data).__name__}")
            return ProjectState.model_validate(data.get("project_state", data))
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(
                f"プロジェクト状態の読み込みに失敗、デフォルトを返します (org={self.org_id}): {e}"
            )
            return ProjectState()

    def _write(self, state: ProjectState) -> None:
        payload = {"project_state": state.model_dump(mode="json")}
        text = json.dumps(payload, ensure_ascii=False, indent=2)
        try:
            write_json_atomic(self.state_path, text)
        except OSError as e:
            raise BoardWriteError(self.org_id, self.state_path, str(e)) from e

    def _mutate(self, modifier: Callable[[ProjectState], bool]) -> ProjectState:
        """読み込み → 変更 → 書き込み

        modifier は状態を直接変更し、変更があった場合に True を返す。
        False の場合は書き込まない。

        Raises:
            BoardWriteError: ロック取得または書き込みに失敗した場合
        """
        with self._thread_lock:
            try:
                self.org_dir.mkdir(parents=True, exist_ok=True)
                with portalocker.Lock(self._lock_path, mode="a", timeout=self.lock_timeout):
                    state = self.read()
                    if modifier(state):
                        state.updated_at = utcnow()
                        self._write(state)
                    return state
            except portalocker.LockException as e:
                raise BoardWriteError(self.org_id, self._lock_path, f"lock failed: {e}") from e
            except OSError as e:
                raise BoardWriteError(self.org_id, self.org_dir, str(e)) from e

    def _log_change(
        self, state: ProjectState, actor: str, action: str, diff_summary: str = ""
    ) -> None:
        state.append_changelog(
            ChangelogEntry(agent=actor, action=action, diff_summary=diff_summary),
            self.changelog_limit,
        )

    # ---- プロジェクト ----

    def update_project(
        self,
        actor: str,
        goal: str | None = None,
        current_phase: str | None = None,
    ) -> ProjectState:
        """目標・フェーズを更新（指定されかつ変化したフィールドのみ）"""

        def modifier(state: ProjectState) -> bool:
            changed: list[str] = []
            if goal is not None and goal != state.goal:
                state.goal = goal
                changed.append(f'goal -> "{goal}"')
            if current_phase is not None and current_phase != state.current_phase:
                state.current_phase = current_phase
                changed.append(f'phase -> "{current_phase}"')
            if not changed:
                return False
            self._log_change(
                state, actor, f"Updated project: {', '.join(changed)}", "; ".join(changed)
            )
            return True

        return self._mutate(modifier)

    # ---- エージェント ----

    def register_agent(self, actor: str, record: AgentRecord) -> ProjectState:
        """エージェントを登録（同一IDは置き換え）"""

        def modifier(state: ProjectState) -> bool:
            entry = record.model_copy(deep=True)
            for i, agent in enumerate(state.agents):
                if agent.id == entry.id:
                    state.agents[i] = entry
                    break
            else:
                state.agents.append(entry)
            self._log_change(
                state,
                actor,
                f"Registered agent {entry.id} ({entry.role})",
                f"agent.{entry.id}: status={entry.status}",
            )
            return True

        return self._mutate(modifier)

    def update_agent_status(self, agent_id: str, patch: AgentStatusPatch) -> AgentStatusUpdate:
        """エージェントの状態を部分更新

        未登録のIDは role=unknown, status=idle で自動登録してから適用する。
        """
        was_blocked = False
        is_now_unblocked = False

        def modifier(state: ProjectState) -> bool:
            nonlocal was_blocked, is_now_unblocked
            agent = state.find_agent(agent_id)
            registered = agent is None
            if agent is None:
                agent = AgentRecord(id=agent_id)
                state.agents.append(agent)

            was_blocked = agent.status == AgentStatus.BLOCKED
            diff: list[str] = []
            if registered:
                diff.append("registered")

            if patch.is_set("status") and patch.status is not None and patch.status != agent.status:
                diff.append(f"status: {agent.status} -> {patch.status}")
                agent.status = patch.status
            if patch.is_set("current_task") and patch.current_task != agent.current_task:
                agent.current_task = patch.current_task
                diff.append(f"current_task: {patch.current_task or 'null'}")
            if patch.is_set("blocked_by") and patch.blocked_by != agent.blocked_by:
                agent.blocked_by = patch.blocked_by
                diff.append(f"blocked_by: {patch.blocked_by or 'null'}")
            for artifact in patch.artifacts:
                if agent.upsert_artifact(artifact.model_copy()):
                    diff.append(f"artifact: {artifact.ref} v{artifact.version}")

            is_now_unblocked = was_blocked and agent.status != AgentStatus.BLOCKED

            if not diff:
                return False
            self._log_change(
                state, agent_id, f"Agent {agent_id} updated: {', '.join(diff)}", "; ".join(diff)
            )
            return True

        state = self._mutate(modifier)
        return AgentStatusUpdate(
            state=state,
            was_blocked=was_blocked,
            is_now_unblocked=is_now_unblocked,
        )

    def get_agents_blocked_by(self, source_ref: str) -> list[str]:
        """source_ref にブロックされているエージェントIDの一覧"""
        return [
            a.id
            for a in self.read().agents
            if a.status == AgentStatus.BLOCKED and a.blocked_by == source_ref
        ]

    def unblock_agents_blocked_by(self, actor: str, source_ref: str) -> list[str]:
        """source_ref にブロックされている全エージェントを idle に戻す

        Returns:
            解除したエージェントIDの一覧
        """
        unblocked: list[str] = []

        def modifier(state: ProjectState) -> bool:
            for agent in state.agents:
                if agent.status == AgentStatus.BLOCKED and agent.blocked_by == source_ref:
                    agent.status = AgentStatus.IDLE
                    agent.blocked_by = None
                    unblocked.append(agent.id)
            if not unblocked:
                return False
            self._log_change(
                state,
                actor,
                f"Unblocked {', '.join(unblocked)} (was blocked by {source_ref})",
                "; ".join(f"agent.{a}: blocked -> idle" for a in unblocked),
            )
            return True

        self._mutate(modifier)
        return unblocked

    # ---- 未決定事項 ----

    def add_decision(self, actor: str, decision: Decision) -> ProjectState:
        """未決定事項を追加（同一IDが存在する場合は警告のみ）"""

        def modifier(state: ProjectState) -> bool:
            if state.find_decision(decision.id) is not None:
                logger.warning(f"Decision {decision.id} は既に存在するため無視します")
                return False
            state.pending_decisions.append(
                decision.model_copy(
                    update={"status": DecisionStatus.OPEN, "resolution": None}, deep=True
                )
            )
            self._log_change(
                state,
                actor,
                f'Added decision {decision.id}: "{decision.question}"',
                f"decisions.{decision.id}: open, owner={decision.owner}",
            )
            return True

        return self._mutate(modifier)

    def resolve_decision(
        self, actor: str, decision_id: str, resolution: str
    ) -> DecisionResolution:
        """未決定事項を解決済みにする"""
        found = False

        def modifier(state: ProjectState) -> bool:
            nonlocal found
            decision = state.find_decision(decision_id)
            if decision is None:
                return False
            found = True
            decision.resolve(resolution)
            self._log_change(
                state,
                actor,
                f'Resolved decision {decision_id}: "{resolution}"',
                f"decisions.{decision_id}: resolved",
            )
            return True

        state = self._mutate(modifier)
        return DecisionResolution(state=state, found=found)

    # ---- ブロッカー ----

    def add_blocker(self, actor: str, blocker: Blocker) -> ProjectState:
        """ブロッカーを追加（同一IDが存在する場合は警告のみ）"""

        def modifier(state: ProjectState) -> bool:
            if state.find_blocker(blocker.id) is not None:
                logger.warning(f"Blocker {blocker.id} は既に存在するため無視します")
                return False
            state.blockers.append(blocker.model_copy(update={"resolved": False}, deep=True))
            self._log_change(
                state,
                actor,
                f'Added blocker {blocker.id}: "{blocker.description}"',
                f"blockers.{blocker.id}: active, affects={','.join(blocker.affected_agents)}",
            )
            return True

        return self._mutate(modifier)

    def resolve_blocker(self, actor: str, blocker_id: str) -> BlockerResolution:
        """ブロッカーを解決済みにする

        存在しない・既に解決済みの場合は found=False（二重通知を防ぐ）。
        """
        found = False
        already_resolved = False
        affected: list[str] = []

        def modifier(state: ProjectState) -> bool:
            nonlocal found, already_resolved
            blocker = state.find_blocker(blocker_id)
            if blocker is None:
                return False
            if blocker.resolved:
                already_resolved = True
                return False
            blocker.resolved = True
            found = True
            affected.extend(blocker.affected_agents)
            self._log_change(
                state, actor, f"Resolved blocker {blocker_id}", f"blockers.{blocker_id}: resolved"
            )
            return True

        state = self._mutate(modifier)
        return BlockerResolution(
            state=state,
            found=found,
            affected_agents=affected,
            already_resolved=already_resolved,
        )

    # ---- 変更履歴 ----

    def recent_changelog(self, n: int = 20) -> list[ChangelogEntry]:
        """直近 n 件の変更履歴"""
        if n <= 0:
            return []
        return self.read().changelog[-n:]

    # ---- タスク契約 ----

    def save_contract(self, contract: TaskContract) -> None:
        """契約を保存"""
        self._contracts.save_contract(contract)

    def load_contract(self, contract_id: str) -> TaskContract | None:
        """契約を読み込む"""
        return self._contracts.load_contract(contract_id)

    def list_contracts(self) -> list[TaskContract]:
        """契約一覧"""
        return self._contracts.list_contracts()
