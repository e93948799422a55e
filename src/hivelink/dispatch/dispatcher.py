"""イベント駆動ディスパッチャー

ボードの状態変化に反応して、影響を受けるエージェントへ自動で通知する。
ディスパッチ間で状態を持たず、永続状態はボードに置く。
通知の失敗は宛先ごとにログに残し、他の宛先への配信は続ける。
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from ..core.board.models import AgentStatus, AgentStatusPatch
from ..core.contracts.models import ContractStatus
from ..core.errors import HiveLinkError
from ..protocol.messages import ConflictSeverity
from ..registry import OrganizationRegistry
from .events import (
    ArtifactUpdatedEvent,
    BlockerResolvedEvent,
    ConflictDetectedEvent,
    DecisionResolvedEvent,
    DispatchEvent,
    DispatchEventName,
    TaskBlockedEvent,
    TaskCompletedEvent,
)

logger = logging.getLogger(__name__)

# エージェントセッションに通知文字列を届ける
AgentNotifier = Callable[[str, str], Awaitable[None]]
# 組織のグループチャットに投稿する (org_id, sender_id, text)
GroupChatPoster = Callable[[str, str, str], None]
# 購読者（同期呼び出し）
DispatchSubscriber = Callable[[DispatchEvent], None]


class EventDispatcher:
    """イベント駆動ディスパッチャー"""

    def __init__(
        self,
        registry: OrganizationRegistry,
        notifier: AgentNotifier | None = None,
        group_chat_poster: GroupChatPoster | None = None,
    ) -> None:
        self.registry = registry
        self.notifier = notifier
        self.group_chat_poster = group_chat_poster
        self._subscribers: list[DispatchSubscriber] = []
        self._handlers: dict[str, Callable[..., Awaitable[None]]] = {
            DispatchEventName.TASK_COMPLETED: self._handle_task_completed,
            DispatchEventName.TASK_BLOCKED: self._handle_task_blocked,
            DispatchEventName.DECISION_RESOLVED: self._handle_decision_resolved,
            DispatchEventName.CONFLICT_DETECTED: self._handle_conflict_detected,
            DispatchEventName.ARTIFACT_UPDATED: self._handle_artifact_updated,
            DispatchEventName.BLOCKER_RESOLVED: self._handle_blocker_resolved,
        }

    def subscribe(self, callback: DispatchSubscriber) -> None:
        """購読者を登録"""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: DispatchSubscriber) -> None:
        """購読者を解除"""
        self._subscribers = [c for c in self._subscribers if c is not callback]

    async def dispatch(self, event: DispatchEvent) -> None:
        """イベントを処理

        購読者に通知した後、組み込みハンドラーを実行する。
        購読者・ハンドラーのエラーはログに残し、呼び出し元へは伝播しない。
        """
        logger.info(f"イベントディスパッチ: {event.name} (org={event.org_id})")

        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    f"購読者エラー: {getattr(callback, '__name__', repr(callback))}"
                )

        handler = self._handlers.get(event.name)
        if handler is not None:
            try:
                await handler(event)
            except Exception:
                logger.exception(f"ハンドラーエラー: {event.name} (org={event.org_id})")

    # ---- 配信 ----

    async def notify(self, agent_id: str, text: str) -> bool:
        """エージェントへ通知を送る

        Returns:
            配信できた場合True
        """
        if self.notifier is None:
            logger.warning(f"通知手段が未設定のため {agent_id} への通知を破棄します")
            return False
        try:
            await self.notifier(agent_id, text)
            return True
        except Exception:
            logger.exception(f"エージェント {agent_id} への通知に失敗")
            return False

    def post_group_chat(self, org_id: str, sender_id: str, text: str) -> bool:
        """組織のグループチャットに投稿する"""
        if self.group_chat_poster is None:
            logger.warning(f"グループチャット投稿手段が未設定です (org={org_id})")
            return False
        try:
            self.group_chat_poster(org_id, sender_id, text)
            return True
        except Exception:
            logger.exception(f"グループチャットへの投稿に失敗 (org={org_id})")
            return False

    # ---- ハンドラー ----

    async def _handle_task_completed(self, event: TaskCompletedEvent) -> None:
        board = self.registry.board(event.org_id)
        unblocked = board.unblock_agents_blocked_by(event.agent_id, event.agent_id)

        lines = [
            "[TEAM PROTOCOL - STATUS_UPDATE: task_completed]",
            f'Agent "{event.agent_id}" has completed their task.',
            f"Task: {event.task_description}",
        ]
        if event.artifact_refs:
            lines.append(f"Produced artifacts: {', '.join(event.artifact_refs)}")
        lines += [
            "",
            "A dependency you were blocked on is now resolved.",
            "Read the Shared State Board to get the latest artifacts, then resume your work.",
        ]
        text = "\n".join(lines)
        for agent_id in unblocked:
            await self.notify(agent_id, text)

        if unblocked:
            logger.info(
                f"{event.agent_id} のタスク完了により {len(unblocked)} エージェントのブロックを解除"
            )

    async def _handle_task_blocked(self, event: TaskBlockedEvent) -> None:
        state = self.registry.board(event.org_id).read()
        if state.find_agent(event.blocked_by) is None:
            return

        lines = [
            "[TEAM PROTOCOL - KNOWLEDGE_SHARE]",
            f'Agent "{event.agent_id}" is blocked waiting for your output.',
            f"Blocked on: {event.blocked_by}",
        ]
        if event.task_description:
            lines.append(f"Their current task: {event.task_description}")
        lines.append("Please prioritize if possible.")
        await self.notify(event.blocked_by, "\n".join(lines))

    async def _handle_decision_resolved(self, event: DecisionResolvedEvent) -> None:
        state = self.registry.board(event.org_id).read()
        text = "\n".join(
            [
                "[TEAM PROTOCOL - DECISION_RESOLVED]",
                f'Decision "{event.decision_id}" has been resolved.',
                f"Resolution: {event.resolution}",
                f"Resolved by: {event.owner_agent_id}",
                "Check if this affects your current task and update your approach accordingly.",
            ]
        )
        for agent in state.agents:
            if agent.id == event.owner_agent_id or agent.status == AgentStatus.COMPLETED:
                continue
            await self.notify(agent.id, text)

    async def _handle_conflict_detected(self, event: ConflictDetectedEvent) -> None:
        if event.severity == ConflictSeverity.CRITICAL:
            self.post_group_chat(
                event.org_id,
                event.reporter_agent_id,
                "\n".join(
                    [
                        f"CRITICAL CONFLICT DETECTED by {event.reporter_agent_id}",
                        f"Description: {event.conflict_description}",
                        f"Conflicting artifacts: {', '.join(event.conflicting_artifacts)}",
                        "All agents: please review and pause related work until resolved.",
                    ]
                ),
            )

        state = self.registry.board(event.org_id).read()
        for artifact_ref in event.conflicting_artifacts:
            owner = state.find_artifact_owner(artifact_ref)
            if owner is None or owner.id == event.reporter_agent_id:
                continue
            text = "\n".join(
                [
                    f"[TEAM PROTOCOL - CONFLICT_REPORT] severity={event.severity}",
                    f'Conflict involving your artifact "{artifact_ref}":',
                    event.conflict_description,
                    f"Reporter: {event.reporter_agent_id}",
                    "Please investigate and respond.",
                ]
            )
            await self.notify(owner.id, text)

    async def _handle_artifact_updated(self, event: ArtifactUpdatedEvent) -> None:
        board = self.registry.board(event.org_id)
        dependents: list[str] = []
        for contract in board.list_contracts():
            if (
                contract.status == ContractStatus.IN_PROGRESS
                and event.artifact_ref in contract.inputs.artifacts
                and contract.assignee != event.agent_id
                and contract.assignee not in dependents
            ):
                dependents.append(contract.assignee)

        text = "\n".join(
            [
                "[TEAM PROTOCOL - ARTIFACT_UPDATED]",
                "A dependency you rely on has been updated:",
                f"Artifact: {event.artifact_ref} (v{event.old_version} -> v{event.new_version})",
                f"Changed by: {event.agent_id}",
                f"Change summary: {event.change_summary}",
                "Please check whether your current work needs adjustments.",
            ]
        )
        for agent_id in dependents:
            await self.notify(agent_id, text)

    async def _handle_blocker_resolved(self, event: BlockerResolvedEvent) -> None:
        board = self.registry.board(event.org_id)
        text = "\n".join(
            [
                "[TEAM PROTOCOL - BLOCKER_RESOLVED]",
                f'Blocker "{event.blocker_id}" has been resolved by {event.resolved_by}.',
                "You can now resume your work.",
                "Read the project state board to get the latest context before proceeding.",
            ]
        )
        for agent_id in event.affected_agents:
            try:
                board.update_agent_status(
                    agent_id, AgentStatusPatch(status=AgentStatus.IDLE, blocked_by=None)
                )
            except HiveLinkError:
                logger.exception(f"{agent_id} の状態リセットに失敗 (blocker={event.blocker_id})")
            await self.notify(agent_id, text)
        if event.affected_agents:
            logger.info(
                f"ブロッカー {event.blocker_id} 解決: {len(event.affected_agents)} エージェントを再開"
            )
