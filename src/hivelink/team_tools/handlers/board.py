"""Shared State Board 関連のツールハンドラー

自分の状態更新、プロジェクト情報、未決定事項、ブロッカーを扱う。
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError
from ulid import ULID

from ...core.board.models import (
    AgentRecord,
    AgentStatus,
    AgentStatusPatch,
    ArtifactRef,
    Blocker,
    Decision,
    DecisionOption,
)
from ...dispatch.events import (
    AgentStatusChangedEvent,
    ArtifactUpdatedEvent,
    BlockerResolvedEvent,
    DecisionResolvedEvent,
    TaskBlockedEvent,
    TaskCompletedEvent,
)
from ..context import ToolContext, ToolResult
from .base import BaseHandler, as_string_list


def new_id(prefix: str) -> str:
    """接頭辞付きのID（例: D-01J...）"""
    return f"{prefix}-{ULID()}"


class BoardHandlers(BaseHandler):
    """ボード関連ハンドラー"""

    async def handle_read_project_state(
        self, ctx: ToolContext, args: dict[str, Any]
    ) -> ToolResult:
        """ボード全体を読む"""
        state = self._board(ctx).read()
        open_count = len(state.open_decisions())
        active = state.active_blockers()

        lines = [
            f"=== Shared State Board: {ctx.org_id} ===",
            f"Goal: {state.goal or '(not set)'}",
            f"Phase: {state.current_phase}",
            f"Updated: {state.updated_at.isoformat()}",
            "",
            f"--- Agents ({len(state.agents)}) ---",
        ]
        for a in state.agents:
            artifacts = ", ".join(f"{ar.ref} v{ar.version}" for ar in a.artifacts) or "none"
            lines += [
                f"  {a.id} [{a.status}] {a.role}",
                f"    Task: {a.current_task or 'none'}",
                f"    Blocked by: {a.blocked_by or 'none'}",
                f"    Artifacts: {artifacts}",
            ]
        lines += ["", f"--- Pending Decisions ({open_count} open) ---"]
        for d in state.pending_decisions:
            suffix = f" -> {d.resolution}" if d.resolution else ""
            lines.append(f'  [{d.id}] {d.status} "{d.question}" (owner: {d.owner}){suffix}')
        lines += ["", f"--- Active Blockers ({len(active)}) ---"]
        for b in active:
            lines.append(f"  [{b.id}] {b.description} (affects: {', '.join(b.affected_agents)})")
        lines += ["", "--- Recent Changelog (last 10) ---"]
        for e in state.changelog[-10:]:
            lines.append(f"  [{e.timestamp.isoformat()}] {e.agent}: {e.action}")

        return ToolResult(True, "\n".join(lines))

    async def handle_update_my_status(
        self, ctx: ToolContext, args: dict[str, Any]
    ) -> ToolResult:
        """自分のエントリを更新し、関連イベントを発行"""
        raw_status = args.get("status")
        try:
            status = AgentStatus(raw_status)
        except ValueError:
            valid = ", ".join(s.value for s in AgentStatus)
            return ToolResult.fail(f"Invalid status {raw_status!r}. Use one of: {valid}")

        board = self._board(ctx)
        prev_agent = board.read().find_agent(ctx.session_id)
        prev_status = prev_agent.status if prev_agent else AgentStatus.IDLE

        artifact: ArtifactRef | None = None
        artifact_ref = args.get("artifact_ref")
        if artifact_ref:
            existing = prev_agent.find_artifact(artifact_ref) if prev_agent else None
            artifact = ArtifactRef(
                ref=artifact_ref,
                description=args.get("artifact_description", ""),
                version=(existing.version if existing else 0) + 1,
                path=args.get("artifact_path", ""),
            )

        # 初回は役割付きで登録する
        if prev_agent is None and args.get("role"):
            board.register_agent(
                ctx.session_id,
                AgentRecord(
                    id=ctx.session_id,
                    role=args["role"],
                    status=status,
                    current_task=args.get("current_task"),
                    blocked_by=args.get("blocked_by"),
                ),
            )

        explicit = {k: args[k] for k in ("current_task", "blocked_by") if k in args}
        patch = AgentStatusPatch(
            status=status, artifacts=[artifact] if artifact else [], **explicit
        )
        update = board.update_agent_status(ctx.session_id, patch)
        me = update.state.find_agent(ctx.session_id)
        current_task = me.current_task if me else None

        dispatcher = self._dispatcher
        await dispatcher.dispatch(
            AgentStatusChangedEvent(
                org_id=ctx.org_id,
                agent_id=ctx.session_id,
                old_status=prev_status,
                new_status=status,
            )
        )
        if status == AgentStatus.COMPLETED and prev_status != AgentStatus.COMPLETED:
            await dispatcher.dispatch(
                TaskCompletedEvent(
                    org_id=ctx.org_id,
                    agent_id=ctx.session_id,
                    task_description=current_task or "",
                    artifact_refs=[a.ref for a in me.artifacts] if me else [],
                )
            )
        if status == AgentStatus.BLOCKED and args.get("blocked_by"):
            await dispatcher.dispatch(
                TaskBlockedEvent(
                    org_id=ctx.org_id,
                    agent_id=ctx.session_id,
                    blocked_by=args["blocked_by"],
                    task_description=current_task,
                )
            )
        if artifact is not None:
            await dispatcher.dispatch(
                ArtifactUpdatedEvent(
                    org_id=ctx.org_id,
                    agent_id=ctx.session_id,
                    artifact_ref=artifact.ref,
                    old_version=artifact.version - 1,
                    new_version=artifact.version,
                    change_summary=artifact.description,
                )
            )

        return ToolResult.ok(
            f"Status updated: {status}",
            f"Current task: {args['current_task']}" if args.get("current_task") else "",
            f"Blocked by: {args['blocked_by']}" if args.get("blocked_by") else "",
            f"Artifact registered: {artifact.ref} v{artifact.version}" if artifact else "",
        )

    async def handle_update_project(
        self, ctx: ToolContext, args: dict[str, Any]
    ) -> ToolResult:
        """プロジェクトの目標・フェーズを更新"""
        goal = args.get("goal") or None
        phase = args.get("current_phase") or None
        if goal is None and phase is None:
            return ToolResult.fail("Provide at least one of: goal, current_phase")

        self._board(ctx).update_project(ctx.session_id, goal=goal, current_phase=phase)
        return ToolResult.ok(
            "Project updated.",
            f"Goal: {goal}" if goal else "",
            f"Phase: {phase}" if phase else "",
        )

    async def handle_add_pending_decision(
        self, ctx: ToolContext, args: dict[str, Any]
    ) -> ToolResult:
        """未決定事項を追加し、決定者へ通知"""
        question = (args.get("question") or "").strip()
        owner = (args.get("owner") or "").strip()
        if not question or not owner:
            return ToolResult.fail("question and owner are required and must not be empty")
        if not self._is_same_org(ctx, owner):
            return ToolResult.fail(f"Decision owner must belong to your organization ({owner}).")

        try:
            decision = Decision(
                id=new_id("D"),
                question=question,
                owner=owner,
                options=[DecisionOption.model_validate(o) for o in args.get("options") or []],
                deadline=args.get("deadline"),
            )
        except ValidationError as e:
            return ToolResult.fail(f"Invalid decision: {e.errors()[0]['msg']}")

        self._board(ctx).add_decision(ctx.session_id, decision)
        await self._dispatcher.notify(
            owner,
            "\n".join(
                [
                    "[TEAM PROTOCOL - DECISION_REQUEST]",
                    f"A decision has been requested from you (ID: {decision.id}).",
                    f"Question: {question}",
                    f"Requestor: {ctx.session_id}",
                    f'Use resolve_decision tool with ID "{decision.id}" to respond.',
                ]
            ),
        )
        return ToolResult.ok(
            f"Decision added: {decision.id}",
            f"Question: {question}",
            f"Owner: {owner}",
        )

    async def handle_resolve_decision(
        self, ctx: ToolContext, args: dict[str, Any]
    ) -> ToolResult:
        """未決定事項を解決し、チームへ通知"""
        decision_id = args.get("decision_id", "")
        resolution = (args.get("resolution") or "").strip()
        if not decision_id or not resolution:
            return ToolResult.fail("decision_id and resolution are required")

        result = self._board(ctx).resolve_decision(ctx.session_id, decision_id, resolution)
        if not result.found:
            return ToolResult.fail(f'Decision "{decision_id}" not found.')

        await self._dispatcher.dispatch(
            DecisionResolvedEvent(
                org_id=ctx.org_id,
                decision_id=decision_id,
                resolution=resolution,
                owner_agent_id=ctx.session_id,
            )
        )
        return ToolResult.ok(
            f'Decision "{decision_id}" resolved.',
            f"Resolution: {resolution}",
            "All affected agents have been notified.",
        )

    async def handle_report_blocker(
        self, ctx: ToolContext, args: dict[str, Any]
    ) -> ToolResult:
        """ブロッカーを登録し、影響を受けるエージェントを blocked にする"""
        description = (args.get("description") or "").strip()
        if not description:
            return ToolResult.fail("description is required")
        try:
            affected = as_string_list(args.get("affected_agents"), "affected_agents")
        except ValueError as e:
            return ToolResult.fail(str(e))
        affected = affected or [ctx.session_id]
        for agent_id in affected:
            if not self._is_same_org(ctx, agent_id):
                return ToolResult.fail(
                    f"Affected agent must belong to your organization ({agent_id})."
                )

        board = self._board(ctx)
        blocker = Blocker(id=new_id("BLK"), description=description, affected_agents=affected)
        board.add_blocker(ctx.session_id, blocker)
        for agent_id in affected:
            board.update_agent_status(
                agent_id, AgentStatusPatch(status=AgentStatus.BLOCKED, blocked_by=blocker.id)
            )

        return ToolResult.ok(
            f"Blocker reported: {blocker.id}",
            f"Description: {description}",
            f"Affects: {', '.join(affected)}",
        )

    async def handle_resolve_blocker(
        self, ctx: ToolContext, args: dict[str, Any]
    ) -> ToolResult:
        """ブロッカーを解決し、影響を受けたエージェントを再開させる"""
        blocker_id = args.get("blocker_id", "")
        if not blocker_id:
            return ToolResult.fail("blocker_id is required")

        result = self._board(ctx).resolve_blocker(ctx.session_id, blocker_id)
        if not result.found:
            if result.already_resolved:
                return ToolResult.fail(f'Blocker "{blocker_id}" is already resolved.')
            return ToolResult.fail(f'Blocker "{blocker_id}" not found.')

        await self._dispatcher.dispatch(
            BlockerResolvedEvent(
                org_id=ctx.org_id,
                blocker_id=blocker_id,
                resolved_by=ctx.session_id,
                affected_agents=result.affected_agents,
            )
        )
        return ToolResult.ok(
            f'Blocker "{blocker_id}" resolved.',
            f"Affected agents notified: {', '.join(result.affected_agents) or 'none'}",
        )
