"""Task Contract 関連のツールハンドラー

状態遷移は ContractStateMachine で検証する。ストア自体は遷移を検証しない。
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from ...core.board.models import AgentStatus, AgentStatusPatch
from ...core.contracts.machine import ContractStateMachine, TransitionError
from ...core.contracts.models import (
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
from ...dispatch.events import TaskCompletedEvent
from ...protocol.messages import (
    ExpectedHandoffOutput,
    MessagePriority,
    MessageType,
    TaskHandoffPayload,
    create_message,
)
from ..context import ToolContext, ToolResult
from .base import BaseHandler, as_string_list
from .board import new_id

# 完了結果ごとの担当者の状態
_OUTCOME_AGENT_STATUS = {
    ContractOutcome.COMPLETED: AgentStatus.COMPLETED,
    ContractOutcome.PARTIAL: AgentStatus.IDLE,
    ContractOutcome.FAILED: AgentStatus.ERROR,
}


def _transition(contract: TaskContract, to_state: ContractStatus) -> None:
    """契約の状態を遷移させる

    Raises:
        TransitionError: 不正な遷移の場合
    """
    machine = ContractStateMachine(contract.status)
    contract.status = machine.transition(to_state)


class ContractHandlers(BaseHandler):
    """契約関連ハンドラー"""

    def _load_for(self, ctx: ToolContext, contract_id: str) -> TaskContract | ToolResult:
        if not contract_id:
            return ToolResult.fail("contract_id is required")
        contract = self._board(ctx).load_contract(contract_id)
        if contract is None:
            return ToolResult.fail(f'Contract "{contract_id}" not found.')
        return contract

    async def handle_create_task_contract(
        self, ctx: ToolContext, args: dict[str, Any]
    ) -> ToolResult:
        """契約を作成し、担当者へ通知"""
        assignee = (args.get("assignee") or "").strip()
        description = (args.get("description") or "").strip()
        if not assignee or not description:
            return ToolResult.fail("assignee and description are required")
        if not self._is_same_org(ctx, assignee):
            return ToolResult.fail("Cannot delegate to a session in a different organization.")

        defaults = FailureHandling()
        try:
            contract = TaskContract(
                id=new_id("TC"),
                delegator=ctx.session_id,
                assignee=assignee,
                inputs=ContractInputs(
                    description=description,
                    artifacts=args.get("input_artifacts") or [],
                    constraints=[
                        ContractConstraint.model_validate(c) for c in args.get("constraints") or []
                    ],
                    assumptions=args.get("assumptions") or [],
                ),
                expected_output=ExpectedOutput(
                    format=args.get("output_format", ""),
                    deliverables=args.get("deliverables") or [],
                ),
                acceptance_criteria=[
                    AcceptanceCriterion.model_validate(c)
                    for c in args.get("acceptance_criteria") or []
                ],
                authority=ContractAuthority(
                    autonomous_decisions=args.get("autonomous_decisions") or [],
                    must_consult=args.get("must_consult") or [],
                    escalation_triggers=args.get("escalation_triggers") or [],
                ),
                failure_handling=FailureHandling(
                    on_blocked=args.get("on_blocked") or defaults.on_blocked,
                    on_partial_completion=(
                        args.get("on_partial_completion") or defaults.on_partial_completion
                    ),
                    on_assumption_violation=(
                        args.get("on_assumption_violation") or defaults.on_assumption_violation
                    ),
                    max_retries=args.get("max_retries"),
                ),
                timeout=ContractTimeout(
                    max_steps=args.get("max_steps"),
                    on_timeout=args.get("on_timeout") or ContractTimeout().on_timeout,
                ),
            )
        except ValidationError as e:
            err = e.errors()[0]
            return ToolResult.fail(f"Invalid contract: {'.'.join(map(str, err['loc']))}: {err['msg']}")

        self._board(ctx).save_contract(contract)

        # 担当者のコンテキストにも載るよう TASK_HANDOFF を受信箱に置く
        self._inbox(ctx).deliver(
            create_message(
                MessageType.TASK_HANDOFF,
                sender=ctx.session_id,
                to=assignee,
                priority=MessagePriority.HIGH,
                context_summary=f"Task contract {contract.id} assigned to you.",
                payload=TaskHandoffPayload(
                    task_description=description,
                    input_artifacts=contract.inputs.artifacts,
                    expected_output=ExpectedHandoffOutput(
                        format=contract.expected_output.format,
                        success_criteria=[c.criterion for c in contract.acceptance_criteria],
                    ),
                    constraints=[c.constraint for c in contract.inputs.constraints],
                    fallback_on_failure=contract.failure_handling.on_blocked,
                    task_contract_id=contract.id,
                ),
            )
        )

        deliverables = ", ".join(contract.expected_output.deliverables) or "none"
        await self._dispatcher.notify(
            assignee,
            "\n".join(
                [
                    "[TEAM PROTOCOL - TASK_HANDOFF]",
                    f"You have been assigned a task contract (ID: {contract.id}).",
                    "",
                    f"Task: {description}",
                    f"From: {ctx.session_id}",
                    f"Output format: {contract.expected_output.format}",
                    f"Deliverables: {deliverables}",
                    "",
                    f'Use get_task_contract with ID "{contract.id}" to read the full contract.',
                    "Use accept_task_contract to accept and begin work.",
                ]
            ),
        )
        return ToolResult.ok(
            f"Task contract created: {contract.id}",
            f"Assignee: {assignee}",
            f"Task: {description}",
            f"Deliverables: {deliverables}",
            "The assignee has been notified.",
        )

    async def handle_get_task_contract(
        self, ctx: ToolContext, args: dict[str, Any]
    ) -> ToolResult:
        """契約の全文（当事者のみ）"""
        loaded = self._load_for(ctx, args.get("contract_id", ""))
        if isinstance(loaded, ToolResult):
            return loaded
        if not loaded.is_party(ctx.session_id):
            return ToolResult.fail("Access denied: you are not party to this contract.")
        return ToolResult(True, loaded.to_json())

    async def handle_accept_task_contract(
        self, ctx: ToolContext, args: dict[str, Any]
    ) -> ToolResult:
        """契約を受諾して作業を開始"""
        loaded = self._load_for(ctx, args.get("contract_id", ""))
        if isinstance(loaded, ToolResult):
            return loaded
        contract = loaded
        if contract.assignee != ctx.session_id:
            return ToolResult.fail("Only the assignee can accept this contract.")
        try:
            _transition(contract, ContractStatus.IN_PROGRESS)
        except TransitionError:
            return ToolResult.fail(f"Contract is already in status: {contract.status}.")

        board = self._board(ctx)
        board.save_contract(contract)
        board.update_agent_status(
            ctx.session_id,
            AgentStatusPatch(status=AgentStatus.WORKING, current_task=contract.inputs.description),
        )
        await self._dispatcher.notify(
            contract.delegator,
            f'[TEAM PROTOCOL - STATUS_UPDATE] Contract "{contract.id}" accepted by '
            f"{ctx.session_id}. Work has begun.",
        )

        authority = contract.authority
        lines = [
            f'Contract "{contract.id}" accepted. Status: {contract.status}.',
            f"Your task: {contract.inputs.description}",
            "Constraints:",
        ]
        lines += [
            f"  - [{'HARD' if c.hard else 'soft'}] {c.constraint}" for c in contract.inputs.constraints
        ]
        lines.append("Acceptance criteria:")
        lines += [f"  - {ac.criterion}" for ac in contract.acceptance_criteria]
        lines += [
            "Authority: you may autonomously decide: "
            + (", ".join(authority.autonomous_decisions) or "anything not listed below"),
            f"Must consult before: {', '.join(authority.must_consult) or 'none'}",
            f"Escalate immediately if: {', '.join(authority.escalation_triggers) or 'none'}",
        ]
        return ToolResult(True, "\n".join(lines))

    async def handle_complete_task_contract(
        self, ctx: ToolContext, args: dict[str, Any]
    ) -> ToolResult:
        """契約を completed / partial / failed にする"""
        try:
            outcome = ContractOutcome(args.get("status"))
        except ValueError:
            return ToolResult.fail("status must be one of: completed, partial, failed")
        summary = (args.get("summary") or "").strip()
        if not summary:
            return ToolResult.fail("summary is required")

        try:
            artifacts = as_string_list(args.get("artifacts"), "artifacts")
            deviations = as_string_list(args.get("deviations"), "deviations")
        except ValueError as e:
            return ToolResult.fail(str(e))

        loaded = self._load_for(ctx, args.get("contract_id", ""))
        if isinstance(loaded, ToolResult):
            return loaded
        contract = loaded
        if contract.assignee != ctx.session_id:
            return ToolResult.fail("Only the assignee can complete this contract.")
        try:
            _transition(contract, ContractStatus(outcome.value))
        except TransitionError:
            return ToolResult.fail(
                f"Cannot mark contract as {outcome} from status: {contract.status}. "
                "Accept the contract first."
            )

        contract.result = ContractResult(
            status=outcome, summary=summary, artifacts=artifacts, deviations=deviations
        )
        board = self._board(ctx)
        board.save_contract(contract)
        board.update_agent_status(
            ctx.session_id,
            AgentStatusPatch(status=_OUTCOME_AGENT_STATUS[outcome], current_task=None),
        )

        dispatcher = self._dispatcher
        await dispatcher.notify(
            contract.delegator,
            "\n".join(
                line
                for line in [
                    f'[TEAM PROTOCOL - TASK_RESULT] Contract "{contract.id}" completed.',
                    f"Status: {outcome}",
                    f"Summary: {summary}",
                    f"Artifacts: {', '.join(artifacts)}" if artifacts else "",
                    f"Deviations: {'; '.join(deviations)}" if deviations else "",
                    f'Run get_task_contract "{contract.id}" for full details.',
                ]
                if line
            ),
        )
        if outcome == ContractOutcome.COMPLETED:
            await dispatcher.dispatch(
                TaskCompletedEvent(
                    org_id=ctx.org_id,
                    agent_id=ctx.session_id,
                    task_description=contract.inputs.description,
                    artifact_refs=artifacts,
                )
            )

        return ToolResult.ok(
            f'Contract "{contract.id}" marked as {outcome}.',
            f"Summary: {summary}",
            f"Delegator ({contract.delegator}) has been notified.",
        )

    async def handle_cancel_task_contract(
        self, ctx: ToolContext, args: dict[str, Any]
    ) -> ToolResult:
        """契約を取り消す（委譲元のみ）"""
        loaded = self._load_for(ctx, args.get("contract_id", ""))
        if isinstance(loaded, ToolResult):
            return loaded
        contract = loaded
        if contract.delegator != ctx.session_id:
            return ToolResult.fail("Only the delegator can cancel this contract.")
        try:
            _transition(contract, ContractStatus.CANCELLED)
        except TransitionError:
            return ToolResult.fail(f"Cannot cancel a contract in status: {contract.status}.")

        self._board(ctx).save_contract(contract)
        reason = (args.get("reason") or "").strip()
        await self._dispatcher.notify(
            contract.assignee,
            "\n".join(
                line
                for line in [
                    f'[TEAM PROTOCOL - STATUS_UPDATE] Contract "{contract.id}" was cancelled '
                    f"by {ctx.session_id}.",
                    f"Reason: {reason}" if reason else "",
                    "Stop work on this contract and update your status.",
                ]
                if line
            ),
        )
        return ToolResult.ok(
            f'Contract "{contract.id}" cancelled.',
            f"Assignee ({contract.assignee}) has been notified.",
        )

    async def handle_list_task_contracts(
        self, ctx: ToolContext, args: dict[str, Any]
    ) -> ToolResult:
        """自分が当事者の契約一覧"""
        role = args.get("role") or "all"
        if role not in ("delegator", "assignee", "all"):
            return ToolResult.fail("role must be one of: delegator, assignee, all")
        status_filter: ContractStatus | None = None
        if args.get("status_filter"):
            try:
                status_filter = ContractStatus(args["status_filter"])
            except ValueError:
                return ToolResult.fail(f"Invalid status_filter {args['status_filter']!r}.")

        contracts = [c for c in self._board(ctx).list_contracts() if c.is_party(ctx.session_id)]
        if role == "delegator":
            contracts = [c for c in contracts if c.delegator == ctx.session_id]
        elif role == "assignee":
            contracts = [c for c in contracts if c.assignee == ctx.session_id]
        if status_filter is not None:
            contracts = [c for c in contracts if c.status == status_filter]

        if not contracts:
            return ToolResult(True, "No task contracts found.")

        lines = [f"Task contracts ({len(contracts)}):", ""]
        for c in contracts:
            lines.append(f"[{c.id}] {c.status} | {c.delegator} -> {c.assignee}")
            lines.append(f"  Task: {c.inputs.description[:80]}")
            if c.result:
                lines.append(f"  Result: {c.result.status} - {c.result.summary[:60]}")
            lines.append("")
        return ToolResult(True, "\n".join(lines))
