"""Context Budget Manager

エージェントのターン開始時に渡す情報量を制御する。
受信メッセージを4段階に分類し、段階ごとに表現を変える:

- critical: 全文
- relevant: 構造化要約
- background: 1行ダイジェスト
- irrelevant: 省略

分類はヘッダーのみで決まり、ペイロードは見ない。
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Protocol

from ..core.board.models import ProjectState
from .messages import (
    BROADCAST,
    ConflictReportPayload,
    KnowledgeSharePayload,
    MessagePriority,
    StatusUpdatePayload,
    TaskResultPayload,
    TypedMessage,
)

logger = logging.getLogger(__name__)

DEFAULT_DIGEST_CHARS = 80


class ContextTier(StrEnum):
    """コンテキスト段階"""

    CRITICAL = "critical"
    RELEVANT = "relevant"
    BACKGROUND = "background"
    IRRELEVANT = "irrelevant"


class BoardReader(Protocol):
    """read() でプロジェクト状態を返すもの"""

    def read(self) -> ProjectState: ...


@dataclass(frozen=True)
class ClassifiedMessage:
    """分類済みメッセージ"""

    message: TypedMessage
    tier: ContextTier
    digest: str = ""


def classify_message(message: TypedMessage, recipient_id: str) -> ContextTier:
    """受信者に対するメッセージの段階を判定"""
    header = message.header
    to_list = header.recipients()
    addressed = recipient_id in to_list
    broadcast = BROADCAST in to_list
    blocking = header.priority == MessagePriority.BLOCKING
    high_or_above = blocking or header.priority == MessagePriority.HIGH

    if addressed and blocking:
        return ContextTier.CRITICAL
    if addressed:
        return ContextTier.RELEVANT
    if broadcast and high_or_above:
        return ContextTier.RELEVANT
    if broadcast:
        return ContextTier.BACKGROUND
    return ContextTier.IRRELEVANT


def _format_time(ts: datetime) -> str:
    return ts.strftime("%H:%M")


def one_line_digest(message: TypedMessage, max_chars: int = DEFAULT_DIGEST_CHARS) -> str:
    """background用の1行ダイジェスト"""
    header = message.header
    hint = header.context_summary[:max_chars]
    return f"[{_format_time(header.timestamp)}] {header.sender} ({header.type}): {hint}"


def structured_summary(message: TypedMessage) -> str:
    """relevant用の構造化要約"""
    header = message.header
    payload = message.payload
    lines = [
        f"[要約] {header.sender} が {header.type} を送信。",
        f"[背景] {header.context_summary}",
    ]

    if isinstance(payload, StatusUpdatePayload):
        lines.append(
            f"[影響] {header.sender} のステータス: {payload.new_status}. "
            f"残り: {payload.estimated_remaining or '不明'}"
        )
    elif isinstance(payload, TaskResultPayload):
        artifacts = ", ".join(payload.output_artifacts) or "なし"
        lines.append(f"[影響] タスク完了 ({payload.status}). 成果物: {artifacts}")
    elif isinstance(payload, KnowledgeSharePayload):
        if payload.actionable:
            lines.append(f"[要対応] {payload.action_suggestion or 'アクションを確認してください'}")
    elif isinstance(payload, ConflictReportPayload):
        lines.append(
            f"[影響] 重要度 {payload.severity}. 関連: {', '.join(payload.conflicting_artifacts)}"
        )

    lines.append(f"[詳細が必要なら] メッセージID: {header.id}")
    return "\n".join(lines)


def full_content(message: TypedMessage) -> str:
    """critical用の全文"""
    return message.to_json(indent=2)


def classify_messages(
    messages: Iterable[TypedMessage],
    recipient_id: str,
    digest_chars: int = DEFAULT_DIGEST_CHARS,
) -> list[ClassifiedMessage]:
    """メッセージ群を分類（irrelevantは含めない）"""
    result: list[ClassifiedMessage] = []
    for message in messages:
        tier = classify_message(message, recipient_id)
        if tier == ContextTier.IRRELEVANT:
            continue
        digest = one_line_digest(message, digest_chars) if tier == ContextTier.BACKGROUND else ""
        result.append(ClassifiedMessage(message=message, tier=tier, digest=digest))
    return result


def _render_own_state(state: ProjectState, recipient_id: str) -> str:
    agent = state.find_agent(recipient_id)
    if agent is None:
        return "=== あなたの現在の状態 ===\n(未登録のエージェントです)"
    artifacts = ", ".join(f"{a.ref} v{a.version}" for a in agent.artifacts) or "none"
    return "\n".join(
        [
            "=== あなたの現在の状態 ===",
            f"ID: {agent.id}",
            f"Role: {agent.role}",
            f"Status: {agent.status}",
            f"Current task: {agent.current_task or 'none'}",
            f"Blocked by: {agent.blocked_by or 'none'}",
            f"Artifacts produced: {artifacts}",
        ]
    )


def render_project_snapshot(state: ProjectState, changelog_entries: int = 5) -> str:
    """プロジェクト全体のスナップショット"""
    open_decisions = state.open_decisions()
    active_blockers = state.active_blockers()
    recent = state.changelog[-changelog_entries:] if changelog_entries > 0 else []

    lines = [
        "=== プロジェクト全体の現在の状態 ===",
        f"Goal: {state.goal or '(未設定)'}",
        f"Phase: {state.current_phase}",
        f"Updated: {state.updated_at.isoformat()}",
        "",
        f"Agents ({len(state.agents)}):",
    ]
    for a in state.agents:
        task = f" -> {a.current_task}" if a.current_task else ""
        lines.append(f"  - {a.id} [{a.status}]{task}")
    lines.append("")
    lines.append(f"Open decisions ({len(open_decisions)}):")
    lines.extend(f"  - [{d.id}] {d.question} (owner: {d.owner})" for d in open_decisions)
    lines.append("")
    lines.append(f"Active blockers ({len(active_blockers)}):")
    lines.extend(f"  - [{b.id}] {b.description}" for b in active_blockers)
    lines.append("")
    lines.append("Recent changelog:")
    lines.extend(f"  [{_format_time(e.timestamp)}] {e.agent}: {e.action}" for e in recent)
    return "\n".join(lines)


def build_agent_context(
    recipient_id: str,
    board: BoardReader,
    pending_messages: Iterable[TypedMessage],
    max_background: int = 10,
    include_project_state: bool = True,
    digest_chars: int = DEFAULT_DIGEST_CHARS,
    snapshot_changelog: int = 5,
) -> str:
    """エージェントのターン用コンテキスト文字列を組み立てる

    セクション順:
    1. 自分のボード上の状態
    2. critical メッセージ（全文）
    3. relevant メッセージ（要約）
    4. background ダイジェスト（直近 max_background 件）
    5. プロジェクト全体のスナップショット（include_project_state=False なら省略）
    """
    state = board.read()
    classified = classify_messages(pending_messages, recipient_id, digest_chars)
    critical = [c for c in classified if c.tier == ContextTier.CRITICAL]
    relevant = [c for c in classified if c.tier == ContextTier.RELEVANT]
    background = [c for c in classified if c.tier == ContextTier.BACKGROUND]
    background = background[-max_background:] if max_background > 0 else []

    if critical:
        critical_part = "\n\n".join(
            ["=== 未処理の受信メッセージ (critical) ==="] + [full_content(c.message) for c in critical]
        )
    else:
        critical_part = "=== 未処理の受信メッセージ (critical) ===\n(なし)"

    if relevant:
        relevant_part = "\n\n".join(
            ["=== 最近の変更 (relevant) ==="] + [structured_summary(c.message) for c in relevant]
        )
    else:
        relevant_part = "=== 最近の変更 (relevant) ===\n(なし)"

    if background:
        background_part = "\n".join(
            [f"=== バックグラウンド (直近{len(background)}件) ==="] + [c.digest for c in background]
        )
    else:
        background_part = "=== バックグラウンド ===\n(なし)"

    sections = [_render_own_state(state, recipient_id), critical_part, relevant_part, background_part]
    if include_project_state:
        sections.append(render_project_snapshot(state, snapshot_changelog))

    logger.debug(
        f"コンテキスト生成: {recipient_id} critical={len(critical)} "
        f"relevant={len(relevant)} background={len(background)}"
    )
    return "\n\n".join(sections)
