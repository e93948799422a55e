"""Typed Message 関連のツールハンドラー"""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from ...dispatch.events import ConflictDetectedEvent
from ...protocol.context_budget import build_agent_context
from ...protocol.messages import (
    BROADCAST,
    ConflictReportPayload,
    MessagePriority,
    MessageType,
    StateRef,
    create_message,
)
from ..context import ToolContext, ToolResult
from .base import BaseHandler


def _first_error(e: ValidationError) -> str:
    err = e.errors()[0]
    loc = ".".join(str(p) for p in err["loc"])
    return f"{loc}: {err['msg']}" if loc else err["msg"]


class MessageHandlers(BaseHandler):
    """メッセージ関連ハンドラー"""

    async def handle_send_typed_message(
        self, ctx: ToolContext, args: dict[str, Any]
    ) -> ToolResult:
        """型付きメッセージを送信"""
        try:
            message_type = MessageType(args.get("type"))
        except ValueError:
            valid = ", ".join(t.value for t in MessageType)
            return ToolResult.fail(f"Invalid message type {args.get('type')!r}. Use one of: {valid}")

        to = args.get("to")
        if not to:
            return ToolResult.fail("to is required")
        to_list = [to] if isinstance(to, str) else list(to)
        for target_id in to_list:
            if target_id != BROADCAST and not self._is_same_org(ctx, target_id):
                return ToolResult.fail(f"Cross-organization messaging is not allowed ({target_id}).")

        try:
            message = create_message(
                message_type,
                sender=ctx.session_id,
                to=to,
                payload=args.get("payload") or {},
                priority=MessagePriority(args.get("priority") or MessagePriority.NORMAL),
                context_summary=args.get("context_summary", ""),
                related_state_refs=[
                    StateRef.model_validate(r) for r in args.get("related_state_refs") or []
                ],
            )
        except ValidationError as e:
            return ToolResult.fail(f"Invalid {message_type} message: {_first_error(e)}")
        except ValueError as e:
            return ToolResult.fail(f"Invalid message: {e}")

        header = message.header
        self._inbox(ctx).deliver(message)

        dispatcher = self._dispatcher
        if header.priority in (MessagePriority.BLOCKING, MessagePriority.HIGH):
            notification = "\n".join(
                [
                    f"[TEAM PROTOCOL - {header.type}] priority={header.priority}",
                    header.context_summary,
                    f"From: {ctx.session_id}",
                    f"Message ID: {header.id}",
                    "Use read_typed_messages to get the full message.",
                ]
            )
            for target_id in to_list:
                if target_id != BROADCAST and target_id != ctx.session_id:
                    await dispatcher.notify(target_id, notification)

        if header.is_broadcast() and header.priority != MessagePriority.LOW:
            dispatcher.post_group_chat(
                ctx.org_id or "",
                ctx.session_id,
                f"[BROADCAST {header.type}] {header.context_summary}",
            )

        if isinstance(message.payload, ConflictReportPayload):
            await dispatcher.dispatch(
                ConflictDetectedEvent(
                    org_id=ctx.org_id,
                    reporter_agent_id=ctx.session_id,
                    conflict_description=message.payload.conflict_description,
                    conflicting_artifacts=message.payload.conflicting_artifacts,
                    severity=message.payload.severity,
                )
            )

        return ToolResult.ok(
            "Typed message sent.",
            f"ID: {header.id}",
            f"Type: {header.type}",
            f"To: {', '.join(to_list)}",
            f"Priority: {header.priority}",
        )

    async def handle_read_typed_messages(
        self, ctx: ToolContext, args: dict[str, Any]
    ) -> ToolResult:
        """受信した型付きメッセージを読む"""
        filter_type: MessageType | None = None
        if args.get("filter_type"):
            try:
                filter_type = MessageType(args["filter_type"])
            except ValueError:
                return ToolResult.fail(f"Invalid filter_type {args['filter_type']!r}.")

        inbox = self._inbox(ctx)
        messages = inbox.messages_for(
            ctx.session_id, message_type=filter_type, message_id=args.get("message_id")
        )
        if not messages:
            return ToolResult(True, "No typed messages found.")

        lines = [f"You have {len(messages)} typed message(s):", ""]
        for msg in messages:
            header = msg.header
            payload = json.dumps(msg.payload.model_dump(mode="json"), ensure_ascii=False, indent=2)
            lines += [
                f"--- [{header.type}] {header.id} ---",
                f"From: {header.sender}",
                f"Priority: {header.priority}",
                f"Time: {header.timestamp.isoformat()}",
                f"Summary: {header.context_summary}",
                f"Payload:\n{payload}",
                "",
            ]

        if args.get("mark_read"):
            cleared = inbox.acknowledge(ctx.session_id, [m.id for m in messages])
            lines.append(f"Cleared {cleared} message(s) from inbox.")

        return ToolResult(True, "\n".join(lines))

    async def handle_get_my_context_budget(
        self, ctx: ToolContext, args: dict[str, Any]
    ) -> ToolResult:
        """段階分けした自分用コンテキストを返す"""
        config = self._tools.context_budget
        include = args.get("include_project_state")
        text = build_agent_context(
            ctx.session_id,
            self._board(ctx),
            self._inbox(ctx).messages_for(ctx.session_id),
            max_background=config.max_background,
            include_project_state=config.include_project_state if include is None else bool(include),
            digest_chars=config.digest_chars,
            snapshot_changelog=config.snapshot_changelog,
        )
        return ToolResult(True, text)
