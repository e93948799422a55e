"""チームプロトコルツール

エージェントから呼び出されるツールのルーター。
各ハンドラーは入力を検証し、ボード・受信箱・ディスパッチャーを呼び、
人が読める確認文を返す。例外はエージェントに届かない。
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..core.config import ContextBudgetConfig
from ..core.errors import HiveLinkError
from ..dispatch.dispatcher import EventDispatcher
from ..registry import OrganizationRegistry
from .context import SessionDirectory, ToolContext, ToolResult
from .handlers import BoardHandlers, ContractHandlers, MessageHandlers

logger = logging.getLogger(__name__)

ToolHandler = Callable[[ToolContext, dict[str, Any]], Awaitable[ToolResult]]


class TeamProtocolTools:
    """チームプロトコルツール

    提供ツール:
    - read_project_state / update_my_status / update_project
    - send_typed_message / read_typed_messages / get_my_context_budget
    - add_pending_decision / resolve_decision
    - report_blocker / resolve_blocker
    - create / get / accept / complete / cancel / list task contract
    """

    def __init__(
        self,
        registry: OrganizationRegistry,
        dispatcher: EventDispatcher,
        directory: SessionDirectory | None = None,
        context_budget: ContextBudgetConfig | None = None,
    ):
        self.registry = registry
        self.dispatcher = dispatcher
        self.directory = directory
        self.context_budget = context_budget or ContextBudgetConfig()

        self._board_handlers = BoardHandlers(self)
        self._message_handlers = MessageHandlers(self)
        self._contract_handlers = ContractHandlers(self)
        self._handlers: dict[str, ToolHandler] = {}
        for group in (self._board_handlers, self._message_handlers, self._contract_handlers):
            for attr in dir(group):
                if attr.startswith("handle_"):
                    self._handlers[attr.removeprefix("handle_")] = getattr(group, attr)

    @property
    def tool_names(self) -> list[str]:
        return sorted(self._handlers)

    async def execute(
        self, name: str, args: dict[str, Any] | None, ctx: ToolContext
    ) -> ToolResult | None:
        """名前でツールを実行する

        Returns:
            実行結果。未知のツール名の場合はNone
        """
        handler = self._handlers.get(name)
        if handler is None:
            return None
        if not ctx.org_id:
            return ToolResult.fail("Cannot determine organization for this session.")

        try:
            return await handler(ctx, dict(args or {}))
        except HiveLinkError as e:
            retry = " (retryable)" if e.retryable else ""
            logger.warning(f"ツール {name} 失敗{retry}: {e}")
            return ToolResult.fail(f"Error{retry}: {e}")
        except Exception as e:
            logger.exception(f"ツール {name} で予期しないエラー")
            return ToolResult.fail(f"Error: {e}")
