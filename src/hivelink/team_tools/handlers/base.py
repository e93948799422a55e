"""ハンドラー基底クラス

組織スコープのボード・受信箱・ディスパッチャーへのアクセスを提供。
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ...core.board.store import SharedStateBoard
from ...dispatch.dispatcher import EventDispatcher
from ...protocol.inbox import MessageInbox
from ..context import ToolContext

if TYPE_CHECKING:
    from ..tools import TeamProtocolTools


def as_string_list(value: Any, field: str) -> list[str]:
    """文字列または文字列リストの引数をリストに正規化する

    Raises:
        ValueError: 文字列でも文字列リストでもない場合
    """
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list | tuple) and all(isinstance(v, str) for v in value):
        return list(value)
    raise ValueError(f"{field} must be a string or a list of strings")


class BaseHandler:
    """ハンドラー基底クラス"""

    def __init__(self, tools: TeamProtocolTools):
        self._tools = tools

    @property
    def _dispatcher(self) -> EventDispatcher:
        return self._tools.dispatcher

    def _board(self, ctx: ToolContext) -> SharedStateBoard:
        """呼び出し元組織のボード"""
        assert ctx.org_id is not None
        return self._tools.registry.board(ctx.org_id)

    def _inbox(self, ctx: ToolContext) -> MessageInbox:
        """呼び出し元組織の受信箱"""
        assert ctx.org_id is not None
        return self._tools.registry.inbox(ctx.org_id)

    def _is_same_org(self, ctx: ToolContext, target_id: str) -> bool:
        """対象セッションが同じ組織か

        SessionDirectory が無い場合は判定できないため許可する。
        """
        directory = self._tools.directory
        if directory is None:
            return True
        return directory.organization_of(target_id) == ctx.org_id
