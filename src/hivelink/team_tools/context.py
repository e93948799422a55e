"""ツール実行コンテキスト"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class ToolContext:
    """ツールを呼び出したセッションと、その所属組織"""

    session_id: str
    org_id: str | None


@dataclass(frozen=True)
class ToolResult:
    """エージェントに返す結果"""

    success: bool
    output: str

    @classmethod
    def ok(cls, *lines: str) -> ToolResult:
        """成功（空行以外を改行で連結）"""
        return cls(True, "\n".join(line for line in lines if line))

    @classmethod
    def fail(cls, message: str) -> ToolResult:
        return cls(False, message)


class SessionDirectory(Protocol):
    """セッションの所属組織を引く"""

    def organization_of(self, session_id: str) -> str | None: ...
