"""エージェント向けツール層"""

from .context import SessionDirectory, ToolContext, ToolResult
from .tool_definitions import get_tool_definitions
from .tools import TeamProtocolTools

__all__ = [
    "SessionDirectory",
    "TeamProtocolTools",
    "ToolContext",
    "ToolResult",
    "get_tool_definitions",
]
