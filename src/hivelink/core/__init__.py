"""HiveLink Core モジュール

協調プロトコルの永続化層を提供:
- Board: 共有プロジェクト状態
- Contracts: タスク契約
- Config: 設定管理
- Errors: 例外定義
"""

from .board import ProjectState, SharedStateBoard
from .config import HiveLinkSettings, get_settings, reload_settings
from .contracts import ContractStore, TaskContract
from .errors import BoardWriteError, HiveLinkError

__all__ = [
    # Config
    "get_settings",
    "reload_settings",
    "HiveLinkSettings",
    # Errors
    "HiveLinkError",
    "BoardWriteError",
    # Board
    "ProjectState",
    "SharedStateBoard",
    # Contracts
    "ContractStore",
    "TaskContract",
]
