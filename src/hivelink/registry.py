"""組織レジストリ

プロセス起動時に1つ作成し、ディスパッチャーとツール層に注入する。
組織ごとに SharedStateBoard と MessageInbox を1つずつ返す。
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from .core.board.store import SharedStateBoard
from .core.config import HiveLinkSettings
from .protocol.inbox import MessageInbox

logger = logging.getLogger(__name__)

ORGANIZATIONS_DIR = "organizations"


class OrganizationRegistry:
    """組織ごとのボード・受信箱の管理"""

    def __init__(
        self,
        vault_path: Path | str,
        changelog_limit: int = 50,
        lock_timeout: float = 10,
        inbox_max_messages: int = 200,
    ):
        self.vault_path = Path(vault_path)
        self.changelog_limit = changelog_limit
        self.lock_timeout = lock_timeout
        self.inbox_max_messages = inbox_max_messages
        self._lock = threading.Lock()
        self._boards: dict[str, SharedStateBoard] = {}
        self._inboxes: dict[str, MessageInbox] = {}

    @classmethod
    def from_settings(cls, settings: HiveLinkSettings) -> OrganizationRegistry:
        """設定からレジストリを作成"""
        return cls(
            vault_path=settings.get_vault_path(),
            changelog_limit=settings.board.changelog_limit,
            lock_timeout=settings.storage.lock_timeout_seconds,
            inbox_max_messages=settings.inbox.max_messages,
        )

    def org_dir(self, org_id: str) -> Path:
        """組織ディレクトリのパス"""
        if not org_id or "/" in org_id or "\\" in org_id or org_id in (".", ".."):
            raise ValueError(f"Invalid organization id: {org_id!r}")
        return self.vault_path / ORGANIZATIONS_DIR / org_id

    def board(self, org_id: str) -> SharedStateBoard:
        """組織のボードを取得（なければ作成）"""
        with self._lock:
            board = self._boards.get(org_id)
            if board is None:
                board = SharedStateBoard(
                    org_id,
                    self.org_dir(org_id),
                    changelog_limit=self.changelog_limit,
                    lock_timeout=self.lock_timeout,
                )
                self._boards[org_id] = board
                logger.debug(f"ボード作成: org={org_id}")
            return board

    def inbox(self, org_id: str) -> MessageInbox:
        """組織の受信箱を取得（なければ作成）"""
        with self._lock:
            inbox = self._inboxes.get(org_id)
            if inbox is None:
                inbox = MessageInbox(org_id, max_messages=self.inbox_max_messages)
                self._inboxes[org_id] = inbox
            return inbox

    def list_organizations(self) -> list[str]:
        """Vault上に存在する組織IDの一覧"""
        root = self.vault_path / ORGANIZATIONS_DIR
        if not root.exists():
            return []
        return sorted(p.name for p in root.iterdir() if p.is_dir())
