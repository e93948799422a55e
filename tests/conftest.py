"""HiveLink テスト設定"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from hivelink.dispatch.dispatcher import EventDispatcher
from hivelink.registry import OrganizationRegistry
from hivelink.team_tools import TeamProtocolTools, ToolContext

ORG = "org-test"


@pytest.fixture
def temp_vault(tmp_path):
    """テスト用の一時Vaultディレクトリ"""
    vault_path = tmp_path / "Vault"
    vault_path.mkdir()
    return vault_path


@pytest.fixture
def registry(temp_vault):
    """テスト用の組織レジストリ"""
    return OrganizationRegistry(temp_vault, changelog_limit=50, lock_timeout=5)


@pytest.fixture
def board(registry):
    """テスト組織のボード"""
    return registry.board(ORG)


@pytest.fixture
def notifier():
    """通知先のモック"""
    return AsyncMock()


@pytest.fixture
def group_chat():
    """グループチャット投稿のモック"""
    return MagicMock()


@pytest.fixture
def dispatcher(registry, notifier, group_chat):
    """モックの配信手段を持つディスパッチャー"""
    return EventDispatcher(registry, notifier=notifier, group_chat_poster=group_chat)


@pytest.fixture
def tools(registry, dispatcher):
    """チームプロトコルツール"""
    return TeamProtocolTools(registry, dispatcher)


@pytest.fixture
def ctx_of():
    """セッションIDからツールコンテキストを作る"""

    def _make(session_id: str, org_id: str | None = ORG) -> ToolContext:
        return ToolContext(session_id=session_id, org_id=org_id)

    return _make


@pytest.fixture
def notified(notifier):
    """指定エージェントに届いた通知文の一覧を返す関数"""

    def _texts(agent_id: str) -> list[str]:
        return [c.args[1] for c in notifier.await_args_list if c.args[0] == agent_id]

    return _texts
