"""設定管理モジュールのテスト"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from hivelink.core.config import (
    ContextBudgetConfig,
    HiveLinkSettings,
    get_settings,
    reload_settings,
)


class TestHiveLinkSettings:
    """HiveLinkSettingsのテスト"""

    def test_default_values(self):
        """デフォルト値が正しく設定される"""
        # Arrange & Act: デフォルト設定を作成
        settings = HiveLinkSettings()

        # Assert: デフォルト値が設定されている
        assert settings.storage.vault_path == "./Vault"
        assert settings.board.changelog_limit == 50
        assert settings.context_budget.max_background == 10
        assert settings.context_budget.digest_chars == 80
        assert settings.inbox.max_messages == 200
        assert settings.logging.level == "INFO"

    def test_from_yaml_with_valid_file(self, tmp_path):
        """有効なYAMLファイルから設定を読み込む"""
        # Arrange: YAMLファイルを作成
        config_file = tmp_path / "hivelink.config.yaml"
        config_file.write_text("""
storage:
  vault_path: /custom/vault
board:
  changelog_limit: 20
context_budget:
  max_background: 3
  include_project_state: false
logging:
  level: DEBUG
""")

        # Act: YAMLから読み込み
        settings = HiveLinkSettings.from_yaml(config_file)

        # Assert: カスタム値が設定されている
        assert settings.storage.vault_path == "/custom/vault"
        assert settings.board.changelog_limit == 20
        assert settings.context_budget.max_background == 3
        assert settings.context_budget.include_project_state is False
        assert settings.logging.level == "DEBUG"

    def test_from_yaml_with_nonexistent_file(self):
        """存在しないファイルパスを指定した場合はデフォルト値"""
        # Act
        settings = HiveLinkSettings.from_yaml(Path("/nonexistent/config.yaml"))

        # Assert
        assert settings.board.changelog_limit == 50

    def test_from_yaml_with_empty_file(self, tmp_path):
        """空のYAMLファイルはデフォルト値"""
        # Arrange
        config_file = tmp_path / "hivelink.config.yaml"
        config_file.write_text("")

        # Act & Assert
        assert HiveLinkSettings.from_yaml(config_file).inbox.max_messages == 200

    def test_from_yaml_finds_default_config_file(self, tmp_path, monkeypatch):
        """カレントディレクトリの設定ファイルを自動検出する"""
        # Arrange
        (tmp_path / "hivelink.config.yaml").write_text("board:\n  changelog_limit: 9\n")
        monkeypatch.chdir(tmp_path)

        # Act
        settings = HiveLinkSettings.from_yaml(None)

        # Assert
        assert settings.board.changelog_limit == 9

    def test_invalid_value_is_rejected(self, tmp_path):
        """範囲外の値は検証エラー"""
        # Arrange
        config_file = tmp_path / "hivelink.config.yaml"
        config_file.write_text("board:\n  changelog_limit: 0\n")

        # Act & Assert
        with pytest.raises(ValidationError):
            HiveLinkSettings.from_yaml(config_file)

    def test_env_override(self, monkeypatch):
        """環境変数で上書きできる"""
        # Arrange
        monkeypatch.setenv("HIVELINK_STORAGE__VAULT_PATH", "/from/env")

        # Act
        settings = HiveLinkSettings()

        # Assert
        assert settings.storage.vault_path == "/from/env"

    def test_env_takes_precedence_over_yaml(self, tmp_path, monkeypatch):
        """YAMLと環境変数の両方がある場合は環境変数が優先される"""
        # Arrange
        config_file = tmp_path / "hivelink.config.yaml"
        config_file.write_text(
            "storage:\n  vault_path: /from/yaml\n  lock_timeout_seconds: 3\n"
            "board:\n  changelog_limit: 20\n"
        )
        monkeypatch.setenv("HIVELINK_STORAGE__VAULT_PATH", "/from/env")

        # Act
        settings = HiveLinkSettings.from_yaml(config_file)

        # Assert
        assert settings.storage.vault_path == "/from/env"
        assert settings.storage.lock_timeout_seconds == 3
        assert settings.board.changelog_limit == 20

    def test_get_vault_path_relative(self, tmp_path, monkeypatch):
        """相対パスはカレントディレクトリ基準の絶対パスになる"""
        # Arrange
        monkeypatch.chdir(tmp_path)
        settings = HiveLinkSettings()

        # Act
        vault = settings.get_vault_path()

        # Assert
        assert vault.is_absolute()
        assert vault == (tmp_path / "Vault").resolve()

    def test_digest_chars_lower_bound(self):
        """ダイジェスト文字数には下限がある"""
        with pytest.raises(ValidationError):
            ContextBudgetConfig(digest_chars=1)


class TestSettingsSingleton:
    """設定シングルトンのテスト"""

    def test_reload_settings(self, tmp_path):
        """再読み込みでシングルトンが置き換わる"""
        # Arrange
        config_file = tmp_path / "hivelink.config.yaml"
        config_file.write_text("inbox:\n  max_messages: 5\n")

        # Act
        settings = reload_settings(config_file)

        # Assert
        assert settings.inbox.max_messages == 5
        assert get_settings() is settings

        # 後続テストへの影響を避ける
        reload_settings(tmp_path / "missing.yaml")
