"""HiveLink 設定管理モジュール

Pydantic Settingsを使用した型安全な設定管理。
hivelink.config.yaml と環境変数から設定を読み込む。
"""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


class StorageConfig(BaseModel):
    """永続化設定"""

    vault_path: str = Field(default="./Vault", description="Vaultディレクトリ")
    lock_timeout_seconds: float = Field(
        default=10, gt=0, le=120, description="ファイルロック取得のタイムアウト秒"
    )


class BoardConfig(BaseModel):
    """Shared State Board設定"""

    changelog_limit: int = Field(default=50, ge=1, le=1000, description="変更履歴の保持上限")


class ContextBudgetConfig(BaseModel):
    """コンテキストバジェット設定"""

    max_background: int = Field(default=10, ge=0, le=100, description="backgroundの最大件数")
    digest_chars: int = Field(default=80, ge=10, le=500, description="ダイジェストの文字数")
    snapshot_changelog: int = Field(
        default=5, ge=0, le=50, description="スナップショットに含める変更履歴件数"
    )
    include_project_state: bool = Field(
        default=True, description="プロジェクト全体スナップショットを含めるか"
    )


class InboxConfig(BaseModel):
    """メッセージ受信箱設定"""

    max_messages: int = Field(default=200, ge=1, description="受信者ごとの保持上限")


class LoggingConfig(BaseModel):
    """ロギング設定"""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")


class HiveLinkSettings(BaseSettings):
    """HiveLink全体設定

    設定の優先順位:
    1. 環境変数
    2. hivelink.config.yaml
    3. デフォルト値
    """

    model_config = SettingsConfigDict(
        env_prefix="HIVELINK_",
        env_nested_delimiter="__",
    )

    storage: StorageConfig = Field(default_factory=StorageConfig)
    board: BoardConfig = Field(default_factory=BoardConfig)
    context_budget: ContextBudgetConfig = Field(default_factory=ContextBudgetConfig)
    inbox: InboxConfig = Field(default_factory=InboxConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAMLの値は初期化引数として渡るため、環境変数を先に評価する
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @classmethod
    def from_yaml(cls, config_path: Path | str | None = None) -> "HiveLinkSettings":
        """YAMLファイルから設定を読み込む

        Args:
            config_path: 設定ファイルパス。Noneの場合はデフォルトパスを探索

        Returns:
            HiveLinkSettings インスタンス
        """
        if config_path is None:
            search_paths = [
                Path.cwd() / "hivelink.config.yaml",
                Path.cwd() / "hivelink.config.yml",
                Path.home() / ".hivelink" / "config.yaml",
            ]
            for path in search_paths:
                if path.exists():
                    config_path = path
                    break

        if config_path and Path(config_path).exists():
            with open(config_path, encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f) or {}
            return cls(**yaml_config)

        return cls()

    def get_vault_path(self) -> Path:
        """Vaultパスを絶対パスで取得"""
        vault = Path(self.storage.vault_path)
        if not vault.is_absolute():
            vault = Path.cwd() / vault
        return vault.resolve()


# グローバル設定インスタンス（遅延初期化）
_settings: HiveLinkSettings | None = None


def get_settings() -> HiveLinkSettings:
    """設定シングルトンを取得"""
    global _settings
    if _settings is None:
        _settings = HiveLinkSettings.from_yaml()
    return _settings


def reload_settings(config_path: Path | str | None = None) -> HiveLinkSettings:
    """設定を再読み込み"""
    global _settings
    _settings = HiveLinkSettings.from_yaml(config_path)
    return _settings
