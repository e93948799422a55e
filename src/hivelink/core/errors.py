"""HiveLink 例外定義"""

from __future__ import annotations

from pathlib import Path


class HiveLinkError(Exception):
    """HiveLink例外の基底クラス"""

    retryable: bool = False


class BoardWriteError(HiveLinkError):
    """状態の永続化に失敗した

    読み込み失敗とは異なり握りつぶさない。呼び出し側は再試行できる。
    """

    retryable = True

    def __init__(self, org_id: str, path: Path | str, reason: str):
        self.org_id = org_id
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Failed to persist state for org '{org_id}' ({self.path}): {reason}")
