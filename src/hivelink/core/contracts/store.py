"""Task Contract Store - JSONファイル永続化

Vault/organizations/{org_id}/task-contracts/{contract_id}.json に
契約ごとに1ファイルで保存する。状態遷移の妥当性は検証しない（CRUDのみ）。
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path

from pydantic import ValidationError

from ..errors import BoardWriteError
from .models import TaskContract

logger = logging.getLogger(__name__)

# ファイル名として安全なID
_SAFE_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def write_json_atomic(path: Path, text: str) -> None:
    """一時ファイル経由でJSONを書き込み、置き換える

    Raises:
        OSError: 書き込みに失敗した場合
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class ContractStore:
    """タスク契約の永続化ストレージ

    Attributes:
        org_id: 組織ID
        base_path: 契約ディレクトリのパス
    """

    def __init__(self, org_id: str, base_path: Path | str):
        """
        Args:
            org_id: 組織ID
            base_path: 組織ディレクトリ。task-contracts/ が配下に作成される。
        """
        self.org_id = org_id
        self.base_path = Path(base_path) / "task-contracts"

    def _contract_path(self, contract_id: str) -> Path:
        if not _SAFE_ID.match(contract_id):
            raise ValueError(f"Invalid contract id: {contract_id!r}")
        return self.base_path / f"{contract_id}.json"

    def save_contract(self, contract: TaskContract) -> None:
        """契約を保存（同一IDは上書き）

        Raises:
            ValueError: IDがファイル名として不正な場合
            BoardWriteError: 書き込みに失敗した場合
        """
        path = self._contract_path(contract.id)
        try:
            write_json_atomic(path, contract.to_json())
        except OSError as e:
            raise BoardWriteError(self.org_id, path, str(e)) from e
        logger.debug(f"契約保存: {contract.id} (org={self.org_id}, status={contract.status})")

    def load_contract(self, contract_id: str) -> TaskContract | None:
        """契約を読み込む。存在しない・読めない場合はNone"""
        try:
            path = self._contract_path(contract_id)
        except ValueError:
            return None
        if not path.exists():
            return None
        return self._read_contract(path)

    def list_contracts(self) -> list[TaskContract]:
        """全契約を取得（壊れたファイルはスキップ）"""
        if not self.base_path.exists():
            return []
        contracts: list[TaskContract] = []
        for path in sorted(self.base_path.glob("*.json")):
            contract = self._read_contract(path)
            if contract is not None:
                contracts.append(contract)
        return contracts

    def _read_contract(self, path: Path) -> TaskContract | None:
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            return TaskContract.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"契約読み込みエラー: {path}: {e}")
            return None
