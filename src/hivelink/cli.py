"""HiveLink CLI

コマンドラインインターフェース。
"""

import argparse
import logging
import sys


def main():
    """メインエントリーポイント"""
    parser = argparse.ArgumentParser(
        description="HiveLink - マルチエージェント協調プロトコル",
        prog="hivelink",
    )
    parser.add_argument("--config", help="設定ファイルのパス（省略時は既定の場所を探索）")

    subparsers = parser.add_subparsers(dest="command", help="利用可能なコマンド")

    # init コマンド
    subparsers.add_parser("init", help="Vaultを初期化")

    # state コマンド
    state_parser = subparsers.add_parser("state", help="組織の共有状態ボードを表示")
    state_parser.add_argument("--org", required=True, help="組織ID")

    # contracts コマンド
    contracts_parser = subparsers.add_parser("contracts", help="組織のタスク契約一覧を表示")
    contracts_parser.add_argument("--org", required=True, help="組織ID")

    # context コマンド
    context_parser = subparsers.add_parser("context", help="エージェント用コンテキストを表示")
    context_parser.add_argument("--org", required=True, help="組織ID")
    context_parser.add_argument("--agent", required=True, help="エージェントのセッションID")
    context_parser.add_argument(
        "--no-project-state",
        action="store_true",
        help="プロジェクト全体のスナップショットを省略",
    )

    args = parser.parse_args()

    if args.command == "init":
        run_init(args)
    elif args.command == "state":
        run_state(args)
    elif args.command == "contracts":
        run_contracts(args)
    elif args.command == "context":
        run_context(args)
    else:
        parser.print_help()
        sys.exit(1)


def _load_settings(args):
    """設定を読み込み、ロギングを構成する"""
    from .core.config import get_settings, reload_settings

    config_path = getattr(args, "config", None)
    settings = reload_settings(config_path) if config_path else get_settings()
    logging.basicConfig(
        level=settings.logging.level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return settings


def _registry(args):
    from .registry import OrganizationRegistry

    return OrganizationRegistry.from_settings(_load_settings(args))


def run_init(args):
    """Vaultを初期化"""
    from .registry import ORGANIZATIONS_DIR

    settings = _load_settings(args)
    vault_path = settings.get_vault_path()
    (vault_path / ORGANIZATIONS_DIR).mkdir(parents=True, exist_ok=True)

    print(f"✓ Vault ディレクトリを作成しました: {vault_path}")
    print("\nHiveLink の準備ができました！")
    print("\n次のステップ:")
    print("  1. hivelink state --org <組織ID>     # 共有状態ボードを確認")
    print("  2. エージェントにチームプロトコルツールを登録")


def run_state(args):
    """共有状態ボードを表示"""
    from .protocol.context_budget import render_project_snapshot

    registry = _registry(args)
    board = registry.board(args.org)
    if not board.state_path.exists():
        print(f"組織 {args.org} の状態はまだ保存されていません。")
        return

    state = board.read()
    print(f"\n=== 組織: {args.org} ===")
    print(render_project_snapshot(state, changelog_entries=10))


def run_contracts(args):
    """タスク契約一覧を表示"""
    registry = _registry(args)
    contracts = registry.board(args.org).list_contracts()
    if not contracts:
        print("タスク契約が見つかりません。")
        return

    print(f"\n=== タスク契約: {args.org} ({len(contracts)}件) ===")
    for c in contracts:
        print(f"[{c.id}] {c.status} | {c.delegator} -> {c.assignee}")
        print(f"  タスク: {c.inputs.description[:80]}")
        if c.result:
            print(f"  結果: {c.result.status} - {c.result.summary[:60]}")


def run_context(args):
    """エージェント用コンテキストを表示

    受信箱はプロセス内のみのため、メッセージは含まれない。
    """
    from .protocol.context_budget import build_agent_context

    settings = _load_settings(args)
    from .registry import OrganizationRegistry

    registry = OrganizationRegistry.from_settings(settings)
    budget = settings.context_budget
    text = build_agent_context(
        args.agent,
        registry.board(args.org),
        registry.inbox(args.org).messages_for(args.agent),
        max_background=budget.max_background,
        include_project_state=budget.include_project_state and not args.no_project_state,
        digest_chars=budget.digest_chars,
        snapshot_changelog=budget.snapshot_changelog,
    )
    print(text)


if __name__ == "__main__":
    main()
