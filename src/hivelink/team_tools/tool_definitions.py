"""チームプロトコル ツール定義

エージェントに公開するツールのスキーマ定義。
"""

from mcp.types import Tool

from ..core.board.models import AgentStatus
from ..core.contracts.models import ContractOutcome, ContractStatus
from ..protocol.messages import MessagePriority, MessageType

_MESSAGE_TYPES = [t.value for t in MessageType]
_STRING_LIST = {"type": "array", "items": {"type": "string"}}


def get_tool_definitions() -> list[Tool]:
    """利用可能なツール一覧を取得"""
    return [
        # Shared State Board
        Tool(
            name="read_project_state",
            description=(
                "チームの共有状態ボードを読みます。目標、フェーズ、全エージェントの状態、"
                "未決定事項、ブロッカー、変更履歴を含みます。作業開始時に呼んでください。"
            ),
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="update_my_status",
            description=(
                "共有状態ボード上の自分のエントリを更新します。状態が変わるたびに呼んでください。"
                "生成した成果物の登録にも使います。"
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "status": {
                        "type": "string",
                        "enum": [s.value for s in AgentStatus],
                        "description": "新しい状態",
                    },
                    "current_task": {
                        "type": ["string", "null"],
                        "description": "取り組んでいる作業の概要（nullでクリア）",
                    },
                    "blocked_by": {
                        "type": ["string", "null"],
                        "description": "待っているタスク・ブロッカー・エージェントのID",
                    },
                    "role": {
                        "type": "string",
                        "description": "役割（初回登録時に使用）",
                    },
                    "artifact_ref": {
                        "type": "string",
                        "description": "登録する成果物の一意なID",
                    },
                    "artifact_description": {
                        "type": "string",
                        "description": "成果物の説明",
                    },
                    "artifact_path": {
                        "type": "string",
                        "description": "成果物のファイルパスまたはURI",
                    },
                },
                "required": ["status"],
            },
        ),
        Tool(
            name="update_project",
            description="プロジェクトの目標とフェーズを更新します。",
            inputSchema={
                "type": "object",
                "properties": {
                    "goal": {"type": "string", "description": "プロジェクト全体の目標"},
                    "current_phase": {"type": "string", "description": "現在のフェーズ名"},
                },
            },
        ),
        # Typed Message
        Tool(
            name="send_typed_message",
            description=(
                "型付きメッセージを1人以上のエージェントに送ります。"
                "委譲、状態更新、意思決定依頼、衝突報告、知見共有に使います。"
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "type": {
                        "type": "string",
                        "enum": _MESSAGE_TYPES,
                        "description": "メッセージタイプ",
                    },
                    "to": {
                        "oneOf": [
                            {"type": "string", "description": "宛先セッションID。'*' で全員"},
                            {**_STRING_LIST, "description": "複数の宛先"},
                        ],
                    },
                    "priority": {
                        "type": "string",
                        "enum": [p.value for p in MessagePriority],
                        "description": "優先度（blockingは即時割り込み）",
                    },
                    "context_summary": {
                        "type": "string",
                        "description": "このメッセージの背景（1〜2文）",
                    },
                    "payload": {
                        "type": "object",
                        "description": "メッセージタイプごとのペイロード",
                    },
                    "related_state_refs": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "type": {
                                    "type": "string",
                                    "enum": ["agent", "decision", "blocker", "artifact"],
                                },
                                "id": {"type": "string"},
                            },
                            "required": ["type", "id"],
                        },
                        "description": "関連するボード上のエンティティ",
                    },
                },
                "required": ["type", "to", "context_summary", "payload"],
            },
        ),
        Tool(
            name="read_typed_messages",
            description="他のエージェントから届いた型付きメッセージを読みます。",
            inputSchema={
                "type": "object",
                "properties": {
                    "filter_type": {
                        "type": "string",
                        "enum": _MESSAGE_TYPES,
                        "description": "メッセージタイプで絞り込み",
                    },
                    "mark_read": {
                        "type": "boolean",
                        "description": "読んだメッセージを受信箱から消す",
                    },
                    "message_id": {
                        "type": "string",
                        "description": "特定のメッセージIDを取得",
                    },
                },
            },
        ),
        Tool(
            name="get_my_context_budget",
            description=(
                "自分用に段階分けされたコンテキストを取得します。自分の状態、"
                "優先度別の未処理メッセージ、プロジェクト全体のスナップショットを含みます。"
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "include_project_state": {
                        "type": "boolean",
                        "description": "プロジェクト全体のスナップショットを含める（既定: true）",
                    },
                },
            },
        ),
        # 未決定事項
        Tool(
            name="add_pending_decision",
            description="決めるべき事項をボードに追加し、決定者に通知します。",
            inputSchema={
                "type": "object",
                "properties": {
                    "question": {"type": "string", "description": "決定すべき問い"},
                    "owner": {"type": "string", "description": "決定者のセッションID"},
                    "options": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "label": {"type": "string"},
                                "pros": {"type": "string"},
                                "cons": {"type": "string"},
                            },
                            "required": ["label"],
                        },
                        "description": "選択肢",
                    },
                    "deadline": {
                        "type": ["string", "null"],
                        "description": "期限（ISO8601）",
                    },
                },
                "required": ["question", "owner"],
            },
        ),
        Tool(
            name="resolve_decision",
            description="未決定事項を解決します。関係するメンバーに自動で通知されます。",
            inputSchema={
                "type": "object",
                "properties": {
                    "decision_id": {"type": "string", "description": "決定ID（例: D-01J...）"},
                    "resolution": {"type": "string", "description": "決定内容または説明"},
                },
                "required": ["decision_id", "resolution"],
            },
        ),
        # ブロッカー
        Tool(
            name="report_blocker",
            description="進行を妨げている障害を報告します。影響を受けるエージェントはblockedになります。",
            inputSchema={
                "type": "object",
                "properties": {
                    "description": {"type": "string", "description": "何が妨げになっているか"},
                    "affected_agents": {
                        **_STRING_LIST,
                        "description": "ブロックされるセッションID（既定: 自分）",
                    },
                },
                "required": ["description"],
            },
        ),
        Tool(
            name="resolve_blocker",
            description="ブロッカーを解決します。影響を受けたエージェントは再開し、通知されます。",
            inputSchema={
                "type": "object",
                "properties": {
                    "blocker_id": {"type": "string", "description": "ブロッカーID（例: BLK-01J...）"},
                },
                "required": ["blocker_id"],
            },
        ),
        # Task Contract
        Tool(
            name="create_task_contract",
            description=(
                "他のエージェントへの正式なタスク契約を作成します。入力、期待する出力、"
                "受け入れ基準、権限範囲、失敗時の扱いを定義します。担当者に自動で通知されます。"
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "assignee": {"type": "string", "description": "担当者のセッションID"},
                    "description": {"type": "string", "description": "タスクの説明"},
                    "input_artifacts": {**_STRING_LIST, "description": "入力となる成果物ref"},
                    "constraints": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "constraint": {"type": "string"},
                                "hard": {"type": "boolean"},
                            },
                            "required": ["constraint"],
                        },
                        "description": "制約",
                    },
                    "assumptions": {**_STRING_LIST, "description": "前提としてよい事項"},
                    "output_format": {"type": "string", "description": "出力形式"},
                    "deliverables": {**_STRING_LIST, "description": "成果物の一覧"},
                    "acceptance_criteria": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "criterion": {"type": "string"},
                                "verification_method": {"type": "string"},
                            },
                            "required": ["criterion"],
                        },
                        "description": "受け入れ基準",
                    },
                    "autonomous_decisions": {**_STRING_LIST, "description": "独自に決めてよい事項"},
                    "must_consult": {**_STRING_LIST, "description": "決める前に相談が必要な事項"},
                    "escalation_triggers": {**_STRING_LIST, "description": "即時エスカレーション条件"},
                    "on_blocked": {"type": "string"},
                    "on_partial_completion": {"type": "string"},
                    "on_assumption_violation": {"type": "string"},
                    "max_retries": {"type": ["integer", "null"]},
                    "max_steps": {"type": ["integer", "null"]},
                    "on_timeout": {"type": "string"},
                },
                "required": [
                    "assignee",
                    "description",
                    "output_format",
                    "deliverables",
                    "acceptance_criteria",
                ],
            },
        ),
        Tool(
            name="get_task_contract",
            description="自分が当事者であるタスク契約の詳細を読みます。",
            inputSchema={
                "type": "object",
                "properties": {
                    "contract_id": {"type": "string", "description": "契約ID（例: TC-01J...）"},
                },
                "required": ["contract_id"],
            },
        ),
        Tool(
            name="accept_task_contract",
            description="割り当てられたタスク契約を受諾して作業を開始します。状態はworkingになります。",
            inputSchema={
                "type": "object",
                "properties": {
                    "contract_id": {"type": "string", "description": "受諾する契約ID"},
                },
                "required": ["contract_id"],
            },
        ),
        Tool(
            name="complete_task_contract",
            description="タスク契約を completed / partial / failed にします。委譲元に通知されます。",
            inputSchema={
                "type": "object",
                "properties": {
                    "contract_id": {"type": "string", "description": "契約ID"},
                    "status": {
                        "type": "string",
                        "enum": [o.value for o in ContractOutcome],
                        "description": "完了結果",
                    },
                    "summary": {"type": "string", "description": "実施内容の要約"},
                    "artifacts": {**_STRING_LIST, "description": "生成した成果物ref"},
                    "deviations": {**_STRING_LIST, "description": "契約からの逸脱"},
                },
                "required": ["contract_id", "status", "summary"],
            },
        ),
        Tool(
            name="cancel_task_contract",
            description="委譲したタスク契約を取り消します。担当者に通知されます。",
            inputSchema={
                "type": "object",
                "properties": {
                    "contract_id": {"type": "string", "description": "契約ID"},
                    "reason": {"type": "string", "description": "取り消し理由"},
                },
                "required": ["contract_id"],
            },
        ),
        Tool(
            name="list_task_contracts",
            description="委譲元または担当者として関わっているタスク契約の一覧を取得します。",
            inputSchema={
                "type": "object",
                "properties": {
                    "role": {
                        "type": "string",
                        "enum": ["delegator", "assignee", "all"],
                        "description": "自分の役割で絞り込み",
                    },
                    "status_filter": {
                        "type": "string",
                        "enum": [s.value for s in ContractStatus],
                        "description": "契約状態で絞り込み",
                    },
                },
            },
        ),
    ]
