"""Shared State Board のテスト"""

import json
import threading

import portalocker
import pytest

from hivelink.core.board.models import (
    AgentRecord,
    AgentStatus,
    AgentStatusPatch,
    ArtifactRef,
    Blocker,
    Decision,
    DecisionStatus,
    ProjectState,
)
from hivelink.core.board.store import SharedStateBoard
from hivelink.core.errors import BoardWriteError


class TestBoardModels:
    """ボードモデルのテスト"""

    def test_project_state_defaults(self):
        """デフォルトの状態は空で initializing フェーズ"""
        # Act
        state = ProjectState()

        # Assert
        assert state.goal == ""
        assert state.current_phase == "initializing"
        assert state.agents == []
        assert state.changelog == []

    def test_resolved_decision_requires_resolution(self):
        """resolved なのに resolution が無い決定事項は作れない"""
        # Act & Assert
        with pytest.raises(ValueError):
            Decision(id="D-1", question="Q", owner="a", status=DecisionStatus.RESOLVED)

    def test_open_decision_rejects_resolution(self):
        """open のまま resolution を持つ決定事項は作れない"""
        with pytest.raises(ValueError):
            Decision(id="D-1", question="Q", owner="a", resolution="yes")

    def test_decision_resolve_sets_both_fields(self):
        """resolve() は status と resolution を同時に更新する"""
        # Arrange
        decision = Decision(id="D-1", question="Q", owner="a")

        # Act
        decision.resolve("use postgres")

        # Assert
        assert decision.status == DecisionStatus.RESOLVED
        assert decision.resolution == "use postgres"

    def test_upsert_artifact_replaces_same_ref(self):
        """同一refの成果物は置き換えられる"""
        # Arrange
        agent = AgentRecord(id="a")
        agent.upsert_artifact(ArtifactRef(ref="api", version=1))

        # Act
        changed = agent.upsert_artifact(ArtifactRef(ref="api", version=2))
        unchanged = agent.upsert_artifact(ArtifactRef(ref="api", version=2))

        # Assert
        assert changed is True
        assert unchanged is False
        assert len(agent.artifacts) == 1
        assert agent.artifacts[0].version == 2

    def test_append_changelog_keeps_limit(self):
        """変更履歴は上限件数で古いものから削除される"""
        # Arrange
        from hivelink.core.board.models import ChangelogEntry

        state = ProjectState()

        # Act
        for i in range(5):
            state.append_changelog(ChangelogEntry(agent="a", action=f"act-{i}"), limit=3)

        # Assert
        assert [e.action for e in state.changelog] == ["act-2", "act-3", "act-4"]

    def test_patch_tracks_explicit_fields(self):
        """パッチは明示的に指定したフィールドだけを覚えている"""
        # Act
        patch = AgentStatusPatch(status=AgentStatus.IDLE, blocked_by=None)

        # Assert
        assert patch.is_set("status")
        assert patch.is_set("blocked_by")
        assert not patch.is_set("current_task")


class TestSharedStateBoardRead:
    """読み込みのテスト"""

    def test_read_without_file_returns_default(self, board):
        """未保存の組織はデフォルト状態"""
        # Act
        state = board.read()

        # Assert
        assert state.goal == ""
        assert state.agents == []

    def test_read_corrupted_file_returns_default(self, board):
        """壊れたJSONはデフォルト状態として扱う"""
        # Arrange
        board.state_path.parent.mkdir(parents=True, exist_ok=True)
        board.state_path.write_text("{not json", encoding="utf-8")

        # Act
        state = board.read()

        # Assert
        assert state.current_phase == "initializing"

    @pytest.mark.parametrize("content", ["[1, 2, 3]", '"x"', "42", "null"])
    def test_read_non_object_json_returns_default(self, board, content):
        """オブジェクト以外のJSONもデフォルト状態として扱い、更新も続けられる"""
        # Arrange
        board.state_path.parent.mkdir(parents=True, exist_ok=True)
        board.state_path.write_text(content, encoding="utf-8")

        # Act
        state = board.read()
        updated = board.update_project("lead", goal="g")

        # Assert
        assert state.current_phase == "initializing"
        assert updated.goal == "g"
        assert board.read().goal == "g"

    def test_read_accepts_unwrapped_state(self, board):
        """project_state で包まれていない形式も読める"""
        # Arrange
        board.state_path.parent.mkdir(parents=True, exist_ok=True)
        board.state_path.write_text(
            json.dumps({"goal": "ship v1", "current_phase": "build"}), encoding="utf-8"
        )

        # Act
        state = board.read()

        # Assert
        assert state.goal == "ship v1"
        assert state.current_phase == "build"

    def test_file_is_wrapped_in_project_state(self, board):
        """保存ファイルは project_state キーの下に状態を持つ"""
        # Act
        board.update_project("lead", goal="ship v1")

        # Assert
        data = json.loads(board.state_path.read_text(encoding="utf-8"))
        assert data["project_state"]["goal"] == "ship v1"


class TestSharedStateBoardProject:
    """プロジェクト更新のテスト"""

    def test_update_project_logs_change(self, board):
        """目標の変更は変更履歴に記録される"""
        # Act
        state = board.update_project("lead", goal="ship v1", current_phase="design")

        # Assert
        assert state.goal == "ship v1"
        assert state.current_phase == "design"
        assert len(state.changelog) == 1
        assert state.changelog[0].agent == "lead"
        assert 'goal -> "ship v1"' in state.changelog[0].action

    def test_update_project_without_change_does_not_write(self, board):
        """変化が無ければ書き込まない"""
        # Arrange
        board.update_project("lead", goal="ship v1")
        mtime = board.state_path.stat().st_mtime_ns

        # Act
        state = board.update_project("lead", goal="ship v1")

        # Assert
        assert len(state.changelog) == 1
        assert board.state_path.stat().st_mtime_ns == mtime

    def test_changelog_limit_is_applied(self, tmp_path):
        """変更履歴は changelog_limit 件まで保持される"""
        # Arrange
        board = SharedStateBoard("org", tmp_path / "org", changelog_limit=3)

        # Act
        for i in range(6):
            board.update_project("lead", current_phase=f"phase-{i}")

        # Assert
        changelog = board.read().changelog
        assert len(changelog) == 3
        assert "phase-5" in changelog[-1].action

    def test_default_changelog_limit(self, board):
        """既定では直近50件が残る"""
        # Act
        for i in range(55):
            board.update_project("lead", current_phase=f"phase-{i}")

        # Assert
        changelog = board.read().changelog
        assert len(changelog) == 50
        assert "phase-54" in changelog[-1].action
        assert "phase-5\"" in changelog[0].action

    def test_persisted_state_reads_back_equal(self, board, tmp_path):
        """保存した状態は別インスタンスから同じ内容で読める"""
        # Arrange
        board.update_project("lead", goal="ship v1")
        board.update_agent_status(
            "worker-1",
            AgentStatusPatch(status=AgentStatus.WORKING, artifacts=[ArtifactRef(ref="api")]),
        )
        board.add_decision("lead", Decision(id="D-1", question="Which DB?", owner="lead"))
        state = board.add_blocker("lead", Blocker(id="BLK-1", description="CI down"))

        # Act
        reread = SharedStateBoard(board.org_id, board.org_dir).read()

        # Assert
        assert reread == state

    def test_recent_changelog(self, board):
        """直近 n 件を古い順に返す"""
        # Arrange
        for i in range(4):
            board.update_project("lead", current_phase=f"p{i}")

        # Act
        recent = board.recent_changelog(2)

        # Assert
        assert len(recent) == 2
        assert "p3" in recent[-1].action
        assert board.recent_changelog(0) == []


class TestSharedStateBoardAgents:
    """エージェント状態のテスト"""

    def test_update_unknown_agent_registers_it(self, board):
        """未登録のエージェントは自動登録される"""
        # Act
        update = board.update_agent_status(
            "worker-1", AgentStatusPatch(status=AgentStatus.WORKING, current_task="build api")
        )

        # Assert
        agent = update.state.find_agent("worker-1")
        assert agent is not None
        assert agent.role == "unknown"
        assert agent.status == AgentStatus.WORKING
        assert agent.current_task == "build api"
        assert "registered" in update.state.changelog[-1].diff_summary

    def test_unspecified_fields_are_kept(self, board):
        """パッチで指定しなかったフィールドは変わらない"""
        # Arrange
        board.update_agent_status(
            "worker-1", AgentStatusPatch(status=AgentStatus.WORKING, current_task="build api")
        )

        # Act
        update = board.update_agent_status(
            "worker-1", AgentStatusPatch(status=AgentStatus.BLOCKED, blocked_by="worker-2")
        )

        # Assert
        agent = update.state.find_agent("worker-1")
        assert agent.current_task == "build api"
        assert agent.blocked_by == "worker-2"

    def test_explicit_none_clears_field(self, board):
        """None を明示すればクリアされる"""
        # Arrange
        board.update_agent_status(
            "worker-1", AgentStatusPatch(status=AgentStatus.WORKING, current_task="build api")
        )

        # Act
        update = board.update_agent_status(
            "worker-1", AgentStatusPatch(status=AgentStatus.IDLE, current_task=None)
        )

        # Assert
        assert update.state.find_agent("worker-1").current_task is None

    def test_unblocked_flags(self, board):
        """blocked から抜けたことを結果で知らせる"""
        # Arrange
        board.update_agent_status(
            "worker-1", AgentStatusPatch(status=AgentStatus.BLOCKED, blocked_by="worker-2")
        )

        # Act
        update = board.update_agent_status(
            "worker-1", AgentStatusPatch(status=AgentStatus.WORKING, blocked_by=None)
        )

        # Assert
        assert update.was_blocked is True
        assert update.is_now_unblocked is True

    def test_artifact_is_upserted(self, board):
        """成果物は同一refで上書きされる"""
        # Arrange
        board.update_agent_status(
            "worker-1", AgentStatusPatch(artifacts=[ArtifactRef(ref="schema", version=1)])
        )

        # Act
        update = board.update_agent_status(
            "worker-1", AgentStatusPatch(artifacts=[ArtifactRef(ref="schema", version=2)])
        )

        # Assert
        agent = update.state.find_agent("worker-1")
        assert [(a.ref, a.version) for a in agent.artifacts] == [("schema", 2)]
        assert update.state.find_artifact_owner("schema").id == "worker-1"

    def test_register_agent_replaces_existing(self, board):
        """同一IDの登録は置き換えになる"""
        # Arrange
        board.register_agent("lead", AgentRecord(id="worker-1", role="backend"))

        # Act
        state = board.register_agent("lead", AgentRecord(id="worker-1", role="frontend"))

        # Assert
        assert len(state.agents) == 1
        assert state.agents[0].role == "frontend"

    def test_unblock_agents_blocked_by(self, board):
        """指定の参照でブロックされたエージェントだけが idle に戻る"""
        # Arrange
        board.update_agent_status(
            "a", AgentStatusPatch(status=AgentStatus.BLOCKED, blocked_by="worker-2")
        )
        board.update_agent_status(
            "b", AgentStatusPatch(status=AgentStatus.BLOCKED, blocked_by="other")
        )

        # Act
        unblocked = board.unblock_agents_blocked_by("worker-2", "worker-2")

        # Assert
        state = board.read()
        assert unblocked == ["a"]
        assert state.find_agent("a").status == AgentStatus.IDLE
        assert state.find_agent("a").blocked_by is None
        assert state.find_agent("b").status == AgentStatus.BLOCKED
        assert board.get_agents_blocked_by("other") == ["b"]


class TestSharedStateBoardDecisions:
    """未決定事項のテスト"""

    def test_add_and_resolve_decision(self, board):
        """追加した決定事項を解決できる"""
        # Arrange
        board.add_decision("lead", Decision(id="D-1", question="Which DB?", owner="lead"))

        # Act
        result = board.resolve_decision("lead", "D-1", "Postgres")

        # Assert
        decision = result.state.find_decision("D-1")
        assert result.found is True
        assert decision.status == DecisionStatus.RESOLVED
        assert decision.resolution == "Postgres"
        assert result.state.open_decisions() == []

    def test_duplicate_decision_is_ignored(self, board):
        """同一IDの決定事項は追加されない"""
        # Arrange
        board.add_decision("lead", Decision(id="D-1", question="Which DB?", owner="lead"))

        # Act
        state = board.add_decision("lead", Decision(id="D-1", question="Other?", owner="lead"))

        # Assert
        assert len(state.pending_decisions) == 1
        assert state.pending_decisions[0].question == "Which DB?"

    def test_resolve_unknown_decision(self, board):
        """存在しない決定事項は found=False"""
        # Act
        result = board.resolve_decision("lead", "D-404", "x")

        # Assert
        assert result.found is False
        assert result.state.changelog == []


class TestSharedStateBoardBlockers:
    """ブロッカーのテスト"""

    def test_duplicate_blocker_is_ignored(self, board):
        """同一IDのブロッカーは追加されず、変更履歴も増えない"""
        # Arrange
        board.add_blocker("a", Blocker(id="BLK-1", description="CI down", affected_agents=["a"]))
        before = board.read()

        # Act
        state = board.add_blocker(
            "b", Blocker(id="BLK-1", description="Other", affected_agents=["b"])
        )

        # Assert
        assert len(state.blockers) == 1
        assert state.blockers[0].description == "CI down"
        assert state.blockers[0].affected_agents == ["a"]
        assert state.changelog == before.changelog
        assert board.read() == before

    def test_resolve_blocker_returns_affected(self, board):
        """解決時に影響を受けたエージェントを返す"""
        # Arrange
        board.add_blocker("a", Blocker(id="BLK-1", description="CI down", affected_agents=["a", "b"]))

        # Act
        result = board.resolve_blocker("lead", "BLK-1")

        # Assert
        assert result.found is True
        assert result.affected_agents == ["a", "b"]
        assert result.state.active_blockers() == []

    def test_resolve_blocker_twice(self, board):
        """二度目の解決は already_resolved になる"""
        # Arrange
        board.add_blocker("a", Blocker(id="BLK-1", description="CI down", affected_agents=["a"]))
        board.resolve_blocker("lead", "BLK-1")

        # Act
        result = board.resolve_blocker("lead", "BLK-1")

        # Assert
        assert result.found is False
        assert result.already_resolved is True
        assert result.affected_agents == []

    def test_resolve_unknown_blocker(self, board):
        """存在しないブロッカー"""
        # Act
        result = board.resolve_blocker("lead", "BLK-404")

        # Assert
        assert result.found is False
        assert result.already_resolved is False


class TestSharedStateBoardConcurrency:
    """並行更新のテスト"""

    def test_concurrent_updates_are_not_lost(self, board):
        """複数スレッドからの更新が失われない"""
        # Arrange
        agent_ids = [f"worker-{i}" for i in range(8)]

        def update(agent_id):
            board.update_agent_status(agent_id, AgentStatusPatch(status=AgentStatus.WORKING))

        threads = [threading.Thread(target=update, args=(a,)) for a in agent_ids]

        # Act
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        # Assert
        state = board.read()
        assert sorted(a.id for a in state.agents) == sorted(agent_ids)

    def test_two_boards_share_the_file(self, tmp_path):
        """同じディレクトリを指す別インスタンスの更新も失われない"""
        # Arrange
        first = SharedStateBoard("org", tmp_path / "org")
        second = SharedStateBoard("org", tmp_path / "org")

        # Act
        first.update_agent_status("a", AgentStatusPatch(status=AgentStatus.WORKING))
        second.update_agent_status("b", AgentStatusPatch(status=AgentStatus.WORKING))

        # Assert
        assert {a.id for a in first.read().agents} == {"a", "b"}


class TestSharedStateBoardWriteErrors:
    """書き込み失敗のテスト"""

    def test_write_failure_raises_board_write_error(self, board, monkeypatch):
        """書き込み失敗は BoardWriteError として伝わる"""

        # Arrange
        def broken_write(path, text):
            raise OSError("disk full")

        monkeypatch.setattr("hivelink.core.board.store.write_json_atomic", broken_write)

        # Act & Assert
        with pytest.raises(BoardWriteError) as excinfo:
            board.update_project("lead", goal="x")
        assert excinfo.value.retryable is True
        assert "disk full" in str(excinfo.value)

    def test_lock_timeout_raises_board_write_error(self, board, monkeypatch):
        """ロック取得に失敗した場合も BoardWriteError"""

        # Arrange
        class FailingLock:
            def __init__(self, *args, **kwargs):
                pass

            def __enter__(self):
                raise portalocker.LockException("timeout")

            def __exit__(self, *exc):
                return False

        monkeypatch.setattr("hivelink.core.board.store.portalocker.Lock", FailingLock)

        # Act & Assert
        with pytest.raises(BoardWriteError):
            board.update_project("lead", goal="x")
