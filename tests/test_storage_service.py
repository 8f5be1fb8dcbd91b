"""
LocalStorageServiceのテスト
"""
import pytest
import json
import tempfile
import shutil
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

from conftest import build_scenario, build_session
from scenario_practice.models.schemas import CheckpointRuntime, SessionStatus
from scenario_practice.services.report_service import ReportService
from scenario_practice.services.scorer import Scorer
from scenario_practice.services.storage_service import InMemorySessionStore, LocalStorageService


def build_analysis(session, scenario):
    score = Scorer().score(scenario, session)
    return ReportService().assemble(
        scenario, session, score, completed_at=datetime(2026, 1, 1, 12, 5)
    )


class TestInMemorySessionStore:
    """InMemorySessionStoreのテストクラス"""

    def test_save_and_load(self):
        store = InMemorySessionStore()
        session = build_session(build_scenario(), user_texts=["你好"])

        store.save(session)
        loaded = store.load("session-1")

        assert loaded == session
        assert store.load("missing") is None

    def test_load_returns_copy(self):
        """読み込んだセッションの変更はストアに反映されない"""
        store = InMemorySessionStore()
        store.save(build_session(build_scenario()))

        loaded = store.load("session-1")
        loaded.status = SessionStatus.ENDED

        assert store.load("session-1").status == SessionStatus.ACTIVE

    def test_delete(self):
        store = InMemorySessionStore()
        store.save(build_session(build_scenario()))

        assert store.delete("session-1") is True
        assert store.delete("session-1") is False
        assert store.load("session-1") is None


class TestLocalStorageService:
    """LocalStorageServiceのテストクラス"""

    @pytest.fixture
    def temp_data_dir(self):
        """一時的なデータディレクトリを作成"""
        temp_dir = Path(tempfile.mkdtemp())
        yield temp_dir
        shutil.rmtree(temp_dir)

    @pytest.fixture
    def storage_service(self, temp_data_dir):
        """LocalStorageServiceのインスタンスを作成"""
        with patch('scenario_practice.services.storage_service.APP_DATA_DIR', temp_data_dir):
            service = LocalStorageService()
            yield service

    @pytest.fixture
    def scenario(self):
        return build_scenario(vocabulary=["茶"])

    def test_init(self, storage_service, temp_data_dir):
        """初期化テスト"""
        assert storage_service.sessions_dir == temp_data_dir / "sessions"
        assert storage_service.sessions_dir.is_dir()
        assert storage_service.reports_dir.is_dir()

    def test_save_and_load_session(self, storage_service, scenario):
        """セッションの保存と読み込み"""
        session = build_session(scenario, user_texts=["我要茶"], scores=[80], completed=[1])

        storage_service.save(session)
        loaded = storage_service.load("session-1")

        assert loaded.session_id == "session-1"
        assert loaded.turns[0].correction.score == 80
        assert loaded.checkpoint_state[1].completed is True
        assert isinstance(loaded.checkpoint_state[2], CheckpointRuntime)

    def test_load_session_not_found(self, storage_service):
        assert storage_service.load("nonexistent") is None

    def test_invalid_session_id(self, storage_service, scenario):
        """パスとして不正なセッションIDは扱わない"""
        session = build_session(scenario).model_copy(update={"session_id": "../escape"})

        with pytest.raises(ValueError):
            storage_service.save(session)
        assert storage_service.load("../escape") is None

    def test_delete_session(self, storage_service, scenario):
        storage_service.save(build_session(scenario))

        assert storage_service.delete("session-1") is True
        assert storage_service.load("session-1") is None
        assert storage_service.delete("session-1") is False

    def test_save_report(self, storage_service, scenario):
        """評価レポートの保存テスト"""
        session = build_session(scenario, user_texts=["我要茶"], completed=[1])
        analysis = build_analysis(session, scenario)

        result = storage_service.save_report(analysis, session.turns)

        assert result is True
        file_path = storage_service.reports_dir / "report-session-1.json"
        assert file_path.exists()
        with open(file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        assert data["reportId"] == "report-session-1"
        assert data["sessionId"] == "session-1"
        assert data["conversationData"]["analysis"]["overallScore"] == analysis.overall_score
        assert data["conversationData"]["turns"][0]["text"] == "我要茶"

    def test_save_report_failure(self, storage_service, scenario):
        """保存失敗時のテスト"""
        session = build_session(scenario)
        analysis = build_analysis(session, scenario)

        with patch('builtins.open', side_effect=PermissionError("Permission denied")):
            result = storage_service.save_report(analysis, session.turns)

        assert result is False

    def test_list_report_history(self, storage_service, scenario):
        """評価履歴のリスト取得テスト"""
        session = build_session(scenario)
        analysis = build_analysis(session, scenario)
        storage_service.save_report(analysis, [], "test1.json")
        storage_service.save_report(analysis, [], "test2.json")

        history = storage_service.list_report_history()

        assert len(history) == 2
        assert all("filename" in item for item in history)
        assert all("path" in item for item in history)
        assert all("modified" in item for item in history)
        assert all("size" in item for item in history)

    def test_list_report_history_empty(self, storage_service):
        """評価履歴が空の場合のテスト"""
        assert storage_service.list_report_history() == []

    def test_load_report(self, storage_service, scenario):
        """評価レポートの読み込みテスト"""
        session = build_session(scenario, user_texts=["我要茶"])
        analysis = build_analysis(session, scenario)
        storage_service.save_report(analysis, session.turns, "report.json")

        loaded = storage_service.load_report("report.json")

        assert loaded["sessionId"] == "session-1"
        assert loaded["conversationData"]["analysis"]["vocabularyUsed"] == ["茶"]

    def test_load_report_not_found(self, storage_service):
        """存在しないファイルの読み込みテスト"""
        assert storage_service.load_report("nonexistent.json") is None

    @pytest.mark.parametrize("filename", ["../escape.json", "..", "sub/report.json", "report.txt"])
    def test_report_filename_must_stay_in_reports_dir(self, storage_service, scenario, temp_data_dir, filename):
        """レポートディレクトリの外を指すファイル名は扱わない"""
        (temp_data_dir / "escape.json").write_text('{"secret": true}', encoding="utf-8")
        session = build_session(scenario)
        analysis = build_analysis(session, scenario)

        assert storage_service.load_report(filename) is None
        assert storage_service.save_report(analysis, [], filename) is False
