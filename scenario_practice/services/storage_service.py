"""
ローカルストレージサービス
セッションの状態と評価レポートをメモリまたはローカルファイルに保存する
"""
import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Protocol

from scenario_practice.config import APP_DATA_DIR
from scenario_practice.models.schemas import ConversationSession, ScenarioAnalysis, Turn

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]+$")
_SAFE_REPORT_NAME = re.compile(r"^[A-Za-z0-9_-]+\.json$")


class SessionStore(Protocol):
    """セッションの保存先のインターフェース"""

    def load(self, session_id: str) -> ConversationSession | None:
        ...

    def save(self, session: ConversationSession) -> None:
        ...


class InMemorySessionStore:
    """メモリ上にセッションを保持するストア"""

    def __init__(self) -> None:
        self._sessions: Dict[str, ConversationSession] = {}

    def load(self, session_id: str) -> ConversationSession | None:
        session = self._sessions.get(session_id)
        # 呼び出し側の変更がストアに直接反映されないようにコピーを返す
        return session.model_copy(deep=True) if session is not None else None

    def save(self, session: ConversationSession) -> None:
        self._sessions[session.session_id] = session.model_copy(deep=True)

    def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None


class LocalStorageService:
    """ローカルファイルにセッションと評価レポートを保存・読み込むサービスクラス"""

    def __init__(self, base_dir: Path | None = None) -> None:
        """
        初期化処理
        データ保存ディレクトリを作成する

        Args:
            base_dir: 保存先のルート（指定しない場合はAPP_DATA_DIR）
        """
        root: Path = base_dir or APP_DATA_DIR
        self.sessions_dir: Path = root / "sessions"
        self.reports_dir: Path = root / "reports"
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        self.reports_dir.mkdir(parents=True, exist_ok=True)

    def _session_path(self, session_id: str) -> Path | None:
        if not _SAFE_ID.match(session_id):
            return None
        return self.sessions_dir / f"{session_id}.json"

    def _report_path(self, filename: str) -> Path | None:
        # レポートディレクトリの外を指すファイル名は扱わない
        if not _SAFE_REPORT_NAME.match(filename):
            return None
        return self.reports_dir / filename

    def load(self, session_id: str) -> ConversationSession | None:
        """
        セッションをローカルファイルから読み込む

        Args:
            session_id: セッションID

        Returns:
            セッション、存在しない場合はNone
        """
        file_path = self._session_path(session_id)
        if file_path is None or not file_path.exists():
            return None
        with open(file_path, "r", encoding="utf-8") as f:
            return ConversationSession.model_validate_json(f.read())

    def save(self, session: ConversationSession) -> None:
        """
        セッションをローカルファイルに保存

        Args:
            session: 保存するセッション
        """
        file_path = self._session_path(session.session_id)
        if file_path is None:
            raise ValueError(f"不正なセッションIDです: {session.session_id}")
        with open(file_path, "w", encoding="utf-8") as f:
            f.write(session.model_dump_json(indent=2))

    def delete(self, session_id: str) -> bool:
        """
        セッションを削除

        Args:
            session_id: セッションID

        Returns:
            削除した場合True
        """
        file_path = self._session_path(session_id)
        if file_path is None or not file_path.exists():
            return False
        file_path.unlink()
        return True

    def save_report(
        self,
        analysis: ScenarioAnalysis,
        turns: List[Turn],
        filename: str | None = None,
    ) -> bool:
        """
        評価レポートと会話のターンをローカルファイルに保存

        Args:
            analysis: 評価レポート
            turns: 会話のターン
            filename: ファイル名（指定しない場合はセッションIDから生成）

        Returns:
            保存成功時True、失敗時False
        """
        try:
            if not filename:
                filename = f"report-{analysis.session_id}.json"
            file_path = self._report_path(filename)
            if file_path is None:
                logger.error("不正なファイル名です: %s", filename)
                return False

            data: Dict[str, Any] = {
                "reportId": f"report-{analysis.session_id}",
                "sessionId": analysis.session_id,
                "completedAt": analysis.completed_at.isoformat(),
                "conversationData": {
                    "analysis": analysis.model_dump(mode="json", by_alias=True),
                    "turns": [turn.model_dump(mode="json", by_alias=True) for turn in turns],
                },
            }

            with open(file_path, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)

            return True
        except Exception as e:
            logger.error("評価レポートの保存に失敗しました: %s", e)
            return False

    def list_report_history(self) -> List[Dict[str, Any]]:
        """
        保存済みの評価レポートの一覧を取得

        Returns:
            レポートのリスト（ファイル名、パス、更新日時、サイズを含む辞書のリスト）
        """
        history: List[Dict[str, Any]] = []
        for file_path in self.reports_dir.glob("*.json"):
            try:
                stat = file_path.stat()
                history.append({
                    "filename": file_path.name,
                    "path": str(file_path),
                    "modified": datetime.fromtimestamp(stat.st_mtime).isoformat(),
                    "size": stat.st_size
                })
            except OSError as e:
                logger.warning("ファイルの読み込みに失敗しました %s: %s", file_path, e)

        # 更新日時でソート（新しい順）
        history.sort(key=lambda x: x["modified"], reverse=True)
        return history

    def load_report(self, filename: str) -> Dict[str, Any] | None:
        """
        評価レポートをローカルファイルから読み込む

        Args:
            filename: ファイル名

        Returns:
            評価レポート（辞書形式）、読み込み失敗時はNone
        """
        try:
            file_path = self._report_path(filename)
            if file_path is None or not file_path.exists():
                return None

            with open(file_path, "r", encoding="utf-8") as f:
                return json.load(f)
        except Exception as e:
            logger.error("評価レポートの読み込みに失敗しました: %s", e)
            return None
