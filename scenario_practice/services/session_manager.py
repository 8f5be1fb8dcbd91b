"""
セッション管理サービス
会話セッションの開始・ターン追加・終了を行い、ターンの状態遷移を管理する
"""
import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Dict, List

from scenario_practice.config import COLLABORATOR_TIMEOUT_SECONDS
from scenario_practice.errors import (
    CollaboratorError,
    InvalidRole,
    InvalidTurn,
    SessionBusy,
    SessionEnded,
    SessionNotFound,
)
from scenario_practice.models.schemas import (
    CheckpointRuntime,
    ConversationSession,
    Scenario,
    ScenarioAnalysis,
    SessionStatus,
    Suggestion,
    Turn,
    TurnContext,
    TurnCorrection,
)
from scenario_practice.services.checkpoint_tracker import (
    CheckpointTracker,
    pending_checkpoints,
)
from scenario_practice.services.collaborator import LanguageCollaborator, call_with_timeout
from scenario_practice.services.correction_analyzer import CorrectionAnalyzer
from scenario_practice.services.report_service import ReportService
from scenario_practice.services.scenario_catalog import ScenarioCatalog
from scenario_practice.services.scorer import Scorer
from scenario_practice.services.storage_service import InMemorySessionStore, SessionStore
from scenario_practice.services.suggestion_service import SuggestionService

logger = logging.getLogger(__name__)

VALID_ROLES = ("user", "instructor")


@dataclass
class TurnResult:
    """ターン追加の結果"""

    session: ConversationSession
    turn: Turn
    completed_checkpoint_id: int | None = None

    @property
    def correction(self) -> TurnCorrection | None:
        return self.turn.correction


def _now_ms() -> int:
    return int(time.time() * 1000)


class SessionManager:
    """会話セッションを管理するサービスクラス"""

    def __init__(
        self,
        catalog: ScenarioCatalog,
        collaborator: LanguageCollaborator,
        store: SessionStore | None = None,
        tracker: CheckpointTracker | None = None,
        analyzer: CorrectionAnalyzer | None = None,
        scorer: Scorer | None = None,
        reporter: ReportService | None = None,
        suggester: SuggestionService | None = None,
        timeout_seconds: float | None = None,
        context_turns: int = 10,
    ) -> None:
        """
        初期化処理

        Args:
            catalog: シナリオカタログ
            collaborator: 言語理解サービス
            store: セッションの保存先（指定しない場合はメモリ）
            tracker: チェックポイント検出（指定しない場合はcollaboratorから作成）
            analyzer: 添削（指定しない場合はcollaboratorから作成）
            scorer: スコア計算
            reporter: レポート作成
            suggester: 返答候補の作成
            timeout_seconds: 外部サービス呼び出しのタイムアウト（秒）
            context_turns: 文脈として渡す直近のターン数
        """
        self.timeout_seconds: float = (
            timeout_seconds if timeout_seconds is not None else COLLABORATOR_TIMEOUT_SECONDS
        )
        self.catalog = catalog
        self.collaborator = collaborator
        self.store: SessionStore = store if store is not None else InMemorySessionStore()
        self.tracker = tracker or CheckpointTracker(collaborator, self.timeout_seconds)
        self.analyzer = analyzer or CorrectionAnalyzer(collaborator, self.timeout_seconds)
        self.scorer = scorer or Scorer()
        self.reporter = reporter or ReportService()
        self.suggester = suggester or SuggestionService(collaborator, self.timeout_seconds)
        self.context_turns = context_turns
        self._locks: Dict[str, asyncio.Lock] = {}

    @asynccontextmanager
    async def _exclusive(self, session_id: str) -> AsyncIterator[None]:
        """
        セッションごとの排他制御
        処理中のセッションへの重複した呼び出しはSessionBusyで拒否する
        待機する呼び出しはないため、ロックは処理中の間だけ保持する
        """
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        if lock.locked():
            raise SessionBusy(session_id)
        try:
            async with lock:
                yield
        finally:
            if self._locks.get(session_id) is lock:
                del self._locks[session_id]

    def _load(self, session_id: str) -> ConversationSession:
        session = self.store.load(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def _context(self, scenario: Scenario, session: ConversationSession) -> TurnContext:
        instructor = next((role for role in scenario.roles if role.id != session.user_role), None)
        pending = pending_checkpoints(scenario, session.checkpoint_state)
        return TurnContext(
            scenario_title=scenario.title,
            objective=scenario.objective,
            user_role=session.user_role,
            instructor_role=instructor.name if instructor else None,
            recent_turns=session.turns[-self.context_turns:],
            next_checkpoint=pending[0].description if pending else None,
            next_checkpoint_keywords=list(pending[0].keywords) if pending else [],
        )

    def get_session(self, session_id: str) -> ConversationSession:
        """
        セッションを取得

        Raises:
            SessionNotFound: 存在しない場合
        """
        return self._load(session_id)

    async def start(self, scenario_id: str, user_role: str) -> ConversationSession:
        """
        会話セッションを開始

        Args:
            scenario_id: シナリオID
            user_role: ユーザーが演じる役割のID

        Returns:
            新しいセッション

        Raises:
            ScenarioNotFound: シナリオが存在しない場合
            InvalidRole: 役割がシナリオに定義されていない場合
        """
        scenario: Scenario = self.catalog.get_scenario(scenario_id)
        if scenario.get_role(user_role) is None:
            raise InvalidRole(user_role, scenario_id)

        session = ConversationSession(
            session_id=uuid.uuid4().hex,
            scenario_id=scenario.scenario_id,
            user_role=user_role,
            started_at=datetime.now(),
            checkpoint_state={cp.id: CheckpointRuntime() for cp in scenario.checkpoints},
        )
        if scenario.first_speaker == "instructor" and scenario.opening_line:
            session.turns.append(
                Turn(index=0, role="instructor", text=scenario.opening_line, timestamp_ms=_now_ms())
            )

        self.store.save(session)
        logger.info(
            "セッションを開始しました: %s (scenario=%s, role=%s)",
            session.session_id,
            scenario_id,
            user_role,
        )
        return session

    async def append_turn(self, session_id: str, role: str, text: str) -> TurnResult:
        """
        ターンを追加
        ユーザーのターンはチェックポイント検出と添削を行ってから追加する

        Args:
            session_id: セッションID
            role: 発話者（user または instructor）
            text: 発話

        Returns:
            ターン追加の結果

        Raises:
            SessionNotFound: セッションが存在しない場合
            SessionEnded: セッションが終了している場合
            SessionBusy: 同じセッションで処理中の呼び出しがある場合
            InvalidTurn: 発話者または発話が不正な場合
        """
        async with self._exclusive(session_id):
            session = self._load(session_id)
            if not session.is_active:
                raise SessionEnded(session_id)
            if role not in VALID_ROLES:
                raise InvalidTurn(f"Unknown role: {role}")
            if not text or not text.strip():
                raise InvalidTurn("Turn text must not be empty")
            scenario = self.catalog.get_scenario(session.scenario_id)

            index: int = len(session.turns)
            completed_id: int | None = None
            correction: TurnCorrection | None = None
            if role == "user":
                update = await self.tracker.detect(
                    scenario, session.checkpoint_state, index, text
                )
                session.checkpoint_state = update.checkpoint_state
                completed_id = update.completed_checkpoint_id
                correction = await self.analyzer.analyze(
                    index, text, self._context(scenario, session)
                )

            turn = Turn(
                index=index,
                role=role,
                text=text,
                timestamp_ms=_now_ms(),
                correction=correction,
            )
            session.turns.append(turn)
            self.store.save(session)
            return TurnResult(session=session, turn=turn, completed_checkpoint_id=completed_id)

    async def generate_instructor_turn(self, session_id: str) -> Turn | None:
        """
        講師役の次の発話を生成して追加
        生成に失敗した場合はセッションを変更せずNoneを返す

        Args:
            session_id: セッションID

        Returns:
            追加した講師のターン、生成できなかった場合はNone
        """
        async with self._exclusive(session_id):
            session = self._load(session_id)
            if not session.is_active:
                raise SessionEnded(session_id)
            scenario = self.catalog.get_scenario(session.scenario_id)

            try:
                reply: str | None = await call_with_timeout(
                    self.collaborator.generate_reply(self._context(scenario, session)),
                    self.timeout_seconds,
                    "generate_reply",
                )
            except CollaboratorError as e:
                logger.warning("講師の発話の生成に失敗しました: %s", e)
                return None
            if not reply:
                return None

            turn = Turn(index=len(session.turns), role="instructor", text=reply, timestamp_ms=_now_ms())
            session.turns.append(turn)
            self.store.save(session)
            return turn

    async def suggest_replies(self, session_id: str) -> List[Suggestion]:
        """
        ユーザーが次に言える返答の候補を作成
        セッションは変更しないため排他制御は行わない

        Args:
            session_id: セッションID

        Returns:
            返答候補のリスト

        Raises:
            SessionNotFound: セッションが存在しない場合
            SessionEnded: セッションが終了している場合
        """
        session = self._load(session_id)
        if not session.is_active:
            raise SessionEnded(session_id)
        scenario = self.catalog.get_scenario(session.scenario_id)
        pending = pending_checkpoints(scenario, session.checkpoint_state)
        return await self.suggester.suggest(
            scenario,
            session.user_role,
            pending[0] if pending else None,
            self._context(scenario, session),
        )

    async def end(self, session_id: str) -> ScenarioAnalysis:
        """
        セッションを終了して評価レポートを作成
        2回目以降の呼び出しは再計算せず、最初に作成したレポートを返す

        Args:
            session_id: セッションID

        Returns:
            評価レポート

        Raises:
            SessionNotFound: セッションが存在しない場合
            SessionBusy: 同じセッションで処理中の呼び出しがある場合
        """
        async with self._exclusive(session_id):
            session = self._load(session_id)
            if session.status == SessionStatus.ENDED and session.analysis is not None:
                return session.analysis

            scenario = self.catalog.get_scenario(session.scenario_id)
            ended_at = datetime.now()
            score = self.scorer.score(scenario, session)
            analysis = self.reporter.assemble(scenario, session, score, completed_at=ended_at)

            session.status = SessionStatus.ENDED
            session.ended_at = ended_at
            session.analysis = analysis
            self.store.save(session)
            logger.info(
                "セッションを終了しました: %s (score=%d, checkpoints=%d/%d)",
                session_id,
                analysis.overall_score,
                analysis.completed_checkpoints,
                analysis.total_checkpoints,
            )
            return analysis

    def turns(self, session_id: str) -> List[Turn]:
        """セッションのターン一覧"""
        return list(self._load(session_id).turns)
