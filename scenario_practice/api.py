"""
FastAPIによる会話練習API
開始・ターン追加・終了の各エンドポイントを提供する
"""
import logging
from typing import Any, Dict, List

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import Field

from scenario_practice.errors import ReportNotFound, ScenarioPracticeError
from scenario_practice.models.schemas import (
    CamelModel,
    CheckpointRuntime,
    ScenarioAnalysis,
    Suggestion,
    Turn,
    TurnCorrection,
)
from scenario_practice.services.collaborator import LanguageCollaborator
from scenario_practice.services.keyword_judge import KeywordJudge
from scenario_practice.services.language_service import LanguageService
from scenario_practice.services.scenario_catalog import ScenarioCatalog
from scenario_practice.services.session_manager import SessionManager
from scenario_practice.services.storage_service import LocalStorageService

logger = logging.getLogger(__name__)


# ==================== Request / Response Models ====================


class StartRequest(CamelModel):
    scenario_id: str
    user_role: str


class CheckpointSummary(CamelModel):
    id: int
    description: str
    chinese_description: str = ""
    weight: float
    completed: bool = False


class StartResponse(CamelModel):
    session_id: str
    first_instructor_turn: Turn | None = None
    checkpoints: List[CheckpointSummary]
    suggestions: List[Suggestion] = Field(default_factory=list)


class TurnRequest(CamelModel):
    session_id: str
    text: str


class TurnResponse(CamelModel):
    checkpoint_state: Dict[int, CheckpointRuntime]
    correction: TurnCorrection | None = None
    completed_checkpoint_id: int | None = None
    next_instructor_turn: Turn | None = None
    suggestions: List[Suggestion] = Field(default_factory=list)


class EndRequest(CamelModel):
    session_id: str


class ScenarioSummary(CamelModel):
    scenario_id: str
    title: str
    objective: str
    difficulty: str
    roles: List[Dict[str, Any]]


def create_collaborator() -> LanguageCollaborator:
    """
    言語理解サービスを作成
    OpenAIのAPIキーが設定されていない場合はキーワード判定を使う
    """
    try:
        return LanguageService()
    except ValueError as e:
        logger.warning("%s キーワード判定を使用します。", e)
        return KeywordJudge()


def create_app(
    manager: SessionManager | None = None,
    storage: LocalStorageService | None = None,
) -> FastAPI:
    """
    FastAPIアプリケーションを作成

    Args:
        manager: セッション管理（指定しない場合は既定の構成で作成）
        storage: セッションとレポートの保存先（指定しない場合はローカルファイル）

    Returns:
        FastAPIアプリケーション
    """
    storage = storage or LocalStorageService()
    if manager is None:
        manager = SessionManager(
            catalog=ScenarioCatalog.from_directory(),
            collaborator=create_collaborator(),
            store=storage,
        )

    app = FastAPI(
        title="Scenario Conversation Practice API",
        description="Role-play conversation practice with checkpoints, scoring and corrections",
        version="1.0.0",
    )
    app.state.manager = manager
    app.state.storage = storage

    @app.exception_handler(ScenarioPracticeError)
    async def handle_practice_error(request: Request, exc: ScenarioPracticeError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"code": exc.code, "message": exc.message},
        )

    @app.get("/api/scenarios")
    async def list_scenarios() -> List[Dict[str, Any]]:
        return [
            ScenarioSummary(
                scenario_id=scenario.scenario_id,
                title=scenario.title,
                objective=scenario.objective,
                difficulty=scenario.difficulty,
                roles=[role.model_dump(by_alias=True) for role in scenario.roles],
            ).model_dump(by_alias=True)
            for scenario in manager.catalog.list_scenarios()
        ]

    @app.post("/api/conversation/start")
    async def start_conversation(body: StartRequest) -> Dict[str, Any]:
        session = await manager.start(body.scenario_id, body.user_role)
        scenario = manager.catalog.get_scenario(session.scenario_id)
        response = StartResponse(
            session_id=session.session_id,
            first_instructor_turn=session.turns[0] if session.turns else None,
            checkpoints=[
                CheckpointSummary(
                    id=cp.id,
                    description=cp.description,
                    chinese_description=cp.chinese_description,
                    weight=cp.weight,
                )
                for cp in scenario.sorted_checkpoints()
            ],
            suggestions=await manager.suggest_replies(session.session_id),
        )
        return response.model_dump(mode="json", by_alias=True)

    @app.post("/api/conversation/turn")
    async def append_turn(body: TurnRequest) -> Dict[str, Any]:
        result = await manager.append_turn(body.session_id, "user", body.text)
        next_turn = await manager.generate_instructor_turn(body.session_id)
        response = TurnResponse(
            checkpoint_state=result.session.checkpoint_state,
            correction=result.correction,
            completed_checkpoint_id=result.completed_checkpoint_id,
            next_instructor_turn=next_turn,
            suggestions=await manager.suggest_replies(body.session_id),
        )
        return response.model_dump(mode="json", by_alias=True)

    @app.post("/api/conversation/end")
    async def end_conversation(body: EndRequest) -> Dict[str, Any]:
        analysis: ScenarioAnalysis = await manager.end(body.session_id)
        storage.save_report(analysis, manager.turns(body.session_id))
        return analysis.model_dump(mode="json", by_alias=True)

    @app.get("/api/reports")
    async def list_reports() -> List[Dict[str, Any]]:
        return storage.list_report_history()

    @app.get("/api/reports/{filename}")
    async def get_report(filename: str) -> Dict[str, Any]:
        report = storage.load_report(filename)
        if report is None:
            raise ReportNotFound(filename)
        return report

    return app
