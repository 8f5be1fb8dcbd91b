"""
返答候補サービス
次の未達成チェックポイントに向けて、ユーザーが言える返答の候補を最大3件返す
外部サービスで生成できない場合はシナリオの静的な候補、それもなければ汎用の候補を使う
"""
import logging
from typing import Any, List

from pydantic import ValidationError

from scenario_practice.config import COLLABORATOR_TIMEOUT_SECONDS
from scenario_practice.errors import CollaboratorError
from scenario_practice.models.schemas import CheckpointSpec, Scenario, Suggestion, TurnContext
from scenario_practice.services.collaborator import LanguageCollaborator, call_with_timeout

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 3

GENERIC_SUGGESTIONS: List[Suggestion] = [
    Suggestion(chinese="好的", pinyin="hǎo de", english="Okay"),
    Suggestion(chinese="我明白了", pinyin="wǒ míng bai le", english="I understand"),
    Suggestion(chinese="謝謝", pinyin="xiè xie", english="Thank you"),
]


def static_suggestions(
    scenario: Scenario, user_role: str, next_checkpoint: CheckpointSpec | None
) -> List[Suggestion]:
    """
    シナリオに定義された役割ごとの候補
    次のチェックポイント向けの候補があればそれを優先する
    """
    candidates: List[Suggestion] = scenario.suggestions.by_role.get(user_role, [])
    if next_checkpoint is not None:
        targeted = [s for s in candidates if s.checkpoint_id == next_checkpoint.id]
        if targeted:
            return targeted[:MAX_SUGGESTIONS]
    return candidates[:MAX_SUGGESTIONS]


def parse_suggestions(raw: Any) -> List[Suggestion]:
    """外部サービスの結果から有効な候補だけを取り出す"""
    if not isinstance(raw, list):
        return []
    suggestions: List[Suggestion] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        data = dict(item)
        if data.get("type") not in ("safe", "advanced", "alternative"):
            data["type"] = "safe"
        try:
            suggestion = Suggestion.model_validate(data)
        except ValidationError as e:
            logger.debug("返答候補を無視しました: %s", e)
            continue
        if suggestion.chinese.strip():
            suggestions.append(suggestion)
    return suggestions[:MAX_SUGGESTIONS]


class SuggestionService:
    """返答候補を作成するサービスクラス"""

    def __init__(
        self,
        collaborator: LanguageCollaborator,
        timeout_seconds: float | None = None,
    ) -> None:
        self.collaborator = collaborator
        self.timeout_seconds: float = (
            timeout_seconds if timeout_seconds is not None else COLLABORATOR_TIMEOUT_SECONDS
        )

    async def suggest(
        self,
        scenario: Scenario,
        user_role: str,
        next_checkpoint: CheckpointSpec | None,
        context: TurnContext,
    ) -> List[Suggestion]:
        """
        返答候補を作成（必ず1件以上返す）

        Args:
            scenario: シナリオ
            user_role: ユーザーの役割ID
            next_checkpoint: 次の未達成チェックポイント
            context: 会話の文脈

        Returns:
            返答候補のリスト
        """
        try:
            raw = await call_with_timeout(
                self.collaborator.generate_suggestions(context),
                self.timeout_seconds,
                "generate_suggestions",
            )
            suggestions = parse_suggestions(raw)
        except CollaboratorError as e:
            logger.warning("返答候補の生成に失敗しました: %s", e)
            suggestions = []

        if not suggestions:
            suggestions = static_suggestions(scenario, user_role, next_checkpoint)
        if not suggestions:
            suggestions = list(GENERIC_SUGGESTIONS)
        return suggestions
