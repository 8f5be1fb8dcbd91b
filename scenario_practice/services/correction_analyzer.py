"""
添削サービス
ユーザーの発話ごとに文法・発音の指摘を外部サービスから取得し、型の整った結果に変換する
"""
import logging
from typing import Any, Dict, List, get_args

from pydantic import ValidationError

from scenario_practice.config import COLLABORATOR_TIMEOUT_SECONDS, ScoringConfig
from scenario_practice.errors import CollaboratorError
from scenario_practice.models.schemas import (
    GrammarCorrection,
    GrammarIssueType,
    PronunciationIssue,
    PronunciationIssueType,
    Severity,
    TurnContext,
    TurnCorrection,
)
from scenario_practice.services.collaborator import LanguageCollaborator, call_with_timeout

logger = logging.getLogger(__name__)

GRAMMAR_TYPES = set(get_args(GrammarIssueType))
PRONUNCIATION_TYPES = set(get_args(PronunciationIssueType))
SEVERITIES = set(get_args(Severity))


def _clamp_score(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return max(0.0, min(100.0, float(value)))


def _items(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _choice(value: Any, allowed: set) -> bool:
    return isinstance(value, str) and value in allowed


def _optional_text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


class CorrectionAnalyzer:
    """ターン単位の添削を行うサービスクラス"""

    def __init__(
        self,
        collaborator: LanguageCollaborator,
        timeout_seconds: float | None = None,
        scoring: ScoringConfig | None = None,
    ) -> None:
        """
        初期化処理

        Args:
            collaborator: 分析に使う言語理解サービス
            timeout_seconds: 分析のタイムアウト（秒）
            scoring: スコアの既定値
        """
        self.collaborator = collaborator
        self.timeout_seconds: float = (
            timeout_seconds if timeout_seconds is not None else COLLABORATOR_TIMEOUT_SECONDS
        )
        self.scoring: ScoringConfig = scoring or ScoringConfig()

    async def analyze(self, turn_index: int, turn_text: str, context: TurnContext) -> TurnCorrection:
        """
        発話を分析する（失敗した場合も必ず結果を返す）

        Args:
            turn_index: ターン番号
            turn_text: ユーザーの発話
            context: 会話の文脈

        Returns:
            添削結果
        """
        try:
            raw: Dict[str, Any] = await call_with_timeout(
                self.collaborator.analyze_turn(turn_text, context),
                self.timeout_seconds,
                "analyze_turn",
            )
        except CollaboratorError as e:
            logger.warning("ターン%dの分析に失敗しました: %s", turn_index, e)
            return self.fallback(turn_index, turn_text)

        if not isinstance(raw, dict):
            logger.warning("ターン%dの分析結果が不正です: %r", turn_index, raw)
            return self.fallback(turn_index, turn_text)

        return self.to_correction(turn_index, turn_text, raw)

    def fallback(self, turn_index: int, turn_text: str) -> TurnCorrection:
        """分析できなかったターンの既定の結果"""
        return TurnCorrection(
            turn_index=turn_index,
            user_text=turn_text,
            score=self.scoring.neutral_turn_score,
            analyzed=False,
        )

    def to_correction(self, turn_index: int, turn_text: str, raw: Dict[str, Any]) -> TurnCorrection:
        """
        外部サービスの結果を添削結果に変換

        Args:
            turn_index: ターン番号
            turn_text: ユーザーの発話
            raw: 外部サービスの結果

        Returns:
            添削結果
        """
        grammar: List[GrammarCorrection] = []
        for item in _items(raw.get("grammar")):
            data = dict(item)
            # 未知の種類は「その他」に寄せる
            if not _choice(data.get("type"), GRAMMAR_TYPES):
                data["type"] = "other"
            try:
                grammar.append(GrammarCorrection.model_validate(data))
            except ValidationError as e:
                logger.debug("文法の指摘を無視しました: %s", e)

        pronunciation: List[PronunciationIssue] = []
        for item in _items(raw.get("pronunciation")):
            if not _choice(item.get("issue"), PRONUNCIATION_TYPES):
                continue
            data = dict(item)
            if not _choice(data.get("severity"), SEVERITIES):
                data["severity"] = "minor"
            try:
                pronunciation.append(PronunciationIssue.model_validate(data))
            except ValidationError as e:
                logger.debug("発音の指摘を無視しました: %s", e)

        score = _clamp_score(raw.get("score"))
        if score is None:
            score = self.scoring.neutral_turn_score

        return TurnCorrection(
            turn_index=turn_index,
            user_text=turn_text,
            grammar=grammar,
            pronunciation=pronunciation,
            corrected_text=_optional_text(raw.get("correctedText") or raw.get("corrected_text")),
            corrected_pinyin=_optional_text(
                raw.get("correctedPinyin") or raw.get("corrected_pinyin")
            ),
            score=score,
        )
