"""
スコア計算サービス
チェックポイント達成度・会話効率・会話品質を重み付けして総合スコアを計算する
"""
from dataclasses import dataclass, field
from typing import List

from scenario_practice.config import ScoringConfig
from scenario_practice.models.schemas import ConversationSession, Scenario, VocabItem


@dataclass(frozen=True)
class ScoreBreakdown:
    """スコア計算の結果"""

    overall_score: int
    checkpoint_score: float
    efficiency_score: float
    conversation_quality_score: float
    total_checkpoints: int
    completed_checkpoints: int
    completion_rate: float
    total_turns: int
    estimated_turns: int
    efficiency: float
    vocabulary_used: List[VocabItem] = field(default_factory=list)
    vocabulary_coverage: float = 0.0


def _clamp(value: float, lower: float = 0.0, upper: float = 100.0) -> float:
    return max(lower, min(upper, value))


class Scorer:
    """セッション終了時にスコアを計算するサービスクラス"""

    def __init__(self, config: ScoringConfig | None = None) -> None:
        self.config: ScoringConfig = config or ScoringConfig()

    def estimated_turns(self, scenario: Scenario) -> int:
        """
        シナリオの想定ターン数
        全チェックポイントに想定ターン数があればその合計、なければシナリオの既定値を使う
        """
        checkpoints = scenario.checkpoints
        if checkpoints and all(cp.turns_to_complete is not None for cp in checkpoints):
            return max(1, sum(cp.turns_to_complete or 0 for cp in checkpoints))
        if scenario.estimated_turns is not None:
            return max(1, scenario.estimated_turns)
        return max(1, self.config.default_turns_per_checkpoint * len(checkpoints))

    def checkpoint_score(self, scenario: Scenario, session: ConversationSession) -> float:
        """
        達成したチェックポイントの重みの合計（0-100）
        重みの合計が1でない場合は合計で割って正規化する
        """
        total_weight: float = sum(cp.weight for cp in scenario.checkpoints)
        if total_weight <= 0:
            return 0.0
        completed_weight: float = sum(
            cp.weight
            for cp in scenario.checkpoints
            if session.checkpoint_state.get(cp.id) is not None
            and session.checkpoint_state[cp.id].completed
        )
        return _clamp(completed_weight / total_weight * 100)

    def quality_score(self, session: ConversationSession) -> float:
        """ユーザーのターンごとのスコアの平均（ターンがなければ0）"""
        user_turns = session.user_turns
        if not user_turns:
            return 0.0
        scores: List[float] = [
            turn.correction.score
            if turn.correction is not None and turn.correction.score is not None
            else self.config.neutral_turn_score
            for turn in user_turns
        ]
        return _clamp(sum(scores) / len(scores))

    def score(self, scenario: Scenario, session: ConversationSession) -> ScoreBreakdown:
        """
        総合スコアを計算

        Args:
            scenario: シナリオ
            session: 終了したセッション

        Returns:
            スコア計算の結果
        """
        user_turns = session.user_turns
        total_turns: int = len(user_turns)

        total_checkpoints: int = len(scenario.checkpoints)
        completed_checkpoints: int = sum(
            1
            for cp in scenario.checkpoints
            if session.checkpoint_state.get(cp.id) is not None
            and session.checkpoint_state[cp.id].completed
        )
        completion_rate: float = (
            completed_checkpoints / total_checkpoints if total_checkpoints else 0.0
        )

        checkpoint_score: float = self.checkpoint_score(scenario, session)

        # 想定より少ないターンで終えても1.0を上限とする
        estimated_turns: int = self.estimated_turns(scenario)
        efficiency: float = min(estimated_turns / total_turns, 1.0) if total_turns else 0.0
        efficiency_score: float = _clamp(efficiency * 100)

        quality_score: float = self.quality_score(session)

        weighted: float = (
            self.config.checkpoint_weight * checkpoint_score
            + self.config.efficiency_weight * efficiency_score
            + self.config.quality_weight * quality_score
        )
        overall_score: int = int(_clamp(round(weighted)))

        vocabulary_used: List[VocabItem] = [
            item
            for item in scenario.expected_vocabulary
            if item.chinese and any(item.chinese in turn.text for turn in user_turns)
        ]
        vocabulary_coverage: float = (
            len(vocabulary_used) / len(scenario.expected_vocabulary)
            if scenario.expected_vocabulary
            else 0.0
        )

        return ScoreBreakdown(
            overall_score=overall_score,
            checkpoint_score=checkpoint_score,
            efficiency_score=efficiency_score,
            conversation_quality_score=quality_score,
            total_checkpoints=total_checkpoints,
            completed_checkpoints=completed_checkpoints,
            completion_rate=completion_rate,
            total_turns=total_turns,
            estimated_turns=estimated_turns,
            efficiency=efficiency,
            vocabulary_used=vocabulary_used,
            vocabulary_coverage=vocabulary_coverage,
        )
