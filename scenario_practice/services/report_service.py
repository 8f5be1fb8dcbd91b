"""
レポート作成サービス
スコア・チェックポイント・添削結果をまとめて評価レポートを作成する
"""
from collections import Counter
from datetime import datetime
from typing import Callable, List, Tuple

from scenario_practice.models.schemas import (
    CheckpointDetail,
    CheckpointRuntime,
    ConversationSession,
    CorrectionSummary,
    Scenario,
    ScenarioAnalysis,
    TurnCorrection,
)
from scenario_practice.services.scorer import ScoreBreakdown

Rule = Tuple[Callable[[ScoreBreakdown], bool], str]

# 総合スコアの閾値とフィードバック（上から順に最初に一致したものを使う）
FEEDBACK_BY_SCORE: List[Tuple[int, str]] = [
    (85, "Excellent work! You completed the scenario naturally and accurately."),
    (70, "Good job! You handled most of the scenario well. A little more practice will make it smooth."),
    (50, "Nice effort. You reached part of the objective; keep practicing the remaining goals."),
    (0, "Keep going! Review the scenario goals and vocabulary, then try again."),
]

NO_TURNS_FEEDBACK = "This conversation needs more practice: no responses were recorded. Try speaking at least once per goal."

STRENGTH_RULES: List[Rule] = [
    (lambda s: s.overall_score >= 85, "Excellent checkpoint completion"),
    (lambda s: s.total_checkpoints > 0 and s.completion_rate >= 1.0, "Completed every scenario goal"),
    (lambda s: s.total_turns > 0 and s.efficiency >= 1.0, "Reached the goals efficiently"),
    (lambda s: s.total_turns > 0 and s.conversation_quality_score >= 85, "Accurate grammar and pronunciation"),
    (lambda s: s.vocabulary_coverage >= 0.6, "Good use of scenario vocabulary"),
]

SUGGESTION_RULES: List[Rule] = [
    (lambda s: s.total_turns == 0, "Start by answering the conversation partner, even with a short sentence"),
    (lambda s: s.total_checkpoints > 0 and s.completion_rate < 0.5, "Focus on the scenario objective and its goals"),
    (lambda s: s.total_turns > 0 and s.efficiency < 0.6, "Try to reach each goal in fewer turns"),
    (lambda s: s.total_turns > 0 and s.conversation_quality_score < 70, "Review the grammar and pronunciation corrections"),
    (lambda s: s.vocabulary_coverage < 0.3, "Practice the key vocabulary for this scenario"),
]


def feedback_for(score: ScoreBreakdown) -> str:
    if score.total_turns == 0:
        return NO_TURNS_FEEDBACK
    for threshold, message in FEEDBACK_BY_SCORE:
        if score.overall_score >= threshold:
            return message
    return FEEDBACK_BY_SCORE[-1][1]


def apply_rules(rules: List[Rule], score: ScoreBreakdown) -> List[str]:
    return [message for predicate, message in rules if predicate(score)]


def summarize_corrections(corrections: List[TurnCorrection], top: int = 3) -> CorrectionSummary:
    """
    添削結果を集計

    Args:
        corrections: ターンごとの添削結果
        top: よくある指摘として返す件数

    Returns:
        添削結果の集計
    """
    grammar_types: Counter = Counter(g.type for c in corrections for g in c.grammar)
    pronunciation_types: Counter = Counter(p.issue for c in corrections for p in c.pronunciation)
    return CorrectionSummary(
        total_turns=len(corrections),
        turns_with_issues=sum(1 for c in corrections if c.has_issues),
        grammar_issue_count=sum(grammar_types.values()),
        pronunciation_issue_count=sum(pronunciation_types.values()),
        common_grammar_issues=[name for name, _ in grammar_types.most_common(top)],
        common_pronunciation_issues=[name for name, _ in pronunciation_types.most_common(top)],
    )


class ReportService:
    """評価レポートを作成するサービスクラス"""

    def assemble(
        self,
        scenario: Scenario,
        session: ConversationSession,
        score: ScoreBreakdown,
        completed_at: datetime | None = None,
    ) -> ScenarioAnalysis:
        """
        評価レポートを作成

        Args:
            scenario: シナリオ
            session: 終了したセッション
            score: スコア計算の結果
            completed_at: 終了日時（指定しない場合は現在時刻）

        Returns:
            評価レポート
        """
        finished: datetime = completed_at or datetime.now()

        details: List[CheckpointDetail] = []
        for checkpoint in scenario.sorted_checkpoints():
            runtime = session.checkpoint_state.get(checkpoint.id, CheckpointRuntime())
            details.append(
                CheckpointDetail(
                    id=checkpoint.id,
                    description=checkpoint.description,
                    chinese_description=checkpoint.chinese_description,
                    completed=runtime.completed,
                    completed_at=runtime.completed_at,
                    completed_at_turn_index=runtime.completed_at_turn_index,
                    trigger_message=runtime.trigger_message,
                    turns_to_complete=checkpoint.turns_to_complete,
                    weight=checkpoint.weight,
                )
            )

        corrections: List[TurnCorrection] = [
            turn.correction for turn in session.user_turns if turn.correction is not None
        ]

        return ScenarioAnalysis(
            session_id=session.session_id,
            scenario_id=scenario.scenario_id,
            scenario_title=scenario.title,
            user_role=session.user_role,
            overall_score=score.overall_score,
            checkpoint_score=score.checkpoint_score,
            efficiency_score=score.efficiency_score,
            conversation_quality_score=score.conversation_quality_score,
            checkpoint_details=details,
            total_checkpoints=score.total_checkpoints,
            completed_checkpoints=score.completed_checkpoints,
            completion_rate=score.completion_rate,
            total_turns=score.total_turns,
            estimated_turns=score.estimated_turns,
            efficiency=score.efficiency,
            vocabulary_used=[item.chinese for item in score.vocabulary_used],
            vocabulary_details=list(score.vocabulary_used),
            vocabulary_coverage=score.vocabulary_coverage,
            feedback=feedback_for(score),
            suggestions=apply_rules(SUGGESTION_RULES, score),
            strengths=apply_rules(STRENGTH_RULES, score),
            turn_corrections=corrections,
            correction_summary=summarize_corrections(corrections),
            conversation_duration=max(0.0, (finished - session.started_at).total_seconds()),
            completed_at=finished,
        )
