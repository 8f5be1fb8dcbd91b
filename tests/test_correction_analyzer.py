"""
CorrectionAnalyzerのテスト
"""
import pytest

from conftest import FakeCollaborator
from scenario_practice.errors import CollaboratorUnavailable
from scenario_practice.models.schemas import TurnContext
from scenario_practice.services.correction_analyzer import CorrectionAnalyzer


@pytest.fixture
def context():
    return TurnContext(scenario_title="Test", objective="Order food", user_role="customer")


class TestCorrectionAnalyzer:
    """CorrectionAnalyzerのテストクラス"""

    @pytest.mark.asyncio
    async def test_analyze_with_issues(self, context):
        """文法・発音の指摘を変換する"""
        collaborator = FakeCollaborator(analysis={
            "grammar": [
                {
                    "original": "我要一個茶",
                    "corrected": "我要一杯茶",
                    "explanation": "Use 杯 for cups of drinks",
                    "explanationZh": "飲料用「杯」",
                    "type": "measure-word",
                }
            ],
            "pronunciation": [
                {
                    "word": "茶",
                    "pinyin": "chá",
                    "issue": "tone",
                    "description": "Second tone",
                    "severity": "moderate",
                }
            ],
            "correctedText": "我要一杯茶",
            "correctedPinyin": "wǒ yào yì bēi chá",
            "score": 72,
        })
        analyzer = CorrectionAnalyzer(collaborator, timeout_seconds=1)

        result = await analyzer.analyze(2, "我要一個茶", context)

        assert result.turn_index == 2
        assert result.user_text == "我要一個茶"
        assert result.analyzed is True
        assert result.grammar[0].type == "measure-word"
        assert result.grammar[0].explanation_zh == "飲料用「杯」"
        assert result.pronunciation[0].issue == "tone"
        assert result.pronunciation[0].severity == "moderate"
        assert result.corrected_text == "我要一杯茶"
        assert result.corrected_pinyin == "wǒ yào yì bēi chá"
        assert result.score == 72
        assert result.has_issues is True

    @pytest.mark.asyncio
    async def test_clean_turn_defaults_to_neutral_score(self, context):
        """指摘がなくスコアもない場合は100"""
        analyzer = CorrectionAnalyzer(FakeCollaborator(analysis={}), timeout_seconds=1)

        result = await analyzer.analyze(0, "你好", context)

        assert result.grammar == []
        assert result.pronunciation == []
        assert result.corrected_text is None
        assert result.score == 100
        assert result.has_issues is False

    @pytest.mark.asyncio
    async def test_unknown_values_are_normalized(self, context):
        """未知の種類・重大度・範囲外のスコアを補正する"""
        collaborator = FakeCollaborator(analysis={
            "grammar": [
                {"original": "a", "corrected": "b", "type": "punctuation"},
                {"corrected": "missing original"},
                "not a dict",
            ],
            "pronunciation": [
                {"word": "茶", "issue": "tone", "severity": "critical"},
                {"word": "麵", "issue": "rhythm"},
            ],
            "score": 140,
        })
        analyzer = CorrectionAnalyzer(collaborator, timeout_seconds=1)

        result = await analyzer.analyze(0, "text", context)

        assert len(result.grammar) == 1
        assert result.grammar[0].type == "other"
        assert len(result.pronunciation) == 1
        assert result.pronunciation[0].severity == "minor"
        assert result.score == 100

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "analysis",
        [
            {"grammar": 5, "pronunciation": "tone"},
            {"grammar": {"original": "a", "corrected": "b"}, "pronunciation": None},
            {"grammar": [{"original": "a", "corrected": "b", "type": ["tense"]}]},
            {"pronunciation": [{"word": "茶", "issue": ["tone"]}]},
            {"pronunciation": [{"word": "茶", "issue": "tone", "severity": {"level": 2}}]},
            {"correctedText": ["我要茶"], "score": "90"},
        ],
    )
    async def test_malformed_payload_still_returns_correction(self, context, analysis):
        """配列でない指摘や文字列でない種類が含まれても結果を返す"""
        analyzer = CorrectionAnalyzer(FakeCollaborator(analysis=analysis), timeout_seconds=1)

        result = await analyzer.analyze(1, "我要茶", context)

        assert result.turn_index == 1
        assert result.analyzed is True
        assert result.corrected_text is None
        assert 0 <= result.score <= 100
        for item in result.grammar:
            assert item.type == "other"
        for issue in result.pronunciation:
            assert issue.severity == "minor"

    @pytest.mark.asyncio
    async def test_negative_score_is_clamped(self, context):
        analyzer = CorrectionAnalyzer(FakeCollaborator(analysis={"score": -5}), timeout_seconds=1)

        result = await analyzer.analyze(0, "text", context)

        assert result.score == 0

    @pytest.mark.asyncio
    async def test_collaborator_error_returns_fallback(self, context):
        """外部サービスのエラー時は指摘なしの結果を返す"""
        collaborator = FakeCollaborator(error=CollaboratorUnavailable("analyze_turn", "down"))
        analyzer = CorrectionAnalyzer(collaborator, timeout_seconds=1)

        result = await analyzer.analyze(4, "我要茶", context)

        assert result.analyzed is False
        assert result.turn_index == 4
        assert result.grammar == []
        assert result.pronunciation == []
        assert result.score == 100

    @pytest.mark.asyncio
    async def test_collaborator_timeout_returns_fallback(self, context):
        """タイムアウト時も指摘なしの結果を返す"""
        analyzer = CorrectionAnalyzer(FakeCollaborator(delay=0.5), timeout_seconds=0.01)

        result = await analyzer.analyze(0, "我要茶", context)

        assert result.analyzed is False
        assert result.has_issues is False

    @pytest.mark.asyncio
    async def test_non_dict_result_returns_fallback(self, context):
        analyzer = CorrectionAnalyzer(FakeCollaborator(analysis=["unexpected"]), timeout_seconds=1)

        result = await analyzer.analyze(0, "text", context)

        assert result.analyzed is False
