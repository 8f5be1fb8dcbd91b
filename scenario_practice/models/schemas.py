"""
データモデル（スキーマ定義）
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


GrammarIssueType = Literal["word-order", "measure-word", "tense", "particle", "vocabulary", "other"]
PronunciationIssueType = Literal["tone", "initial", "final", "missing", "added"]
Severity = Literal["minor", "moderate", "major"]
TurnRole = Literal["user", "instructor"]
SuggestionType = Literal["safe", "advanced", "alternative"]


class CamelModel(BaseModel):
    """JSONではcamelCaseで入出力するモデルの基底クラス"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenCamelModel(CamelModel):
    """生成後に変更しないモデルの基底クラス"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ==================== シナリオ定義 ====================


class Role(FrozenCamelModel):
    """シナリオ内の役割"""

    id: str
    name: str
    chinese_name: str = ""
    interviewer_id: str | None = None  # 講師側の担当ID


class VocabItem(FrozenCamelModel):
    """語彙情報のデータモデル"""

    chinese: str
    pinyin: str = ""
    english: str = ""


class CheckpointSpec(FrozenCamelModel):
    """チェックポイント定義"""

    id: int
    description: str  # 学習者向けの説明（英語）
    chinese_description: str = ""  # 学習者向けの説明（中国語）
    trigger_criteria: str  # 達成とみなす発話の条件
    weight: float = 1.0  # チェックポイントスコアへの寄与
    keywords: List[str] = Field(default_factory=list)  # ルールベース判定用のキーワード
    turns_to_complete: int | None = None  # 想定ターン数


class Suggestion(FrozenCamelModel):
    """ユーザーへの返答の候補"""

    chinese: str
    pinyin: str = ""
    english: str = ""
    type: SuggestionType = "safe"
    checkpoint_id: int | None = None  # 対象のチェックポイント（静的な候補のみ）


class ScenarioSuggestions(FrozenCamelModel):
    """シナリオに定義された役割ごとの返答候補"""

    by_role: Dict[str, List[Suggestion]] = Field(default_factory=dict)


class Scenario(FrozenCamelModel):
    """ロールプレイのシナリオ（実行中に変更しない）"""

    scenario_id: str
    title: str
    objective: str
    difficulty: str = "beginner"
    roles: List[Role]
    checkpoints: List[CheckpointSpec] = Field(default_factory=list)
    expected_vocabulary: List[VocabItem] = Field(default_factory=list)
    estimated_turns: int | None = None  # シナリオ全体の想定ターン数
    first_speaker: TurnRole = "instructor"
    opening_line: str | None = None  # 講師が先に話す場合の最初の発話
    suggestions: ScenarioSuggestions = Field(default_factory=ScenarioSuggestions)

    def get_role(self, role_id: str) -> Role | None:
        return next((role for role in self.roles if role.id == role_id), None)

    def sorted_checkpoints(self) -> List[CheckpointSpec]:
        return sorted(self.checkpoints, key=lambda cp: cp.id)


# ==================== 添削 ====================


class GrammarCorrection(FrozenCamelModel):
    """文法の指摘"""

    original: str
    corrected: str
    explanation: str = ""
    explanation_zh: str | None = None
    type: GrammarIssueType = "other"


class PronunciationIssue(FrozenCamelModel):
    """発音の指摘"""

    word: str
    pinyin: str = ""
    issue: PronunciationIssueType
    description: str = ""
    description_zh: str | None = None
    severity: Severity = "minor"


class TurnCorrection(FrozenCamelModel):
    """ユーザーの1ターン分の添削結果"""

    turn_index: int
    user_text: str
    grammar: List[GrammarCorrection] = Field(default_factory=list)
    pronunciation: List[PronunciationIssue] = Field(default_factory=list)
    corrected_text: str | None = None
    corrected_pinyin: str | None = None
    score: float | None = None  # ターン単位の品質スコア（0-100）
    analyzed: bool = True  # 外部サービスで分析できなかった場合はFalse

    @property
    def has_issues(self) -> bool:
        return bool(self.grammar or self.pronunciation)


# ==================== セッション ====================


class SessionStatus(str, Enum):
    ACTIVE = "active"
    ENDED = "ended"


class Turn(FrozenCamelModel):
    """会話の1ターン（追加のみで編集しない）"""

    index: int
    role: TurnRole
    text: str
    timestamp_ms: int
    correction: TurnCorrection | None = None


class CheckpointRuntime(FrozenCamelModel):
    """チェックポイントの実行時の状態"""

    completed: bool = False
    completed_at_turn_index: int | None = None
    completed_at: datetime | None = None
    trigger_message: str | None = None  # 達成した発話


class CheckpointDetail(FrozenCamelModel):
    """レポート用のチェックポイント詳細"""

    id: int
    description: str
    chinese_description: str = ""
    completed: bool
    completed_at: datetime | None = None
    completed_at_turn_index: int | None = None
    trigger_message: str | None = None
    turns_to_complete: int | None = None
    weight: float


class CorrectionSummary(FrozenCamelModel):
    """添削結果の集計"""

    total_turns: int = 0
    turns_with_issues: int = 0
    grammar_issue_count: int = 0
    pronunciation_issue_count: int = 0
    common_grammar_issues: List[str] = Field(default_factory=list)
    common_pronunciation_issues: List[str] = Field(default_factory=list)


class ScenarioAnalysis(FrozenCamelModel):
    """セッション終了時の評価レポート"""

    session_id: str
    scenario_id: str
    scenario_title: str
    user_role: str
    overall_score: int  # 総合スコア
    checkpoint_score: float  # チェックポイント達成スコア
    efficiency_score: float  # 会話効率スコア
    conversation_quality_score: float  # 会話品質スコア
    checkpoint_details: List[CheckpointDetail] = Field(default_factory=list)
    total_checkpoints: int = 0
    completed_checkpoints: int = 0
    completion_rate: float = 0.0
    total_turns: int = 0  # ユーザーのターン数
    estimated_turns: int = 0
    efficiency: float = 0.0
    vocabulary_used: List[str] = Field(default_factory=list)
    vocabulary_details: List[VocabItem] = Field(default_factory=list)
    vocabulary_coverage: float = 0.0
    feedback: str = ""
    suggestions: List[str] = Field(default_factory=list)
    strengths: List[str] = Field(default_factory=list)
    turn_corrections: List[TurnCorrection] = Field(default_factory=list)
    correction_summary: CorrectionSummary = Field(default_factory=CorrectionSummary)
    conversation_duration: float = 0.0  # 秒
    completed_at: datetime


class ConversationSession(CamelModel):
    """会話セッション（SessionManagerのみが変更する）"""

    session_id: str
    scenario_id: str
    user_role: str
    started_at: datetime
    turns: List[Turn] = Field(default_factory=list)
    checkpoint_state: Dict[int, CheckpointRuntime] = Field(default_factory=dict)
    status: SessionStatus = SessionStatus.ACTIVE
    ended_at: datetime | None = None
    analysis: ScenarioAnalysis | None = None  # end()の結果（2回目以降はこれを返す）

    @property
    def user_turns(self) -> List[Turn]:
        return [turn for turn in self.turns if turn.role == "user"]

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE


class TurnContext(BaseModel):
    """外部言語サービスに渡す会話の文脈"""

    scenario_title: str
    objective: str
    user_role: str
    instructor_role: str | None = None
    recent_turns: List[Turn] = Field(default_factory=list)
    next_checkpoint: str | None = None
    next_checkpoint_keywords: List[str] = Field(default_factory=list)

    def transcript(self) -> str:
        return "\n".join(
            f"{'User' if turn.role == 'user' else 'AI'}: {turn.text}" for turn in self.recent_turns
        )
