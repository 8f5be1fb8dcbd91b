"""
テスト共通のフィクスチャ
"""
import asyncio
from datetime import datetime
from typing import Any, Dict, List

import pytest

from scenario_practice.models.schemas import (
    CheckpointRuntime,
    CheckpointSpec,
    ConversationSession,
    Role,
    Scenario,
    ScenarioSuggestions,
    Suggestion,
    Turn,
    TurnContext,
    TurnCorrection,
    VocabItem,
)


class FakeCollaborator:
    """テスト用の言語理解サービス"""

    def __init__(
        self,
        triggers: Dict[int, List[str]] | None = None,
        analysis: Dict[str, Any] | None = None,
        reply: str | None = None,
        suggestions: List[Dict[str, Any]] | None = None,
        delay: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        self.triggers = triggers or {}
        self.analysis = analysis if analysis is not None else {"grammar": [], "pronunciation": []}
        self.reply = reply
        self.suggestions = suggestions if suggestions is not None else []
        self.delay = delay
        self.error = error
        self.judge_calls: List[tuple] = []
        self.analyze_calls: List[tuple] = []
        self.suggestion_calls: List[TurnContext] = []

    async def _maybe_fail(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error

    async def judge_checkpoint(self, turn_text: str, checkpoint: CheckpointSpec) -> bool:
        self.judge_calls.append((turn_text, checkpoint.id))
        await self._maybe_fail()
        return any(phrase in turn_text for phrase in self.triggers.get(checkpoint.id, []))

    async def analyze_turn(self, turn_text: str, context: TurnContext) -> Dict[str, Any]:
        self.analyze_calls.append((turn_text, context))
        await self._maybe_fail()
        return self.analysis

    async def generate_reply(self, context: TurnContext) -> str | None:
        await self._maybe_fail()
        return self.reply

    async def generate_suggestions(self, context: TurnContext) -> List[Dict[str, Any]]:
        self.suggestion_calls.append(context)
        await self._maybe_fail()
        return self.suggestions


def build_scenario(
    weights: List[float] | None = None,
    turns_to_complete: List[int | None] | None = None,
    estimated_turns: int | None = None,
    vocabulary: List[str] | None = None,
    opening_line: str | None = None,
    suggestions: Dict[str, List[Suggestion]] | None = None,
) -> Scenario:
    weights = weights if weights is not None else [0.5, 0.3, 0.2]
    turns_to_complete = turns_to_complete or [None] * len(weights)
    return Scenario(
        scenario_id="test-scenario",
        title="Test Scenario",
        objective="Order food and pay",
        roles=[
            Role(id="customer", name="Customer", chinese_name="客人"),
            Role(id="waiter", name="Waiter", chinese_name="服務員"),
        ],
        checkpoints=[
            CheckpointSpec(
                id=i + 1,
                description=f"Checkpoint {i + 1}",
                trigger_criteria=f"criteria {i + 1}",
                weight=weight,
                turns_to_complete=turns_to_complete[i],
            )
            for i, weight in enumerate(weights)
        ],
        expected_vocabulary=[VocabItem(chinese=word) for word in (vocabulary or [])],
        estimated_turns=estimated_turns,
        opening_line=opening_line,
        suggestions=ScenarioSuggestions(by_role=suggestions or {}),
    )


def build_session(
    scenario: Scenario,
    user_texts: List[str] | None = None,
    completed: List[int] | None = None,
    scores: List[float | None] | None = None,
) -> ConversationSession:
    user_texts = user_texts or []
    scores = scores or [None] * len(user_texts)
    turns: List[Turn] = []
    for i, text in enumerate(user_texts):
        turns.append(
            Turn(
                index=i,
                role="user",
                text=text,
                timestamp_ms=1_700_000_000_000 + i,
                correction=TurnCorrection(turn_index=i, user_text=text, score=scores[i]),
            )
        )
    state = {cp.id: CheckpointRuntime() for cp in scenario.checkpoints}
    for checkpoint_id in completed or []:
        state[checkpoint_id] = CheckpointRuntime(
            completed=True, completed_at_turn_index=0, completed_at=datetime(2026, 1, 1, 12, 0)
        )
    return ConversationSession(
        session_id="session-1",
        scenario_id=scenario.scenario_id,
        user_role="customer",
        started_at=datetime(2026, 1, 1, 12, 0),
        turns=turns,
        checkpoint_state=state,
    )


@pytest.fixture
def scenario() -> Scenario:
    return build_scenario(vocabulary=["菜單", "牛肉麵", "多少錢"])
