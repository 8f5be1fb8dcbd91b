"""
チェックポイント検出サービス
ユーザーの発話ごとに、未達成のチェックポイントのうち最初に条件を満たすものを1つだけ達成にする
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List

from scenario_practice.config import COLLABORATOR_TIMEOUT_SECONDS
from scenario_practice.errors import CollaboratorError
from scenario_practice.models.schemas import CheckpointRuntime, CheckpointSpec, Scenario
from scenario_practice.services.collaborator import LanguageCollaborator, call_with_timeout

logger = logging.getLogger(__name__)


@dataclass
class CheckpointUpdate:
    """検出結果"""

    checkpoint_state: Dict[int, CheckpointRuntime]
    completed_checkpoint_id: int | None = None


def pending_checkpoints(
    scenario: Scenario, checkpoint_state: Dict[int, CheckpointRuntime]
) -> List[CheckpointSpec]:
    """未達成のチェックポイントをID昇順で返す"""
    return [
        checkpoint
        for checkpoint in scenario.sorted_checkpoints()
        if not checkpoint_state.get(checkpoint.id, CheckpointRuntime()).completed
    ]


class CheckpointTracker:
    """チェックポイントの達成を検出するサービスクラス"""

    def __init__(
        self,
        collaborator: LanguageCollaborator,
        timeout_seconds: float | None = None,
    ) -> None:
        """
        初期化処理

        Args:
            collaborator: 判定に使う言語理解サービス
            timeout_seconds: 1回の判定のタイムアウト（秒）
        """
        self.collaborator = collaborator
        self.timeout_seconds: float = (
            timeout_seconds if timeout_seconds is not None else COLLABORATOR_TIMEOUT_SECONDS
        )

    async def detect(
        self,
        scenario: Scenario,
        checkpoint_state: Dict[int, CheckpointRuntime],
        turn_index: int,
        turn_text: str,
    ) -> CheckpointUpdate:
        """
        発話で新たに達成されたチェックポイントを検出

        外部サービスの呼び出しに失敗した場合は、このターンはどのチェックポイントにも
        一致しなかったものとして扱い、再試行しない。

        Args:
            scenario: シナリオ
            checkpoint_state: 現在のチェックポイント状態
            turn_index: 発話のターン番号
            turn_text: ユーザーの発話

        Returns:
            更新後の状態と、達成したチェックポイントID（なければNone）
        """
        for checkpoint in pending_checkpoints(scenario, checkpoint_state):
            try:
                satisfied: bool = await call_with_timeout(
                    self.collaborator.judge_checkpoint(turn_text, checkpoint),
                    self.timeout_seconds,
                    "judge_checkpoint",
                )
            except CollaboratorError as e:
                logger.warning(
                    "チェックポイント判定に失敗しました (turn=%d, checkpoint=%d): %s",
                    turn_index,
                    checkpoint.id,
                    e,
                )
                return CheckpointUpdate(checkpoint_state=dict(checkpoint_state))

            if satisfied:
                new_state = dict(checkpoint_state)
                new_state[checkpoint.id] = CheckpointRuntime(
                    completed=True,
                    completed_at_turn_index=turn_index,
                    completed_at=datetime.now(),
                    trigger_message=turn_text,
                )
                logger.info(
                    "チェックポイント%dを達成しました: %s", checkpoint.id, checkpoint.description
                )
                return CheckpointUpdate(
                    checkpoint_state=new_state, completed_checkpoint_id=checkpoint.id
                )

        return CheckpointUpdate(checkpoint_state=dict(checkpoint_state))
