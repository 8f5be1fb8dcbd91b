"""
外部言語サービスとの境界
チェックポイント判定・ターン分析・講師の応答や返答候補の生成はすべてここを経由し、タイムアウト付きで実行する
"""
import asyncio
from typing import Any, Awaitable, Dict, List, Protocol, TypeVar

from scenario_practice.errors import CollaboratorError, CollaboratorTimeout, CollaboratorUnavailable
from scenario_practice.models.schemas import CheckpointSpec, TurnContext

T = TypeVar("T")


class LanguageCollaborator(Protocol):
    """言語理解サービスのインターフェース"""

    async def judge_checkpoint(self, turn_text: str, checkpoint: CheckpointSpec) -> bool:
        """発話がチェックポイントの条件（trigger_criteria）を満たすか判定する"""
        ...

    async def analyze_turn(self, turn_text: str, context: TurnContext) -> Dict[str, Any]:
        """
        発話の文法・発音を分析する

        Returns:
            {"grammar": [...], "pronunciation": [...], "correctedText": str | None, "score": 0-100}
        """
        ...

    async def generate_reply(self, context: TurnContext) -> str | None:
        """講師役の次の発話を生成する"""
        ...

    async def generate_suggestions(self, context: TurnContext) -> List[Dict[str, Any]]:
        """
        ユーザーが次に言える返答の候補を生成する

        Returns:
            [{"chinese": str, "pinyin": str, "english": str, "type": "safe|advanced|alternative"}, ...]
        """
        ...


async def call_with_timeout(call: Awaitable[T], timeout_seconds: float, operation: str) -> T:
    """
    外部サービス呼び出しをタスクとして実行し、結果を待つ

    Args:
        call: 実行する呼び出し
        timeout_seconds: タイムアウト（秒）
        operation: ログ・エラー用の操作名

    Returns:
        呼び出しの結果

    Raises:
        CollaboratorTimeout: タイムアウトした場合
        CollaboratorUnavailable: 呼び出しが失敗した場合
    """
    task = asyncio.ensure_future(call)
    try:
        return await asyncio.wait_for(task, timeout=timeout_seconds)
    except asyncio.TimeoutError as e:
        raise CollaboratorTimeout(operation, timeout_seconds) from e
    except CollaboratorError:
        raise
    except Exception as e:
        raise CollaboratorUnavailable(operation, str(e)) from e
