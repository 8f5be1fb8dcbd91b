"""
キーワードによるルールベースの判定サービス
OpenAIのAPIキーが設定されていない環境で使用する
"""
import re
from typing import Any, Dict, List

from scenario_practice.models.schemas import CheckpointSpec, TurnContext

# 句読点と空白
_IGNORED_CHARACTERS = re.compile(r"[，。！？、,.!?\s]")


def normalize_text(text: str) -> str:
    """句読点と空白を除去して小文字にする"""
    return _IGNORED_CHARACTERS.sub("", text).lower()


class KeywordJudge:
    """チェックポイントのキーワードで判定するサービスクラス"""

    async def judge_checkpoint(self, turn_text: str, checkpoint: CheckpointSpec) -> bool:
        """
        キーワードが発話に含まれるか判定
        長いキーワードから順に照合し、1文字のキーワードは発話中に1回だけ現れる場合のみ一致とする

        Args:
            turn_text: ユーザーの発話
            checkpoint: チェックポイント定義

        Returns:
            いずれかのキーワードに一致した場合True
        """
        transcript: str = normalize_text(turn_text)
        if not transcript:
            return False
        for keyword in sorted(checkpoint.keywords, key=len, reverse=True):
            normalized: str = normalize_text(keyword)
            if not normalized:
                continue
            if len(normalized) == 1:
                if transcript.count(normalized) == 1:
                    return True
            elif normalized in transcript:
                return True
        return False

    async def analyze_turn(self, turn_text: str, context: TurnContext) -> Dict[str, Any]:
        # 文法・発音の分析はできないため指摘なしを返す
        return {"grammar": [], "pronunciation": []}

    async def generate_reply(self, context: TurnContext) -> str | None:
        return None

    async def generate_suggestions(self, context: TurnContext) -> List[Dict[str, Any]]:
        # 生成はできないため、シナリオの静的な候補を使わせる
        return []
