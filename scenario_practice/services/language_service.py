"""
OpenAI APIを使用する言語理解サービス
チェックポイント判定・ターン分析・講師の応答と返答候補の生成を行う
"""

import asyncio
import json
from typing import Any, Dict, List

from openai import OpenAI

from scenario_practice.config import OPENAI_MODEL, get_openai_api_key
from scenario_practice.errors import CollaboratorUnavailable
from scenario_practice.models.schemas import CheckpointSpec, TurnContext


class LanguageService:
    """OpenAI APIを使用するサービスクラス"""

    def __init__(self) -> None:
        """
        初期化処理
        環境変数からAPIキーを取得し、OpenAIクライアントを初期化する
        """
        api_key: str | None = get_openai_api_key()
        if not api_key:
            raise ValueError(
                "OPENAI_API_KEYまたはOPENAI_API環境変数が設定されていません"
            )
        self.client: OpenAI = OpenAI(api_key=api_key)
        self.model: str = OPENAI_MODEL

    async def _complete_json(self, system_prompt: str, prompt: str, operation: str) -> Dict[str, Any]:
        """
        JSON形式の応答を取得する
        同期クライアントはスレッドで実行し、呼び出し側のタイムアウトが効くようにする

        Args:
            system_prompt: システムプロンプト
            prompt: ユーザープロンプト
            operation: エラー用の操作名

        Returns:
            応答のJSON

        Raises:
            CollaboratorUnavailable: 応答が空またはJSONとして解析できない場合
        """
        response = await asyncio.to_thread(
            self.client.chat.completions.create,
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            response_format={"type": "json_object"},  # JSON形式で返すことを強制
        )
        content: str | None = response.choices[0].message.content
        if not content:
            raise CollaboratorUnavailable(operation, "レスポンスが空")
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise CollaboratorUnavailable(operation, "JSON解析エラー") from e
        if not isinstance(data, dict):
            raise CollaboratorUnavailable(operation, "JSON解析エラー")
        return data

    async def judge_checkpoint(self, turn_text: str, checkpoint: CheckpointSpec) -> bool:
        """
        発話がチェックポイントの条件を満たすか判定

        Args:
            turn_text: ユーザーの発話
            checkpoint: チェックポイント定義

        Returns:
            条件を満たす場合True
        """
        prompt: str = f"""
        You are judging a Chinese role-play conversation practice.
        Decide whether the learner's utterance satisfies the checkpoint below.
        Judge the meaning, not the exact wording. Ignore punctuation and minor mistakes.

        Checkpoint: {checkpoint.description} ({checkpoint.chinese_description})
        Trigger criteria: {checkpoint.trigger_criteria}
        Learner utterance: "{turn_text}"

        Return JSON: {{"satisfied": true/false, "reason": "short reason"}}
        """
        data = await self._complete_json(
            "You are a strict Chinese conversation judge. Always respond in valid JSON format.",
            prompt,
            "judge_checkpoint",
        )
        return data.get("satisfied") is True

    async def analyze_turn(self, turn_text: str, context: TurnContext) -> Dict[str, Any]:
        """
        発話の文法と発音を分析

        Args:
            turn_text: ユーザーの発話
            context: 会話の文脈

        Returns:
            分析結果を含む辞書
            {
                "grammar": [...],
                "pronunciation": [...],
                "correctedText": str | None,
                "correctedPinyin": str | None,
                "score": 0-100
            }
        """
        prompt: str = f"""
        Analyze one learner turn from a Chinese (Traditional, Taiwan) role-play conversation.

        Scenario: {context.scenario_title}
        Objective: {context.objective}
        Learner role: {context.user_role}

        Recent conversation:
        {context.transcript() or "(none)"}

        Learner turn to analyze: "{turn_text}"

        Return JSON with this structure:
        {{
            "grammar": [
                {{
                    "original": "incorrect phrase",
                    "corrected": "correct phrase",
                    "explanation": "explanation in English",
                    "explanationZh": "中文說明",
                    "type": "word-order|measure-word|tense|particle|vocabulary|other"
                }}
            ],
            "pronunciation": [
                {{
                    "word": "字",
                    "pinyin": "correct pinyin",
                    "issue": "tone|initial|final|missing|added",
                    "description": "issue description in English",
                    "descriptionZh": "中文描述",
                    "severity": "minor|moderate|major"
                }}
            ],
            "correctedText": "fully corrected sentence",
            "correctedPinyin": "pinyin for corrected sentence",
            "score": 0-100
        }}

        IMPORTANT:
        1. If the turn is correct, return empty grammar and pronunciation arrays.
        2. IGNORE PUNCTUATION COMPLETELY. This is spoken practice, not formal writing.
        3. Focus on significant issues that affect communication.
        """
        return await self._complete_json(
            "You are a Chinese conversation tutor. Always respond in valid JSON format.",
            prompt,
            "analyze_turn",
        )

    async def generate_reply(self, context: TurnContext) -> str | None:
        """
        講師役の次の発話を生成

        Args:
            context: 会話の文脈

        Returns:
            講師の発話（生成できなかった場合はNone）
        """
        guidance: List[str] = []
        if context.next_checkpoint:
            guidance.append(
                f"Naturally steer the conversation toward this goal: {context.next_checkpoint}"
            )
        prompt: str = f"""
        You are playing the role of {context.instructor_role or "the conversation partner"}
        in a Chinese (Traditional, Taiwan) role-play.

        Scenario: {context.scenario_title}
        Objective: {context.objective}
        The learner plays: {context.user_role}
        {" ".join(guidance)}

        Conversation so far:
        {context.transcript() or "(none)"}

        Reply with 1-2 short, natural sentences in Traditional Chinese.
        Return JSON: {{"reply": "..."}}
        """
        data = await self._complete_json(
            "You are a friendly Chinese conversation partner. Always respond in valid JSON format.",
            prompt,
            "generate_reply",
        )
        reply = data.get("reply")
        if isinstance(reply, str) and reply.strip():
            return reply.strip()
        return None

    async def generate_suggestions(self, context: TurnContext) -> List[Dict[str, Any]]:
        """
        ユーザーが次に言える返答の候補を生成

        Args:
            context: 会話の文脈

        Returns:
            返答候補のリスト（中国語・ピンイン・英訳・種類を含む辞書のリスト）
        """
        goal: str = ""
        if context.next_checkpoint:
            goal = f"The learner's next goal: {context.next_checkpoint}"
            if context.next_checkpoint_keywords:
                goal += f" (useful words: {', '.join(context.next_checkpoint_keywords)})"
        prompt: str = f"""
        Generate 3 natural response suggestions for the learner to say next
        in Traditional Chinese (Taiwan).

        Scenario: {context.scenario_title}
        Objective: {context.objective}
        The learner plays: {context.user_role}
        {goal}

        Conversation so far:
        {context.transcript() or "(none)"}

        The suggestions MUST respond directly to the last thing the partner said
        and move the conversation toward the learner's next goal.

        Return JSON with this structure:
        {{
            "suggestions": [
                {{"chinese": "...", "pinyin": "...", "english": "...", "type": "safe"}},
                {{"chinese": "...", "pinyin": "...", "english": "...", "type": "advanced"}},
                {{"chinese": "...", "pinyin": "...", "english": "...", "type": "alternative"}}
            ]
        }}
        """
        data = await self._complete_json(
            "You are a Chinese conversation coach. Always respond in valid JSON format.",
            prompt,
            "generate_suggestions",
        )
        suggestions = data.get("suggestions")
        return suggestions if isinstance(suggestions, list) else []
