"""
アプリケーション設定
"""
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

# .envファイルの読み込み（カレントディレクトリから）
load_dotenv()


def get_app_data_dir() -> Path:
    """
    アプリケーションのデータディレクトリを取得

    Returns:
        アプリケーションデータディレクトリのパス
    """
    override: str | None = os.getenv("SCENARIO_PRACTICE_DATA_DIR")
    if override:
        return Path(override)
    if sys.platform == "win32":
        # Windowsの場合、AppData\Local\ScenarioPracticeを使用
        app_data: str | None = os.getenv("LOCALAPPDATA")
        if app_data:
            return Path(app_data) / "ScenarioPractice"
    elif sys.platform == "darwin":
        # macOSの場合、~/Library/Application Support/ScenarioPracticeを使用
        return Path.home() / "Library" / "Application Support" / "ScenarioPractice"
    # その他のOSまたはフォールバック
    return Path.home() / ".scenario_practice"


def get_log_file() -> Path:
    """
    ログファイルのパスを取得

    Returns:
        ログファイルのパス
    """
    return get_app_data_dir() / "app.log"


def get_scenarios_dir() -> Path:
    """
    シナリオ定義（JSON）のディレクトリを取得
    環境変数SCENARIOS_DIRが未設定の場合は同梱のシナリオを使用する

    Returns:
        シナリオディレクトリのパス
    """
    configured: str | None = os.getenv("SCENARIOS_DIR")
    if configured:
        return Path(configured)
    return Path(__file__).parent / "data" / "scenarios"


def get_openai_api_key() -> str | None:
    """OPENAI_API_KEYまたはOPENAI_APIのどちらかを返す"""
    return os.getenv("OPENAI_API_KEY") or os.getenv("OPENAI_API")


class ScoringConfig(BaseModel):
    """スコア計算の重みと既定値"""

    checkpoint_weight: float = 0.60  # チェックポイント達成度の重み
    efficiency_weight: float = 0.15  # 会話効率の重み
    quality_weight: float = 0.25  # 会話品質の重み
    neutral_turn_score: float = 100.0  # 指摘なしのターンのスコア
    default_turns_per_checkpoint: int = 2  # 想定ターン数が未定義の場合の既定値


def setup_logging(level: int = logging.INFO, log_file: Path | None = None) -> logging.Logger:
    """
    ロギングを設定する（コンソールとログファイルに出力）

    Args:
        level: ログレベル
        log_file: ログファイルのパス（指定しない場合はLOG_FILE）

    Returns:
        ルートロガー
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter("[%(asctime)s] %(levelname)-8s %(name)s | %(message)s")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    target: Path = log_file or LOG_FILE
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(target, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
    except OSError as e:
        root_logger.warning("ログファイルを開けませんでした: %s", e)

    root_logger.setLevel(level)
    # 外部ライブラリのログを抑制
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    return root_logger


# アプリケーションデータディレクトリ
APP_DATA_DIR = get_app_data_dir()

# ログファイル
LOG_FILE = get_log_file()

# シナリオディレクトリ
SCENARIOS_DIR = get_scenarios_dir()

# 外部言語サービス呼び出しのタイムアウト（秒）
COLLABORATOR_TIMEOUT_SECONDS = float(os.getenv("COLLABORATOR_TIMEOUT_SECONDS", "10"))

# 使用するOpenAIモデル
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
