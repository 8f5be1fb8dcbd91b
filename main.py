"""
シナリオ会話練習API - メインエントリーポイント
"""
import logging
import os

import uvicorn

from scenario_practice.api import create_app
from scenario_practice.config import APP_DATA_DIR, setup_logging


def main() -> None:
    """アプリケーションの起動"""
    # アプリケーションデータディレクトリの作成
    APP_DATA_DIR.mkdir(parents=True, exist_ok=True)
    setup_logging(level=logging.INFO)

    app = create_app()
    uvicorn.run(
        app,
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
    )


if __name__ == "__main__":
    main()
