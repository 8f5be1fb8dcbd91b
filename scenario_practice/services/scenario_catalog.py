"""
シナリオカタログ
シナリオ定義（JSONファイル）を読み込み、読み取り専用で提供する
"""
import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List

from pydantic import ValidationError

from scenario_practice.config import SCENARIOS_DIR
from scenario_practice.errors import ScenarioNotFound
from scenario_practice.models.schemas import Scenario

logger = logging.getLogger(__name__)


class ScenarioCatalog:
    """シナリオ定義を保持するカタログ（複数セッションで共有してよい）"""

    def __init__(self, scenarios: Iterable[Scenario] | None = None) -> None:
        """
        初期化処理

        Args:
            scenarios: 登録するシナリオ（指定しない場合は空のカタログ）
        """
        self._scenarios: Dict[str, Scenario] = {}
        for scenario in scenarios or []:
            self._scenarios[scenario.scenario_id] = scenario

    @classmethod
    def from_directory(cls, scenarios_dir: Path | None = None) -> "ScenarioCatalog":
        """
        ディレクトリ内のJSONファイルからカタログを作成
        読み込めないファイルはログに記録してスキップする

        Args:
            scenarios_dir: シナリオディレクトリ（指定しない場合はSCENARIOS_DIR）

        Returns:
            シナリオカタログ
        """
        directory: Path = scenarios_dir or SCENARIOS_DIR
        scenarios: List[Scenario] = []
        for file_path in sorted(directory.glob("*.json")):
            try:
                with open(file_path, "r", encoding="utf-8") as f:
                    scenarios.append(Scenario.model_validate(json.load(f)))
            except (OSError, json.JSONDecodeError, ValidationError) as e:
                logger.warning("シナリオの読み込みに失敗しました %s: %s", file_path, e)
        logger.info("シナリオを%d件読み込みました (%s)", len(scenarios), directory)
        return cls(scenarios)

    def get_scenario(self, scenario_id: str) -> Scenario:
        """
        シナリオを取得

        Args:
            scenario_id: シナリオID

        Returns:
            シナリオ

        Raises:
            ScenarioNotFound: 未登録のIDの場合
        """
        scenario = self._scenarios.get(scenario_id)
        if scenario is None:
            raise ScenarioNotFound(scenario_id)
        return scenario

    def list_scenarios(self) -> List[Scenario]:
        """登録済みのシナリオをID順で返す"""
        return [self._scenarios[key] for key in sorted(self._scenarios)]

    def __contains__(self, scenario_id: object) -> bool:
        return scenario_id in self._scenarios

    def __len__(self) -> int:
        return len(self._scenarios)
