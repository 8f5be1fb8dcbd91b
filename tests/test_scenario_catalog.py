"""
ScenarioCatalogのテスト
"""
import json

import pytest

from conftest import build_scenario
from scenario_practice.errors import ScenarioNotFound
from scenario_practice.services.scenario_catalog import ScenarioCatalog


class TestScenarioCatalog:
    """ScenarioCatalogのテストクラス"""

    def test_bundled_scenarios(self):
        """同梱のシナリオを読み込む"""
        catalog = ScenarioCatalog.from_directory()

        assert "restaurant-ordering" in catalog
        assert "asking-directions" in catalog
        scenario = catalog.get_scenario("restaurant-ordering")
        assert scenario.get_role("customer") is not None
        assert [cp.id for cp in scenario.sorted_checkpoints()] == [1, 2, 3]
        assert sum(cp.weight for cp in scenario.checkpoints) == pytest.approx(1.0)
        assert scenario.opening_line

    def test_unknown_scenario(self):
        """未登録のシナリオはScenarioNotFound"""
        catalog = ScenarioCatalog([build_scenario()])

        with pytest.raises(ScenarioNotFound, match="missing"):
            catalog.get_scenario("missing")

    def test_invalid_files_are_skipped(self, tmp_path):
        """不正なJSONファイルはスキップする"""
        valid = build_scenario().model_dump(mode="json")
        (tmp_path / "valid.json").write_text(json.dumps(valid), encoding="utf-8")
        (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")
        (tmp_path / "incomplete.json").write_text(json.dumps({"title": "x"}), encoding="utf-8")

        catalog = ScenarioCatalog.from_directory(tmp_path)

        assert len(catalog) == 1
        assert [s.scenario_id for s in catalog.list_scenarios()] == ["test-scenario"]

    def test_camel_case_definitions(self, tmp_path):
        """camelCaseのJSONも読み込める"""
        data = build_scenario().model_dump(mode="json", by_alias=True)
        (tmp_path / "camel.json").write_text(json.dumps(data), encoding="utf-8")

        catalog = ScenarioCatalog.from_directory(tmp_path)

        assert catalog.get_scenario("test-scenario").checkpoints[0].trigger_criteria == "criteria 1"
