import json

import pytest

import service_scenarios
from stress_config import (
    DEFAULT_BASE_URL,
    LoadTestConfig,
    load_config_file,
    normalize_base_url,
    resolve_scenario_fn,
)
from stress_errors import ConfigurationError
from stress_stages import Stage


async def local_scenario(ctx):
    pass


RAW_CONFIG = {
    "base_url": "http://shop.local:8080/",
    "stages": [
        {"duration": "2m", "target": 10},
        {"duration": "5m", "target": 10},
        {"duration": "30s", "target": 0},
    ],
    "scenarios": [
        {"name": "catalog", "weight": 0.4, "exec": "service_scenarios:catalog_workflow"},
        {"name": "cart", "weight": 0.4, "exec": "cart_quick_workflow"},
        {"name": "frontend", "weight": 0.2, "exec": "frontend_workflow", "think_time": [0.5, 1]},
    ],
    "thresholds": {
        "http_req_duration": ["p(95)<500"],
        "http_req_failed": ["rate<0.1"],
    },
    "think_time": [1, 3],
    "request_timeout": "10s",
    "seed": 42,
}


class TestFromDict:
    def test_full_config(self):
        config = LoadTestConfig.from_dict(RAW_CONFIG, environ={})

        assert config.base_url == "http://shop.local:8080"
        assert config.stages == [Stage(120.0, 10), Stage(300.0, 10), Stage(30.0, 0)]
        assert config.total_duration == 450.0
        assert config.max_vus == 10
        assert [s.name for s in config.scenarios] == ["catalog", "cart", "frontend"]
        assert config.scenarios[0].fn is service_scenarios.catalog_workflow
        assert config.scenarios[1].fn is service_scenarios.cart_quick_workflow
        assert config.scenarios[2].think_time == (0.5, 1.0)
        assert [str(t) for t in config.thresholds] == [
            "http_req_duration: p(95)<500",
            "http_req_failed: rate<0.1",
        ]
        assert config.think_time == (1.0, 3.0)
        assert config.request_timeout == 10.0
        assert config.seed == 42

    def test_base_url_env_wins(self):
        config = LoadTestConfig.from_dict(RAW_CONFIG, environ={"BASE_URL": "http://staging:9000"})
        assert config.base_url == "http://staging:9000"

    def test_default_base_url(self):
        raw = {k: v for k, v in RAW_CONFIG.items() if k != "base_url"}
        assert LoadTestConfig.from_dict(raw, environ={}).base_url == DEFAULT_BASE_URL

    def test_callable_scenarios(self):
        config = LoadTestConfig.from_dict({
            "stages": [{"duration": 1, "target": 1}],
            "scenarios": [{"name": "local", "fn": local_scenario}],
        }, environ={})
        assert config.scenarios[0].fn is local_scenario
        assert config.scenarios[0].weight == 1.0
        assert config.thresholds == []

    @pytest.mark.parametrize("change", [
        {"stages": []},
        {"stages": [{"duration": 0, "target": 5}]},
        {"stages": [{"duration": "soon", "target": 5}]},
        {"stages": [{"duration": "1m", "target": -2}]},
        {"scenarios": []},
        {"scenarios": [{"name": "x", "weight": 1}]},
        {"scenarios": [{"name": "x", "weight": 0, "exec": "catalog_workflow"}]},
        {"scenarios": [{"name": "x", "exec": "no_such_workflow"}]},
        {"scenarios": [{"name": "x", "exec": "no_such_module:fn"}]},
        {"thresholds": {"http_req_duration": ["p(95)<<500"]}},
        {"think_time": [3, 1]},
        {"request_timeout": 0},
        {"tick_interval": -1},
        # values of the wrong type
        {"thresholds": {"http_req_duration": [500]}},
        {"thresholds": {"http_req_duration": 500}},
        {"thresholds": [{"metric": "m", "aggregate": "avg", "comparator": ["<"], "limit": 1}]},
        {"thresholds": [{"metric": 7, "expression": "avg<1"}]},
        {"think_time": 2},
        {"think_time": [1, 2, 3]},
        {"stages": ["2m"]},
        {"stages": "2m"},
        {"scenarios": [{"name": "x", "exec": 5}]},
        {"scenarios": ["catalog_workflow"]},
        {"scenarios": {"name": "x", "exec": "catalog_workflow"}},
        {"scenarios": [{"name": "x", "exec": "catalog_workflow", "think_time": 3}]},
        {"headers": ["X-Trace: 1"]},
        {"base_url": 8080},
    ])
    def test_invalid_config(self, change):
        with pytest.raises(ConfigurationError):
            LoadTestConfig.from_dict({**RAW_CONFIG, **change}, environ={})


def test_resolve_scenario_fn():
    assert resolve_scenario_fn("frontend_workflow") is service_scenarios.frontend_workflow
    assert resolve_scenario_fn("test_config:local_scenario") is local_scenario
    with pytest.raises(ConfigurationError):
        resolve_scenario_fn("service_scenarios:PRODUCT_IDS")
    with pytest.raises(ConfigurationError):
        resolve_scenario_fn(None)


@pytest.mark.parametrize("target,expected", [
    ("localhost:8080", "http://localhost:8080"),
    ("https://shop.example.com/", "https://shop.example.com"),
    ("http://10.0.0.5", "http://10.0.0.5"),
])
def test_normalize_base_url(target, expected):
    assert normalize_base_url(target) == expected


class TestLoadConfigFile:
    def test_reads_json(self, tmp_path):
        path = tmp_path / "run.json"
        path.write_text(json.dumps(RAW_CONFIG))
        assert load_config_file(path) == RAW_CONFIG

    @pytest.mark.parametrize("suffix", [".yaml", ".yml"])
    def test_reads_yaml(self, tmp_path, suffix):
        path = tmp_path / f"run{suffix}"
        path.write_text(
            "base_url: http://shop.local:8080\n"
            "stages:\n"
            "  - {duration: 30s, target: 5}\n"
            "  - {duration: 10s, target: 0}\n"
            "scenarios:\n"
            "  - name: frontend\n"
            "    exec: frontend_workflow\n"
            "thresholds:\n"
            "  http_req_failed: ['rate<0.1']\n"
        )
        raw = load_config_file(path)
        assert raw["stages"] == [{"duration": "30s", "target": 5}, {"duration": "10s", "target": 0}]

        config = LoadTestConfig.from_dict(raw, environ={})
        assert config.total_duration == 40.0
        assert config.scenarios[0].fn is service_scenarios.frontend_workflow

    def test_rejects_invalid_yaml(self, tmp_path):
        path = tmp_path / "run.yaml"
        path.write_text("stages: [unclosed")
        with pytest.raises(ConfigurationError):
            load_config_file(path)

    def test_rejects_other_formats(self, tmp_path):
        path = tmp_path / "run.toml"
        path.write_text("stages = []")
        with pytest.raises(ConfigurationError):
            load_config_file(path)

    def test_rejects_invalid_json(self, tmp_path):
        path = tmp_path / "run.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError):
            load_config_file(path)

    def test_rejects_non_object(self, tmp_path):
        path = tmp_path / "run.json"
        path.write_text("[1, 2]")
        with pytest.raises(ConfigurationError):
            load_config_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            load_config_file(tmp_path / "missing.json")
