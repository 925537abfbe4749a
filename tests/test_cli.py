import json

import pytest

import run_presets
from stress_errors import ConfigurationError
from stress_test import _parse_headers, main


class TestPresets:
    @pytest.mark.parametrize("name", sorted(run_presets.PRESETS))
    def test_every_preset_builds(self, name):
        config = run_presets.build_preset_config("localhost:3000", name, environ={})
        assert config.base_url == "http://localhost:3000"
        assert config.max_vus > 0
        assert config.thresholds

    def test_comprehensive_mix(self):
        config = run_presets.build_preset_config("http://shop", "comprehensive", environ={})
        assert config.dispatcher.probabilities() == pytest.approx(
            {"catalog": 0.4, "cart": 0.4, "frontend": 0.2}
        )
        assert config.max_vus == 15
        assert config.total_duration == 13 * 60

    def test_environment_overrides_url(self):
        config = run_presets.build_preset_config(
            "http://shop", "smoke", environ={"BASE_URL": "http://staging"}
        )
        assert config.base_url == "http://staging"

    def test_unknown_preset(self):
        with pytest.raises(ConfigurationError):
            run_presets.build_preset_config("http://shop", "soak", environ={})

    def test_list(self, capsys):
        assert run_presets.main(["--list"]) == 0
        assert "Available Presets" in capsys.readouterr().out

    def test_missing_or_unknown_preset_argument(self):
        assert run_presets.main(["http://shop"]) == 2
        assert run_presets.main(["http://shop", "soak"]) == 2


class TestStressTestMain:
    def test_missing_config_file(self, tmp_path):
        assert main(["--config", str(tmp_path / "missing.json")]) == 2

    def test_invalid_config(self, tmp_path):
        path = tmp_path / "run.json"
        path.write_text(json.dumps({
            "stages": [{"duration": "1m", "target": 5}],
            "scenarios": [{"name": "x", "exec": "no_such_workflow"}],
        }))
        assert main(["--config", str(path)]) == 2

    @pytest.mark.parametrize("change", [
        {"thresholds": {"http_req_duration": [500]}},
        {"think_time": 2},
        {"stages": ["2m"]},
        {"scenarios": [{"name": "x", "exec": 5}]},
    ])
    def test_wrongly_typed_config_is_a_configuration_error(self, tmp_path, change):
        path = tmp_path / "run.json"
        path.write_text(json.dumps({
            "stages": [{"duration": "1m", "target": 5}],
            "scenarios": [{"name": "x", "exec": "frontend_workflow"}],
            **change,
        }))
        assert main(["--config", str(path)]) == 2

    def test_invalid_yaml_config(self, tmp_path):
        path = tmp_path / "run.yml"
        path.write_text("stages:\n  - duration: 1m\n    target: [5\n")
        assert main(["--config", str(path)]) == 2

    def test_bad_header(self, tmp_path):
        path = tmp_path / "run.json"
        path.write_text(json.dumps({
            "stages": [{"duration": "1m", "target": 5}],
            "scenarios": [{"name": "x", "exec": "frontend_workflow"}],
        }))
        assert main(["--config", str(path), "-H", "no-colon"]) == 2

    def test_parse_headers(self):
        assert _parse_headers(["Authorization: Bearer abc", "X-Trace:1"]) == {
            "Authorization": "Bearer abc",
            "X-Trace": "1",
        }
        assert _parse_headers(None) == {}
