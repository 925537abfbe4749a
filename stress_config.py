"""
Run configuration
=================
Typed, validated configuration for one load test run, plus the JSON/YAML loader
used by the CLI.

Example config.json:

    {
      "base_url": "http://localhost:8080",
      "stages": [
        {"duration": "2m", "target": 10},
        {"duration": "5m", "target": 10},
        {"duration": "2m", "target": 0}
      ],
      "scenarios": [
        {"name": "catalog", "weight": 0.4, "exec": "service_scenarios:catalog_workflow"},
        {"name": "cart", "weight": 0.4, "exec": "cart_quick_workflow"},
        {"name": "frontend", "weight": 0.2, "exec": "frontend_workflow", "think_time": [1, 3]}
      ],
      "thresholds": {
        "http_req_duration": ["p(95)<500"],
        "http_req_failed": ["rate<0.1"]
      }
    }
"""

import importlib
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from stress_errors import ConfigurationError
from stress_scenarios import Scenario, ScenarioFn, WeightedDispatcher, validate_think_time
from stress_stages import Stage, StageScheduler, parse_duration
from stress_thresholds import Threshold, parse_thresholds

DEFAULT_BASE_URL = "http://localhost:8080"
BASE_URL_ENV = "BASE_URL"
DEFAULT_SCENARIO_MODULE = "service_scenarios"


def resolve_scenario_fn(ref: str, default_module: str = DEFAULT_SCENARIO_MODULE) -> ScenarioFn:
    """Resolve "package.module:function" (or a bare function name) to a callable."""
    if not isinstance(ref, str):
        raise ConfigurationError(f"Scenario 'exec' must be a string, got {ref!r}")
    module_name, _, attr = ref.rpartition(":")
    module_name = module_name or default_module
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import scenario module '{module_name}': {e}")
    fn = getattr(module, attr, None)
    if fn is None or not callable(fn):
        raise ConfigurationError(f"Scenario function '{attr}' not found in '{module_name}'")
    return fn


def normalize_base_url(target: str) -> str:
    if not (target.startswith("http://") or target.startswith("https://")):
        target = f"http://{target}"
    return target.rstrip("/")


@dataclass
class LoadTestConfig:
    """Stages, scenarios and thresholds for one run. Validated once, up front."""
    stages: List[Stage]
    scenarios: List[Scenario]
    thresholds: List[Threshold] = field(default_factory=list)
    base_url: str = DEFAULT_BASE_URL
    think_time: Tuple[float, float] = (1.0, 3.0)
    request_timeout: float = 30.0
    tick_interval: float = 1.0
    headers: Dict[str, str] = field(default_factory=dict)
    seed: Optional[int] = None
    verify_ssl: bool = True

    def __post_init__(self):
        self.stages = list(self.stages)
        self.scenarios = list(self.scenarios)
        self.thresholds = list(self.thresholds)

        self.scheduler = StageScheduler(self.stages)
        # Shared by every VU; each draw passes the VU's own rng
        self.dispatcher = WeightedDispatcher(self.scenarios)
        self.think_time = validate_think_time(self.think_time, "Run")

        if not self.request_timeout > 0:
            raise ConfigurationError("request_timeout must be a positive number of seconds")
        if not self.tick_interval > 0:
            raise ConfigurationError("tick_interval must be a positive number of seconds")
        if not self.base_url or not isinstance(self.base_url, str):
            raise ConfigurationError(f"base_url must be a non-empty string, got {self.base_url!r}")
        self.base_url = normalize_base_url(self.base_url)

    @property
    def total_duration(self) -> float:
        return self.scheduler.total_duration

    @property
    def max_vus(self) -> int:
        return self.scheduler.max_target

    @classmethod
    def from_dict(
        cls,
        raw: Mapping[str, Any],
        environ: Optional[Mapping[str, str]] = None,
    ) -> "LoadTestConfig":
        """Build a config from plain data; BASE_URL in `environ` wins over the file."""
        environ = os.environ if environ is None else environ

        stages = [Stage.from_dict(s) for s in _list_field(raw, "stages")]

        scenarios = []
        for entry in _list_field(raw, "scenarios"):
            if not isinstance(entry, Mapping):
                raise ConfigurationError(f"Scenario entry must be a mapping, got {entry!r}")
            name = entry.get("name", "")
            fn = entry.get("fn")
            if fn is None:
                ref = entry.get("exec")
                if not ref:
                    raise ConfigurationError(f"Scenario '{name}' needs an 'exec' reference")
                fn = resolve_scenario_fn(ref)
            think_time = entry.get("think_time")
            scenarios.append(Scenario(
                name=name,
                weight=entry.get("weight", 1.0),
                fn=fn,
                think_time=(
                    validate_think_time(think_time, f"Scenario '{name}'")
                    if think_time is not None else None
                ),
            ))

        headers = raw.get("headers") or {}
        if not isinstance(headers, Mapping):
            raise ConfigurationError(f"headers must be a mapping, got {headers!r}")

        kwargs: Dict[str, Any] = {
            "stages": stages,
            "scenarios": scenarios,
            "thresholds": parse_thresholds(raw.get("thresholds")),
            "base_url": environ.get(BASE_URL_ENV) or raw.get("base_url") or DEFAULT_BASE_URL,
            "headers": {str(k): str(v) for k, v in headers.items()},
            "seed": raw.get("seed"),
        }
        if "think_time" in raw:
            kwargs["think_time"] = validate_think_time(raw["think_time"], "Run")
        if "request_timeout" in raw:
            kwargs["request_timeout"] = parse_duration(raw["request_timeout"])
        if "tick_interval" in raw:
            kwargs["tick_interval"] = parse_duration(raw["tick_interval"])
        if "verify_ssl" in raw:
            kwargs["verify_ssl"] = bool(raw["verify_ssl"])
        return cls(**kwargs)


def _list_field(raw: Mapping[str, Any], key: str) -> List[Any]:
    value = raw.get(key) or []
    if not isinstance(value, (list, tuple)):
        raise ConfigurationError(f"'{key}' must be a list, got {type(value).__name__}")
    return list(value)


def load_config_file(path: Path) -> Dict[str, Any]:
    """Load a configuration file in YAML or JSON format."""
    suffix = path.suffix.lower()
    text = path.read_text()
    if suffix in {".yaml", ".yml"}:
        try:
            data = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}")
    elif suffix == ".json":
        try:
            data = json.loads(text or "{}")
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {path}: {e}")
    else:
        raise ConfigurationError(f"Unsupported configuration file format: {suffix}")
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping at the top level")
    return data
