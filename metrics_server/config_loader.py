import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from .durations import DurationUnit


ROOT = Path(__file__).resolve().parents[1]

DEFAULTS: Dict[str, Any] = {
    "duration_unit": "milliseconds",
    "show_process_metrics": True,
    "host": "0.0.0.0",
    "port": 8081,
    "reservoir_size": 1028,
}


class MetricsSettings(BaseModel):
    duration_unit: DurationUnit = DurationUnit.MILLISECONDS
    show_process_metrics: bool = True
    host: str = "0.0.0.0"
    port: int = Field(8081, ge=1, le=65535)
    reservoir_size: int = Field(1028, ge=1)

    @field_validator("duration_unit", mode="before")
    @classmethod
    def _parse_unit(cls, v: Any) -> Any:
        if isinstance(v, str):
            return DurationUnit.parse(v)
        return v


def _load_json_or_yaml(path: Path) -> Any:
    text = path.read_text()
    # Try JSON first (our YAML files are JSON-compatible), then YAML
    try:
        return json.loads(text) or {}
    except json.JSONDecodeError:
        import yaml

        try:
            return yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise RuntimeError(f"Failed to parse {path} as JSON or YAML: {e}")


def build_effective_config(path: Optional[str] = None) -> MetricsSettings:
    """Merge order: env overrides -> config file -> defaults.

    The file is `path`, else `$METRICS_CONFIG`, else `configs/metrics.yaml`
    when present.
    """
    cfg: Dict[str, Any] = dict(DEFAULTS)

    cfg_path = path or os.getenv("METRICS_CONFIG")
    if cfg_path:
        p = Path(cfg_path)
        if not p.exists():
            raise FileNotFoundError(f"Metrics config not found: {p}")
    else:
        p = ROOT / "configs" / "metrics.yaml"
    if p.exists():
        file_cfg = _load_json_or_yaml(p)
        if not isinstance(file_cfg, dict):
            raise RuntimeError(f"Metrics config {p} must be a mapping, got {type(file_cfg).__name__}")
        section = file_cfg.get("metrics", file_cfg) or {}
        if not isinstance(section, dict):
            raise RuntimeError(f"'metrics' section in {p} must be a mapping, got {type(section).__name__}")
        cfg.update(section)

    # ENV overrides; pydantic coerces and validates the raw strings
    for key, env_key in [
        ("duration_unit", "METRICS_DURATION_UNIT"),
        ("show_process_metrics", "METRICS_SHOW_PROCESS"),
        ("host", "METRICS_HOST"),
        ("port", "METRICS_PORT"),
        ("reservoir_size", "METRICS_RESERVOIR_SIZE"),
    ]:
        v = os.getenv(env_key)
        if v is not None:
            cfg[key] = v.strip()

    return MetricsSettings(**cfg)
