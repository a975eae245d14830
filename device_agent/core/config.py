# device_agent/core/config.py
import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from pydantic import BaseModel, Field

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "configs" / "agent.yaml"

DEFAULT_FACTORS: Tuple[int, int] = (1000, 1000)
MAX_LOOP_COUNT = 25
MAX_HISTORY_IMAGES = 5


class ModelConfig(BaseModel):
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    model: str = "ui-tars"
    max_tokens: int = 1000
    temperature: float = 0.0
    top_p: float = 0.7
    timeout: float = 60.0


class RetryConfig(BaseModel):
    model: int = 3
    screenshot: int = 5
    execute: int = 1
    delay_seconds: float = 0.0


class AgentConfig(BaseModel):
    operator: str = "desktop"
    device_id: Optional[str] = None
    language: str = "en"
    max_loop_count: int = MAX_LOOP_COUNT
    loop_interval_ms: int = 0
    factors: Tuple[int, int] = DEFAULT_FACTORS
    max_history_images: int = MAX_HISTORY_IMAGES
    set_of_marks: bool = False
    plan_before_run: bool = False
    model: ModelConfig = Field(default_factory=ModelConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _env_overrides() -> Dict[str, Any]:
    model: Dict[str, Any] = {}
    if os.getenv("VLM_BASE_URL"):
        model["base_url"] = os.getenv("VLM_BASE_URL")
    api_key = os.getenv("VLM_API_KEY") or os.getenv("OPENAI_API_KEY")
    if api_key:
        model["api_key"] = api_key
    if os.getenv("VLM_MODEL_NAME"):
        model["model"] = os.getenv("VLM_MODEL_NAME")

    out: Dict[str, Any] = {}
    if model:
        out["model"] = model
    if os.getenv("ANDROID_DEVICE_ID"):
        out["device_id"] = os.getenv("ANDROID_DEVICE_ID")
    if os.getenv("DEVICE_AGENT_OPERATOR"):
        out["operator"] = os.getenv("DEVICE_AGENT_OPERATOR")
    return out


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> AgentConfig:
    """
    Resolve the agent configuration.
    Precedence: explicit overrides (CLI flags) > environment > YAML file > defaults.
    """
    cfg_path = Path(path) if path else DEFAULT_CONFIG_PATH
    data = _read_yaml(cfg_path)
    data = _merge(data, _env_overrides())
    if overrides:
        data = _merge(data, {k: v for k, v in overrides.items() if v is not None})
    return AgentConfig(**data)
