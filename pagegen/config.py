import json
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from dotenv import load_dotenv

CONFIG_PATH = Path("config.json")
ENV_OVERRIDE_KEY = "PAGEGEN_ENV_OVERRIDES_CONFIG"
ENV_OVERRIDE_TRUE = {"1", "true", "yes", "on"}

DEFAULT_INTENT_TYPES = ["discovery", "comparison", "detail", "support", "general"]


class ModelConfig(BaseModel):
    provider: Literal["anthropic", "cerebras", "openai"]
    model: str
    max_tokens: int = 4096
    temperature: float = 0.7

    model_config = {"protected_namespaces": ()}


class ModelPreset(BaseModel):
    reasoning: ModelConfig
    content: ModelConfig
    classification: ModelConfig

    def for_role(self, role: str) -> Optional[ModelConfig]:
        if role not in ("reasoning", "content", "classification"):
            return None
        return getattr(self, role)


MODEL_PRESETS: Dict[str, ModelPreset] = {
    "production": ModelPreset(
        reasoning=ModelConfig(provider="anthropic", model="claude-opus-4-6", max_tokens=4096, temperature=0.7),
        content=ModelConfig(provider="cerebras", model="gpt-oss-120b", max_tokens=4096, temperature=0.8),
        classification=ModelConfig(provider="cerebras", model="llama-3.1-8b", max_tokens=500, temperature=0.3),
    ),
    "fast": ModelPreset(
        reasoning=ModelConfig(
            provider="anthropic", model="claude-sonnet-4-5-20250929", max_tokens=4096, temperature=0.5
        ),
        content=ModelConfig(provider="cerebras", model="llama-3.3-70b", max_tokens=4096, temperature=0.8),
        classification=ModelConfig(provider="cerebras", model="llama-3.1-8b", max_tokens=200, temperature=0.3),
    ),
}


def resolve_preset(name: Optional[str]) -> ModelPreset:
    return MODEL_PRESETS.get(str(name or "").strip().lower(), MODEL_PRESETS["production"])


class AppSettings(BaseModel):
    model_preset: str = "production"
    anthropic_base_url: str = "https://api.anthropic.com/v1"
    cerebras_base_url: str = "https://api.cerebras.ai/v1"
    openai_base_url: str = "https://api.openai.com/v1"
    anthropic_api_key: Optional[str] = None
    cerebras_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    request_timeout_s: float = 60.0

    database_path: str = "pagegen.db"
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    generation_batch_size: int = 3
    default_intent_types: List[str] = Field(default_factory=lambda: list(DEFAULT_INTENT_TYPES))

    def credentials(self) -> Dict[str, str]:
        creds = {
            "ANTHROPIC_API_KEY": self.anthropic_api_key or "",
            "CEREBRAS_API_KEY": self.cerebras_api_key or "",
            "OPENAI_API_KEY": self.openai_api_key or "",
        }
        return creds

    def endpoints(self) -> Dict[str, str]:
        return {
            "anthropic": self.anthropic_base_url,
            "cerebras": self.cerebras_base_url,
            "openai": self.openai_base_url,
        }

    def to_safe_dict(self) -> dict:
        data = self.model_dump()
        for key in ("anthropic_api_key", "cerebras_api_key", "openai_api_key"):
            if data.get(key):
                data[key] = "********"
        return data

    model_config = {"protected_namespaces": ()}


def _load_from_env() -> dict:
    load_dotenv()
    env_map = {
        "model_preset": os.getenv("MODEL_PRESET"),
        "anthropic_base_url": os.getenv("ANTHROPIC_BASE_URL"),
        "cerebras_base_url": os.getenv("CEREBRAS_BASE_URL"),
        "openai_base_url": os.getenv("OPENAI_BASE_URL"),
        "anthropic_api_key": os.getenv("ANTHROPIC_API_KEY"),
        "cerebras_api_key": os.getenv("CEREBRAS_API_KEY"),
        "openai_api_key": os.getenv("OPENAI_API_KEY"),
        "request_timeout_s": os.getenv("REQUEST_TIMEOUT_S"),
        "database_path": os.getenv("DATABASE_PATH"),
        "host": os.getenv("HOST"),
        "port": os.getenv("PORT"),
        "log_level": os.getenv("LOG_LEVEL"),
        "generation_batch_size": os.getenv("GENERATION_BATCH_SIZE"),
        "default_intent_types": os.getenv("DEFAULT_INTENT_TYPES"),
    }
    cleaned = {k: v for k, v in env_map.items() if v not in (None, "")}
    if "port" in cleaned:
        cleaned["port"] = int(cleaned["port"])
    if "generation_batch_size" in cleaned:
        cleaned["generation_batch_size"] = int(cleaned["generation_batch_size"])
    if "request_timeout_s" in cleaned:
        cleaned["request_timeout_s"] = float(cleaned["request_timeout_s"])
    if "default_intent_types" in cleaned:
        cleaned["default_intent_types"] = [
            part.strip() for part in str(cleaned["default_intent_types"]).split(",") if part.strip()
        ]
    return cleaned


def _env_overrides_config() -> bool:
    return str(os.getenv(ENV_OVERRIDE_KEY, "")).strip().lower() in ENV_OVERRIDE_TRUE


def load_settings(config_path: Optional[Path] = None) -> AppSettings:
    env_data = _load_from_env()
    path = config_path or CONFIG_PATH
    file_data: Dict[str, Any] = {}
    if path.exists():
        try:
            file_data = json.loads(path.read_text())
        except Exception:
            file_data = {}
    # Config wins by default; allow env overrides only when explicitly enabled.
    if _env_overrides_config():
        merged = {**file_data, **env_data}
    else:
        merged = {**env_data, **file_data}
    # Keys are never written to config.json by save_settings, so backfill them from env.
    for key in ("anthropic_api_key", "cerebras_api_key", "openai_api_key"):
        if not merged.get(key) and env_data.get(key):
            merged[key] = env_data[key]
    if merged.get("generation_batch_size") is not None:
        merged["generation_batch_size"] = max(1, int(merged["generation_batch_size"]))
    return AppSettings(**merged)


def save_settings(settings: AppSettings, config_path: Optional[Path] = None) -> None:
    path = config_path or CONFIG_PATH
    data = settings.model_dump(exclude={"anthropic_api_key", "cerebras_api_key", "openai_api_key"})
    path.write_text(json.dumps(data, indent=2))
