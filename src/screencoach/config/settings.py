"""Configuration management for screencoach.

Loads settings from a YAML configuration file with environment variable
overrides. Supports .env files. Every timing and threshold policy used
by the orchestrators lives here rather than in code.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/screencoach.yaml")


class CaptureConfig(BaseModel):
    monitor_index: int = Field(default=1, ge=0, description="mss monitor index (0 = all monitors)")
    change_threshold: float = Field(default=0.02, ge=0.0, le=1.0)
    pixel_delta: int = Field(default=25, ge=0, le=255)
    jpeg_quality: int = Field(default=60, ge=1, le=100)
    max_dimension: int = Field(default=1568, gt=0)


class CoachConfig(BaseModel):
    cycle_interval: float = Field(default=4.0, gt=0)
    frame_retry_delay: float = Field(default=1.0, gt=0)
    retry_backoff: float = Field(default=0.2, ge=0)
    history_limit: int = Field(default=50, gt=0)


class QuotaConfig(BaseModel):
    max_quota: int = Field(default=1500, gt=0)
    safety_limit: int = Field(default=1490, gt=0)

    @model_validator(mode="after")
    def _check_headroom(self) -> QuotaConfig:
        if self.safety_limit >= self.max_quota:
            raise ValueError("safety_limit must be below max_quota")
        return self


class ProvidersConfig(BaseModel):
    gemini_model: str = Field(default="gemini-2.5-flash")
    gemini_embedding_model: str = Field(default="text-embedding-004")
    openai_model: str = Field(default="gpt-4o")
    openai_base_url: str | None = Field(default=None)
    analysis_temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    analysis_max_tokens: int = Field(default=300, gt=0)
    chat_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    chat_max_tokens: int = Field(default=1500, gt=0)
    request_timeout: float = Field(default=60.0, gt=0)


class BackendConfig(BaseModel):
    base_url: str = Field(default="http://localhost:3001/api")
    timeout: float = Field(default=5.0, gt=0)
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=3001, ge=1, le=65535)
    history_limit: int = Field(default=50, gt=0)
    chat_history_limit: int = Field(default=100, gt=0)
    context_top_k: int = Field(default=3, gt=0)


class RealtimeConfig(BaseModel):
    model: str = Field(default="gemini-2.5-flash-native-audio-preview-09-2025")
    voice_name: str = Field(default="Puck")
    video_fps: float = Field(default=2.0, gt=0)
    video_width: int = Field(default=640, gt=0)
    input_sample_rate: int = Field(default=16000, gt=0)
    output_sample_rate: int = Field(default=24000, gt=0)


class StorageConfig(BaseModel):
    state_path: str = Field(default="~/.screencoach/state.json")


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    file: str | None = Field(default=None)


class Settings(BaseSettings):
    """Root configuration for the screencoach system.

    Loads from YAML file and supports environment variable overrides.
    Reads .env files automatically.
    """

    model_config = {
        "env_prefix": "SCREENCOACH_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    # Seeds the credential pool when no keys are stored yet
    api_keys: str = Field(default="")

    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    coach: CoachConfig = Field(default_factory=CoachConfig)
    quota: QuotaConfig = Field(default_factory=QuotaConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    realtime: RealtimeConfig = Field(default_factory=RealtimeConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML values arrive as init kwargs and rank below the environment
        return env_settings, dotenv_settings, init_settings, file_secret_settings


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from YAML + .env + environment variables.

    Priority: env vars > .env file > YAML file > defaults.
    GEMINI_API_KEY and OPENAI_API_KEY only seed ``api_keys`` when
    nothing else sets it.
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    # Load .env file manually for non-prefixed vars
    _load_dotenv()

    yaml_data = {}
    if path.exists():
        with open(path) as f:
            yaml_data = yaml.safe_load(f) or {}
        logger.info("Loaded configuration from %s", path)
    else:
        logger.warning("Config file %s not found, using defaults + env vars", path)

    _apply_env_overrides(yaml_data)

    return Settings(**yaml_data)


def _load_dotenv() -> None:
    """Load .env file into os.environ if it exists."""
    env_path = Path(".env")
    if not env_path.exists():
        return
    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" in line:
                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip().strip('"').strip("'")
                if not os.environ.get(key):
                    os.environ[key] = value


def _apply_env_overrides(yaml_data: dict) -> None:
    """Apply overrides from common non-prefixed environment variables."""
    gemini_key = os.environ.get("GEMINI_API_KEY", "")
    openai_key = os.environ.get("OPENAI_API_KEY", "")

    if not yaml_data.get("api_keys") and not os.environ.get("SCREENCOACH_API_KEYS"):
        seeded = [key for key in (gemini_key, openai_key) if key]
        if seeded:
            yaml_data["api_keys"] = ",".join(seeded)

    base_url = os.environ.get("OPENAI_BASE_URL", "")
    if base_url:
        providers = yaml_data.setdefault("providers", {})
        if not providers.get("openai_base_url"):
            providers["openai_base_url"] = base_url
