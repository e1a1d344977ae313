"""Configuration loading and validation for dualchat sessions."""

from __future__ import annotations

from copy import deepcopy
import logging
import os
from pathlib import Path
from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from .exceptions import ConfigValidationError

import tomllib  # stdlib since Python 3.11 (project requires >=3.11)

LOGGER = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "dualchat"
CONFIG_PATH = CONFIG_DIR / "config.toml"

API_KEY_ENV = "DUALCHAT_API_KEY"
VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


def _require_text(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError("Expected a string value.")
    normalized = value.strip()
    if not normalized:
        raise ValueError("String value must not be empty.")
    return normalized


def _require_http_url(value: str, field_name: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme.lower() not in {"http", "https"}:
        raise ValueError(f"{field_name} must use http or https scheme.")
    if not parsed.hostname:
        raise ValueError(f"{field_name} must include a hostname.")
    return value.rstrip("/")


class SamplingSettings(BaseModel):
    """Generation parameters shared by every backend."""

    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    top_k: int = Field(default=40, ge=1, le=1000)
    token_buffer: int = Field(default=256, ge=1, le=1_000_000)
    max_tokens: int = Field(default=2048, ge=1, le=1_000_000)
    seed: int | None = None


class RemoteSettings(BaseModel):
    """Chat-completion API endpoint and credentials."""

    base_url: str = "https://openrouter.ai/api/v1"
    api_key: str = ""
    model: str = "openai/gpt-4o-mini"
    referer: str = ""
    title: str = "dualchat"
    timeout: float = Field(default=120.0, gt=0, le=3600)

    @field_validator("base_url", mode="before")
    @classmethod
    def _validate_base_url(cls, value: Any) -> str:
        return _require_http_url(_require_text(value), "remote.base_url")

    @field_validator("model", mode="before")
    @classmethod
    def _validate_model(cls, value: Any) -> str:
        return _require_text(value)

    @field_validator("api_key", "referer", "title", mode="before")
    @classmethod
    def _normalize_optional(cls, value: Any) -> str:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError("Expected a string value.")
        return value.strip()


class LocalSettings(BaseModel):
    """Ollama host and model used as the local inference engine."""

    host: str = "http://localhost:11434"
    model: str = "llama3.2"
    timeout: int = Field(default=120, ge=1, le=3600)
    think: bool = False

    @field_validator("host", mode="before")
    @classmethod
    def _validate_host(cls, value: Any) -> str:
        return _require_http_url(_require_text(value), "local.host")

    @field_validator("model", mode="before")
    @classmethod
    def _validate_model(cls, value: Any) -> str:
        return _require_text(value)


class SessionSettings(BaseModel):
    """Which backend a session talks to and how it is primed."""

    backend: Literal["remote", "local", "echo"] = "remote"
    system_prompt: str = "You are a helpful assistant."
    result_preview_chars: int = Field(default=100, ge=1, le=100_000)

    @field_validator("backend", mode="before")
    @classmethod
    def _normalize_backend(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("backend must be a string.")
        return value.strip().lower()

    @field_validator("system_prompt", mode="before")
    @classmethod
    def _normalize_prompt(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Expected a string value.")
        return value.strip()


class LoggingConfig(BaseModel):
    """Logging behavior and output destinations."""

    level: str = "INFO"
    structured: bool = True
    log_to_file: bool = False
    log_file_path: str = "~/.local/state/dualchat/app.log"

    @field_validator("level", mode="before")
    @classmethod
    def _validate_level(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Logging level must be a string.")
        normalized = value.strip().upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(f"Unsupported log level {normalized!r}.")
        return normalized

    @field_validator("log_file_path", mode="before")
    @classmethod
    def _validate_log_file_path(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("log_file_path must be a string.")
        return _require_text(value)


class Config(BaseModel):
    """Root configuration model for all sections."""

    model_config = ConfigDict(populate_by_name=True)
    session: SessionSettings = SessionSettings()
    sampling: SamplingSettings = SamplingSettings()
    remote: RemoteSettings = RemoteSettings()
    local: LocalSettings = LocalSettings()
    logging: LoggingConfig = LoggingConfig()


DEFAULT_CONFIG: dict[str, dict[str, Any]] = Config().model_dump()


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override values onto base values."""
    merged: dict[str, Any] = deepcopy(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _apply_environment(raw: dict[str, Any]) -> dict[str, Any]:
    """Fill the remote API key from the environment when the file leaves it blank."""
    api_key = os.environ.get(API_KEY_ENV, "").strip()
    if not api_key:
        return raw
    remote = raw.setdefault("remote", {})
    if isinstance(remote, dict) and not str(remote.get("api_key") or "").strip():
        remote["api_key"] = api_key
    return raw


def _validate_config(raw: dict[str, Any]) -> Config:
    """Validate merged config and fall back to safe defaults when possible."""
    try:
        return Config.model_validate(raw)
    except ValidationError as exc:
        LOGGER.warning(
            "config.invalid",
            extra={"event": "config.invalid", "reason": str(exc)},
        )
        return Config.model_validate(_apply_environment(deepcopy(DEFAULT_CONFIG)))
    except Exception as exc:  # noqa: BLE001 - unexpected model construction failure.
        raise ConfigValidationError(f"Unable to validate configuration: {exc}") from exc


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from TOML, merge with defaults, and validate.

    A missing file yields the defaults; an unreadable or invalid file is
    logged and also yields the defaults.
    """
    target_path = config_path or CONFIG_PATH

    raw_data: dict[str, Any] = {}
    if target_path.exists():
        try:
            raw_data = tomllib.loads(target_path.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            LOGGER.warning(
                "config.parse_failed",
                extra={
                    "event": "config.parse_failed",
                    "path": str(target_path),
                    "reason": str(exc),
                },
            )
            raw_data = {}

    merged = _deep_merge(DEFAULT_CONFIG, raw_data)
    return _validate_config(_apply_environment(merged))


def build_session(config: Config, tool_registry: Any | None = None) -> Any:
    """Wire a ``ChatSession`` for the backend selected in ``config``."""
    from .providers.base import SamplingConfig
    from .session import ChatSession

    sampling = SamplingConfig(**config.sampling.model_dump())
    backend = config.session.backend
    if backend == "remote":
        if not config.remote.api_key:
            LOGGER.warning(
                "config.remote.no_api_key",
                extra={"event": "config.remote.no_api_key", "env": API_KEY_ENV},
            )
        from .providers.remote import RemoteApiAdapter

        provider = RemoteApiAdapter(
            base_url=config.remote.base_url,
            api_key=config.remote.api_key,
            model=config.remote.model,
            tool_registry=tool_registry,
            sampling=sampling,
            referer=config.remote.referer,
            title=config.remote.title,
            timeout=config.remote.timeout,
        )
    elif backend == "local":
        from .providers.local import LocalInferenceAdapter
        from .providers.ollama_engine import OllamaInferenceEngine

        engine = OllamaInferenceEngine(
            model=config.local.model,
            host=config.local.host,
            timeout=config.local.timeout,
            think=config.local.think,
        )
        provider = LocalInferenceAdapter(
            engine, tool_registry=tool_registry, sampling=sampling
        )
    else:
        from .providers.echo import EchoProvider

        provider = EchoProvider()

    LOGGER.info(
        "config.session.built",
        extra={"event": "config.session.built", "backend": backend},
    )
    return ChatSession(
        provider,
        system_prompt=config.session.system_prompt,
        result_preview_chars=config.session.result_preview_chars,
    )
