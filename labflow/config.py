from __future__ import annotations

import os
from typing import Dict, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_BATCH_PAUSE_MS,
    DEFAULT_BATCH_SIZE,
    DEFAULT_FAILURE_THRESHOLD,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_RESET_TIMEOUT_MS,
    DEFAULT_RETENTION_DAYS,
    DEFAULT_STALE_AFTER_MINUTES,
    DEFAULT_SWEEP_INTERVAL_SECONDS,
)


class RetryConfig(BaseModel):
    """Retry settings applied to every provider call."""

    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    base_delay_ms: int = Field(default=DEFAULT_BASE_DELAY_MS, ge=0)
    classify_errors: bool = False


class RateLimitRule(BaseModel):
    """Call budget for one class of operation."""

    name: str
    limit: int = Field(ge=1)
    window_ms: int = Field(ge=1)


def _default_rate_limits() -> Dict[str, RateLimitRule]:
    return {
        "api": RateLimitRule(name="api", limit=100, window_ms=60_000),
        "transcription": RateLimitRule(name="transcription", limit=10, window_ms=60_000),
        "processing": RateLimitRule(name="processing", limit=20, window_ms=60_000),
        "email": RateLimitRule(name="email", limit=5, window_ms=60_000),
        "auth": RateLimitRule(name="auth", limit=10, window_ms=900_000),
    }


class CircuitBreakerConfig(BaseModel):
    """Per-provider failure protection."""

    enabled: bool = True
    failure_threshold: int = Field(default=DEFAULT_FAILURE_THRESHOLD, ge=1)
    reset_timeout_ms: int = Field(default=DEFAULT_RESET_TIMEOUT_MS, ge=0)


class BulkConfig(BaseModel):
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, ge=1)
    batch_pause_ms: int = Field(default=DEFAULT_BATCH_PAUSE_MS, ge=0)


class StepsConfig(BaseModel):
    stale_after_minutes: int = DEFAULT_STALE_AFTER_MINUTES
    retention_days: int = DEFAULT_RETENTION_DAYS


class OpenAIConfig(BaseModel):
    """Speech-to-text and extraction model settings."""

    api_key: Optional[str] = None
    base_url: str = "https://api.openai.com/v1"
    transcription_model: str = "whisper-1"
    language: str = "en"
    extraction_model: str = "openai:gpt-4o-mini"
    timeout_seconds: float = 120.0


class ResendConfig(BaseModel):
    api_key: Optional[str] = None
    base_url: str = "https://api.resend.com"
    sender: str = "LabFlow <notifications@labflow.app>"
    timeout_seconds: float = 30.0


class DeliveryConfig(BaseModel):
    individual: bool = False


class LabflowConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    retry: RetryConfig = RetryConfig()
    circuit_breaker: CircuitBreakerConfig = CircuitBreakerConfig()
    rate_limits: Dict[str, RateLimitRule] = Field(default_factory=_default_rate_limits)
    rate_limit_sweep_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS
    bulk: BulkConfig = BulkConfig()
    steps: StepsConfig = StepsConfig()
    openai: OpenAIConfig = OpenAIConfig()
    resend: ResendConfig = ResendConfig()
    delivery: DeliveryConfig = DeliveryConfig()

    def rate_limit(self, name: str) -> Optional[RateLimitRule]:
        return self.rate_limits.get(name)


def load_config(path: Optional[str] = None) -> LabflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to LABFLOW_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("LABFLOW_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        if data.get("rate_limits"):
            # configured rules extend the defaults; names default to their key
            rules = {k: v.model_dump() for k, v in _default_rate_limits().items()}
            for name, rule in data["rate_limits"].items():
                rules[name] = {"name": name, **(rule or {})}
            data["rate_limits"] = rules
        config = LabflowConfig(**data)
    else:
        config = LabflowConfig()

    env_db_url = os.getenv("LABFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    if os.getenv("OPENAI_API_KEY"):
        config.openai.api_key = os.getenv("OPENAI_API_KEY")
    if os.getenv("RESEND_API_KEY"):
        config.resend.api_key = os.getenv("RESEND_API_KEY")
    return config
