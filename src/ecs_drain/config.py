"""
ECS Drain - Runtime configuration
Settings are read from the Lambda environment once per invocation.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from botocore.config import Config

DEFAULT_POLL_INTERVAL_SECONDS = 10.0
DEFAULT_DEADLINE_SAFETY_MARGIN_SECONDS = 15.0


@dataclass(frozen=True)
class Settings:
    """Data class for drain function settings"""
    log_level: str = "INFO"
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    deadline_safety_margin_seconds: float = DEFAULT_DEADLINE_SAFETY_MARGIN_SECONDS
    api_max_attempts: int = 1
    api_retry_backoff_seconds: float = 2.0
    api_connect_timeout: float = 5.0
    api_read_timeout: float = 30.0
    metrics_namespace: Optional[str] = None
    sns_topic_arn: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        settings = cls(
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            poll_interval_seconds=_number(env, "POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS),
            deadline_safety_margin_seconds=_number(
                env, "DEADLINE_SAFETY_MARGIN_SECONDS", DEFAULT_DEADLINE_SAFETY_MARGIN_SECONDS
            ),
            api_max_attempts=_integer(env, "API_MAX_ATTEMPTS", 1),
            api_retry_backoff_seconds=_number(env, "API_RETRY_BACKOFF_SECONDS", 2.0),
            api_connect_timeout=_number(env, "API_CONNECT_TIMEOUT", 5.0),
            api_read_timeout=_number(env, "API_READ_TIMEOUT", 30.0),
            metrics_namespace=env.get("METRICS_NAMESPACE") or None,
            sns_topic_arn=env.get("SNS_TOPIC_ARN") or None,
        )

        if settings.poll_interval_seconds <= 0:
            raise ValueError("POLL_INTERVAL_SECONDS must be greater than zero")
        if settings.api_max_attempts < 1:
            raise ValueError("API_MAX_ATTEMPTS must be at least 1")

        return settings

    def boto_config(self) -> Config:
        """botocore config shared by every client of an invocation"""
        # botocore sends each request once, RetryPolicy owns retries
        return Config(
            connect_timeout=self.api_connect_timeout,
            read_timeout=self.api_read_timeout,
            retries={"total_max_attempts": 1, "mode": "standard"},
        )


def _number(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return float(default)
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")
    if value < 0:
        raise ValueError(f"{name} must not be negative")
    return value


def _integer(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise ValueError(f"{name} must be a whole number, got {raw!r}")
