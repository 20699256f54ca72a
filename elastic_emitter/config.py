# ==============================================
# Configuration Management
# ==============================================
#
# PURPOSE:
#   Load and validate emitter configuration from environment
#   variables / .env file, or from a host option mapping.
#   Provides typed config objects to all other modules.
#
# CLASSES:
# --------
# - AwsCredentials (dataclass)
#     access_key_id: str
#     secret_access_key: str
#     region: str             (default "us-east-1")
#     session_token: str | None
#     service: str            (default "es")
#
# - BufferConfig (dataclass)
#     buffer_size: int        (default 50)
#     flush_interval_ms: int  (default 1000)
#
# - EmitterConfig (dataclass)
#     backend_endpoint: str | None  (None keeps the emitter disabled)
#     index_prefix: str             (default "api-")
#     credentials: AwsCredentials | None
#     username / password: str | None (HTTP basic auth)
#     request_timeout: float        (default 10.0)
#     buffer: BufferConfig
#
# FUNCTIONS:
# ----------
# - get_config() -> EmitterConfig
#     Load .env using python-dotenv, construct EmitterConfig.
#     Returns the same singleton on repeated calls.
#
# - EmitterConfig.from_options(options: Mapping) -> EmitterConfig
#     Build config from the host's option mapping
#     ("elasticsearch", "elasticsearchIndexPrefix", "aws", ...).
#
# USAGE:
# ------
#   from elastic_emitter.config import get_config
#   config = get_config()
#   print(config.backend_endpoint)
#   print(config.buffer.buffer_size)
#
# ==============================================

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional
from urllib.parse import urlparse

from dotenv import load_dotenv


DEFAULT_INDEX_PREFIX = "api-"


class ConfigError(ValueError):
    """Raised when a configuration value cannot be used."""


@dataclass
class AwsCredentials:
    """AWS credentials used to sign requests to a managed search domain."""
    access_key_id: str
    secret_access_key: str
    region: str = "us-east-1"
    session_token: Optional[str] = None
    service: str = "es"


@dataclass
class BufferConfig:
    """Buffer configuration for record batching."""
    buffer_size: int = 50
    flush_interval_ms: int = 1000


@dataclass
class EmitterConfig:
    """Main emitter configuration."""
    backend_endpoint: Optional[str] = None
    index_prefix: str = DEFAULT_INDEX_PREFIX
    credentials: Optional[AwsCredentials] = None
    username: Optional[str] = None
    password: Optional[str] = None
    request_timeout: float = 10.0
    buffer: BufferConfig = field(default_factory=BufferConfig)

    @property
    def is_complete(self) -> bool:
        """True when there is a backend to ship to."""
        return bool(self.backend_endpoint)

    @classmethod
    def from_options(cls, options: Optional[Mapping[str, Any]]) -> "EmitterConfig":
        """
        Build configuration from a host option mapping.

        Recognized keys:
            elasticsearch              backend endpoint URL
            elasticsearchIndexPrefix   index name prefix
            elasticsearchUsername      basic auth user
            elasticsearchPassword      basic auth password
            aws                        {accessKeyId, secretAccessKey, region, sessionToken}

        Unknown keys are ignored so the host can pass its full option set.
        """
        if not options:
            return cls()

        aws = options.get("aws") or {}
        credentials = None
        # Same rule as get_config: signing needs the full key pair
        if aws.get("accessKeyId") and aws.get("secretAccessKey"):
            credentials = AwsCredentials(
                access_key_id=aws["accessKeyId"],
                secret_access_key=aws["secretAccessKey"],
                region=aws.get("region") or "us-east-1",
                session_token=aws.get("sessionToken"),
            )

        prefix = options.get("elasticsearchIndexPrefix")

        return cls(
            backend_endpoint=options.get("elasticsearch") or None,
            index_prefix=prefix if prefix is not None else DEFAULT_INDEX_PREFIX,
            credentials=credentials,
            username=options.get("elasticsearchUsername") or None,
            password=options.get("elasticsearchPassword") or None,
        )


# Singleton instance
_config_instance: Optional[EmitterConfig] = None


def validate_endpoint(url: str) -> None:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(
            f"Invalid ES_URL '{url}'. Expected an http(s) URL like http://localhost:9200"
        )


def _env_number(name: str, default: str, cast):
    raw = os.getenv(name, default)
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got '{raw}'") from e


def get_config() -> EmitterConfig:
    """
    Load configuration from environment variables / .env file.
    Returns the same singleton instance on repeated calls.

    Returns:
        EmitterConfig: Emitter configuration
    """
    global _config_instance

    if _config_instance is not None:
        return _config_instance

    # Load .env file from project root
    env_path = Path(__file__).parent.parent / ".env"
    load_dotenv(dotenv_path=env_path)

    endpoint = os.getenv("ES_URL") or None
    if endpoint:
        validate_endpoint(endpoint)

    # AWS signing is only used when a key pair is present
    credentials = None
    access_key = os.getenv("AWS_ACCESS_KEY_ID")
    secret_key = os.getenv("AWS_SECRET_ACCESS_KEY")
    if access_key and secret_key:
        credentials = AwsCredentials(
            access_key_id=access_key,
            secret_access_key=secret_key,
            region=os.getenv("AWS_REGION", "us-east-1"),
            session_token=os.getenv("AWS_SESSION_TOKEN") or None,
        )

    buffer_config = BufferConfig(
        buffer_size=_env_number("BUFFER_SIZE", "50", int),
        flush_interval_ms=_env_number("FLUSH_INTERVAL_MS", "1000", int),
    )

    _config_instance = EmitterConfig(
        backend_endpoint=endpoint,
        index_prefix=os.getenv("ES_INDEX_PREFIX", DEFAULT_INDEX_PREFIX),
        credentials=credentials,
        username=os.getenv("ES_USERNAME") or None,
        password=os.getenv("ES_PASSWORD") or None,
        request_timeout=_env_number("ES_REQUEST_TIMEOUT", "10", float),
        buffer=buffer_config,
    )

    return _config_instance


def reset_config() -> None:
    """Forget the cached singleton so the next get_config() reloads."""
    global _config_instance
    _config_instance = None
