import logging
from typing import NamedTuple, Optional, Tuple
from urllib.parse import urlsplit

# General
LOG_LEVEL = logging.INFO  # DEBUG for a line per request
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(filename)s:%(lineno)d - %(message)s'

# Run defaults
DEFAULT_METHOD = "GET"
DEFAULT_COUNT = 1
DEFAULT_PARALLEL = 1
DEFAULT_WARMUP = 0
REQUEST_TIMEOUT_SECONDS = 30.0  # Per request, enforced by the HTTP client

# Wait config
RANGE_SEPARATOR = ".."  # e.g. '900ms..1100ms'

# Report config
CSV_FIELDS = ["index", "warmup", "started_at", "wait_ms", "latency_ms", "status", "error_kind", "error"]
PERCENTILES = (90, 95, 99)


class ConfigError(ValueError):
    """Raised for invalid settings before any request is dispatched."""


class RunConfig(NamedTuple):
    url: str
    method: str
    headers: Tuple[Tuple[str, str], ...]
    body: Optional[bytes]
    total_count: int
    parallelism: int
    warmup_count: int
    wait: "WaitPolicy"  # noqa: F821 (wait_policy imports this module)
    insecure_tls: bool = False
    timeout_s: float = REQUEST_TIMEOUT_SECONDS


def validate_run_config(config: RunConfig) -> RunConfig:
    if config.total_count < 1:
        raise ConfigError(f"count must be at least 1, got {config.total_count}")
    if config.parallelism < 1:
        raise ConfigError(f"parallel must be at least 1, got {config.parallelism}")
    if config.warmup_count < 0:
        raise ConfigError(f"warmup must not be negative, got {config.warmup_count}")
    if config.warmup_count > config.total_count:
        raise ConfigError(f"warmup ({config.warmup_count}) must not exceed count ({config.total_count})")
    if config.timeout_s <= 0:
        raise ConfigError(f"timeout must be positive, got {config.timeout_s}")
    if not config.method:
        raise ConfigError("method must not be empty")
    if not config.url:
        raise ConfigError("url must not be empty")
    parts = urlsplit(config.url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ConfigError(f"url must be an absolute http(s) URL, got '{config.url}'")
    return config
