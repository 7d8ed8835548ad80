import logging
import os
from dataclasses import dataclass, field

from .endpoints import DEFAULT_ENDPOINTS, Endpoint, parse_endpoints
from .retry import RetryPolicy

ENV_PREFIX = "BUNDLE_FANOUT_"

DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"
DEFAULT_CONFIRM_TIMEOUT = 5.0

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def _env(name: str) -> str | None:
    value = os.environ.get(ENV_PREFIX + name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _env_number(name: str, default, cast):
    raw = _env(name)
    if raw is None:
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{ENV_PREFIX}{name} must be positive, got {raw!r}")
    return value


@dataclass
class Settings:
    rpc_url: str = DEFAULT_RPC_URL
    endpoints: list[Endpoint] = field(default_factory=lambda: list(DEFAULT_ENDPOINTS))
    max_attempts: int = 5
    request_timeout: float = 30.0
    confirm_timeout: float = DEFAULT_CONFIRM_TIMEOUT
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from ``BUNDLE_FANOUT_*`` environment variables."""
        endpoints = _env("ENDPOINTS")
        return cls(
            rpc_url=_env("RPC_URL") or DEFAULT_RPC_URL,
            endpoints=parse_endpoints(endpoints) if endpoints else list(DEFAULT_ENDPOINTS),
            max_attempts=_env_number("MAX_ATTEMPTS", 5, int),
            request_timeout=_env_number("REQUEST_TIMEOUT", 30.0, float),
            confirm_timeout=_env_number("CONFIRM_TIMEOUT", DEFAULT_CONFIRM_TIMEOUT, float),
            log_level=(_env("LOG_LEVEL") or "INFO").upper(),
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            request_timeout=self.request_timeout,
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
    # aiohttp access noise is not useful at INFO
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
