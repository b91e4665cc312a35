"""
Run configuration from environment variables.

The configuration is read once, before a run, and handed to the runner and
to every scenario builder. Nothing reads the environment mid-run.

Usage:
    from loadwright.config import RunConfig

    config = RunConfig.from_env()
    print(config.base_url, config.out_dir)
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

import httpx

from loadwright.exceptions import ConfigError

DEFAULT_BASE_URL = "http://localhost:4000"
DEFAULT_PASSWORD = "TestPass123!"
DEFAULT_HTTP_TIMEOUT = 60.0


@dataclass(frozen=True)
class RunConfig:
    """
    Immutable run configuration.

    Attributes:
        base_url: Root URL of the target API, without trailing slash.
        username: Login name; scenarios generate a random one when unset.
        password: Login password.
        out_dir: Directory that receives summary.txt and summary.html.
        http_timeout: Per-request timeout in seconds.
        log_level: Logging level name used by the CLI.
    """

    base_url: str = DEFAULT_BASE_URL
    username: Optional[str] = None
    password: str = DEFAULT_PASSWORD
    out_dir: Path = Path(".")
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        object.__setattr__(self, "base_url", _validate_base_url(self.base_url))
        object.__setattr__(self, "out_dir", Path(self.out_dir))
        if self.http_timeout <= 0:
            raise ConfigError(
                "http_timeout must be positive",
                option="http_timeout",
                details={"value": self.http_timeout},
            )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RunConfig":
        """Build a config from BASE_URL, USERNAME, PASSWORD, OUT_DIR and
        LOADWRIGHT_* variables. Unset variables fall back to defaults."""
        env = os.environ if environ is None else environ
        return cls(
            base_url=env.get("BASE_URL") or DEFAULT_BASE_URL,
            username=env.get("USERNAME") or None,
            password=env.get("PASSWORD") or DEFAULT_PASSWORD,
            out_dir=Path(env.get("OUT_DIR") or "."),
            http_timeout=_parse_float(
                env.get("LOADWRIGHT_HTTP_TIMEOUT"), "LOADWRIGHT_HTTP_TIMEOUT",
                DEFAULT_HTTP_TIMEOUT,
            ),
            log_level=(env.get("LOADWRIGHT_LOG_LEVEL") or "INFO").upper(),
        )

    def replace(self, **overrides: object) -> "RunConfig":
        """Return a copy with non-None overrides applied (CLI flags)."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return dataclasses.replace(self, **changes)

    def url(self, path: str) -> str:
        """Join a path onto the base URL."""
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.base_url}{path}"


def _validate_base_url(value: str) -> str:
    try:
        parsed = httpx.URL(value)
    except (httpx.InvalidURL, TypeError) as exc:
        raise ConfigError(
            f"Invalid base URL: {value!r}", option="base_url", code="invalid_base_url"
        ) from exc
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise ConfigError(
            f"Invalid base URL: {value!r} (expected http(s)://host[:port])",
            option="base_url",
            code="invalid_base_url",
        )
    return str(value).rstrip("/")


def _parse_float(raw: Optional[str], name: str, default: float) -> float:
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(
            f"{name} must be a number, got {raw!r}", option=name
        ) from exc
