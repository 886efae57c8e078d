"""Run configuration for the delete-by-query orchestrator.

Every setting can come from the environment (or a ``.env`` file loaded by
the entry point); command line flags override the environment.

Environment variables supported
--------------------------------
DBQ_URL:                  Base URL of the store (default: http://localhost:9200)
DBQ_INDEX:                Index pattern to delete from (default: *)
DBQ_REQUESTS_PER_SECOND:  Throttle passed to the delete-by-query (default: 100)
DBQ_SCROLL_SIZE:          Batch size per scroll request (default: store default)
DBQ_PAUSE_ON_ERRORS:      Cooldown in seconds before relaunching (default: 300)
DBQ_POLL_INTERVAL_SEC:    Seconds between two task status checks (default: 10)
DBQ_INITIAL_POLL_DELAY_SEC: Seconds to wait before the first status check (default: 2)
DBQ_CANCEL_TIMEOUT_SEC:   Seconds to wait for a cancel acknowledgment (default: 30)
DBQ_HTTP_TIMEOUT_SEC:     Timeout applied to every HTTP request (default: 60)
"""

import math
import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

from .errors import ConfigError

DEFAULT_URL = "http://localhost:9200"
DEFAULT_INDEX = "*"
DEFAULT_REQUESTS_PER_SECOND = 100
DEFAULT_PAUSE_ON_ERRORS = 300.0
DEFAULT_POLL_INTERVAL = 10.0
DEFAULT_INITIAL_POLL_DELAY = 2.0
DEFAULT_CANCEL_TIMEOUT = 30.0
DEFAULT_HTTP_TIMEOUT = 60.0


@dataclass(frozen=True)
class RunConfig:
    """Immutable settings resolved once at startup."""
    query: Dict[str, Any]
    index: str = DEFAULT_INDEX
    url: str = DEFAULT_URL
    requests_per_second: int = DEFAULT_REQUESTS_PER_SECOND
    scroll_size: Optional[int] = None
    pause_on_errors: float = DEFAULT_PAUSE_ON_ERRORS
    poll_interval: float = DEFAULT_POLL_INTERVAL
    initial_poll_delay: float = DEFAULT_INITIAL_POLL_DELAY
    cancel_timeout: float = DEFAULT_CANCEL_TIMEOUT
    http_timeout: float = DEFAULT_HTTP_TIMEOUT

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Raise ConfigError if any setting is out of range."""
        if not isinstance(self.query, dict):
            raise ConfigError(f"query must be a JSON object, got {type(self.query).__name__}")
        if not self.index:
            raise ConfigError("index pattern must not be empty")
        if not self.url or not self.url.startswith(("http://", "https://")):
            raise ConfigError(f"url must be an http(s) URL, got {self.url!r}")

        positive = ["requests_per_second", "pause_on_errors", "poll_interval", "cancel_timeout", "http_timeout"]
        for name in positive:
            value = getattr(self, name)
            if value is None or not math.isfinite(value) or value <= 0:
                raise ConfigError(f"{name} must be a finite number greater than 0, got {value!r}")

        if self.scroll_size is not None and self.scroll_size <= 0:
            raise ConfigError(f"scroll_size must be greater than 0, got {self.scroll_size!r}")
        if not math.isfinite(self.initial_poll_delay) or self.initial_poll_delay < 0:
            raise ConfigError(f"initial_poll_delay must be a finite number, not negative, got {self.initial_poll_delay!r}")

    @classmethod
    def from_env(cls, query: Dict[str, Any], **overrides: Any) -> "RunConfig":
        """Build a config from environment variables, then apply *overrides*.

        Overrides whose value is ``None`` are ignored so unset command line
        flags fall back to the environment.
        """
        values: Dict[str, Any] = {
            "query": query,
            "index": os.getenv("DBQ_INDEX", DEFAULT_INDEX),
            "url": os.getenv("DBQ_URL", DEFAULT_URL),
            "requests_per_second": _env_number("DBQ_REQUESTS_PER_SECOND", int, DEFAULT_REQUESTS_PER_SECOND),
            "scroll_size": _env_number("DBQ_SCROLL_SIZE", int, None),
            "pause_on_errors": _env_number("DBQ_PAUSE_ON_ERRORS", float, DEFAULT_PAUSE_ON_ERRORS),
            "poll_interval": _env_number("DBQ_POLL_INTERVAL_SEC", float, DEFAULT_POLL_INTERVAL),
            "initial_poll_delay": _env_number("DBQ_INITIAL_POLL_DELAY_SEC", float, DEFAULT_INITIAL_POLL_DELAY),
            "cancel_timeout": _env_number("DBQ_CANCEL_TIMEOUT_SEC", float, DEFAULT_CANCEL_TIMEOUT),
            "http_timeout": _env_number("DBQ_HTTP_TIMEOUT_SEC", float, DEFAULT_HTTP_TIMEOUT),
        }

        known = {f.name for f in fields(cls)}
        for key, value in overrides.items():
            if key not in known:
                raise ConfigError(f"Unknown configuration option: {key}")
            if value is not None:
                values[key] = value

        return cls(**values)

    def describe(self) -> Dict[str, Any]:
        """Settings worth logging at startup (the query is left out)."""
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name != "query"}


def _env_number(name: str, convert, default):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return convert(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
