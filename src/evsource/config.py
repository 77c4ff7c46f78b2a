"""Client configuration via environment variables (EVSOURCE_ prefix) or defaults."""

from __future__ import annotations

import httpx
from pydantic_settings import BaseSettings


class EventSourceConfig(BaseSettings):
    default_retry_ms: int = 1000
    connect_timeout: float = 10.0
    read_timeout: float | None = None  # streams are long-lived
    follow_redirects: bool = True
    log_dir: str | None = None
    log_level: str = "INFO"

    model_config = {"env_prefix": "EVSOURCE_"}

    def build_client(self) -> httpx.AsyncClient:
        """Return an HTTP client suited to a long-lived event stream."""
        timeout = httpx.Timeout(self.connect_timeout, read=self.read_timeout)
        return httpx.AsyncClient(timeout=timeout, follow_redirects=self.follow_redirects)
