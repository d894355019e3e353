"""Shared configuration classes for offlinesync.

This module defines configuration classes used by the engine, the REST
client and the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ServerConfig:
    """Configuration for connecting to the record backend.

    Attributes:
        server_url: Base URL of the backend (e.g., "https://xyz.supabase.co").
        api_key: Project API key, sent as the ``apikey`` header.
        token: Bearer token of the signed-in caller (defaults to api_key).
        timeout: Request timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    server_url: str
    api_key: str
    token: str | None = None
    timeout: float = 30.0
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize server URL."""
        self.server_url = self.server_url.rstrip("/")

    @property
    def rest_url(self) -> str:
        """Get the base URL of the table REST API."""
        return f"{self.server_url}/rest/v1"

    @property
    def bearer_token(self) -> str:
        """Token used in the Authorization header."""
        return self.token or self.api_key

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS."""
        return self.server_url.startswith("https://")


@dataclass
class SyncConfig:
    """Timing and limits for the sync engine.

    Attributes:
        namespace: Prefix of the durable store keys.
        debounce_delay: Seconds between an enqueue and the pass it requests.
        periodic_interval: Seconds between periodic ticks while online.
        settle_delay: Seconds to wait after reconnecting before syncing.
        operation_delay: Pause between two operations of a pass.
        max_retries: Automatic retries after a failed pass.
        backoff_base: Retry delay multiplier (delay = backoff_base * retry_count).
        probe_interval: Seconds between connectivity probes (0 = no probing).
    """

    namespace: str = "lumos"
    debounce_delay: float = 2.0
    periodic_interval: float = 30.0
    settle_delay: float = 1.0
    operation_delay: float = 0.1
    max_retries: int = 3
    backoff_base: float = 5.0
    probe_interval: float = 0.0

    def __post_init__(self) -> None:
        """Validate limits."""
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.backoff_base < 0 or self.operation_delay < 0:
            raise ValueError("delays must be >= 0")
