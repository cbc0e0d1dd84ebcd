"""
PRISM Configuration — pydantic-settings based.

Service-wide settings are read from environment variables (PRISM_ prefix) or a
.env file. Per-scan options live in ScanSettings, whose defaults come from here.
"""

from pydantic import Field
from pydantic_settings import BaseSettings

APP_VERSION = "1.0.0"


class Settings(BaseSettings):
    """Application-wide settings sourced from environment variables."""

    # ── Execution pool ──
    pool_size: int = Field(
        default=4, ge=1, description="Number of isolated matching units in the pool"
    )
    pool_kind: str = Field(
        default="process",
        description="'process' for isolated worker processes, 'thread' for hosts without process support",
    )
    pool_timeout_seconds: float = Field(
        default=30.0, description="Max time to wait for one pool unit round trip"
    )

    # ── Fetching ──
    concurrency_limit: int = Field(
        default=10, ge=1, description="Max external resource fetches in flight"
    )
    max_file_size_kb: int = Field(
        default=2048, description="External bodies above this size are skipped"
    )
    fetch_timeout_seconds: float = Field(
        default=15.0, description="Timeout for a single resource fetch"
    )
    user_agent: str = Field(
        default="prism-scanner/1.0", description="User-Agent header for fetches"
    )

    # ── Scanning ──
    settle_delay_seconds: float = Field(
        default=0.5,
        description="Pause before scanning so dynamically injected content settles",
    )

    # ── Cache ──
    cache_ttl_seconds: int = Field(
        default=3600, description="Time-to-live for cached resource bodies"
    )

    # ── Persistence ──
    filter_store_path: str = Field(
        default="prism_filters.json",
        description="JSON file holding the false-positive set and seen index",
    )
    audit_log_path: str = Field(
        default="audit.jsonl", description="Path to JSON-lines audit log file"
    )

    # ── Server ──
    port: int = Field(default=5001, description="Server port")
    host: str = Field(default="0.0.0.0", description="Server bind host")
    cors_origins: list[str] = Field(
        default=["*"], description="Allowed CORS origins"
    )

    model_config = {
        "env_prefix": "PRISM_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


# Singleton instance, imported by other modules
settings = Settings()
