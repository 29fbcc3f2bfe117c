"""
Audit configuration.

Centralises every tunable limit of a run (page cap, concurrency,
timeouts, static-analysis budgets, cache lifetimes) together with
the server binding and the locations of the site snapshot and the
known-service reference table.

Uses ``pydantic_settings.BaseSettings`` so each field can be
overridden with a ``CONSENT_AUDIT_*`` environment variable (or a
``.env`` file loaded by ``python-dotenv`` at start-up).
"""

from __future__ import annotations

import functools

import pydantic
import pydantic_settings

from consent_audit.utils import logger

log = logger.create_logger("Config")


class AuditSettings(pydantic_settings.BaseSettings):
    """Limits and locations for an audit run.

    Attributes:
        max_pages: Upper bound on pages visited by the live scan.
        concurrency: Number of isolated browsing contexts.
        page_timeout_seconds: Per-page wait in the first pass.
        retry_timeout_seconds: Per-page wait in the retry pass.
        stagger_ms: Delay between successive slot starts.
        max_scan_seconds: Static-analysis wall-clock budget.
        max_files_per_component: Files inspected per component.
        max_file_size: Largest source file read, in bytes.
        static_ttl_seconds: Lifetime of a cached static result.
        results_ttl_seconds: Lifetime of a cached combined result.
        token_ttl_seconds: Lifetime of a scan token.
    """

    model_config = pydantic_settings.SettingsConfigDict(env_prefix="CONSENT_AUDIT_", extra="ignore")

    max_pages: int = pydantic.Field(default=20, ge=2)
    concurrency: int = pydantic.Field(default=3, ge=1)
    page_timeout_seconds: float = pydantic.Field(default=20.0, gt=0)
    retry_timeout_seconds: float = pydantic.Field(default=30.0, gt=0)
    stagger_ms: int = pydantic.Field(default=200, ge=0)

    max_scan_seconds: float = pydantic.Field(default=60.0, gt=0)
    max_files_per_component: int = pydantic.Field(default=200, ge=1)
    max_file_size: int = pydantic.Field(default=524288, ge=1)
    theme_files: list[str] = pydantic.Field(default_factory=lambda: ["header.php", "footer.php", "functions.php"])

    static_ttl_seconds: int = 3600
    results_ttl_seconds: int = 7 * 24 * 3600
    token_ttl_seconds: int = 3600

    fetch_timeout_seconds: float = 15.0
    user_agent: str = "ConsentAudit-Scanner/1.0"

    host: str = "0.0.0.0"
    port: int = 3001
    public_base_url: str = "http://localhost:3001"
    site_snapshot: str = "site-snapshot.json"
    reference_data: str | None = None
    headless: bool = True


@functools.cache
def get_settings() -> AuditSettings:
    """Return the process-wide settings (read once from the environment)."""
    settings = AuditSettings()
    log.debug(
        "Settings loaded",
        {"maxPages": settings.max_pages, "concurrency": settings.concurrency, "snapshot": settings.site_snapshot},
    )
    return settings
