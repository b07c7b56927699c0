"""Production configuration guard: enforces hard constraints in production.

The guard validates that production-critical settings are sane before the
service starts or a consumer syncs. It fails hard (raises
``ProductionConfigError``) if any constraint is violated.

Other code should not scatter ``if is_production`` checks; the guard
ensures the system is in a known-good state at startup.
"""

from __future__ import annotations

import logging

from manifestsync.config import SyncSettings
from manifestsync.errors import ProductionConfigError

logger = logging.getLogger(__name__)


def collect_config_violations(config: SyncSettings) -> list[str]:
    """Return constraint violations that apply in every environment."""
    violations: list[str] = []
    if config.max_manifest_bytes <= 0:
        violations.append("max_manifest_bytes must be positive.")
    if config.max_attempts < 1:
        violations.append("max_attempts must be at least 1.")
    if config.publish_max_attempts < 1:
        violations.append("publish_max_attempts must be at least 1.")
    if config.budget_seconds <= 0:
        violations.append("budget_seconds must be positive.")
    if config.latest_cache_ttl_seconds < 0:
        violations.append("latest_cache_ttl_seconds must not be negative.")
    return violations


def enforce_production_constraints(
    config: SyncSettings, *, remote_url: str | None = None
) -> None:
    """Validate all production-critical configuration constraints.

    Constraints enforced
    --------------------
    1. Basic numeric sanity (all environments).
    2. Debug mode must be disabled in production.
    3. In production, consumers (callers passing *remote_url*) must fetch
       over HTTPS. Content is hash-verified either way, but a plaintext
       ``latest`` answer could be replayed to pin an old revision.

    Raises
    ------
    ProductionConfigError
        If any constraint is violated.
    """
    violations = collect_config_violations(config)

    if config.is_production:
        if config.debug:
            violations.append(
                "debug=True is not allowed in production. "
                "Set MANIFESTSYNC_DEBUG=false."
            )
        if remote_url is not None and not remote_url.startswith("https://"):
            violations.append(
                f"remote_url {remote_url!r} must use https:// in production."
            )

    if violations:
        msg = (
            "Configuration guard failed.\n"
            + "\n".join(f"  - {v}" for v in violations)
        )
        logger.critical(msg)
        raise ProductionConfigError(msg)

    logger.debug("Configuration guard passed (environment=%s).", config.environment)
