"""Runtime configuration for the consults context.

Values come from environment variables so that the same build can run in
development, staging and production. ``get_config()`` caches the parsed
values; tests swap them with ``set_config()`` / ``reset_config()``.
"""

import os
from dataclasses import dataclass, field


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _str_env(name: str) -> str | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


@dataclass(frozen=True)
class GatingConfig:
    """Tunables for approvals, gates and outbox dispatch."""

    approval_validity_days: int = 90
    freshness_window_days: int = 90

    default_webhook_url: str | None = None
    default_signing_secret: str | None = None
    default_ops_email: str | None = None
    webhook_timeout_seconds: float = 10.0
    webhook_connect_timeout_seconds: float = 3.0

    outbox_max_attempts: int = 5
    outbox_backoff_base_seconds: int = 60
    outbox_backoff_cap_seconds: int = 3600
    outbox_batch_size: int = 50
    reconcile_batch_size: int = 200
    outbox_claim_lease_seconds: int = 300
    dispatch_interval_seconds: int = 120

    fulfillment_stages: frozenset[str] = field(default_factory=lambda: frozenset({"processing", "fulfilled"}))

    @classmethod
    def from_env(cls) -> "GatingConfig":
        stages = _str_env("FULFILLMENT_STAGES")
        return cls(
            approval_validity_days=_int_env("CONSULT_APPROVAL_VALIDITY_DAYS", 90),
            freshness_window_days=_int_env("CONSULT_FRESHNESS_WINDOW_DAYS", 90),
            default_webhook_url=_str_env("DEFAULT_FULFILLMENT_WEBHOOK_URL"),
            default_signing_secret=_str_env("OUTBOX_SIGNING_SECRET"),
            default_ops_email=_str_env("DEFAULT_FULFILLMENT_EMAIL"),
            webhook_timeout_seconds=_float_env("WEBHOOK_TIMEOUT_SECONDS", 10.0),
            webhook_connect_timeout_seconds=_float_env("WEBHOOK_CONNECT_TIMEOUT_SECONDS", 3.0),
            outbox_max_attempts=_int_env("OUTBOX_MAX_ATTEMPTS", 5),
            outbox_backoff_base_seconds=_int_env("OUTBOX_BACKOFF_BASE_SECONDS", 60),
            outbox_backoff_cap_seconds=_int_env("OUTBOX_BACKOFF_CAP_SECONDS", 3600),
            outbox_batch_size=_int_env("OUTBOX_BATCH_SIZE", 50),
            reconcile_batch_size=_int_env("RECONCILE_BATCH_SIZE", 200),
            outbox_claim_lease_seconds=_int_env("OUTBOX_CLAIM_LEASE_SECONDS", 300),
            dispatch_interval_seconds=_int_env("OUTBOX_DISPATCH_INTERVAL_SECONDS", 120),
            fulfillment_stages=(
                frozenset(s.strip().lower() for s in stages.split(",") if s.strip())
                if stages
                else frozenset({"processing", "fulfilled"})
            ),
        )


_current_config: GatingConfig | None = None


def get_config() -> GatingConfig:
    """Return the active configuration, reading the environment on first use."""
    global _current_config
    if _current_config is None:
        _current_config = GatingConfig.from_env()
    return _current_config


def set_config(config: GatingConfig) -> None:
    """Override the active configuration (useful for tests)."""
    global _current_config
    _current_config = config


def reset_config() -> None:
    """Drop the cached configuration so the environment is read again."""
    global _current_config
    _current_config = None
