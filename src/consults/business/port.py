"""Business directory port — per-tenant delivery settings for fulfillment partners."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class BusinessProfile:
    id: str
    name: str
    settings: dict = field(default_factory=dict)


@dataclass(frozen=True)
class DispatchTarget:
    webhook_url: str | None
    signing_secret: str | None
    ops_email: str | None


class BusinessDirectory(ABC):
    @abstractmethod
    def get_business(self, business_id: str) -> BusinessProfile | None:
        """Return the business, or None when it does not exist."""
        ...


def _setting(settings: dict, *keys) -> str | None:
    for key in keys:
        value = settings.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def resolve_dispatch_target(business: BusinessProfile | None, config) -> DispatchTarget:
    """Business-specific webhook settings, falling back to the global defaults."""
    settings = business.settings if business else {}
    return DispatchTarget(
        webhook_url=_setting(settings, "fulfillment_webhook_url") or config.default_webhook_url,
        signing_secret=_setting(settings, "fulfillment_webhook_secret") or config.default_signing_secret,
        ops_email=_setting(settings, "fulfillment_email", "ops_email") or config.default_ops_email,
    )
