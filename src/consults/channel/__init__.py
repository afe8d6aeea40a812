"""Email channel registry.

Uses the fake adapter by default; ``EMAIL_ADAPTER=smtp`` switches to SMTP,
configured through ``SMTP_HOST``, ``SMTP_PORT``, ``SMTP_USERNAME``,
``SMTP_PASSWORD`` and ``SMTP_SENDER``.
"""

import os

from consults.channel.email_port import EmailPort

_email_channel: EmailPort | None = None


def _build_from_env() -> EmailPort:
    adapter = os.environ.get("EMAIL_ADAPTER", "fake").lower()
    if adapter == "smtp":
        from consults.channel.smtp_email import SmtpEmailAdapter

        return SmtpEmailAdapter(
            host=os.environ["SMTP_HOST"],
            port=int(os.environ.get("SMTP_PORT", "587")),
            username=os.environ.get("SMTP_USERNAME"),
            password=os.environ.get("SMTP_PASSWORD"),
            sender=os.environ.get("SMTP_SENDER", "no-reply@rxgate.local"),
        )
    if adapter == "fake":
        from consults.channel.fake_email import FakeEmailAdapter

        return FakeEmailAdapter()
    raise ValueError(f"Unknown email adapter: {adapter}")


def get_email_channel() -> EmailPort:
    """Return the configured email adapter (singleton)."""
    global _email_channel
    if _email_channel is None:
        _email_channel = _build_from_env()
    return _email_channel


def set_email_channel(channel: EmailPort) -> None:
    global _email_channel
    _email_channel = channel


def reset_email_channel() -> None:
    """Reset the channel singleton (useful for testing)."""
    global _email_channel
    _email_channel = None
