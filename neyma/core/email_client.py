# neyma/core/email_client.py
"""
Email client used to forward new-order notifications to the shop admin.

Responsibilities:
  - Read SMTP configuration from environment variables.
  - Provide a single send_email(...) function for services to use.
  - Support both TLS (STARTTLS) and SSL connections.

Typical .env configuration (Gmail example with App Password):

    SMTP_HOST=smtp.gmail.com
    SMTP_PORT=465
    SMTP_USERNAME=orders@neyma.ng
    SMTP_PASSWORD=<app password>
    SMTP_FROM_EMAIL=orders@neyma.ng
    SMTP_FROM_NAME=Neyma Orders
    SMTP_USE_TLS=false
    SMTP_USE_SSL=true
"""

import os
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage


def _get_bool_env(name: str, default: bool = False) -> bool:
    """
    Read a boolean env var.

    Accepted truthy values (case-insensitive):
      - "1", "true", "yes", "y"
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y"}


@dataclass(frozen=True)
class SmtpConfig:
    host: str | None
    port: int
    username: str | None
    password: str | None
    from_email: str
    from_name: str
    use_tls: bool
    use_ssl: bool

    @property
    def is_complete(self) -> bool:
        return bool(self.host and self.username and self.password)


def load_smtp_config() -> SmtpConfig:
    """Read SMTP settings from the environment (on every call)."""
    username = os.getenv("SMTP_USERNAME")
    return SmtpConfig(
        host=os.getenv("SMTP_HOST"),
        port=int(os.getenv("SMTP_PORT", "587")),
        username=username,
        password=os.getenv("SMTP_PASSWORD"),
        # Fallback: if FROM_EMAIL is not set, default to username
        from_email=os.getenv("SMTP_FROM_EMAIL", username or ""),
        from_name=os.getenv("SMTP_FROM_NAME", "Neyma Store"),
        use_tls=_get_bool_env("SMTP_USE_TLS", default=True),
        use_ssl=_get_bool_env("SMTP_USE_SSL", default=False),
    )


def is_email_configured() -> bool:
    return load_smtp_config().is_complete


def _create_smtp_client(config: SmtpConfig) -> smtplib.SMTP:
    """
    Create and return an SMTP client configured for TLS or SSL.

      - use_ssl  -> smtplib.SMTP_SSL (e.g., Gmail on 465)
      - else     -> smtplib.SMTP + STARTTLS when use_tls is set (587)
    """
    if not config.host:
        raise RuntimeError("SMTP_HOST is not configured. Please set it in .env.")

    if config.use_ssl:
        server: smtplib.SMTP = smtplib.SMTP_SSL(config.host, config.port, timeout=30)
    else:
        server = smtplib.SMTP(config.host, config.port, timeout=30)
        if config.use_tls:
            server.starttls()

    return server


def send_email(
    to_email: str,
    subject: str,
    text_body: str,
    html_body: str | None = None,
) -> None:
    """
    Send an email to a single recipient.

    Raises
    ------
    RuntimeError:
        If required SMTP configuration is missing.
    smtplib.SMTPException:
        If the underlying SMTP connection or send fails.
    """
    config = load_smtp_config()
    if not config.is_complete:
        raise RuntimeError(
            "SMTP is not configured correctly. "
            "Please set SMTP_HOST, SMTP_USERNAME, and SMTP_PASSWORD in .env."
        )

    msg = EmailMessage()
    msg["From"] = (
        f"{config.from_name} <{config.from_email}>"
        if config.from_email
        else config.username
    )
    msg["To"] = to_email
    msg["Subject"] = subject

    # Always add a plain-text part
    msg.set_content(text_body)

    if html_body:
        msg.add_alternative(html_body, subtype="html")

    server = _create_smtp_client(config)
    try:
        server.login(config.username, config.password)  # type: ignore[arg-type]
        server.send_message(msg)
    finally:
        try:
            server.quit()
        except smtplib.SMTPException:
            # Connection is being torn down anyway.
            pass
