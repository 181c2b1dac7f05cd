import os
import smtplib
import ssl
import logging
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr
from typing import Dict, Optional

logger = logging.getLogger(__name__)

SMTP_PREFIXES = ("SMTP_PRIMARY", "SMTP_SECONDARY")
SMTP_TIMEOUT = 20


class EmailDeliveryError(RuntimeError):
    pass


@dataclass
class SMTPConfig:
    host: str
    port: int
    user: Optional[str]
    password: Optional[str]
    use_tls: bool
    use_ssl: bool
    sender: str
    sender_name: Optional[str] = None

    @property
    def from_header(self) -> str:
        if self.sender_name:
            return formataddr((self.sender_name, self.sender))
        return self.sender


def _bool_env(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _load_smtp(prefix: str) -> Optional[SMTPConfig]:
    host = os.environ.get(f"{prefix}_HOST")
    port_raw = os.environ.get(f"{prefix}_PORT")
    sender = os.environ.get(f"{prefix}_FROM")
    if not host or not port_raw or not sender:
        return None

    try:
        port = int(port_raw)
    except ValueError:
        raise EmailDeliveryError(f"Invalid {prefix}_PORT: {port_raw}")

    return SMTPConfig(
        host=host,
        port=port,
        user=os.environ.get(f"{prefix}_USER"),
        password=os.environ.get(f"{prefix}_PASS"),
        use_tls=_bool_env(os.environ.get(f"{prefix}_TLS"), default=True),
        use_ssl=_bool_env(os.environ.get(f"{prefix}_SSL"), default=False),
        sender=sender,
        sender_name=os.environ.get(f"{prefix}_FROM_NAME"),
    )


def describe_email_config() -> Dict[str, Dict[str, str]]:
    """Summary of both SMTP slots with the password masked, for the admin debug view."""
    summary = {}
    for prefix in SMTP_PREFIXES:
        summary[prefix] = {
            "host": os.environ.get(f"{prefix}_HOST") or "NOT SET",
            "port": os.environ.get(f"{prefix}_PORT") or "NOT SET",
            "user": os.environ.get(f"{prefix}_USER") or "NOT SET",
            "password": "***SET***" if os.environ.get(f"{prefix}_PASS") else "NOT SET",
            "from": os.environ.get(f"{prefix}_FROM") or "NOT SET",
        }
    return summary


def _build_message(sender: str, to_email: str, subject: str, html: str, text: str) -> EmailMessage:
    message = EmailMessage()
    message["From"] = sender
    message["To"] = to_email
    message["Subject"] = subject
    message.set_content(text)
    message.add_alternative(html, subtype="html")
    return message


def _connect(config: SMTPConfig):
    if config.use_ssl:
        return smtplib.SMTP_SSL(config.host, config.port, context=ssl.create_default_context(), timeout=SMTP_TIMEOUT)
    return smtplib.SMTP(config.host, config.port, timeout=SMTP_TIMEOUT)


def _send_via_config(config: SMTPConfig, to_email: str, subject: str, html: str, text: str) -> None:
    message = _build_message(config.from_header, to_email, subject, html, text)
    with _connect(config) as server:
        if not config.use_ssl:
            server.ehlo()
            if config.use_tls:
                server.starttls(context=ssl.create_default_context())
                server.ehlo()
        if config.user and config.password:
            server.login(config.user, config.password)
        server.send_message(message)


def send_email(to_email: str, subject: str, html: str, text: str) -> None:
    primary = _load_smtp("SMTP_PRIMARY")
    secondary = _load_smtp("SMTP_SECONDARY")
    if not primary:
        raise EmailDeliveryError("SMTP_PRIMARY configuration missing")

    try:
        _send_via_config(primary, to_email, subject, html, text)
        return
    except (smtplib.SMTPException, OSError) as exc:
        logger.warning("Primary SMTP failed for %s, attempting secondary: %s", to_email, exc)

    if not secondary:
        raise EmailDeliveryError("Primary SMTP failed and SMTP_SECONDARY configuration missing")

    try:
        _send_via_config(secondary, to_email, subject, html, text)
    except (smtplib.SMTPException, OSError) as exc:
        raise EmailDeliveryError(f"Secondary SMTP failed: {exc}") from exc
    logger.info("Email to %s sent via secondary SMTP", to_email)
