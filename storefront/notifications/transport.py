import smtplib
import subprocess
from abc import ABC, abstractmethod
from email.message import EmailMessage
from email.utils import formataddr

import httpx

from storefront.notifications.config import MailConfig


class MailTransport(ABC):
    """Sends one rendered message. Raises on failure; the mailer decides what that means."""

    def __init__(self, config: MailConfig):
        self.config = config

    @property
    def sender(self) -> str:
        return formataddr((self.config.from_name, self.config.from_email))

    def build_message(self, to: str, subject: str, html: str, text: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to
        msg.set_content(text or "")
        msg.add_alternative(html, subtype="html")
        return msg

    @abstractmethod
    def send(self, to: str, subject: str, html: str, text: str = "") -> None:
        ...


class SmtpTransport(MailTransport):
    """Direct SMTP, or an authenticated relay when a user is configured."""

    timeout = 10

    def send(self, to: str, subject: str, html: str, text: str = "") -> None:
        msg = self.build_message(to, subject, html, text)
        cfg = self.config
        if cfg.port == 465:
            server = smtplib.SMTP_SSL(cfg.host, cfg.port, timeout=self.timeout)
        else:
            server = smtplib.SMTP(cfg.host, cfg.port, timeout=self.timeout)
        with server as s:
            # never send credentials in clear text
            if cfg.port != 465 and (cfg.transport == "relay" or cfg.user):
                s.starttls()
            if cfg.user:
                s.login(cfg.user, cfg.password)
            s.send_message(msg)


class SendmailTransport(MailTransport):
    """Hands the message to the local MTA."""

    def send(self, to: str, subject: str, html: str, text: str = "") -> None:
        msg = self.build_message(to, subject, html, text)
        subprocess.run(
            [self.config.sendmail_path, "-t", "-oi"],
            input=msg.as_bytes(),
            check=True,
            timeout=30,
        )


class HttpApiTransport(MailTransport):
    """JSON e-mail API (bearer key)."""

    def send(self, to: str, subject: str, html: str, text: str = "") -> None:
        with httpx.Client(timeout=10.0) as client:
            resp = client.post(
                self.config.api_url,
                json={
                    "from": {"email": self.config.from_email, "name": self.config.from_name},
                    "to": [{"email": to}],
                    "subject": subject,
                    "html": html,
                    "text": text,
                },
                headers={"Authorization": f"Bearer {self.config.api_key}"},
            )
            resp.raise_for_status()


TRANSPORTS: dict[str, type[MailTransport]] = {
    "smtp": SmtpTransport,
    "relay": SmtpTransport,
    "sendmail": SendmailTransport,
    "http": HttpApiTransport,
}


def build_transport(config: MailConfig) -> MailTransport:
    return TRANSPORTS[config.transport](config)
