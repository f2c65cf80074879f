"""Mail transport configuration.

Resolved from the ``site_settings`` table with the environment as fallback and
handed to the mailer as a value; nothing reads settings rows behind its back.
"""

from dataclasses import dataclass

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.db.models import SiteSetting, now_utc
from storefront.db.session import SessionLocal

logger = structlog.get_logger(__name__)

TRANSPORT_KINDS = ("smtp", "relay", "sendmail", "http")

# site_settings key -> MailConfig field
SETTING_KEYS = {
    "transportType": "transport",
    "smtpHost": "host",
    "smtpPort": "port",
    "smtpUser": "user",
    "smtpPassword": "password",
    "fromEmail": "from_email",
    "fromName": "from_name",
    "mailApiUrl": "api_url",
    "mailApiKey": "api_key",
    "adminNotificationEmail": "admin_email",
}


@dataclass(frozen=True)
class MailConfig:
    transport: str
    from_email: str
    from_name: str = "E-Commerce Store"
    host: str = ""
    port: int = 587
    user: str = ""
    password: str = ""
    api_url: str = ""
    api_key: str = ""
    sendmail_path: str = "/usr/sbin/sendmail"
    admin_email: str = ""

    def missing(self) -> list[str]:
        """Names of the fields this transport still needs."""
        required = {
            "smtp": ["host"],
            "relay": ["host", "user", "password"],
            "sendmail": ["sendmail_path"],
            "http": ["api_url", "api_key"],
        }.get(self.transport)
        if required is None:
            return ["transport"]
        return [f for f in required + ["from_email"] if not getattr(self, f)]


def _env_defaults() -> dict:
    return {
        "transport": settings.MAIL_TRANSPORT,
        "host": settings.SMTP_HOST,
        "port": str(settings.SMTP_PORT),
        "user": settings.SMTP_USER,
        "password": settings.SMTP_PASSWORD,
        "from_email": settings.FROM_EMAIL,
        "from_name": settings.FROM_NAME,
        "api_url": settings.MAIL_API_URL,
        "api_key": settings.MAIL_API_KEY,
        "admin_email": settings.ADMIN_EMAIL,
    }


def resolve_mail_config(rows: dict[str, str]) -> MailConfig | None:
    """Build a MailConfig from settings rows over env defaults; None if incomplete."""
    values = _env_defaults()
    for key, field_name in SETTING_KEYS.items():
        if rows.get(key):
            values[field_name] = rows[key]
    if not values["from_email"]:
        values["from_email"] = values["user"]
    try:
        port = int(values.pop("port") or 587)
    except ValueError:
        port = 587
    cfg = MailConfig(port=port, sendmail_path=settings.SENDMAIL_PATH, **values)
    missing = cfg.missing()
    if missing:
        logger.warning("Mail configuration incomplete", transport=cfg.transport, missing=missing)
        return None
    return cfg


def read_setting_rows(db: Session) -> dict[str, str]:
    rows = db.execute(select(SiteSetting).where(SiteSetting.key.in_(list(SETTING_KEYS)))).scalars()
    return {r.key: r.value for r in rows}


def load_mail_config() -> MailConfig | None:
    db = SessionLocal()
    try:
        return resolve_mail_config(read_setting_rows(db))
    except Exception as exc:
        logger.error("Failed to load mail configuration", error=str(exc))
        return None
    finally:
        db.close()


def save_mail_settings(db: Session, values: dict[str, str]) -> None:
    for key, value in values.items():
        if key not in SETTING_KEYS:
            raise KeyError(key)
        row = db.get(SiteSetting, key)
        if row is None:
            row = SiteSetting(key=key, value=value)
        else:
            row.value = value
            row.updated_at = now_utc()
        db.add(row)
    db.commit()
