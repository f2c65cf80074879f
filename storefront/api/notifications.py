import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.api.deps import get_db
from storefront.core.auth import require_admin
from storefront.notifications import NotificationKind
from storefront.notifications.config import read_setting_rows, save_mail_settings
from storefront.notifications.dispatcher import Mailer, get_mailer
from storefront.schemas import MailSettings, TestEmail

router = APIRouter()

_SECRET_KEYS = {"smtpPassword", "mailApiKey"}
_MASK = "********"

@router.get("/v1/settings/mail", response_model=MailSettings)
def get_mail_settings(_=Depends(require_admin), db: Session = Depends(get_db)):
    rows = read_setting_rows(db)
    return {k: (_MASK if k in _SECRET_KEYS and v else v) for k, v in rows.items()}

@router.put("/v1/settings/mail", response_model=MailSettings)
def put_mail_settings(payload: MailSettings, _=Depends(require_admin), db: Session = Depends(get_db)):
    values = {k: v for k, v in payload.model_dump(exclude_none=True).items() if v != _MASK}
    save_mail_settings(db, values)
    return get_mail_settings(_, db)

@router.post("/v1/test-email")
def send_test_email(payload: TestEmail, _=Depends(require_admin), mailer: Mailer = Depends(get_mailer)):
    # delivered inline, not queued
    sent = mailer.deliver({
        "id": uuid.uuid4().hex,
        "kind": NotificationKind.WELCOME.value,
        "recipient": payload.to,
        "data": {"name": "there", "email": payload.to},
    })
    return {"sent": sent}
