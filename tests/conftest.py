"""Pytest fixtures for storefront tests."""

import os

os.environ.setdefault("POSTGRES_DSN", "sqlite://")
os.environ.setdefault("PAYMENT_MODE", "demo")

import fakeredis
import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from storefront.api import deps
from storefront.core.config import settings
from storefront.db.session import Base, get_db
from storefront.notifications.config import MailConfig
from storefront.notifications.dispatcher import Mailer, NotificationDispatcher, ThreadOutbox, get_mailer
from storefront.schemas import ShippingForm
from storefront.services import catalog
from storefront.store.cart_store import CartStore


class RecordingTransport:
    """Mail transport that keeps what it was asked to send."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, to, subject, html, text=""):
        if self.fail:
            raise ConnectionError("SMTP server unreachable")
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})

    def subjects(self):
        return [m["subject"] for m in self.sent]


@pytest.fixture
def engine(tmp_path):
    eng = create_engine(
        f"sqlite:///{tmp_path / 'storefront.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def cart_store():
    return CartStore(client=fakeredis.FakeRedis(decode_responses=True))


@pytest.fixture
def mail_config():
    return MailConfig(
        transport="smtp",
        from_email="shop@example.com",
        host="localhost",
        port=1025,
        admin_email="admin@example.com",
    )


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def mailer(mail_config, transport):
    return Mailer(config_provider=lambda: mail_config, transport_factory=lambda cfg: transport)


@pytest.fixture
def outbox(mailer):
    box = ThreadOutbox(mailer)
    yield box
    box.stop()


@pytest.fixture
def dispatcher(outbox):
    return NotificationDispatcher(outbox)


@pytest.fixture
def make_product(db):
    counter = {"n": 0}

    def _make(title="Widget", price_cents=1000, in_stock=5, reorder_level=2, **extra):
        counter["n"] += 1
        values = {
            "title": title,
            "slug": f"{title.lower().replace(' ', '-')}-{counter['n']}",
            "sku": f"SKU-{counter['n']:03d}",
            "price_cents": price_cents,
            "in_stock": in_stock,
            "reorder_level": reorder_level,
        }
        values.update(extra)
        return catalog.create_product(db, values)

    return _make


@pytest.fixture
def shipping_form():
    return ShippingForm(
        first_name="Ada",
        last_name="Lovelace",
        email="ada@example.com",
        phone="+353 1 555 0100",
        address="1 Analytical Way",
        city="Dublin",
        state="Leinster",
        postal_code="D01XY",
        country="IE",
    )


@pytest.fixture
def shipping_payload(shipping_form):
    return shipping_form.model_dump()


def make_token(email: str, role: str = "customer") -> str:
    return jwt.encode(
        {"sub": email, "role": role, "type": "access"},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


@pytest.fixture
def customer_headers():
    return {"Authorization": f"Bearer {make_token('ada@example.com')}"}


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {make_token('admin@example.com', 'admin')}"}


@pytest.fixture
def client(session_factory, cart_store, dispatcher, mailer):
    from storefront.main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[deps.get_cart_store] = lambda: cart_store
    app.dependency_overrides[deps.get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_mailer] = lambda: mailer
    yield TestClient(app)
    app.dependency_overrides.clear()
