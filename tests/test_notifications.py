"""Tests for mail configuration, templates, transports and dispatch."""

import threading
import time

import httpx
import pytest

from storefront.core.config import settings
from storefront.kafka import producer
from storefront.notifications import NotificationKind
from storefront.notifications import transport as transport_mod
from storefront.notifications.config import MailConfig, read_setting_rows, resolve_mail_config, save_mail_settings
from storefront.notifications.dispatcher import KafkaOutbox, Mailer, NotificationDispatcher
from storefront.notifications.templates import render


@pytest.fixture
def bare_env(monkeypatch):
    monkeypatch.setattr(settings, "MAIL_TRANSPORT", "smtp")
    monkeypatch.setattr(settings, "SMTP_HOST", "")
    monkeypatch.setattr(settings, "SMTP_USER", "")
    monkeypatch.setattr(settings, "SMTP_PASSWORD", "")
    monkeypatch.setattr(settings, "FROM_EMAIL", "no-reply@example.local")


def message(kind, recipient="ada@example.com", data=None):
    return {"id": "m1", "kind": NotificationKind(kind).value, "recipient": recipient, "data": data or {}}


class TestMailConfig:
    def test_missing_host_resolves_to_none(self, bare_env):
        assert resolve_mail_config({}) is None

    def test_settings_rows_override_env(self, bare_env):
        cfg = resolve_mail_config({"smtpHost": "mail.internal", "smtpPort": "2525", "fromEmail": "shop@example.com"})
        assert cfg.host == "mail.internal"
        assert cfg.port == 2525
        assert cfg.from_email == "shop@example.com"

    def test_relay_needs_credentials(self, bare_env):
        assert resolve_mail_config({"transportType": "relay", "smtpHost": "smtp.example.com"}) is None
        cfg = resolve_mail_config({
            "transportType": "relay",
            "smtpHost": "smtp.example.com",
            "smtpUser": "user",
            "smtpPassword": "pw",
        })
        assert cfg.transport == "relay"

    def test_http_needs_url_and_key(self, bare_env):
        assert resolve_mail_config({"transportType": "http", "mailApiUrl": "https://mail.example.com/send"}) is None

    def test_unknown_transport(self, bare_env):
        assert resolve_mail_config({"transportType": "pigeon", "smtpHost": "x"}) is None

    def test_save_and_read_rows(self, db):
        save_mail_settings(db, {"smtpHost": "mail.internal", "fromEmail": "shop@example.com"})
        save_mail_settings(db, {"smtpHost": "mail2.internal"})
        assert read_setting_rows(db) == {"smtpHost": "mail2.internal", "fromEmail": "shop@example.com"}

    def test_save_rejects_unknown_key(self, db):
        with pytest.raises(KeyError):
            save_mail_settings(db, {"favouriteColour": "blue"})


class TestTemplates:
    def test_order_confirmation_escapes_values(self):
        out = render(NotificationKind.ORDER_CONFIRMATION, {
            "order_number": "ORD-1",
            "customer_name": "<script>alert(1)</script>",
            "items": [{"name": "Lamp & Shade", "sku": "L1", "quantity": 2,
                       "unit_price_cents": 1000, "line_total_cents": 2000}],
            "subtotal_cents": 2000,
            "total_cents": 2000,
        })
        assert out["subject"] == "Order Confirmation - #ORD-1"
        assert "<script>" not in out["html"]
        assert "&lt;script&gt;" in out["html"]
        assert "Lamp &amp; Shade" in out["html"]
        assert "$20.00" in out["html"]

    def test_text_part_has_no_tags(self):
        out = render(NotificationKind.WELCOME, {"name": "Ada", "email": "ada@example.com"})
        assert "<" not in out["text"]
        assert "Ada" in out["text"]

    def test_low_stock_subject_counts_products(self):
        out = render("low-stock-alert", {"products": [
            {"name": "A", "sku": "A1", "in_stock": 0, "reorder_level": 5},
            {"name": "B", "sku": "B1", "in_stock": 2, "reorder_level": 5},
        ]})
        assert out["subject"] == "Low Stock Alert - 2 Product(s) Need Attention"

    def test_every_kind_has_a_template(self):
        samples = {
            NotificationKind.ORDER_CONFIRMATION: {"order_number": "1"},
            NotificationKind.ADMIN_NEW_ORDER: {"order_number": "1"},
            NotificationKind.SHIPPING_NOTIFICATION: {"order_number": "1"},
            NotificationKind.WELCOME: {},
            NotificationKind.PASSWORD_RESET: {"reset_url": "https://example.com/r"},
            NotificationKind.REVIEW_REQUEST: {"order_number": "1"},
            NotificationKind.LOW_STOCK_ALERT: {"products": []},
        }
        for kind in NotificationKind:
            assert render(kind, samples[kind])["subject"]


class TestMailer:
    def test_missing_config_is_skipped(self, transport):
        mailer = Mailer(config_provider=lambda: None, transport_factory=lambda cfg: transport)
        assert mailer.deliver(message("welcome")) is False
        assert transport.sent == []

    def test_admin_kind_goes_to_admin_address(self, mailer, transport):
        assert mailer.deliver(message("low-stock-alert", recipient=None, data={"products": []})) is True
        assert transport.sent[0]["to"] == "admin@example.com"

    def test_customer_kind_without_recipient_is_skipped(self, mailer, transport):
        assert mailer.deliver(message("welcome", recipient=None)) is False
        assert transport.sent == []

    def test_transport_failure_returns_false(self, mailer, transport):
        transport.fail = True
        assert mailer.deliver(message("welcome")) is False

    def test_config_provider_failure_returns_false(self, transport):
        def broken():
            raise RuntimeError("settings table missing")

        mailer = Mailer(config_provider=broken, transport_factory=lambda cfg: transport)
        assert mailer.deliver(message("welcome")) is False


class TestDispatcher:
    def test_send_is_queued_and_delivered(self, dispatcher, outbox, transport):
        assert dispatcher.send(NotificationKind.WELCOME, "ada@example.com", {"name": "Ada"}) is True
        outbox.join()
        assert transport.subjects() == ["Welcome to E-Commerce Store"]

    def test_outbox_failure_returns_false(self):
        class FullOutbox:
            def put(self, message):
                raise RuntimeError("queue full")

        assert NotificationDispatcher(FullOutbox()).send(NotificationKind.WELCOME, "a@example.com", {}) is False

    def test_kafka_outbox_publishes_message(self, monkeypatch):
        published = []
        monkeypatch.setattr(producer, "send", lambda topic, key, value: published.append((topic, key, value)))
        outbox = KafkaOutbox("notification.events")
        dispatcher = NotificationDispatcher(outbox)
        assert dispatcher.send(NotificationKind.REVIEW_REQUEST, "ada@example.com", {"order_number": "1"}) is True
        outbox.join()
        outbox.stop()
        topic, key, value = published[0]
        assert topic == "notification.events"
        assert key == value["id"]
        assert value["kind"] == "review-request"

    def test_slow_broker_does_not_block_sender(self, monkeypatch):
        release = threading.Event()
        published = []

        def stalled_send(topic, key, value):
            release.wait(timeout=10)
            published.append(key)

        monkeypatch.setattr(producer, "send", stalled_send)
        outbox = KafkaOutbox("notification.events")
        dispatcher = NotificationDispatcher(outbox)
        try:
            started = time.monotonic()
            assert dispatcher.send(NotificationKind.WELCOME, "ada@example.com", {}) is True
            assert dispatcher.send(NotificationKind.WELCOME, "bob@example.com", {}) is True
            assert time.monotonic() - started < 1
            assert published == []
        finally:
            release.set()
            outbox.join()
            outbox.stop()
        assert len(published) == 2

    def test_publish_failure_is_swallowed(self, monkeypatch):
        def down(topic, key, value):
            raise ConnectionError("broker unreachable")

        monkeypatch.setattr(producer, "send", down)
        outbox = KafkaOutbox("notification.events")
        assert NotificationDispatcher(outbox).send(NotificationKind.WELCOME, "ada@example.com", {}) is True
        outbox.join()
        outbox.stop()


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host, self.port = host, port
        self.calls = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.calls.append("starttls")

    def login(self, user, password):
        self.calls.append(("login", user))

    def send_message(self, msg):
        self.calls.append(("send", msg["To"], msg["Subject"]))


class TestTransports:
    def test_relay_uses_starttls_and_login(self, monkeypatch):
        FakeSMTP.instances = []
        monkeypatch.setattr(transport_mod.smtplib, "SMTP", FakeSMTP)
        cfg = MailConfig(transport="relay", from_email="shop@example.com", host="smtp.example.com",
                         port=587, user="shop", password="pw")
        transport_mod.build_transport(cfg).send("ada@example.com", "Hi", "<p>Hi</p>", "Hi")
        calls = FakeSMTP.instances[0].calls
        assert calls == ["starttls", ("login", "shop"), ("send", "ada@example.com", "Hi")]

    def test_direct_smtp_with_credentials_upgrades_first(self, monkeypatch):
        FakeSMTP.instances = []
        monkeypatch.setattr(transport_mod.smtplib, "SMTP", FakeSMTP)
        cfg = MailConfig(transport="smtp", from_email="shop@example.com", host="mail.internal",
                         port=25, user="shop", password="pw")
        transport_mod.build_transport(cfg).send("ada@example.com", "Hi", "<p>Hi</p>")
        assert FakeSMTP.instances[0].calls[:2] == ["starttls", ("login", "shop")]

    def test_direct_smtp_without_credentials_stays_plain(self, monkeypatch):
        FakeSMTP.instances = []
        monkeypatch.setattr(transport_mod.smtplib, "SMTP", FakeSMTP)
        cfg = MailConfig(transport="smtp", from_email="shop@example.com", host="localhost", port=1025)
        transport_mod.build_transport(cfg).send("ada@example.com", "Hi", "<p>Hi</p>")
        assert FakeSMTP.instances[0].calls == [("send", "ada@example.com", "Hi")]

    def test_port_465_uses_implicit_tls(self, monkeypatch):
        FakeSMTP.instances = []
        monkeypatch.setattr(transport_mod.smtplib, "SMTP_SSL", FakeSMTP)
        cfg = MailConfig(transport="relay", from_email="shop@example.com", host="smtp.example.com",
                         port=465, user="shop", password="pw")
        transport_mod.build_transport(cfg).send("ada@example.com", "Hi", "<p>Hi</p>")
        assert "starttls" not in FakeSMTP.instances[0].calls

    def test_http_api_posts_json(self, monkeypatch):
        seen = {}

        def fake_post(self, url, json=None, headers=None, **kwargs):
            seen.update(url=url, json=json, headers=headers)
            return httpx.Response(202, request=httpx.Request("POST", url))

        monkeypatch.setattr(httpx.Client, "post", fake_post)
        cfg = MailConfig(transport="http", from_email="shop@example.com",
                         api_url="https://mail.example.com/send", api_key="k123")
        transport_mod.build_transport(cfg).send("ada@example.com", "Hi", "<p>Hi</p>", "Hi")
        assert seen["headers"]["Authorization"] == "Bearer k123"
        assert seen["json"]["to"] == [{"email": "ada@example.com"}]

    def test_http_api_error_raises(self, monkeypatch):
        def fake_post(self, url, **kwargs):
            return httpx.Response(500, request=httpx.Request("POST", url))

        monkeypatch.setattr(httpx.Client, "post", fake_post)
        cfg = MailConfig(transport="http", from_email="shop@example.com",
                         api_url="https://mail.example.com/send", api_key="k123")
        with pytest.raises(httpx.HTTPStatusError):
            transport_mod.build_transport(cfg).send("ada@example.com", "Hi", "<p>Hi</p>")
