"""Best-effort notification dispatch.

``NotificationDispatcher.send`` hands a message to an outbox and returns at
once; delivery happens on a worker (an in-process thread, or the Kafka
consumer). Nothing in here raises into the caller: every failure is logged and
reported as ``False``. There are no retries.
"""

import queue
import threading
import uuid
from typing import Callable

import structlog

from storefront.core.config import settings
from storefront.kafka import producer
from storefront.notifications import ADMIN_KINDS, NotificationKind
from storefront.notifications.config import MailConfig, load_mail_config
from storefront.notifications.templates import render
from storefront.notifications.transport import MailTransport, build_transport

logger = structlog.get_logger(__name__)


class Mailer:
    def __init__(
        self,
        config_provider: Callable[[], MailConfig | None] = load_mail_config,
        transport_factory: Callable[[MailConfig], MailTransport] = build_transport,
    ):
        self.config_provider = config_provider
        self.transport_factory = transport_factory

    def deliver(self, message: dict) -> bool:
        log = logger.bind(kind=message.get("kind"), message_id=message.get("id"))
        try:
            config = self.config_provider()
            if config is None:
                log.warning("Mail transport not configured; notification skipped")
                return False
            kind = NotificationKind(message["kind"])
            recipient = message.get("recipient")
            if not recipient and kind in ADMIN_KINDS:
                recipient = config.admin_email
            if not recipient:
                log.warning("Notification has no recipient; skipped")
                return False
            rendered = render(kind, message.get("data") or {})
            self.transport_factory(config).send(recipient, rendered["subject"], rendered["html"], rendered["text"])
        except Exception as exc:
            log.error("Notification delivery failed", error=str(exc))
            return False
        log.info("Notification sent", recipient=recipient)
        return True


class ThreadOutbox:
    """In-process queue drained by one daemon worker thread."""

    thread_name = "notification-worker"

    def __init__(self, mailer: Mailer | None):
        self.mailer = mailer
        self._queue: queue.Queue = queue.Queue()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    def _ensure_worker(self):
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._run, daemon=True, name=self.thread_name)
            self._thread.start()

    def _run(self):
        while True:
            message = self._queue.get()
            try:
                if message is None:
                    return
                self.handle(message)
            except Exception as exc:
                logger.error("Notification worker error", error=str(exc))
            finally:
                self._queue.task_done()

    def handle(self, message: dict) -> None:
        self.mailer.deliver(message)

    def put(self, message: dict) -> None:
        self._ensure_worker()
        self._queue.put(message)

    def join(self) -> None:
        """Block until every queued message has been handled."""
        self._queue.join()

    def stop(self) -> None:
        if self._thread and self._thread.is_alive():
            self._queue.put(None)
            self._thread.join(timeout=5)


class KafkaOutbox(ThreadOutbox):
    """Publishes messages for the notification consumer to deliver.

    Publishing runs on the worker thread; a slow or unreachable broker never
    holds up the caller.
    """

    thread_name = "notification-publisher"

    def __init__(self, topic: str | None = None):
        super().__init__(mailer=None)
        self.topic = topic or settings.TOPIC_NOTIFICATION_EVENTS

    def handle(self, message: dict) -> None:
        try:
            producer.send(self.topic, key=message["id"], value=message)
        except Exception as exc:
            logger.error("Notification publish failed", kind=message.get("kind"), message_id=message["id"], error=str(exc))

    def stop(self) -> None:
        super().stop()
        producer.close()


class NotificationDispatcher:
    def __init__(self, outbox):
        self.outbox = outbox

    def send(self, kind: NotificationKind, recipient: str | None, data: dict) -> bool:
        message = {
            "id": uuid.uuid4().hex,
            "kind": NotificationKind(kind).value,
            "recipient": recipient,
            "data": data,
        }
        try:
            self.outbox.put(message)
        except Exception as exc:
            logger.error("Failed to queue notification", kind=message["kind"], error=str(exc))
            return False
        logger.info("Notification queued", kind=message["kind"], message_id=message["id"])
        return True

    def order_placed(self, payload: dict) -> None:
        """Customer confirmation plus the admin new-order alert."""
        self.send(NotificationKind.ORDER_CONFIRMATION, payload.get("customer_email"), payload)
        self.send(NotificationKind.ADMIN_NEW_ORDER, None, payload)

    def stop(self) -> None:
        try:
            self.outbox.stop()
        except Exception as exc:
            logger.warning("Notification outbox did not stop cleanly", error=str(exc))


_dispatcher: NotificationDispatcher | None = None
_mailer: Mailer | None = None

def get_mailer() -> Mailer:
    global _mailer
    if _mailer is None:
        _mailer = Mailer()
    return _mailer

def get_dispatcher() -> NotificationDispatcher:
    global _dispatcher
    if _dispatcher is None:
        if settings.NOTIFY_BACKEND == "kafka":
            _dispatcher = NotificationDispatcher(KafkaOutbox())
        else:
            _dispatcher = NotificationDispatcher(ThreadOutbox(get_mailer()))
    return _dispatcher

def shutdown_dispatcher() -> None:
    global _dispatcher
    if _dispatcher is not None:
        _dispatcher.stop()
        _dispatcher = None
