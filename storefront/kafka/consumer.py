import json, threading
from kafka import KafkaConsumer
import structlog
from storefront.core.config import settings

logger = structlog.get_logger(__name__)

_stop = threading.Event()
_thread = None

def _run(mailer):
    consumer = KafkaConsumer(
        settings.TOPIC_NOTIFICATION_EVENTS,
        bootstrap_servers=[settings.KAFKA_BOOTSTRAP],
        group_id="storefront-notifications",
        value_deserializer=lambda v: json.loads(v.decode("utf-8")),
        enable_auto_commit=True,
        auto_offset_reset="earliest",
        consumer_timeout_ms=1000,
    )
    try:
        while not _stop.is_set():
            for msg in consumer:
                mailer.deliver(msg.value)
                if _stop.is_set():
                    break
    finally:
        consumer.close()

def start(mailer):
    global _thread
    if _thread and _thread.is_alive():
        return
    _stop.clear()
    _thread = threading.Thread(target=_run, args=(mailer,), daemon=True, name="notification-consumer")
    _thread.start()
    logger.info("Notification consumer started", topic=settings.TOPIC_NOTIFICATION_EVENTS)

def stop():
    _stop.set()
