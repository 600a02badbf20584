import json, threading
import structlog
from kafka import KafkaConsumer
from storefront.core.config import settings

logger = structlog.get_logger(__name__)

_stop = threading.Event()
_thread = None

def _run(dispatcher):
    consumer = KafkaConsumer(
        settings.TOPIC_SIDE_EFFECTS,
        bootstrap_servers=[settings.KAFKA_BOOTSTRAP],
        group_id="storefront-side-effects",
        value_deserializer=lambda v: json.loads(v.decode("utf-8")),
        enable_auto_commit=True,
        auto_offset_reset="earliest",
        consumer_timeout_ms=1000,
    )
    try:
        while not _stop.is_set():
            # iteration ends after consumer_timeout_ms of silence so stop() is honoured
            for msg in consumer:
                try:
                    dispatcher.dispatch(msg.value)
                except Exception:
                    logger.exception("Side effect failed", kind=msg.value.get("kind"), offset=msg.offset)
                if _stop.is_set():
                    break
    finally:
        consumer.close()

def start(dispatcher):
    global _thread
    if _thread and _thread.is_alive():
        return
    _stop.clear()
    _thread = threading.Thread(target=_run, args=(dispatcher,), daemon=True)
    _thread.start()
    logger.info("Side effect consumer started", topic=settings.TOPIC_SIDE_EFFECTS)

def stop():
    _stop.set()
