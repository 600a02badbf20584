"""Outbound queue for post-commit side effects.

Services never call the broadcaster, the chat channel or the cache directly;
once their transaction has committed they enqueue a task here. A task is a
JSON-safe dict with a ``kind`` and the tenant it belongs to:

* ``broadcast``: push ``event``/``data`` to the tenant room
* ``notify_order_status``: run the customer notification for ``order_id``
* ``invalidate_catalog``: bust the tenant's public catalog cache

``KafkaSideEffects`` publishes tasks keyed by tenant, so one tenant's tasks are
consumed in the order they were enqueued; ``InlineSideEffects`` dispatches them
in-process. Either way a failing side effect is logged and never reaches the
caller whose data is already committed.
"""

from typing import Any, Callable, Optional

import structlog
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from storefront.channel.port import ChatChannel
from storefront.db.models import OrderStatus
from storefront.services.broadcast import EventBroadcaster
from storefront.services.cache import CatalogCacheInvalidator
from storefront.services.notifications import NotificationService

logger = structlog.get_logger(__name__)

BROADCAST = "broadcast"
NOTIFY_ORDER_STATUS = "notify_order_status"
INVALIDATE_CATALOG = "invalidate_catalog"


class SideEffects:
    def enqueue(self, task: dict) -> None:
        raise NotImplementedError

    def broadcast(self, business_id: int, event: str, data: Any) -> None:
        self.enqueue({"kind": BROADCAST, "business_id": business_id, "event": event, "data": jsonable_encoder(data)})

    def notify_order_status(self, business_id: int, order_id: int, status: OrderStatus) -> None:
        self.enqueue({"kind": NOTIFY_ORDER_STATUS, "business_id": business_id, "order_id": order_id,
                      "status": OrderStatus(status).value})

    def invalidate_catalog(self, business_id: int) -> None:
        self.enqueue({"kind": INVALIDATE_CATALOG, "business_id": business_id})


class SideEffectDispatcher:
    def __init__(self, session_factory: Callable[[], Session], broadcaster: EventBroadcaster,
                 channel: ChatChannel, cache: Optional[CatalogCacheInvalidator] = None,
                 rating_base_url: str = ""):
        self.session_factory = session_factory
        self.broadcaster = broadcaster
        self.channel = channel
        self.cache = cache
        self.rating_base_url = rating_base_url

    def dispatch(self, task: dict) -> None:
        kind = task.get("kind")
        if kind == BROADCAST:
            self.broadcaster.emit(task["business_id"], task["event"], task["data"])
        elif kind == NOTIFY_ORDER_STATUS:
            with self.session_factory() as db:
                notifications = NotificationService(db, self.channel, self.broadcaster, self.rating_base_url)
                notifications.on_order_status_changed(task["order_id"], OrderStatus(task["status"]))
        elif kind == INVALIDATE_CATALOG:
            if self.cache is None:
                return
            with self.session_factory() as db:
                self.cache.invalidate_by_business_id(db, task["business_id"])
        else:
            logger.warning("Unknown side effect", kind=kind)


class InlineSideEffects(SideEffects):
    def __init__(self, dispatcher: SideEffectDispatcher):
        self.dispatcher = dispatcher

    def enqueue(self, task: dict) -> None:
        try:
            self.dispatcher.dispatch(task)
        except Exception:
            logger.exception("Side effect failed", kind=task.get("kind"), business_id=task.get("business_id"))


class KafkaSideEffects(SideEffects):
    def __init__(self, topic: str, send: Optional[Callable[..., None]] = None):
        self.topic = topic
        if send is None:
            from storefront.kafka.producer import send
        self._send = send

    def enqueue(self, task: dict) -> None:
        try:
            self._send(self.topic, key=str(task["business_id"]), value=task)
        except Exception:
            logger.exception("Side effect not published", kind=task.get("kind"), business_id=task.get("business_id"))
