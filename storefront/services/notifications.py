"""Customer notifications for order status transitions."""

from typing import Optional

import structlog
from sqlalchemy.orm import Session

from storefront.channel.port import ChatChannel
from storefront.db.models import DeliveryOrder, MessageRole, Order, OrderStatus
from storefront.db.session import atomic
from storefront.schemas import CustomerRead, OrderRead
from storefront.services.broadcast import EventBroadcaster
from storefront.services.conversations import append_message, find_or_create_conversation

logger = structlog.get_logger(__name__)

NOTIFIABLE_STATUSES = frozenset({
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
})

_TEMPLATES = {
    OrderStatus.CONFIRMED: "{base} has been confirmed ✅",
    OrderStatus.PREPARING: "{base} is being prepared 🧺",
    OrderStatus.SHIPPED: "{base} is on its way 🚚",
    OrderStatus.DELIVERED: "{base} was delivered 📦",
    OrderStatus.CANCELLED: "{base} was cancelled ❌",
}


def rating_link(base_url: str, delivery_order_id: int) -> str:
    return f"{base_url.rstrip('/')}/rating/{delivery_order_id}"


def build_order_status_message(order_id: Optional[int], status: OrderStatus,
                               delivery: Optional[DeliveryOrder] = None, rating_base_url: str = "") -> str:
    base = f"Your order #{order_id}" if order_id else "Your order"
    text = _TEMPLATES.get(status, "{base} changed status").format(base=base)
    if status == OrderStatus.SHIPPED and delivery is not None:
        text += f". Your delivery code is {delivery.otp_code}; share it with the courier on arrival."
    elif status == OrderStatus.DELIVERED and delivery is not None:
        text += f". Rate your delivery: {rating_link(rating_base_url, delivery.id)}"
    return text


class NotificationService:
    def __init__(self, db: Session, channel: ChatChannel, broadcaster: EventBroadcaster, rating_base_url: str = ""):
        self.db = db
        self.channel = channel
        self.broadcaster = broadcaster
        self.rating_base_url = rating_base_url

    def on_order_status_changed(self, order_id: int, new_status: OrderStatus) -> None:
        """Persist a BOT message for the transition, try to send it, then tell the dashboard.

        No-op for non-notifiable statuses, missing orders and customers without a
        phone. The message stays persisted even when the send fails.
        """
        new_status = OrderStatus(new_status)
        if new_status not in NOTIFIABLE_STATUSES:
            return

        order = self.db.get(Order, order_id)
        if order is None:
            return
        customer = order.customer
        if customer is None or not customer.phone:
            return

        content = build_order_status_message(order.id, new_status, order.delivery, self.rating_base_url)
        with atomic(self.db):
            conversation, _ = find_or_create_conversation(self.db, order.business_id, customer.id)
            append_message(self.db, conversation, MessageRole.BOT, content)

        try:
            self.channel.send_message(order.business_id, customer.phone, content)
        except Exception:
            logger.exception("Chat delivery failed", business_id=order.business_id, order_id=order.id,
                             status=new_status.value)

        self.broadcaster.emit(order.business_id, "order_status_changed", {
            "order_id": order.id,
            "status": new_status.value,
            "customer": CustomerRead.model_validate(customer).model_dump(mode="json"),
            "order": OrderRead.model_validate(order).model_dump(mode="json"),
        })
