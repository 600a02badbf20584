"""Courier assignment, one-time code confirmation and delivery ratings.

Every state change is a conditional UPDATE checked by rowcount, so two
couriers (or one courier double-tapping) racing on the same delivery end
with one winner and one ``ConflictError``.
"""

from datetime import datetime
from typing import Callable, List, Optional

import structlog
from sqlalchemy import Float, cast, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from storefront.db.models import (
    Business, DeliveryOrder, DeliveryPerson, DeliveryRating, DeliveryStatus, Order, OrderStatus,
)
from storefront.db.session import atomic
from storefront.security.utils import generate_otp, now_utc
from storefront.services.side_effects import SideEffects

logger = structlog.get_logger(__name__)

DEFAULT_PICKUP_ADDRESS = "Main store"
DEFAULT_DELIVERY_ADDRESS = "Customer address"


class DeliveryDispatchService:
    def __init__(self, db: Session, side_effects: SideEffects, clock: Callable[[], datetime] = now_utc,
                 otp_generator: Callable[[], str] = generate_otp):
        self.db = db
        self.side_effects = side_effects
        self.clock = clock
        self.otp_generator = otp_generator

    def _order(self, business_id: int, order_id: int) -> Order:
        order = self.db.get(Order, order_id)
        if order is None or order.business_id != business_id:
            raise NotFoundError("Order")
        return order

    def _delivery(self, order_id: int, business_id: Optional[int] = None) -> DeliveryOrder:
        stmt = select(DeliveryOrder).where(DeliveryOrder.order_id == order_id)
        if business_id is not None:
            stmt = stmt.where(DeliveryOrder.business_id == business_id)
        delivery = self.db.execute(stmt).scalars().first()
        if delivery is None:
            raise NotFoundError("Delivery order")
        return delivery

    def assign(self, business_id: int, order_id: int, delivery_person_id: int,
               notes: Optional[str] = None) -> DeliveryOrder:
        order = self._order(business_id, order_id)
        person = self.db.get(DeliveryPerson, delivery_person_id)
        if person is None or person.business_id != business_id:
            raise NotFoundError("Delivery person")
        if order.delivery is not None:
            raise ConflictError("Order already has a delivery assigned")

        business = self.db.get(Business, business_id)
        now = self.clock()
        with atomic(self.db):
            delivery = DeliveryOrder(
                order=order,
                business_id=business_id,
                delivery_person_id=person.id,
                status=DeliveryStatus.ASSIGNED,
                pickup_address=(business.store_address if business else None) or DEFAULT_PICKUP_ADDRESS,
                pickup_latitude=business.store_latitude if business else None,
                pickup_longitude=business.store_longitude if business else None,
                delivery_address=order.delivery_address or order.shipping_zone_slug or DEFAULT_DELIVERY_ADDRESS,
                delivery_latitude=order.delivery_latitude,
                delivery_longitude=order.delivery_longitude,
                delivery_fee_cents=order.shipping_cost_cents or 0,
                notes=notes,
                otp_code=self.otp_generator(),
                assigned_at=now,
            )
            self.db.add(delivery)
            order.status = OrderStatus.SHIPPED
            person.is_available = False
        self.db.refresh(delivery)

        logger.info("Delivery assigned", business_id=business_id, order_id=order_id,
                    delivery_person_id=delivery_person_id)
        self.side_effects.notify_order_status(business_id, order_id, OrderStatus.SHIPPED)
        return delivery

    def confirm_otp(self, order_id: int, code: str, delivery_person_id: Optional[int] = None,
                    business_id: Optional[int] = None) -> DeliveryOrder:
        delivery = self._delivery(order_id, business_id)
        if delivery_person_id is not None and delivery_person_id != delivery.delivery_person_id:
            raise ForbiddenError("Delivery is assigned to another courier")
        if delivery.status == DeliveryStatus.DELIVERED:
            raise ConflictError("Delivery already confirmed")
        if code != delivery.otp_code:
            raise ValidationError("Invalid delivery code", field="otp")

        now = self.clock()
        with atomic(self.db):
            result = self.db.execute(
                update(DeliveryOrder)
                .where(DeliveryOrder.id == delivery.id, DeliveryOrder.status != DeliveryStatus.DELIVERED)
                .values(status=DeliveryStatus.DELIVERED, delivered_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConflictError("Delivery already confirmed")
            self.db.execute(
                update(Order).where(Order.id == delivery.order_id)
                .values(status=OrderStatus.DELIVERED, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            self.db.execute(
                update(DeliveryPerson).where(DeliveryPerson.id == delivery.delivery_person_id)
                .values(completed_orders=DeliveryPerson.completed_orders + 1,
                        total_deliveries=DeliveryPerson.total_deliveries + 1,
                        is_available=True)
                .execution_options(synchronize_session=False)
            )
        self.db.refresh(delivery)

        logger.info("Delivery confirmed", business_id=delivery.business_id, order_id=order_id)
        self.side_effects.notify_order_status(delivery.business_id, order_id, OrderStatus.DELIVERED)
        return delivery

    def rate(self, order_id: int, rating: int, comment: Optional[str], delivery_person_id: int) -> DeliveryRating:
        delivery = self._delivery(order_id)
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationError("Rating must be an integer between 1 and 5", field="rating")
        if delivery_person_id != delivery.delivery_person_id:
            raise ForbiddenError("Delivery person does not match this delivery")
        if delivery.rating is not None:
            raise ConflictError("Delivery has already been rated")

        try:
            with atomic(self.db):
                row = DeliveryRating(
                    delivery_order=delivery,
                    delivery_person_id=delivery.delivery_person_id,
                    customer_id=delivery.order.customer_id,
                    rating=rating,
                    comment=comment,
                    created_at=self.clock(),
                )
                self.db.add(row)
                self.db.flush()
                self.db.execute(
                    update(DeliveryPerson).where(DeliveryPerson.id == delivery.delivery_person_id)
                    .values(rating_count=DeliveryPerson.rating_count + 1,
                            rating_sum=DeliveryPerson.rating_sum + rating,
                            rating=cast(DeliveryPerson.rating_sum + rating, Float)
                            / (DeliveryPerson.rating_count + 1))
                    .execution_options(synchronize_session=False)
                )
        except IntegrityError:
            # a concurrent rating won the unique key
            raise ConflictError("Delivery has already been rated")
        self.db.refresh(row)

        logger.info("Delivery rated", order_id=order_id, delivery_person_id=delivery_person_id, rating=rating)
        return row

    def _transition(self, business_id: int, order_id: int, allowed: List[DeliveryStatus], **values) -> DeliveryOrder:
        delivery = self._delivery(order_id, business_id)
        result = self.db.execute(
            update(DeliveryOrder)
            .where(DeliveryOrder.id == delivery.id, DeliveryOrder.status.in_(allowed))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError(f"Delivery cannot move to {values['status'].value}")
        return delivery

    def mark_picked_up(self, business_id: int, order_id: int) -> DeliveryOrder:
        with atomic(self.db):
            delivery = self._transition(business_id, order_id, [DeliveryStatus.ASSIGNED],
                                        status=DeliveryStatus.PICKED_UP, picked_up_at=self.clock())
        self.db.refresh(delivery)
        logger.info("Delivery picked up", business_id=business_id, order_id=order_id)
        return delivery

    def mark_failed(self, business_id: int, order_id: int, reason: Optional[str] = None) -> DeliveryOrder:
        values = {"status": DeliveryStatus.FAILED, "failed_at": self.clock()}
        if reason:
            values["notes"] = func.coalesce(DeliveryOrder.notes, "") + f"\nFailed: {reason}"
        with atomic(self.db):
            delivery = self._transition(business_id, order_id, [DeliveryStatus.ASSIGNED, DeliveryStatus.PICKED_UP],
                                        **values)
            self.db.execute(
                update(DeliveryPerson).where(DeliveryPerson.id == delivery.delivery_person_id)
                .values(is_available=True)
                .execution_options(synchronize_session=False)
            )
        self.db.refresh(delivery)
        logger.info("Delivery failed", business_id=business_id, order_id=order_id, reason=reason)
        return delivery

    def get_by_order(self, business_id: int, order_id: int) -> Optional[DeliveryOrder]:
        self._order(business_id, order_id)
        return self.db.execute(
            select(DeliveryOrder).where(DeliveryOrder.order_id == order_id, DeliveryOrder.business_id == business_id)
        ).scalars().first()

    def list_persons(self, business_id: int) -> List[DeliveryPerson]:
        return self.db.execute(
            select(DeliveryPerson)
            .where(DeliveryPerson.business_id == business_id, DeliveryPerson.is_active.is_(True))
            .order_by(DeliveryPerson.name)
        ).scalars().all()
