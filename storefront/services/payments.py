"""Payment registration and the verify/reject workflow."""

import math
from datetime import datetime
from typing import Callable, Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from storefront.core.errors import ConflictError, NotFoundError
from storefront.db.models import Order, OrderStatus, Payment, PaymentMethod, PaymentStatus
from storefront.db.session import atomic
from storefront.schemas import PaymentRead
from storefront.security.utils import now_utc
from storefront.services.side_effects import SideEffects

logger = structlog.get_logger(__name__)


class PaymentService:
    def __init__(self, db: Session, side_effects: SideEffects, clock: Callable[[], datetime] = now_utc):
        self.db = db
        self.side_effects = side_effects
        self.clock = clock

    def create(self, business_id: int, order_id: int, method: PaymentMethod, reference: Optional[str] = None,
               proof_url: Optional[str] = None, notes: Optional[str] = None) -> Payment:
        order = self.db.get(Order, order_id)
        if order is None or order.business_id != business_id:
            raise NotFoundError("Order")

        with atomic(self.db):
            payment = Payment(
                order=order,
                business_id=business_id,
                method=method,
                amount_cents=order.total_cents,
                status=PaymentStatus.PENDING,
                reference=reference,
                proof_url=proof_url,
                notes=notes,
                created_at=self.clock(),
            )
            self.db.add(payment)
        self.db.refresh(payment)

        logger.info("Payment registered", business_id=business_id, order_id=order.id, payment_id=payment.id,
                    amount_cents=payment.amount_cents)
        self.side_effects.broadcast(business_id, "new_payment", PaymentRead.model_validate(payment))
        return payment

    def _get(self, business_id: int, payment_id: int) -> Payment:
        payment = self.db.get(Payment, payment_id)
        if payment is None or payment.order is None or payment.order.business_id != business_id:
            raise NotFoundError("Payment")
        return payment

    def _settle(self, payment: Payment, status: PaymentStatus, actor: str, notes: Optional[str]) -> None:
        values = {"status": status, "verified_by": actor, "verified_at": self.clock()}
        if notes:
            values["notes"] = func.coalesce(Payment.notes, "") + f"\nVerification: {notes}"
        # a VERIFIED payment is final; concurrent settlements have one winner
        result = self.db.execute(
            update(Payment)
            .where(Payment.id == payment.id, Payment.status != PaymentStatus.VERIFIED)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError("Payment has already been verified")

    def verify(self, business_id: int, payment_id: int, verified_by: str, status: PaymentStatus,
               notes: Optional[str] = None) -> Payment:
        payment = self._get(business_id, payment_id)
        status = PaymentStatus(status)
        order_id = payment.order_id
        confirmed = status == PaymentStatus.VERIFIED

        with atomic(self.db):
            self._settle(payment, status, verified_by, notes)
            if confirmed:
                self.db.execute(
                    update(Order)
                    .where(Order.id == order_id)
                    .values(status=OrderStatus.CONFIRMED, updated_at=self.clock())
                    .execution_options(synchronize_session=False)
                )
        self.db.refresh(payment)

        logger.info("Payment settled", business_id=business_id, payment_id=payment.id, status=status.value,
                    order_confirmed=confirmed)
        self.side_effects.broadcast(business_id, "payment_verified", PaymentRead.model_validate(payment))
        if confirmed:
            self.side_effects.broadcast(business_id, "order_status_changed",
                                        {"order_id": order_id, "status": OrderStatus.CONFIRMED.value})
        return payment

    def reject(self, business_id: int, payment_id: int, rejected_by: str) -> Payment:
        payment = self._get(business_id, payment_id)
        with atomic(self.db):
            self._settle(payment, PaymentStatus.REJECTED, rejected_by, None)
        self.db.refresh(payment)

        logger.info("Payment rejected", business_id=business_id, payment_id=payment.id)
        self.side_effects.broadcast(business_id, "payment_verified", PaymentRead.model_validate(payment))
        return payment

    def list(self, business_id: int, page: int = 1, limit: int = 20, status: Optional[PaymentStatus] = None,
             order_id: Optional[int] = None) -> dict:
        conditions = [Order.business_id == business_id]
        if status:
            conditions.append(Payment.status == status)
        if order_id:
            conditions.append(Payment.order_id == order_id)

        total = self.db.execute(
            select(func.count(Payment.id)).join(Order, Payment.order_id == Order.id).where(*conditions)
        ).scalar_one()
        rows = self.db.execute(
            select(Payment).join(Order, Payment.order_id == Order.id).where(*conditions)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .offset((page - 1) * limit).limit(limit)
        ).scalars().all()
        return {
            "data": rows,
            "meta": {"total": total, "page": page, "limit": limit, "total_pages": math.ceil(total / limit)},
        }
