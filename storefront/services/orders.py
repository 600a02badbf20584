"""Order creation and status transitions."""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from storefront.core.errors import NotFoundError, ValidationError
from storefront.db.models import (
    Business, Customer, ExchangeRate, Order, OrderItem, OrderSource, OrderStatus, PaymentMethod, Product,
)
from storefront.db.session import atomic
from storefront.schemas import OrderRead
from storefront.security.utils import now_utc
from storefront.services.side_effects import SideEffects

logger = structlog.get_logger(__name__)


@dataclass
class ItemRequest:
    product_id: int
    quantity: int
    variant_selected: Optional[Dict[str, Any]] = None


def _item(raw) -> ItemRequest:
    if isinstance(raw, ItemRequest):
        return raw
    if isinstance(raw, dict):
        return ItemRequest(**raw)
    return ItemRequest(raw.product_id, raw.quantity, getattr(raw, "variant_selected", None))


def _checked_items(raw_items: List[Any]) -> List[ItemRequest]:
    items = [_item(i) for i in raw_items]
    if not items:
        raise ValidationError("An order needs at least one product", field="items")
    for it in items:
        if it.quantity <= 0:
            raise ValidationError("Quantity must be a positive integer", field="items.quantity")
    return items


def _text_pref(preferences: dict, key: str) -> Optional[str]:
    value = preferences.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def shipping_from_preferences(preferences: Optional[dict]) -> Dict[str, Any]:
    """Pull the shipping choice the storefront stashed in the customer's preferences."""
    preferences = preferences or {}
    cost = preferences.get("shippingCost")
    cost_cents = None
    if isinstance(cost, (int, float)) and not isinstance(cost, bool) and math.isfinite(cost):
        cost_cents = int(round(cost * 100))
    return {
        "shipping_zone_slug": _text_pref(preferences, "shippingZoneSlug"),
        "shipping_method_code": _text_pref(preferences, "shippingMethodCode"),
        "shipping_cost_cents": cost_cents,
    }


class OrderService:
    def __init__(self, db: Session, side_effects: SideEffects, clock: Callable[[], datetime] = now_utc):
        self.db = db
        self.side_effects = side_effects
        self.clock = clock

    def create(self, business_id: int, customer_id: int, items: List[Any], payment_method: PaymentMethod,
               source: Optional[OrderSource] = None, delivery_address: Optional[str] = None,
               notes: Optional[str] = None, exchange_rate: Optional[float] = None,
               shipping_zone_slug: Optional[str] = None, shipping_cost_cents: Optional[int] = None,
               shipping_method_code: Optional[str] = None) -> Order:
        items = _checked_items(items)

        customer = self.db.get(Customer, customer_id)
        if customer is None or customer.business_id != business_id:
            raise NotFoundError("Customer")

        prices = self._prices(business_id, items)
        total = sum(prices[it.product_id] * it.quantity for it in items)

        with atomic(self.db):
            order = Order(
                business_id=business_id,
                customer_id=customer_id,
                status=OrderStatus.PENDING,
                source=source or OrderSource.WEB,
                payment_method=payment_method,
                total_cents=total,
                exchange_rate=exchange_rate,
                delivery_address=delivery_address,
                notes=notes,
                shipping_zone_slug=shipping_zone_slug,
                shipping_cost_cents=shipping_cost_cents,
                shipping_method_code=shipping_method_code,
                created_at=self.clock(),
            )
            self.db.add(order)
            self.db.flush()
            for it in items:
                order.items.append(OrderItem(
                    product_id=it.product_id,
                    quantity=it.quantity,
                    unit_price_cents=prices[it.product_id],
                    variant_selected=it.variant_selected,
                ))
        self.db.refresh(order)

        logger.info("Order created", business_id=business_id, order_id=order.id, total_cents=total)
        self.side_effects.broadcast(business_id, "new_order", OrderRead.model_validate(order).model_dump(mode="json"))
        self.side_effects.invalidate_catalog(business_id)
        return order

    def create_public_order(self, slug: str, customer: Dict[str, Any], items: List[Any],
                            payment_method: PaymentMethod, notes: Optional[str] = None) -> Order:
        business = self.db.execute(select(Business).where(Business.slug == slug)).scalars().first()
        if business is None:
            raise NotFoundError("Catalog")

        # products are checked before the customer row is touched
        self._prices(business.id, _checked_items(items))

        phone = customer["phone"]
        # only supplied fields overwrite the stored profile
        fields = {k: customer[k] for k in
                  ("name", "email", "address", "address_notes", "identification", "preferences")
                  if customer.get(k) is not None}
        with atomic(self.db):
            row = self.db.execute(
                select(Customer).where(Customer.business_id == business.id, Customer.phone == phone)
            ).scalars().first()
            if row is None:
                row = Customer(business_id=business.id, phone=phone, **fields)
                self.db.add(row)
            else:
                for k, v in fields.items():
                    setattr(row, k, v)
            self.db.flush()
            customer_id = row.id

        rate = self.db.execute(
            select(ExchangeRate.usd_to_local)
            .where(ExchangeRate.business_id == business.id)
            .order_by(ExchangeRate.created_at.desc(), ExchangeRate.id.desc())
            .limit(1)
        ).scalar()

        return self.create(
            business_id=business.id,
            customer_id=customer_id,
            items=items,
            payment_method=payment_method,
            source=OrderSource.WEB,
            delivery_address=customer.get("address"),
            notes=notes,
            exchange_rate=rate,
            **shipping_from_preferences(customer.get("preferences")),
        )

    def list(self, business_id: int, page: int = 1, limit: int = 20, status: Optional[OrderStatus] = None,
             payment_method: Optional[PaymentMethod] = None, shipping_zone_slug: Optional[str] = None,
             min_amount: Optional[float] = None, max_amount: Optional[float] = None,
             date_from: Optional[datetime] = None, date_to: Optional[datetime] = None) -> dict:
        conditions = [Order.business_id == business_id]
        if status:
            conditions.append(Order.status == status)
        if payment_method:
            conditions.append(Order.payment_method == payment_method)
        if shipping_zone_slug:
            conditions.append(Order.shipping_zone_slug.ilike(f"%{shipping_zone_slug}%"))
        if min_amount:
            conditions.append(Order.total_cents >= int(round(min_amount * 100)))
        if max_amount:
            conditions.append(Order.total_cents <= int(round(max_amount * 100)))
        if date_from:
            conditions.append(Order.created_at >= date_from)
        if date_to:
            conditions.append(Order.created_at <= date_to)

        total = self.db.execute(select(func.count(Order.id)).where(*conditions)).scalar_one()
        rows = self.db.execute(
            select(Order).where(*conditions)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset((page - 1) * limit).limit(limit)
        ).scalars().all()
        return {
            "data": rows,
            "meta": {"total": total, "page": page, "limit": limit, "total_pages": math.ceil(total / limit)},
        }

    def get(self, business_id: int, order_id: int) -> Order:
        order = self.db.get(Order, order_id)
        if order is None or order.business_id != business_id:
            raise NotFoundError("Order")
        return order

    def update_status(self, business_id: int, order_id: int, new_status: OrderStatus) -> Order:
        # any status may follow any other; concurrent writers race, last one wins
        order = self.get(business_id, order_id)
        with atomic(self.db):
            order.status = OrderStatus(new_status)
        self.db.refresh(order)

        logger.info("Order status updated", business_id=business_id, order_id=order_id, status=order.status.value)
        self.side_effects.notify_order_status(business_id, order.id, order.status)
        return order

    def delete(self, business_id: int, order_id: int) -> None:
        order = self.get(business_id, order_id)
        with atomic(self.db):
            self.db.delete(order)
        logger.info("Order deleted", business_id=business_id, order_id=order_id)
        self.side_effects.invalidate_catalog(business_id)

    def _prices(self, business_id: int, items: List[ItemRequest]) -> Dict[int, int]:
        products = self.db.execute(
            select(Product).where(
                Product.id.in_([it.product_id for it in items]),
                Product.business_id == business_id,
                Product.deleted_at.is_(None),
            )
        ).scalars().all()
        if len(products) != len(items):
            raise ValidationError("One or more products do not exist or do not belong to this business",
                                  field="items")
        return {p.id: p.price_cents for p in products}
