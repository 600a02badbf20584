from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from storefront.api.deps import get_order_service
from storefront.core.auth import get_business_id
from storefront.db.models import OrderStatus, PaymentMethod
from storefront.schemas import OrderCreate, OrderPage, OrderRead, OrderStatusUpdate
from storefront.services.orders import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderRead, status_code=201)
def create_order(payload: OrderCreate, business_id: int = Depends(get_business_id),
                 svc: OrderService = Depends(get_order_service)):
    return svc.create(business_id=business_id, **payload.model_dump())


@router.get("", response_model=OrderPage)
def list_orders(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100),
                status: Optional[OrderStatus] = None, payment_method: Optional[PaymentMethod] = None,
                shipping_zone_slug: Optional[str] = None,
                min_amount: Optional[float] = Query(None, ge=0), max_amount: Optional[float] = Query(None, ge=0),
                date_from: Optional[datetime] = None, date_to: Optional[datetime] = None,
                business_id: int = Depends(get_business_id), svc: OrderService = Depends(get_order_service)):
    return svc.list(business_id, page=page, limit=limit, status=status, payment_method=payment_method,
                    shipping_zone_slug=shipping_zone_slug, min_amount=min_amount, max_amount=max_amount,
                    date_from=date_from, date_to=date_to)


@router.get("/{order_id}", response_model=OrderRead)
def get_order(order_id: int, business_id: int = Depends(get_business_id),
              svc: OrderService = Depends(get_order_service)):
    return svc.get(business_id, order_id)


@router.patch("/{order_id}/status", response_model=OrderRead)
def update_order_status(order_id: int, payload: OrderStatusUpdate, business_id: int = Depends(get_business_id),
                        svc: OrderService = Depends(get_order_service)):
    return svc.update_status(business_id, order_id, payload.status)


@router.delete("/{order_id}", status_code=204)
def delete_order(order_id: int, business_id: int = Depends(get_business_id),
                 svc: OrderService = Depends(get_order_service)):
    svc.delete(business_id, order_id)
    return Response(status_code=204)
