"""Public (unauthenticated) storefront endpoints."""

from fastapi import APIRouter, Depends

from storefront.api.deps import get_delivery_service, get_order_service
from storefront.schemas import OrderRead, PublicOrderCreate, RatingCreate, RatingRead
from storefront.services.delivery import DeliveryDispatchService
from storefront.services.orders import OrderService

router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.post("/delivery/ratings", response_model=RatingRead, status_code=201)
def rate_delivery(payload: RatingCreate, svc: DeliveryDispatchService = Depends(get_delivery_service)):
    return svc.rate(payload.order_id, payload.rating, payload.comment, payload.delivery_person_id)


@router.post("/{slug}/orders", response_model=OrderRead, status_code=201)
def create_public_order(slug: str, payload: PublicOrderCreate, svc: OrderService = Depends(get_order_service)):
    customer = payload.customer.model_dump(exclude_unset=True)
    return svc.create_public_order(slug, customer, payload.items, payload.payment_method, notes=payload.notes)
