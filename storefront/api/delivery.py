from typing import List

from fastapi import APIRouter, Depends

from storefront.api.deps import get_delivery_service
from storefront.core.auth import get_business_id
from storefront.schemas import (
    DeliveryAssign, DeliveryFail, DeliveryOrderEnvelope, DeliveryOrderRead, DeliveryPersonRead, OtpConfirm,
)
from storefront.services.delivery import DeliveryDispatchService

router = APIRouter(prefix="/delivery", tags=["delivery"])


@router.post("/orders/{order_id}/assign", response_model=DeliveryOrderRead, status_code=201)
def assign_delivery(order_id: int, payload: DeliveryAssign, business_id: int = Depends(get_business_id),
                    svc: DeliveryDispatchService = Depends(get_delivery_service)):
    return svc.assign(business_id, order_id, payload.delivery_person_id, payload.notes)


@router.post("/orders/{order_id}/confirm-otp", response_model=DeliveryOrderRead)
def confirm_delivery(order_id: int, payload: OtpConfirm, business_id: int = Depends(get_business_id),
                     svc: DeliveryDispatchService = Depends(get_delivery_service)):
    return svc.confirm_otp(order_id, payload.otp, delivery_person_id=payload.delivery_person_id,
                           business_id=business_id)


@router.post("/orders/{order_id}/pickup", response_model=DeliveryOrderRead)
def pickup_delivery(order_id: int, business_id: int = Depends(get_business_id),
                    svc: DeliveryDispatchService = Depends(get_delivery_service)):
    return svc.mark_picked_up(business_id, order_id)


@router.post("/orders/{order_id}/fail", response_model=DeliveryOrderRead)
def fail_delivery(order_id: int, payload: DeliveryFail, business_id: int = Depends(get_business_id),
                  svc: DeliveryDispatchService = Depends(get_delivery_service)):
    return svc.mark_failed(business_id, order_id, payload.reason)


@router.get("/orders/{order_id}", response_model=DeliveryOrderEnvelope)
def get_delivery(order_id: int, business_id: int = Depends(get_business_id),
                 svc: DeliveryDispatchService = Depends(get_delivery_service)):
    return {"delivery_order": svc.get_by_order(business_id, order_id)}


@router.get("/persons", response_model=List[DeliveryPersonRead])
def list_delivery_persons(business_id: int = Depends(get_business_id),
                          svc: DeliveryDispatchService = Depends(get_delivery_service)):
    return svc.list_persons(business_id)
