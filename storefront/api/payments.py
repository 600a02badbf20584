from typing import Optional

from fastapi import APIRouter, Depends, Query

from storefront.api.deps import get_payment_service
from storefront.core.auth import get_business_id, get_current_identity
from storefront.db.models import PaymentStatus
from storefront.schemas import PaymentCreate, PaymentPage, PaymentRead, PaymentVerify
from storefront.services.payments import PaymentService

router = APIRouter(prefix="/payments", tags=["payments"])


def _actor(identity: dict) -> str:
    return str(identity.get("sub") or "unknown")


@router.post("", response_model=PaymentRead, status_code=201)
def create_payment(payload: PaymentCreate, business_id: int = Depends(get_business_id),
                   svc: PaymentService = Depends(get_payment_service)):
    # payload.amount_cents is ignored, the order total is charged
    return svc.create(business_id, payload.order_id, payload.method, reference=payload.reference,
                      proof_url=payload.proof_url, notes=payload.notes)


@router.get("", response_model=PaymentPage)
def list_payments(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100),
                  status: Optional[PaymentStatus] = None, order_id: Optional[int] = None,
                  business_id: int = Depends(get_business_id), svc: PaymentService = Depends(get_payment_service)):
    return svc.list(business_id, page=page, limit=limit, status=status, order_id=order_id)


@router.patch("/{payment_id}/verify", response_model=PaymentRead)
def verify_payment(payment_id: int, payload: PaymentVerify, identity: dict = Depends(get_current_identity),
                   business_id: int = Depends(get_business_id), svc: PaymentService = Depends(get_payment_service)):
    return svc.verify(business_id, payment_id, _actor(identity), payload.status, payload.notes)


@router.patch("/{payment_id}/reject", response_model=PaymentRead)
def reject_payment(payment_id: int, identity: dict = Depends(get_current_identity),
                   business_id: int = Depends(get_business_id), svc: PaymentService = Depends(get_payment_service)):
    return svc.reject(business_id, payment_id, _actor(identity))
