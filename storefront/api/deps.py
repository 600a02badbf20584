from fastapi import Depends, Request
from sqlalchemy.orm import Session
from storefront.channel.port import ChatChannel
from storefront.db.session import SessionLocal
from storefront.services.chat import ChatService
from storefront.services.delivery import DeliveryDispatchService
from storefront.services.orders import OrderService
from storefront.services.payments import PaymentService
from storefront.services.side_effects import SideEffects

def get_db():
    db = SessionLocal()
    try: yield db
    finally: db.close()

# app-level collaborators are built at startup and live on app.state
def get_side_effects(request: Request) -> SideEffects:
    return request.app.state.side_effects

def get_channel(request: Request) -> ChatChannel:
    return request.app.state.channel

# services are built per request
def get_order_service(db: Session = Depends(get_db), side_effects: SideEffects = Depends(get_side_effects)) -> OrderService:
    return OrderService(db, side_effects)

def get_payment_service(db: Session = Depends(get_db), side_effects: SideEffects = Depends(get_side_effects)) -> PaymentService:
    return PaymentService(db, side_effects)

def get_delivery_service(db: Session = Depends(get_db), side_effects: SideEffects = Depends(get_side_effects)) -> DeliveryDispatchService:
    return DeliveryDispatchService(db, side_effects)

def get_chat_service(db: Session = Depends(get_db), side_effects: SideEffects = Depends(get_side_effects),
                     channel: ChatChannel = Depends(get_channel)) -> ChatService:
    return ChatService(db, side_effects, channel)
