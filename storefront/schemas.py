from pydantic import BaseModel, Field
from typing import Any, Dict, Optional, List
from datetime import datetime
from storefront.db.models import (
    OrderStatus, OrderSource, PaymentMethod, PaymentStatus, DeliveryStatus,
    Channel, ConversationStatus, MessageRole,
)

# --- orders ---
class OrderItemIn(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    variant_selected: Optional[Dict[str, Any]] = None

class OrderCreate(BaseModel):
    customer_id: int
    items: List[OrderItemIn]
    payment_method: PaymentMethod
    source: Optional[OrderSource] = None
    delivery_address: Optional[str] = None
    notes: Optional[str] = None
    exchange_rate: Optional[float] = Field(default=None, gt=0)
    shipping_zone_slug: Optional[str] = None
    shipping_cost_cents: Optional[int] = Field(default=None, ge=0)
    shipping_method_code: Optional[str] = None

class PublicCustomerIn(BaseModel):
    phone: str = Field(min_length=5)
    name: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    address_notes: Optional[str] = None
    identification: Optional[str] = None
    preferences: Optional[Dict[str, Any]] = None

class PublicOrderCreate(BaseModel):
    customer: PublicCustomerIn
    items: List[OrderItemIn]
    payment_method: PaymentMethod
    notes: Optional[str] = None

class OrderStatusUpdate(BaseModel):
    status: OrderStatus

class CustomerRead(BaseModel):
    id: int
    phone: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    class Config: from_attributes = True

class OrderItemRead(BaseModel):
    id: int
    product_id: int
    quantity: int
    unit_price_cents: int
    variant_selected: Optional[Dict[str, Any]] = None
    class Config: from_attributes = True

class PaymentSummary(BaseModel):
    id: int
    method: PaymentMethod
    amount_cents: int
    status: PaymentStatus
    class Config: from_attributes = True

class DeliveryOrderRead(BaseModel):
    id: int
    order_id: int
    delivery_person_id: int
    status: DeliveryStatus
    pickup_address: str
    pickup_latitude: Optional[float] = None
    pickup_longitude: Optional[float] = None
    delivery_address: str
    delivery_latitude: Optional[float] = None
    delivery_longitude: Optional[float] = None
    delivery_fee_cents: int
    notes: Optional[str] = None
    otp_code: str
    assigned_at: datetime
    picked_up_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    class Config: from_attributes = True

class OrderRead(BaseModel):
    id: int
    business_id: int
    customer_id: int
    status: OrderStatus
    source: OrderSource
    payment_method: PaymentMethod
    total_cents: int
    exchange_rate: Optional[float] = None
    delivery_address: Optional[str] = None
    shipping_zone_slug: Optional[str] = None
    shipping_cost_cents: Optional[int] = None
    shipping_method_code: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    items: List[OrderItemRead] = []
    customer: Optional[CustomerRead] = None
    payments: List[PaymentSummary] = []
    delivery: Optional[DeliveryOrderRead] = None
    class Config: from_attributes = True

class PageMeta(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int

class OrderPage(BaseModel):
    data: List[OrderRead]
    meta: PageMeta

# --- payments ---
class PaymentCreate(BaseModel):
    order_id: int
    method: PaymentMethod
    reference: Optional[str] = None
    proof_url: Optional[str] = None
    notes: Optional[str] = None
    # accepted for compatibility, never used: the order total is authoritative
    amount_cents: Optional[int] = None

class PaymentVerify(BaseModel):
    status: PaymentStatus
    notes: Optional[str] = None

class PaymentRead(BaseModel):
    id: int
    order_id: int
    method: PaymentMethod
    amount_cents: int
    currency: str
    status: PaymentStatus
    reference: Optional[str] = None
    proof_url: Optional[str] = None
    notes: Optional[str] = None
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    created_at: datetime
    class Config: from_attributes = True

class PaymentPage(BaseModel):
    data: List[PaymentRead]
    meta: PageMeta

# --- delivery ---
class DeliveryAssign(BaseModel):
    delivery_person_id: int
    notes: Optional[str] = None

class OtpConfirm(BaseModel):
    otp: str = Field(min_length=6, max_length=6)
    delivery_person_id: Optional[int] = None

class DeliveryFail(BaseModel):
    reason: Optional[str] = None

class RatingCreate(BaseModel):
    order_id: int
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None
    delivery_person_id: int

class DeliveryOrderEnvelope(BaseModel):
    delivery_order: Optional[DeliveryOrderRead] = None

class DeliveryPersonRead(BaseModel):
    id: int
    name: str
    phone: Optional[str] = None
    vehicle_type: Optional[str] = None
    plate_number: Optional[str] = None
    is_available: bool
    rating: float
    completed_orders: int
    class Config: from_attributes = True

class RatingRead(BaseModel):
    id: int
    delivery_order_id: int
    delivery_person_id: int
    rating: int
    comment: Optional[str] = None
    class Config: from_attributes = True

# --- chat ---
class ConversationRead(BaseModel):
    id: int
    customer_id: int
    channel: Channel
    status: ConversationStatus
    bot_active: bool
    class Config: from_attributes = True

class MessageRead(BaseModel):
    id: int
    conversation_id: int
    role: MessageRole
    content: str
    created_at: datetime
    class Config: from_attributes = True

class AgentMessageCreate(BaseModel):
    content: str = Field(min_length=1)

class BotToggle(BaseModel):
    bot_active: bool

class InboundMessage(BaseModel):
    phone: str
    content: str
    name: Optional[str] = None

# --- channel ---
class ChannelConnect(BaseModel):
    phone_number_id: str = Field(min_length=1)

class ChannelStatusRead(BaseModel):
    business_id: int
    connected: bool
    status: str
    phone_number_id: Optional[str] = None
    last_error: Optional[str] = None
