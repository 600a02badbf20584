from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Boolean, Float, DateTime, ForeignKey, BigInteger, JSON, Enum as SAEnum
from datetime import datetime
from enum import Enum
from typing import Optional
from storefront.db.session import Base
from storefront.security.utils import now_utc

class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PREPARING = "PREPARING"
    READY = "READY"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

class OrderSource(str, Enum):
    WEB = "WEB"
    WHATSAPP = "WHATSAPP"
    DASHBOARD = "DASHBOARD"

class PaymentMethod(str, Enum):
    CASH = "CASH"
    PAGO_MOVIL = "PAGO_MOVIL"
    ZELLE = "ZELLE"
    BANK_TRANSFER = "BANK_TRANSFER"
    CARD = "CARD"
    CRYPTO = "CRYPTO"

class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"

class DeliveryStatus(str, Enum):
    ASSIGNED = "ASSIGNED"
    PICKED_UP = "PICKED_UP"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"

class Channel(str, Enum):
    WHATSAPP = "WHATSAPP"
    WEB = "WEB"

class ConversationStatus(str, Enum):
    BOT = "BOT"
    HUMAN = "HUMAN"

class MessageRole(str, Enum):
    CUSTOMER = "CUSTOMER"
    BOT = "BOT"
    AGENT = "AGENT"

class Business(Base):
    __tablename__ = "businesses"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(120), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(240), nullable=False)
    store_address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    store_latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    store_longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc)

class ExchangeRate(Base):
    __tablename__ = "exchange_rates"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id", ondelete="CASCADE"), index=True)
    usd_to_local: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc)

class Customer(Base):
    __tablename__ = "customers"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id", ondelete="CASCADE"), index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(240), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    address_notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    identification: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    # caller-defined document, stored verbatim
    preferences: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc)

class Product(Base):
    __tablename__ = "products"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String(240), nullable=False)
    price_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)

class Order(Base):
    __tablename__ = "orders"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id", ondelete="CASCADE"), index=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey("customers.id"), index=True)
    status: Mapped[OrderStatus] = mapped_column(SAEnum(OrderStatus), default=OrderStatus.PENDING)
    source: Mapped[OrderSource] = mapped_column(SAEnum(OrderSource), default=OrderSource.WEB)
    payment_method: Mapped[PaymentMethod] = mapped_column(SAEnum(PaymentMethod))
    total_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    exchange_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    delivery_address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    delivery_latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    delivery_longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    shipping_zone_slug: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    shipping_cost_cents: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    shipping_method_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc, onupdate=now_utc)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id")
    customer = relationship("Customer")
    payments = relationship("Payment", back_populates="order", cascade="all, delete-orphan", order_by="Payment.id")
    delivery = relationship("DeliveryOrder", back_populates="order", uselist=False, cascade="all, delete-orphan")

class OrderItem(Base):
    __tablename__ = "order_items"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"))
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"))
    quantity: Mapped[int] = mapped_column(Integer)
    unit_price_cents: Mapped[int] = mapped_column(BigInteger)
    variant_selected: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")

class Payment(Base):
    __tablename__ = "payments"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), index=True)
    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id", ondelete="CASCADE"), index=True)
    method: Mapped[PaymentMethod] = mapped_column(SAEnum(PaymentMethod))
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    status: Mapped[PaymentStatus] = mapped_column(SAEnum(PaymentStatus), default=PaymentStatus.PENDING)
    reference: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    proof_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    verified_by: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc)

    order = relationship("Order", back_populates="payments")

class DeliveryPerson(Base):
    __tablename__ = "delivery_persons"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(240), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    vehicle_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    plate_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)
    completed_orders: Mapped[int] = mapped_column(Integer, default=0)
    total_deliveries: Mapped[int] = mapped_column(Integer, default=0)
    # running average backed by (count, sum)
    rating: Mapped[float] = mapped_column(Float, default=0.0)
    rating_count: Mapped[int] = mapped_column(Integer, default=0)
    rating_sum: Mapped[int] = mapped_column(Integer, default=0)

class DeliveryOrder(Base):
    __tablename__ = "delivery_orders"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), unique=True)
    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id", ondelete="CASCADE"), index=True)
    delivery_person_id: Mapped[int] = mapped_column(ForeignKey("delivery_persons.id"), index=True)
    status: Mapped[DeliveryStatus] = mapped_column(SAEnum(DeliveryStatus), default=DeliveryStatus.ASSIGNED)
    pickup_address: Mapped[str] = mapped_column(String(500))
    pickup_latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    pickup_longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    delivery_address: Mapped[str] = mapped_column(String(500))
    delivery_latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    delivery_longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    delivery_fee_cents: Mapped[int] = mapped_column(BigInteger, default=0)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    otp_code: Mapped[str] = mapped_column(String(6))
    assigned_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc)
    picked_up_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)
    failed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)

    order = relationship("Order", back_populates="delivery")
    delivery_person = relationship("DeliveryPerson")
    rating = relationship("DeliveryRating", back_populates="delivery_order", uselist=False, cascade="all, delete-orphan")

class DeliveryRating(Base):
    __tablename__ = "delivery_ratings"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    delivery_order_id: Mapped[int] = mapped_column(ForeignKey("delivery_orders.id", ondelete="CASCADE"), unique=True)
    delivery_person_id: Mapped[int] = mapped_column(ForeignKey("delivery_persons.id"), index=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey("customers.id"))
    rating: Mapped[int] = mapped_column(Integer)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc)

    delivery_order = relationship("DeliveryOrder", back_populates="rating")

class Conversation(Base):
    __tablename__ = "conversations"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id", ondelete="CASCADE"), index=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey("customers.id"), index=True)
    channel: Mapped[Channel] = mapped_column(SAEnum(Channel), default=Channel.WHATSAPP)
    status: Mapped[ConversationStatus] = mapped_column(SAEnum(ConversationStatus), default=ConversationStatus.BOT)
    bot_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc, onupdate=now_utc)

    customer = relationship("Customer")
    messages = relationship("Message", back_populates="conversation", cascade="all, delete-orphan", order_by="Message.id")

class Message(Base):
    __tablename__ = "messages"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    conversation_id: Mapped[int] = mapped_column(ForeignKey("conversations.id", ondelete="CASCADE"), index=True)
    role: Mapped[MessageRole] = mapped_column(SAEnum(MessageRole))
    content: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc)

    conversation = relationship("Conversation", back_populates="messages")

class ChannelConnection(Base):
    """Persisted desired/observed state of one tenant's chat channel connection."""
    __tablename__ = "channel_connections"
    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id", ondelete="CASCADE"), primary_key=True)
    phone_number_id: Mapped[str] = mapped_column(String(64))
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    status: Mapped[str] = mapped_column(String(32), default="DISCONNECTED")
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_connected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc, onupdate=now_utc)
