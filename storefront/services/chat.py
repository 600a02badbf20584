"""Conversation log for the chat channel: inbound messages, agent replies, bot toggle."""

from datetime import datetime
from typing import Callable, List, Optional, Tuple

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.channel.port import ChatChannel
from storefront.core.errors import NotFoundError
from storefront.db.models import (
    Business, Channel, Conversation, ConversationStatus, Customer, Message, MessageRole,
)
from storefront.db.session import atomic
from storefront.schemas import ConversationRead, MessageRead
from storefront.security.utils import now_utc
from storefront.services.conversations import append_message, find_or_create_conversation
from storefront.services.side_effects import SideEffects

logger = structlog.get_logger(__name__)

DEFAULT_CUSTOMER_NAME = "WhatsApp customer"


class ChatService:
    def __init__(self, db: Session, side_effects: SideEffects, channel: ChatChannel,
                 clock: Callable[[], datetime] = now_utc):
        self.db = db
        self.side_effects = side_effects
        self.channel = channel
        self.clock = clock

    def _conversation(self, business_id: int, conversation_id: int) -> Conversation:
        conversation = self.db.get(Conversation, conversation_id)
        if conversation is None or conversation.business_id != business_id:
            raise NotFoundError("Conversation")
        return conversation

    def _announce(self, business_id: int, conversation: Conversation, message: Message) -> None:
        self.side_effects.broadcast(business_id, "new_message", {
            "conversation_id": conversation.id,
            "message": MessageRead.model_validate(message),
        })

    def record_inbound(self, business_id: int, phone: str, content: str,
                       name: Optional[str] = None) -> Tuple[Conversation, Message]:
        if self.db.get(Business, business_id) is None:
            raise NotFoundError("Business")
        with atomic(self.db):
            customer = self.db.execute(
                select(Customer).where(Customer.business_id == business_id, Customer.phone == phone)
            ).scalars().first()
            if customer is None:
                customer = Customer(business_id=business_id, phone=phone, name=name or DEFAULT_CUSTOMER_NAME)
                self.db.add(customer)
                self.db.flush()
            conversation, created = find_or_create_conversation(self.db, business_id, customer.id, Channel.WHATSAPP)
            message = append_message(self.db, conversation, MessageRole.CUSTOMER, content)
            conversation.updated_at = self.clock()
        self.db.refresh(message)

        logger.info("Inbound message", business_id=business_id, conversation_id=conversation.id,
                    new_conversation=created)
        self._announce(business_id, conversation, message)
        return conversation, message

    def send_agent_message(self, business_id: int, conversation_id: int, content: str) -> Message:
        conversation = self._conversation(business_id, conversation_id)
        with atomic(self.db):
            message = append_message(self.db, conversation, MessageRole.AGENT, content)
            conversation.updated_at = self.clock()
        self.db.refresh(message)
        self._announce(business_id, conversation, message)

        phone = conversation.customer.phone if conversation.customer else None
        if phone:
            try:
                self.channel.send_message(business_id, phone, content)
            except Exception:
                logger.exception("Agent reply not delivered", business_id=business_id,
                                 conversation_id=conversation.id)
        return message

    def toggle_bot(self, business_id: int, conversation_id: int, bot_active: bool) -> Conversation:
        conversation = self._conversation(business_id, conversation_id)
        with atomic(self.db):
            conversation.bot_active = bot_active
            conversation.status = ConversationStatus.BOT if bot_active else ConversationStatus.HUMAN
            conversation.updated_at = self.clock()
        self.db.refresh(conversation)

        logger.info("Conversation bot toggled", business_id=business_id, conversation_id=conversation.id,
                    bot_active=bot_active)
        self.side_effects.broadcast(business_id, "conversation_updated", ConversationRead.model_validate(conversation))
        return conversation

    def list_messages(self, business_id: int, conversation_id: int) -> List[Message]:
        conversation = self._conversation(business_id, conversation_id)
        return self.db.execute(
            select(Message).where(Message.conversation_id == conversation.id)
            .order_by(Message.created_at, Message.id)
        ).scalars().all()
