from typing import Tuple
from sqlalchemy import select
from sqlalchemy.orm import Session
from storefront.db.models import Channel, Conversation, Message, MessageRole

def latest_conversation(db: Session, business_id: int, customer_id: int, channel: Channel = Channel.WHATSAPP):
    # duplicates can exist if two were created concurrently; newest wins
    stmt = (
        select(Conversation)
        .where(Conversation.business_id == business_id,
               Conversation.customer_id == customer_id,
               Conversation.channel == channel)
        .order_by(Conversation.created_at.desc(), Conversation.id.desc())
        .limit(1)
    )
    return db.execute(stmt).scalars().first()

def find_or_create_conversation(db: Session, business_id: int, customer_id: int,
                                channel: Channel = Channel.WHATSAPP) -> Tuple[Conversation, bool]:
    conversation = latest_conversation(db, business_id, customer_id, channel)
    if conversation is not None:
        return conversation, False
    conversation = Conversation(business_id=business_id, customer_id=customer_id, channel=channel)
    db.add(conversation)
    db.flush()
    return conversation, True

def append_message(db: Session, conversation: Conversation, role: MessageRole, content: str) -> Message:
    message = Message(conversation=conversation, role=role, content=content)
    db.add(message)
    db.flush()
    return message
