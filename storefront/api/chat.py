from typing import List

from fastapi import APIRouter, Depends

from storefront.api.deps import get_chat_service
from storefront.core.auth import get_business_id
from storefront.schemas import AgentMessageCreate, BotToggle, ConversationRead, MessageRead
from storefront.services.chat import ChatService

router = APIRouter(prefix="/chat", tags=["chat"])


@router.get("/conversations/{conversation_id}/messages", response_model=List[MessageRead])
def list_messages(conversation_id: int, business_id: int = Depends(get_business_id),
                  svc: ChatService = Depends(get_chat_service)):
    return svc.list_messages(business_id, conversation_id)


@router.post("/conversations/{conversation_id}/messages", response_model=MessageRead, status_code=201)
def send_message(conversation_id: int, payload: AgentMessageCreate, business_id: int = Depends(get_business_id),
                 svc: ChatService = Depends(get_chat_service)):
    return svc.send_agent_message(business_id, conversation_id, payload.content)


@router.patch("/conversations/{conversation_id}/bot", response_model=ConversationRead)
def toggle_bot(conversation_id: int, payload: BotToggle, business_id: int = Depends(get_business_id),
               svc: ChatService = Depends(get_chat_service)):
    return svc.toggle_bot(business_id, conversation_id, payload.bot_active)
