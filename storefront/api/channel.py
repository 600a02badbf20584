from fastapi import APIRouter, Depends, Header, Response

from storefront.api.deps import get_channel, get_chat_service
from storefront.channel.registry import ChannelRegistry
from storefront.core.auth import get_business_id
from storefront.core.config import settings
from storefront.core.errors import UnauthorizedError
from storefront.schemas import ChannelConnect, ChannelStatusRead, InboundMessage, MessageRead
from storefront.services.chat import ChatService

router = APIRouter(prefix="/channel", tags=["channel"])


@router.get("/connection", response_model=ChannelStatusRead)
def connection_status(business_id: int = Depends(get_business_id), channel: ChannelRegistry = Depends(get_channel)):
    return channel.status(business_id)


@router.put("/connection", response_model=ChannelStatusRead)
def connect(payload: ChannelConnect, business_id: int = Depends(get_business_id),
            channel: ChannelRegistry = Depends(get_channel)):
    channel.connect(business_id, payload.phone_number_id)
    return channel.status(business_id)


@router.delete("/connection", status_code=204)
def disconnect(business_id: int = Depends(get_business_id), channel: ChannelRegistry = Depends(get_channel)):
    channel.disconnect(business_id)
    return Response(status_code=204)


# Inbound messages relayed by the channel provider
@router.post("/webhook/{business_id}", response_model=MessageRead, status_code=201)
def inbound_message(business_id: int, payload: InboundMessage,
                    x_channel_secret: str | None = Header(default=None, alias="X-Channel-Secret"),
                    svc: ChatService = Depends(get_chat_service)):
    if x_channel_secret != settings.CHANNEL_WEBHOOK_SECRET:
        raise UnauthorizedError("Invalid channel secret")
    _, message = svc.record_inbound(business_id, payload.phone, payload.content, payload.name)
    return message
