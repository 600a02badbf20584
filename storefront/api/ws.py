import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from storefront.core.auth import identity_from_token
from storefront.core.errors import UnauthorizedError
from storefront.services.broadcast import room_name

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def dashboard_socket(websocket: WebSocket, token: str = ""):
    try:
        identity = identity_from_token(token)
    except UnauthorizedError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    business_id = int(identity["business_id"])
    broadcaster = websocket.app.state.broadcaster
    await websocket.accept()
    broadcaster.join(business_id, websocket)
    try:
        logger.info("Dashboard connected", room=room_name(business_id))
        while True:
            # clients only listen; anything they send is ignored
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.leave(business_id, websocket)
        logger.info("Dashboard disconnected", room=room_name(business_id))
