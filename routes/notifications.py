import asyncio
import logging
from typing import Optional
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session

from services.change_feed import order_feed, Subscription
from utils.auth import user_from_token
from utils.database import get_db

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


def _authorized(db: Session, token: Optional[str]) -> bool:
    if not token:
        return False
    user = user_from_token(db, token)
    return user is not None and user.is_active and user.is_super_admin


async def _forward(websocket: WebSocket, subscription: Subscription):
    async for change in subscription:
        await websocket.send_json({"event": "order_change", **change.model_dump(mode="json")})


@router.websocket("/ws/{restaurant_id}")
async def websocket_notifications(
    websocket: WebSocket,
    restaurant_id: int,
    token: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """
    Stream INSERT / UPDATE / DELETE events for a restaurant's orders.
    The access token is passed as the ``token`` query parameter.
    """
    if not _authorized(db, token):
        logger.warning(f"Rejected order feed connection for restaurant {restaurant_id}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    subscription = order_feed.subscribe(restaurant_id)
    forward_task = None
    try:
        await websocket.accept()
        await websocket.send_json({"event": "subscribed", "restaurant_id": restaurant_id})
        forward_task = asyncio.create_task(_forward(websocket, subscription))
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug(f"Order feed client for restaurant {restaurant_id} disconnected")
    finally:
        if forward_task is not None:
            forward_task.cancel()
            try:
                await forward_task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"Order feed for restaurant {restaurant_id} stopped forwarding: {str(e)}")
        subscription.close()
