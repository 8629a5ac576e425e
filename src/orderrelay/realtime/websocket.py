"""WebSocket endpoint — where clients attach to the fan-out.

Learn: Clients are passive receivers. The handler:
1. Accepts and registers the connection
2. Sends one synthetic welcome message (not a replay of missed events)
3. Reads and discards client frames until the socket closes
4. Deregisters in `finally`, so close and error paths both clean up

Every bus message reaches the client through FanoutBroadcaster, not here.
"""

import json

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from orderrelay.events.types import WELCOME
from orderrelay.realtime.registry import ClientConnection

logger = structlog.get_logger()
router = APIRouter()


def welcome_message(text: str) -> str:
    return json.dumps({"type": WELCOME, "msg": text})


@router.websocket("/")
@router.websocket("/ws")
async def updates_websocket(websocket: WebSocket):
    """Stream every relayed change event to this client."""
    state = websocket.app.state
    registry = state.registry

    await websocket.accept()
    conn = ClientConnection(websocket=websocket)
    registry.add(conn)

    try:
        await websocket.send_text(welcome_message(state.settings.welcome_message))
        while True:
            # No client-to-server protocol; frames are read only to notice close
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.debug(
                    "fanout.client_closed", client_id=conn.id, code=message.get("code")
                )
                break
    except WebSocketDisconnect as e:
        logger.debug("fanout.client_closed", client_id=conn.id, code=e.code)
    except Exception as e:
        logger.warning("fanout.client_error", client_id=conn.id, error=str(e))
    finally:
        registry.remove(conn)
