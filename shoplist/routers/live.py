"""WebSocket pushing session state whenever it changes."""

import asyncio

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status

from shoplist.auth import ClerkIdentityProvider
from shoplist.models.schemas import SessionStateResponse
from shoplist.sessions import SessionManager, get_session_manager
from shoplist.sync.auth import AuthViewModel

router = APIRouter(tags=["live"])


@router.websocket("/api/live")
async def live_session(
    websocket: WebSocket,
    token: str = Query(default=""),
    manager: SessionManager = Depends(get_session_manager),
):
    """
    Stream the caller's session state.

    The Clerk token travels as a query parameter since browsers can't set
    headers on WebSocket requests. A full state document is sent on connect
    and after every change.
    """
    auth = AuthViewModel(ClerkIdentityProvider(verifier=manager.verifier))
    user = auth.sign_in(token)
    auth.close()
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=auth.error.value or "Not authenticated")
        return

    await websocket.accept()
    who = user.email or user.id

    # The session stays open while any socket holds it; idle reaping starts on the last disconnect
    async with manager.connect(user) as vm:
        print(f"📡 Live session opened for {who}")

        async def push() -> None:
            async for state in vm.changes():
                await websocket.send_json(SessionStateResponse.from_view_model(state).model_dump(mode="json"))

        sender = asyncio.create_task(push())
        try:
            # Inbound frames are ignored; reading is how a disconnect is noticed
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
        except WebSocketDisconnect:
            pass
        finally:
            sender.cancel()
            await asyncio.gather(sender, return_exceptions=True)
            print(f"📡 Live session closed for {who}")
