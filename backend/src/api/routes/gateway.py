"""Gateway webhook: events pushed by the browser-automation sidecar

The gateway posts `{"session_id", "event", "data"}` for every client
event. Events are handed to the session's live GatewayClient, which
re-emits them to its subscribers.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Header
from pydantic import BaseModel

from src.api.dependencies import Registry
from src.config import settings
from src.core.exceptions import AuthenticationError
from src.core.logging import log
from src.core.security import digests_match, hash_api_key
from src.whatsapp.gateway import GatewayClient

router = APIRouter()


class GatewayEvent(BaseModel):
    session_id: str
    event: str
    data: dict[str, Any] | None = None


def verify_gateway_key(x_api_key: str | None) -> bool:
    """Check the key the gateway signs its callbacks with."""
    if not x_api_key:
        return False
    return digests_match(hash_api_key(x_api_key), hash_api_key(settings.GATEWAY_API_KEY))


@router.post("/events")
async def handle_gateway_event(
    body: GatewayEvent,
    registry: Registry,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
):
    """Receive one client event from the gateway."""
    if not verify_gateway_key(x_api_key):
        raise AuthenticationError("Invalid gateway key.")

    log.debug(f"Gateway event '{body.event}' for session {body.session_id}")

    handle = registry.get(body.session_id)
    if handle is None:
        log.warning(f"Gateway event for session {body.session_id} without a client, ignored")
        return {"status": "ignored", "reason": "no client for session"}
    if not isinstance(handle.client, GatewayClient):
        return {"status": "ignored", "reason": "session is not gateway-backed"}

    handle.client.handle_event(body.event, body.data)
    return {"status": "received"}
