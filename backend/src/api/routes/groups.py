"""Group routes: live group listings for a connected session"""

from fastapi import APIRouter

from src.api.dependencies import DBSession, Registry, RequireRead, SessionId
from src.core.exceptions import SessionNotFound
from src.store.sessions import SessionStore
from src.whatsapp import groups

router = APIRouter()


@router.get("/{session_id}/groups")
async def list_groups(api_key: RequireRead, session_id: SessionId, db: DBSession, registry: Registry):
    if not await SessionStore(db).get(session_id):
        raise SessionNotFound(session_id)

    result = await groups.list_groups(registry, session_id)
    return {"success": True, "count": len(result), "groups": result}


@router.get("/{session_id}/groups/{group_id}")
async def get_group(
    api_key: RequireRead,
    session_id: SessionId,
    group_id: str,
    db: DBSession,
    registry: Registry,
):
    if not await SessionStore(db).get(session_id):
        raise SessionNotFound(session_id)

    group = await groups.get_group(registry, session_id, group_id)
    return {"success": True, "group": group}
