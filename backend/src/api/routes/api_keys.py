"""API key management routes (admin only)"""

from datetime import datetime, timezone

from fastapi import APIRouter, status
from pydantic import BaseModel, Field, field_validator

from src.api.dependencies import DBSession, RequireAdmin
from src.core.exceptions import NotFoundError, ValidationError
from src.core.logging import log
from src.core.security import (
    DEFAULT_PERMISSIONS,
    PERMISSION_ADMIN,
    PERMISSION_ALL,
    PERMISSION_READ,
    PERMISSION_WRITE,
)
from src.db.base import utcnow
from src.db.models.api_key import APIKey
from src.store.api_keys import APIKeyStore

router = APIRouter()

KNOWN_PERMISSIONS = {PERMISSION_READ, PERMISSION_WRITE, PERMISSION_ADMIN, PERMISSION_ALL}


# ─── Schemas ─────────────────────────────────────────

class CreateAPIKeyRequest(BaseModel):
    name: str = Field(default="default", min_length=1, max_length=255)
    permissions: list[str] = Field(default_factory=lambda: list(DEFAULT_PERMISSIONS))
    expires_at: datetime | None = None

    @field_validator("permissions")
    @classmethod
    def check_permissions(cls, value: list[str]) -> list[str]:
        unknown = set(value) - KNOWN_PERMISSIONS
        if unknown:
            raise ValueError(f"Unknown permission(s): {', '.join(sorted(unknown))}")
        if not value:
            raise ValueError("At least one permission is required")
        return value

    @field_validator("expires_at")
    @classmethod
    def assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class APIKeyResponse(BaseModel):
    key_hash: str
    name: str
    permissions: list[str]
    created_at: str | None
    expires_at: str | None
    expired: bool


def _to_response(record: APIKey) -> APIKeyResponse:
    return APIKeyResponse(
        key_hash=record.key_hash,
        name=record.name,
        permissions=list(record.permissions or []),
        created_at=record.created_at.isoformat() if record.created_at else None,
        expires_at=record.expires_at.isoformat() if record.expires_at else None,
        expired=record.is_expired(),
    )


# ─── Routes ──────────────────────────────────────────

@router.get("", response_model=list[APIKeyResponse])
async def list_api_keys(api_key: RequireAdmin, db: DBSession):
    return [_to_response(r) for r in await APIKeyStore(db).list()]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_api_key(body: CreateAPIKeyRequest, api_key: RequireAdmin, db: DBSession):
    """Create a key. The plaintext is returned once and never stored."""
    if body.expires_at is not None and body.expires_at <= utcnow():
        raise ValidationError("expires_at must be in the future")

    created = await APIKeyStore(db).create(
        name=body.name, permissions=body.permissions, expires_at=body.expires_at
    )
    log.info(f"API key '{body.name}' created by '{api_key.name}'")
    return {
        "success": True,
        "key": created.key,
        "api_key": _to_response(created.record).model_dump(),
        "message": "Store this key securely, it will not be shown again.",
    }


@router.delete("/{key_hash}")
async def delete_api_key(key_hash: str, api_key: RequireAdmin, db: DBSession):
    if key_hash == api_key.key_hash:
        raise ValidationError("An API key cannot delete itself")

    if not await APIKeyStore(db).delete(key_hash):
        raise NotFoundError("API key", key_hash)

    log.info(f"API key {key_hash[:12]}... deleted by '{api_key.name}'")
    return {"success": True, "message": "API key deleted"}
