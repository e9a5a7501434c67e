"""API key store: hashed keys, verification and bootstrap"""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.logging import log
from src.core.security import (
    DEFAULT_PERMISSIONS,
    PERMISSION_ALL,
    digests_match,
    generate_api_key,
    hash_api_key,
)
from src.db.base import utcnow
from src.db.models.api_key import APIKey


@dataclass
class VerifiedKey:
    """Identity attached to an authenticated request."""
    key_hash: str
    name: str
    permissions: list[str]
    created_at: datetime
    expires_at: datetime | None = None


@dataclass
class CreatedKey:
    """Result of key creation, the only place the plaintext exists."""
    key: str
    record: APIKey


class APIKeyStore:
    """CRUD and verification for `api_keys` rows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        name: str = "default",
        permissions: list[str] | None = None,
        expires_at: datetime | None = None,
    ) -> CreatedKey:
        """Generate a new random key. The plaintext is never persisted."""
        return await self.create_with_key(
            generate_api_key(), name, permissions, expires_at
        )

    async def create_with_key(
        self,
        key: str,
        name: str = "default",
        permissions: list[str] | None = None,
        expires_at: datetime | None = None,
    ) -> CreatedKey:
        """Store a caller-chosen key (pre-provisioned deployments)."""
        record = APIKey(
            key_hash=hash_api_key(key),
            name=name,
            permissions=list(permissions or DEFAULT_PERMISSIONS),
            created_at=utcnow(),
            expires_at=expires_at,
        )
        self.db.add(record)
        await self.db.flush()
        return CreatedKey(key=key, record=record)

    async def verify(self, key: str | None) -> VerifiedKey | None:
        """Return the key identity, or None if unknown or expired."""
        if not key:
            return None

        candidate = hash_api_key(key)
        result = await self.db.execute(
            select(APIKey).where(APIKey.key_hash == candidate)
        )
        record = result.scalar_one_or_none()

        if not record or not digests_match(candidate, record.key_hash):
            return None
        if record.is_expired():
            log.debug(f"Rejected expired API key {record.name}")
            return None

        return VerifiedKey(
            key_hash=record.key_hash,
            name=record.name,
            permissions=list(record.permissions or []),
            created_at=record.created_at,
            expires_at=record.expires_at,
        )

    async def list(self) -> list[APIKey]:
        result = await self.db.execute(select(APIKey).order_by(APIKey.created_at))
        return list(result.scalars().all())

    async def delete(self, key_hash: str) -> bool:
        result = await self.db.execute(
            select(APIKey).where(APIKey.key_hash == key_hash)
        )
        record = result.scalar_one_or_none()
        if not record:
            return False
        await self.db.delete(record)
        await self.db.flush()
        return True

    async def has_keys(self) -> bool:
        count = await self.db.scalar(select(func.count()).select_from(APIKey))
        return bool(count)


async def ensure_default_api_key(db: AsyncSession, preconfigured: str | None = None) -> str | None:
    """Make sure at least one API key exists.

    Uses the pre-provisioned key when given, otherwise generates one and
    logs it once. Returns the plaintext of a newly created key, or None if
    keys already existed.
    """
    store = APIKeyStore(db)
    if await store.has_keys():
        log.info("API key(s) already exist")
        return None

    if preconfigured:
        created = await store.create_with_key(preconfigured, "default", [PERMISSION_ALL])
        log.info("Configured default API key from environment")
    else:
        created = await store.create("default", [PERMISSION_ALL])
        log.warning(
            "Generated default API key (save it, it will not be shown again): "
            f"{created.key}"
        )

    await db.commit()
    return created.key
