"""Security utilities - API key hashing and permission guards"""

import hashlib
import hmac
import secrets

from src.core.exceptions import AuthorizationError

KEY_BYTES = 32

PERMISSION_READ = "read"
PERMISSION_WRITE = "write"
PERMISSION_ADMIN = "admin"
PERMISSION_ALL = "*"

DEFAULT_PERMISSIONS = [PERMISSION_READ, PERMISSION_WRITE]


def generate_api_key() -> str:
    """Generate a new random API key (64 hex chars)."""
    return secrets.token_hex(KEY_BYTES)


def hash_api_key(key: str) -> str:
    """Irreversible SHA-256 digest used as the stored key identity."""
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def digests_match(candidate: str, stored: str) -> bool:
    """Constant-time comparison of two hex digests."""
    return hmac.compare_digest(candidate.encode("ascii"), stored.encode("ascii"))


def has_permission(granted: list[str], permission: str) -> bool:
    return PERMISSION_ALL in granted or permission in granted


def get_require_permission(permission: str):
    """Return a dependency that validates the caller's API key grants `permission`."""
    from fastapi import Depends

    from src.api.dependencies import get_current_api_key
    from src.store.api_keys import VerifiedKey

    async def _require_permission(
        api_key: VerifiedKey = Depends(get_current_api_key),
    ) -> VerifiedKey:
        """Validate the authenticated key. Returns the verified key."""
        if not has_permission(api_key.permissions, permission):
            raise AuthorizationError(f"Permission '{permission}' required.")
        return api_key

    return _require_permission
