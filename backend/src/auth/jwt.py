"""JWT bearer token encoding and validation.

Tokens are issued by the identity provider; this service only verifies them.
``create_access_token`` exists for tests and local tooling.

Claims:
- sub: principal id (UUID string)
- tenant_id: default tenant (optional)
- tenant_ids: tenants the principal may act for (optional list)
- role: informational role name (optional)
- iat / exp: issue and expiry timestamps

Example payload:
{
  "sub": "550e8400-e29b-41d4-a716-446655440000",
  "tenant_id": "7c9e6679-7425-40de-944b-e07fc1f90ae7",
  "tenant_ids": ["7c9e6679-7425-40de-944b-e07fc1f90ae7"],
  "role": "staff",
  "iat": 1704368400,
  "exp": 1704372000
}
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Optional
from uuid import UUID

import jwt

from config import get_settings
from tenancy.context import Principal


def create_access_token(
    principal_id: UUID,
    tenant_id: Optional[UUID] = None,
    tenant_ids: Iterable[UUID] = (),
    role: Optional[str] = None,
    expires_in_minutes: Optional[int] = None,
) -> str:
    """Create a signed access token for a principal."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    expiry_minutes = expires_in_minutes if expires_in_minutes is not None else settings.JWT_EXPIRY_MINUTES

    payload: Dict[str, Any] = {
        'sub': str(principal_id),
        'iat': int(now.timestamp()),
        'exp': int((now + timedelta(minutes=expiry_minutes)).timestamp()),
    }
    if tenant_id is not None:
        payload['tenant_id'] = str(tenant_id)
    tenant_ids = [str(t) for t in tenant_ids]
    if tenant_ids:
        payload['tenant_ids'] = tenant_ids
    if role:
        payload['role'] = role

    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate a JWT token.

    Raises:
        jwt.ExpiredSignatureError: If token has expired
        jwt.InvalidTokenError: If token is invalid or tampered
    """
    settings = get_settings()
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])


def principal_from_claims(payload: Dict[str, Any]) -> Principal:
    """Build a Principal from decoded claims.

    Raises:
        ValueError: If ``sub`` is missing or any id is not a UUID
    """
    subject = payload.get('sub')
    if not subject:
        raise ValueError("missing subject claim")

    default_tenant = payload.get('tenant_id')
    tenant_ids = payload.get('tenant_ids') or []
    if not isinstance(tenant_ids, list):
        raise ValueError("tenant_ids claim must be a list")

    return Principal(
        principal_id=UUID(str(subject)),
        default_tenant_id=UUID(str(default_tenant)) if default_tenant else None,
        tenant_ids=frozenset(UUID(str(t)) for t in tenant_ids),
        role=payload.get('role'),
    )
