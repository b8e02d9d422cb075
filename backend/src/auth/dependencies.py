"""FastAPI dependencies for authentication.

Usage:
    @app.get("/protected")
    def protected_endpoint(principal: Principal = Depends(get_current_principal)):
        return {"principal_id": str(principal.principal_id)}
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt

from tenancy.context import Principal
from .jwt import decode_token, principal_from_claims


# HTTP Bearer token security scheme
security = HTTPBearer()


def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Principal:
    """Validate the bearer token and return the authenticated principal.

    Raises:
        HTTPException 401: If the token is missing, invalid, expired or malformed
    """
    try:
        payload = decode_token(credentials.credentials)
        return principal_from_claims(payload)
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token claims: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )
