import jwt
from typing import Optional
from uuid import UUID
from fastapi import HTTPException, Depends, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
import structlog
from app.shared.core.config import get_settings

logger = structlog.get_logger()

# HTTPBearer: Extracts "Bearer <token>" from Authorization header
# auto_error=False: Returns None instead of 403 if no token so we can answer 401
security = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    """
    Represents the authenticated caller from the JWT.
    """
    id: str
    organization_id: Optional[UUID] = None
    email: Optional[str] = None


def decode_jwt(token: str) -> dict:
    """
    Decode and verify a platform-issued JWT (HS256).

    Raises:
        HTTPException 401 if token is expired, tampered or for another audience
    """
    settings = get_settings()

    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=["HS256"],
            audience=settings.JWT_AUDIENCE,
        )
    except jwt.ExpiredSignatureError:
        logger.warning("jwt_expired")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
        )
    except jwt.InvalidTokenError as e:
        logger.warning("jwt_invalid", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> CurrentUser:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_jwt(credentials.credentials)
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    organization_id = None
    raw_org = payload.get("organization_id")
    if raw_org:
        try:
            organization_id = UUID(str(raw_org))
        except ValueError:
            logger.warning("jwt_invalid_organization_claim", user_id=user_id)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token payload",
            )

    # Downstream rate limiting keys on the organization
    request.state.organization_id = organization_id
    structlog.contextvars.bind_contextvars(
        organization_id=str(organization_id) if organization_id else None
    )

    return CurrentUser(id=str(user_id), organization_id=organization_id, email=payload.get("email"))


def require_organization(user: CurrentUser = Depends(get_current_user)) -> UUID:
    """
    Resolves the organization scope of the request.
    A token without an organization is rejected.
    """
    if not user.organization_id:
        logger.error("organization_id_missing_in_user_context", user_id=user.id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Organization context required"
        )
    return user.organization_id
