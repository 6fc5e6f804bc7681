from fastapi import Request, HTTPException, Header, status
from typing import Optional
import logging

from models import User

logger = logging.getLogger(__name__)


def get_user_service(request: Request):
    return request.app.state.user_service


def get_query_service(request: Request):
    return request.app.state.query_service


def get_billing_service(request: Request):
    return request.app.state.billing_service


def extract_token(authorization: str) -> str:
    """Accept either "Bearer <token>" or a bare token."""
    if authorization.startswith("Bearer "):
        return authorization[len("Bearer "):].strip()
    return authorization.strip()


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> User:
    """Require a valid token that resolves to a live user."""
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing"
        )

    token = extract_token(authorization)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No token provided"
        )

    payload = request.app.state.token_service.decode_access_token(token)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token"
        )

    user = await get_user_service(request).get_user_by_id(payload["sub"])
    if not user:
        logger.warning(f"Token presented for unknown user {payload['sub']}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: user not found"
        )

    return user
