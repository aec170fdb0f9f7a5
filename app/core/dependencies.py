"""
FastAPI Authentication Dependencies
This module provides FastAPI dependency functions that can be injected into route handlers
to validate the session token issued by wallet login.
Usage in endpoints:
    @router.get("/protected")
    def protected_route(user_id: str = Depends(get_current_user_id)):
        return {"user": user_id}
Flow:
1. Client sends Authorization: Bearer <token>, or the session cookie set by /auth/wallet/verify
2. _extract_token() picks the header first, then the cookie
3. decode_session_token() checks signature and expiry (from jwt_utils.py)
4. The decoded payload, or the user row, is handed to the route handler
Failures always answer 401 with a generic message; the decoded payload of a
rejected token is only written to the server log.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import TokenInvalid
from app.core.jwt_utils import decode_session_token, peek_unverified_payload
from app.db.session import get_db
from app.models.users import User

logger = logging.getLogger(__name__)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _extract_token(authorization: Optional[str], request: Request) -> str:
    """
    Get the session token from the Authorization header or the session cookie.
    Supports "Bearer <token>" headers; the cookie name comes from COOKIE_NAME.
    Raises:
        HTTPException 401: If neither carries a token
    """
    if authorization:
        authorization = authorization.strip()
        if authorization.lower().startswith("bearer "):
            token = authorization[7:].strip()
            if token:
                return token

    token = request.cookies.get(settings.COOKIE_NAME)
    if token:
        return token

    raise _unauthorized("Missing token")


def get_token_payload(
    request: Request,
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> Dict[str, Any]:
    """
    Returning the verified session payload.
    """
    token = _extract_token(authorization, request)
    try:
        return decode_session_token(token)
    except TokenInvalid as e:
        logger.warning(
            "session token rejected: %s, payload (unverified): %s",
            e.message,
            peek_unverified_payload(token),
        )
        raise _unauthorized("Invalid token")


def get_current_user_id(payload: Dict[str, Any] = Depends(get_token_payload)) -> str:
    """
    returning user id (token subject).
    """
    return str(payload["sub"])


def get_current_user(
    user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)
) -> User:
    """
    Load the user the session belongs to.
    """
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user
