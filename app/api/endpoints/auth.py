import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

import app.schemas.auth as schemas
from app.core.config import settings
from app.core.dependencies import get_current_user
from app.core.exceptions import WalletAuthError
from app.db.session import get_db
from app.models.users import User
from app.services.wallet_auth import AuthOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()
group_tags: List[str] = ["Auth"]

AUTH_FAILED_DETAIL = "signature verification failed"


def get_auth_orchestrator(request: Request) -> AuthOrchestrator:
    """The orchestrator is built once at startup and kept on app.state."""
    return request.app.state.auth_orchestrator


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.COOKIE_NAME,
        value=token,
        max_age=settings.SESSION_COOKIE_MAX_AGE_SECONDS,
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
    )


@router.post(
    "/wallet/challenge",
    tags=group_tags,
    response_model=schemas.ChallengeResponse,
    status_code=status.HTTP_200_OK,
)
def request_challenge(
    body: schemas.ChallengeRequest,
    orchestrator: AuthOrchestrator = Depends(get_auth_orchestrator),
) -> schemas.ChallengeResponse:
    """Generate and store a challenge for a wallet address."""
    address = body.address.strip()
    if not address:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Address is required")

    return schemas.ChallengeResponse(**orchestrator.request_challenge(address))


@router.post(
    "/wallet/verify",
    tags=group_tags,
    response_model=schemas.AuthResponse,
    status_code=status.HTTP_200_OK,
)
def verify_wallet(
    body: schemas.VerifyRequest,
    response: Response,
    db: Session = Depends(get_db),
    orchestrator: AuthOrchestrator = Depends(get_auth_orchestrator),
) -> schemas.AuthResponse:
    """
    Verify a signed challenge and return an access token.

    Also sets the HttpOnly session cookie. Every failure answers 401 with the
    same message; the reason is only logged.
    """
    try:
        result = orchestrator.verify(
            db,
            address=body.address,
            signature=body.signature,
            public_key=body.public_key,
        )
    except WalletAuthError as e:
        logger.info("wallet login rejected for %s: %s (%s)", body.address.strip().lower(), e.message, e.code)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=AUTH_FAILED_DETAIL)

    set_session_cookie(response, result.session_token)

    return schemas.AuthResponse(
        access_token=result.access_token,
        user=schemas.UserSummary(**result.user.to_summary()),
        warning=result.warning,
    )


@router.get(
    "/me",
    tags=group_tags,
    response_model=schemas.ProfileResponse,
    status_code=status.HTTP_200_OK,
)
def me(user: User = Depends(get_current_user)) -> schemas.ProfileResponse:
    """Return the profile of the logged in user."""
    return schemas.ProfileResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        wallet_address=user.wallet_address,
    )
