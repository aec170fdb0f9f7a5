"""
JWT Session Utilities

This module creates and checks the session tokens handed out after a wallet
has been verified.

Flow:
1. Wallet login succeeds -> SessionIssuer.issue() signs a token for the user
2. Client sends the token back (Authorization header or session cookie)
3. decode_session_token() checks signature and expiry for protected routes

The token payload contains:
- sub: user id
- email: user email (synthesized for wallet-only users)
- wallet: True, marks a token obtained through wallet login
- iat / exp: issued-at and expiry timestamps

Tokens are signed with PyJWT. If that signer is not wired in or fails, the
issuer builds the same HS256 token by hand with the same secret, so a login
never fails only because of the signer.
"""

import base64
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from app.core.config import DEFAULT_JWT_SECRET, settings
from app.core.exceptions import SecretMissing, SignerUnavailable, TokenExpired, TokenInvalid

logger = logging.getLogger(__name__)

_HMAC_DIGESTS = {
    "HS256": hashlib.sha256,
    "HS384": hashlib.sha384,
    "HS512": hashlib.sha512,
}


def signing_secret(app_settings=settings) -> str:
    """JWT_SECRET, or the development default when it is empty outside production."""
    if not app_settings.JWT_SECRET and not app_settings.is_production:
        return DEFAULT_JWT_SECRET
    return app_settings.JWT_SECRET


def check_security_settings(app_settings=settings) -> None:
    """
    Startup check for the signing secret.

    Raises:
        SecretMissing: In production when JWT_SECRET is unset or the default
    """
    if app_settings.JWT_SECRET and app_settings.JWT_SECRET != DEFAULT_JWT_SECRET:
        return
    if app_settings.is_production:
        raise SecretMissing()
    logger.warning("JWT_SECRET is not set, using the development default. Do not run like this in production")


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def manual_hs256_token(payload: Dict[str, Any], secret: str, algorithm: str = "HS256") -> str:
    """
    Build a signed JWT without PyJWT.

    Only the HMAC algorithms are supported. The result is a regular compact
    JWS and decodes with jwt.decode().
    """
    digest = _HMAC_DIGESTS.get(algorithm)
    if digest is None:
        raise SignerUnavailable(f"Manual signing does not support {algorithm}")

    header = {"alg": algorithm, "typ": "JWT"}
    signing_input = ".".join(
        [
            _b64url(json.dumps(header, separators=(",", ":")).encode("utf-8")),
            _b64url(json.dumps(payload, separators=(",", ":"), default=str).encode("utf-8")),
        ]
    )
    signature = hmac.new(secret.encode("utf-8"), signing_input.encode("ascii"), digest).digest()
    return f"{signing_input}.{_b64url(signature)}"


class PyJWTSigner:
    """Token signer backed by PyJWT."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        self.secret = secret
        self.algorithm = algorithm

    def sign(self, payload: Dict[str, Any]) -> str:
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)


@dataclass
class SessionCredential:
    """A signed session token and the claims it was built from."""

    token: str
    subject: str
    issued_at: int
    expires_at: int


class SessionIssuer:
    """Signs time-bounded session tokens for verified users."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        expires_in_seconds: int = 3600,
        signer: Optional[PyJWTSigner] = None,
    ):
        if not secret:
            raise SecretMissing()
        self.secret = secret
        self.algorithm = algorithm
        self.expires_in_seconds = expires_in_seconds
        self.signer = signer

    @classmethod
    def from_settings(cls, app_settings=settings) -> "SessionIssuer":
        secret = signing_secret(app_settings)
        return cls(
            secret=secret,
            algorithm=app_settings.ENCODE_ALGORITHM,
            expires_in_seconds=app_settings.ACCESS_TOKEN_EXPIRE_SECONDS,
            signer=PyJWTSigner(secret, app_settings.ENCODE_ALGORITHM),
        )

    def issue(self, user, expires_in: Optional[int] = None) -> SessionCredential:
        """
        Create a session token for a user.

        Args:
            user: Resolved user (needs id and email)
            expires_in: Lifetime in seconds, defaults to the issuer lifetime

        Returns:
            SessionCredential with the encoded token
        """
        now = datetime.now(timezone.utc)
        lifetime = expires_in if expires_in is not None else self.expires_in_seconds
        issued_at = int(now.timestamp())
        expires_at = int((now + timedelta(seconds=lifetime)).timestamp())
        payload: Dict[str, Any] = {
            "sub": str(user.id),
            "email": user.email,
            "wallet": True,
            "iat": issued_at,
            "exp": expires_at,
        }
        return SessionCredential(
            token=self._sign(payload),
            subject=payload["sub"],
            issued_at=issued_at,
            expires_at=expires_at,
        )

    def _sign(self, payload: Dict[str, Any]) -> str:
        if self.signer is not None:
            try:
                return self.signer.sign(payload)
            except Exception as e:
                logger.warning("token signer failed, building token manually: %s", e)
        else:
            logger.warning("token signer not available, building token manually")
        return manual_hs256_token(payload, self.secret, self.algorithm)


def decode_session_token(
    token: str,
    secret: Optional[str] = None,
    algorithm: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Verify and decode a session token.

    Args:
        token: Encoded token from the header or cookie
        secret: Signing secret, defaults to signing_secret(settings)
        algorithm: Signing algorithm, defaults to settings.ENCODE_ALGORITHM

    Returns:
        Decoded payload

    Raises:
        TokenExpired: If the token is past its expiry
        TokenInvalid: If the token is missing, malformed, badly signed or has no subject
    """
    if not token:
        raise TokenInvalid("Missing token")

    try:
        payload = jwt.decode(
            token,
            secret or signing_secret(settings),
            algorithms=[algorithm or settings.ENCODE_ALGORITHM],
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpired()
    except jwt.InvalidTokenError:
        raise TokenInvalid()

    if not payload.get("sub"):
        raise TokenInvalid("Invalid token payload")

    return payload


def peek_unverified_payload(token: str) -> Optional[Dict[str, Any]]:
    """Decode a token without checking it, for server-side diagnostics only."""
    try:
        return jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
    except jwt.InvalidTokenError:
        return None
