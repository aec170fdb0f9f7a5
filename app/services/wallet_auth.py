"""
Wallet login protocol.

Per address:  NoChallenge -> ChallengeIssued -> Verified | Rejected

- request_challenge(address): always succeeds, replaces any previous challenge
- verify(db, address, signature, public_key):
    1. no live challenge (taken atomically)  -> NoChallengeFound
    2. bypass allowed by VerificationMode    -> resolve user, issue session
    3. no public key                         -> resolve user, issue session
                                                flagged as unverified
    4. Ed25519 check of the formatted message -> session issued only on success

The challenge is removed atomically in step 1, so of several concurrent
verify calls for one challenge at most one gets past it.

The bypass decision depends on VerificationMode, which is resolved once from
the settings at startup. In STRICT mode (production) no request can take the
bypass, whatever its address, signature or public key look like.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.challenge_store import ChallengeStore, build_challenge_store, normalize_address
from app.core.exceptions import DecodeError, NoChallengeFound, SignatureInvalid
from app.core.jwt_utils import SessionIssuer
from app.core.wallet_signature import SignatureVerifier
from app.models.users import User
from app.services.identity import IdentityResolver

logger = logging.getLogger(__name__)

DEV_SIGNATURE_PREFIX = "dev_signature_"
DEV_ADDRESS_PREFIX = "0xdev"
DEV_PUBLIC_KEY_PLACEHOLDER = "0xdev_public_key_placeholder"

UNVERIFIED_WARNING = "publicKey not provided; signature not verified"


class VerificationMode(str, Enum):
    # production: every login needs a valid signature
    STRICT = "strict"
    # non-production: requests carrying a development marker skip the check
    MARKERS = "markers"
    # development or explicit skip flag: every request skips the check
    BYPASS = "bypass"


def resolve_verification_mode(app_settings) -> VerificationMode:
    """Decide once, from configuration, how strictly signatures are checked."""
    if app_settings.is_production:
        if app_settings.SKIP_SIGNATURE_VERIFICATION:
            logger.error("SKIP_SIGNATURE_VERIFICATION is ignored in production")
        return VerificationMode.STRICT
    if app_settings.SKIP_SIGNATURE_VERIFICATION or app_settings.ENVIRONMENT == "development":
        return VerificationMode.BYPASS
    return VerificationMode.MARKERS


def development_markers(address: str, signature: str, public_key: Optional[str]) -> List[str]:
    """List the development markers present in a verify request."""
    markers = []
    if signature.startswith(DEV_SIGNATURE_PREFIX):
        markers.append("signature")
    if address.strip().startswith(DEV_ADDRESS_PREFIX):
        markers.append("address")
    if not public_key or public_key == DEV_PUBLIC_KEY_PLACEHOLDER:
        markers.append("public_key")
    return markers


@dataclass
class AuthResult:
    """Outcome of a successful verify."""

    access_token: str
    session_token: str
    user: User
    verified: bool
    warning: Optional[str] = None


class AuthOrchestrator:
    """Runs the challenge/verify protocol on top of its collaborators."""

    def __init__(
        self,
        challenge_store: ChallengeStore,
        session_issuer: SessionIssuer,
        verifier: Optional[SignatureVerifier] = None,
        identity_resolver: Optional[IdentityResolver] = None,
        mode: VerificationMode = VerificationMode.STRICT,
        allow_unverified: bool = True,
        session_max_age_seconds: int = 7 * 24 * 3600,
    ):
        self.challenge_store = challenge_store
        self.session_issuer = session_issuer
        self.verifier = verifier or SignatureVerifier()
        self.identity_resolver = identity_resolver or IdentityResolver()
        self.mode = mode
        self.allow_unverified = allow_unverified
        self.session_max_age_seconds = session_max_age_seconds

    @classmethod
    def from_settings(cls, app_settings) -> "AuthOrchestrator":
        mode = resolve_verification_mode(app_settings)
        if mode is not VerificationMode.STRICT:
            logger.warning("wallet signature verification mode is %s, do not use outside development", mode.value)
        return cls(
            challenge_store=build_challenge_store(app_settings),
            session_issuer=SessionIssuer.from_settings(app_settings),
            mode=mode,
            allow_unverified=app_settings.ALLOW_UNVERIFIED_WALLET_LOGIN,
            session_max_age_seconds=app_settings.SESSION_COOKIE_MAX_AGE_SECONDS,
        )

    def request_challenge(self, address: str) -> dict:
        challenge = self.challenge_store.issue(address)
        logger.info("issued challenge for %s", normalize_address(address))
        return {"address": address, "challenge": challenge}

    def verify(
        self,
        db: Session,
        address: str,
        signature: str,
        public_key: Optional[str] = None,
    ) -> AuthResult:
        """
        Exchange a signed challenge for a session.

        Raises:
            NoChallengeFound: No live challenge for the address
            DecodeError: Signature or public key could not be decoded
            SignatureInvalid: The signature does not match, or an unsigned
                login was refused
        """
        entry = self.challenge_store.take(address)
        if entry is None:
            raise NoChallengeFound(normalize_address(address))

        bypass_reasons = self._bypass_reasons(address, signature, public_key)
        if bypass_reasons:
            logger.warning(
                "skipping signature verification for %s (mode=%s, triggered by %s)",
                entry.address,
                self.mode.value,
                ", ".join(bypass_reasons),
            )
            return self._complete(db, address, verified=False)

        if not public_key:
            if not self.allow_unverified:
                raise SignatureInvalid("publicKey is required")
            logger.warning("public key missing for %s, accepting unverified login", entry.address)
            return self._complete(db, address, verified=False, warning=UNVERIFIED_WARNING)

        try:
            ok = self.verifier.verify(entry.challenge, signature, public_key)
        except DecodeError:
            logger.info("could not decode signature material for %s", entry.address)
            raise
        if not ok:
            logger.info("signature verification failed for %s", entry.address)
            raise SignatureInvalid()

        logger.info("signature verified for %s", entry.address)
        return self._complete(db, address, verified=True)

    def _bypass_reasons(self, address: str, signature: str, public_key: Optional[str]) -> List[str]:
        if self.mode is VerificationMode.STRICT:
            return []
        if self.mode is VerificationMode.BYPASS:
            return ["mode"]
        return development_markers(address, signature, public_key)

    def _complete(self, db: Session, address: str, verified: bool, warning: Optional[str] = None) -> AuthResult:
        user = self.identity_resolver.resolve(db, address)
        access = self.session_issuer.issue(user)
        session = self.session_issuer.issue(user, expires_in=self.session_max_age_seconds)
        return AuthResult(
            access_token=access.token,
            session_token=session.token,
            user=user,
            verified=verified,
            warning=warning,
        )
