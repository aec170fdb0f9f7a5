"""
Wallet authentication errors.

Every failure on the login path is one of these. The HTTP layer collapses
all of them into a single 401 response; the class and message only reach
the server log.
"""


class WalletAuthError(Exception):
    """Base class for wallet authentication failures."""

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        self.code = code or self.__class__.__name__
        super().__init__(self.message)


class NoChallengeFound(WalletAuthError):
    """Raised when verify is called for an address with no live challenge."""

    def __init__(self, address: str):
        super().__init__(f"No challenge found for address {address}", code="NO_CHALLENGE")


class DecodeError(WalletAuthError):
    """Raised when a signature or public key is neither hex nor base64."""

    def __init__(self, field: str):
        super().__init__(f"Could not decode {field}", code="DECODE_ERROR")


class SignatureInvalid(WalletAuthError):
    """Raised when the Ed25519 check fails."""

    def __init__(self, reason: str = "Invalid wallet signature"):
        super().__init__(reason, code="SIGNATURE_INVALID")


class IdentityConflict(WalletAuthError):
    """Raised when a user row could neither be created nor re-read."""

    def __init__(self, address: str):
        super().__init__(f"Could not resolve user for address {address}", code="IDENTITY_CONFLICT")


class SignerUnavailable(WalletAuthError):
    """Raised by a token signer that cannot produce a token."""

    def __init__(self, reason: str = "Token signer unavailable"):
        super().__init__(reason, code="SIGNER_UNAVAILABLE")


class SecretMissing(WalletAuthError):
    """Raised at startup when production runs with the default signing secret."""

    def __init__(self):
        super().__init__("JWT_SECRET must be set in production", code="SECRET_MISSING")


class TokenInvalid(WalletAuthError):
    """Raised when a session token is malformed or has a bad signature."""

    def __init__(self, reason: str = "Invalid token"):
        super().__init__(reason, code="TOKEN_INVALID")


class TokenExpired(TokenInvalid):
    """Raised when a session token is past its expiry."""

    def __init__(self):
        super().__init__("Token expired")
