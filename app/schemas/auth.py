from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ChallengeRequest(BaseModel):
    """Request model for challenge generation - input validation"""

    address: str = Field(..., min_length=1, description="Wallet address")


class ChallengeResponse(BaseModel):
    """Response model for challenge generation - output"""

    address: str
    challenge: str


class VerifyRequest(BaseModel):
    """Request model for wallet verification - input validation"""

    model_config = ConfigDict(populate_by_name=True)

    address: str = Field(..., min_length=1, description="Wallet address")
    signature: str = Field(..., description="Signature of the formatted challenge (0x hex, hex or base64)")
    public_key: Optional[str] = Field(
        default=None,
        alias="publicKey",
        description="Ed25519 public key (0x hex, hex or base64)",
    )


class UserSummary(BaseModel):
    """Public part of a user record"""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    email: str
    name: Optional[str] = None
    wallet_address: Optional[str] = Field(default=None, alias="walletAddress")


class AuthResponse(BaseModel):
    """Response model for authentication - output"""

    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(..., alias="accessToken")
    user: UserSummary
    warning: Optional[str] = None


class ProfileResponse(BaseModel):
    """Response model for the current user profile"""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    email: str
    name: Optional[str] = None
    wallet_address: Optional[str] = Field(default=None, alias="walletAddress")
