import uuid

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.sql import func

from app.db.base import Base


def _new_user_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """Model for users table
    Wallet users have no password and a synthesized email.
    Example:
    {
        "id": "550e8400-e29b-41d4-a716-446655440000",
        "email": "0xabc...@wallet.generated",
        "name": "Wallet User 0xABC123...",
        "wallet_address": "0xabc...",
        "created_at": "2024-01-01T12:00:00",
        "last_active_at": "2024-01-01T12:00:00"
    }
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_user_id)
    email = Column(String(320), nullable=False, unique=True)
    name = Column(Text, nullable=True)
    wallet_address = Column(String(255), nullable=True, unique=True, index=True)
    password_hash = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    last_active_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "walletAddress": self.wallet_address,
        }
