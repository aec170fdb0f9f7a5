"""
Map a verified wallet address to a user row, creating the row on first login.

Two parallel first logins for the same new address (two tabs) both try to
insert. The unique constraint on users.wallet_address lets one of them win;
the other gets an IntegrityError, rolls back and reads the winner's row.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.challenge_store import normalize_address
from app.core.exceptions import IdentityConflict
from app.models.users import User

logger = logging.getLogger(__name__)

WALLET_EMAIL_DOMAIN = "wallet.generated"


def wallet_email(address: str) -> str:
    return f"{normalize_address(address)}@{WALLET_EMAIL_DOMAIN}"


def wallet_display_name(address: str) -> str:
    return f"Wallet User {address.strip()[:8]}..."


class IdentityResolver:
    """Lookup-or-create of users by wallet address."""

    def find(self, db: Session, address: str) -> Optional[User]:
        return db.query(User).filter(User.wallet_address == normalize_address(address)).first()

    def resolve(self, db: Session, address: str) -> User:
        """
        Get the user for a wallet address, creating it if it doesn't exist.
        Updates last_active_at.

        Raises:
            IdentityConflict: If the insert failed and no row can be read back
        """
        wallet_address = normalize_address(address)
        now = datetime.now(timezone.utc)

        user = self.find(db, wallet_address)
        if user:
            user.last_active_at = now  # type: ignore
            db.commit()
            return user

        user = User(
            email=wallet_email(wallet_address),
            wallet_address=wallet_address,
            name=wallet_display_name(address),
            last_active_at=now,
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info("user for %s created concurrently, reading it back", wallet_address)
            user = self.find(db, wallet_address)
            if user is None:
                raise IdentityConflict(wallet_address)
            return user

        db.refresh(user)
        logger.info("created wallet user %s for %s", user.id, wallet_address)
        return user
