import base64
import os
from typing import Generator

# settings are read at import time
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.challenge_store import InMemoryChallengeStore
from app.core.jwt_utils import SessionIssuer
from app.core.wallet_signature import format_wallet_message
from app.db.base import Base
from app.db.session import get_db
from app.models.users import User  # noqa: F401
from app.services.wallet_auth import AuthOrchestrator, VerificationMode
from main import app

TEST_SECRET = "test-secret"

# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db() -> Generator:
    """Override database dependency for testing"""
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def reset_tables() -> Generator:
    """Every test starts with empty tables"""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db() -> Generator:
    """A session on the test database"""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def challenge_store() -> InMemoryChallengeStore:
    return InMemoryChallengeStore(max_age_seconds=300)


@pytest.fixture
def session_issuer() -> SessionIssuer:
    return SessionIssuer(secret=TEST_SECRET, expires_in_seconds=3600)


@pytest.fixture
def orchestrator(challenge_store, session_issuer) -> AuthOrchestrator:
    """Orchestrator in production mode: every login needs a real signature"""
    return AuthOrchestrator(
        challenge_store=challenge_store,
        session_issuer=session_issuer,
        mode=VerificationMode.STRICT,
    )


@pytest.fixture
def client(orchestrator) -> TestClient:
    """Create a test client for the FastAPI application"""
    previous = app.state.auth_orchestrator
    app.state.auth_orchestrator = orchestrator
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    app.state.auth_orchestrator = previous


class WalletKeypair:
    """Deterministic Ed25519 wallet used to sign challenges in tests"""

    def __init__(self, seed: bytes):
        self.private_key = Ed25519PrivateKey.from_private_bytes(seed)
        self.public_key_bytes = self.private_key.public_key().public_bytes(
            Encoding.Raw, PublicFormat.Raw
        )

    @property
    def public_key_hex(self) -> str:
        return "0x" + self.public_key_bytes.hex()

    def sign_bytes(self, challenge: str) -> bytes:
        """Sign a challenge the way an Aptos wallet does"""
        return self.private_key.sign(format_wallet_message(challenge).encode("utf-8"))

    def sign_hex(self, challenge: str) -> str:
        return "0x" + self.sign_bytes(challenge).hex()

    def sign_base64(self, challenge: str) -> str:
        return base64.b64encode(self.sign_bytes(challenge)).decode()


@pytest.fixture
def wallet() -> WalletKeypair:
    return WalletKeypair(bytes(range(32)))


@pytest.fixture
def other_wallet() -> WalletKeypair:
    return WalletKeypair(bytes(range(32, 64)))
