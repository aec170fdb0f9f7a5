import time

import jwt
import pytest
from fastapi import status
from fastapi.testclient import TestClient

from app.core.challenge_store import InMemoryChallengeStore
from app.core.jwt_utils import SessionIssuer
from app.services.wallet_auth import AuthOrchestrator, VerificationMode
from main import app

TEST_SECRET = "test-secret"


def _challenge(client: TestClient, address: str) -> str:
    response = client.post("/auth/wallet/challenge", json={"address": address})
    assert response.status_code == status.HTTP_200_OK
    return response.json()["challenge"]


def _login(client: TestClient, wallet, address: str = "0xABC"):
    challenge = _challenge(client, address)
    return client.post(
        "/auth/wallet/verify",
        json={
            "address": address,
            "signature": wallet.sign_hex(challenge),
            "publicKey": wallet.public_key_hex,
        },
    )


class TestChallengeAPI:
    """Test cases for POST /auth/wallet/challenge"""

    def test_returns_challenge(self, client: TestClient):
        response = client.post("/auth/wallet/challenge", json={"address": "0xABC"})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["address"] == "0xABC"
        assert data["challenge"].startswith("Sign this challenge: ")
        assert len(data["challenge"]) >= len("Sign this challenge: ") + 32

    def test_new_challenge_every_call(self, client: TestClient):
        assert _challenge(client, "0xabc") != _challenge(client, "0xabc")

    def test_empty_address_is_rejected(self, client: TestClient):
        response = client.post("/auth/wallet/challenge", json={"address": ""})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_blank_address_is_rejected(self, client: TestClient):
        response = client.post("/auth/wallet/challenge", json={"address": "   "})
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_missing_address_is_rejected(self, client: TestClient):
        response = client.post("/auth/wallet/challenge", json={})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


class TestVerifyAPI:
    """Test cases for POST /auth/wallet/verify"""

    def test_login_success(self, client: TestClient, wallet):
        response = _login(client, wallet)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["user"]["walletAddress"] == "0xabc"
        assert data["user"]["email"] == "0xabc@wallet.generated"
        assert data["warning"] is None

        payload = jwt.decode(data["accessToken"], TEST_SECRET, algorithms=["HS256"])
        assert payload["sub"] == data["user"]["id"]
        assert payload["wallet"] is True
        assert payload["exp"] - payload["iat"] == 3600

    def test_sets_session_cookie(self, client: TestClient, wallet):
        response = _login(client, wallet)

        assert response.status_code == status.HTTP_200_OK
        cookie = response.headers["set-cookie"]
        assert cookie.startswith("jid=")
        assert "httponly" in cookie.lower()
        assert "samesite=lax" in cookie.lower()
        assert "max-age=604800" in cookie.lower()
        # plain http outside production
        assert "; secure" not in cookie.lower()

    def test_second_verify_fails(self, client: TestClient, wallet):
        challenge = _challenge(client, "0xabc")
        body = {
            "address": "0xabc",
            "signature": wallet.sign_hex(challenge),
            "publicKey": wallet.public_key_hex,
        }

        assert client.post("/auth/wallet/verify", json=body).status_code == status.HTTP_200_OK
        response = client.post("/auth/wallet/verify", json=body)
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["detail"] == "signature verification failed"

    def test_without_challenge(self, client: TestClient, wallet):
        response = client.post(
            "/auth/wallet/verify",
            json={"address": "0xabc", "signature": "0x00", "publicKey": wallet.public_key_hex},
        )
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["detail"] == "signature verification failed"

    @pytest.mark.parametrize(
        "signature",
        ["0xnothex", "0x" + "00" * 64, "dev_signature_x"],
    )
    def test_bad_signatures_share_one_message(self, client: TestClient, wallet, signature):
        _challenge(client, "0xabc")
        response = client.post(
            "/auth/wallet/verify",
            json={"address": "0xabc", "signature": signature, "publicKey": wallet.public_key_hex},
        )
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json() == {"detail": "signature verification failed"}
        assert "set-cookie" not in response.headers

    def test_missing_public_key_is_flagged(self, client: TestClient):
        _challenge(client, "0xabc")
        response = client.post(
            "/auth/wallet/verify",
            json={"address": "0xabc", "signature": "0x" + "00" * 64},
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["warning"] == "publicKey not provided; signature not verified"

    def test_dev_markers_outside_production(self, client: TestClient):
        app.state.auth_orchestrator = AuthOrchestrator(
            challenge_store=InMemoryChallengeStore(),
            session_issuer=SessionIssuer(secret=TEST_SECRET),
            mode=VerificationMode.MARKERS,
        )
        address = "0xdev0000000000000000"
        _challenge(client, address)

        response = client.post(
            "/auth/wallet/verify",
            json={"address": address, "signature": "dev_signature_x"},
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["user"]["walletAddress"] == address

    def test_same_user_on_every_login(self, client: TestClient, wallet):
        first = _login(client, wallet).json()["user"]["id"]
        second = _login(client, wallet, address="0xabc").json()["user"]["id"]
        assert first == second


class TestMeAPI:
    """Test cases for GET /auth/me"""

    def test_with_bearer_token(self, client: TestClient, wallet):
        token = _login(client, wallet).json()["accessToken"]
        client.cookies.clear()

        response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["walletAddress"] == "0xabc"
        assert response.json()["name"] == "Wallet User 0xABC..."

    def test_with_session_cookie(self, client: TestClient, wallet):
        user = _login(client, wallet).json()["user"]

        response = client.get("/auth/me")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["id"] == user["id"]

    def test_without_token(self, client: TestClient):
        response = client.get("/auth/me")
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["detail"] == "Missing token"

    def test_with_foreign_secret(self, client: TestClient):
        token = jwt.encode({"sub": "someone", "exp": int(time.time()) + 60}, "other-secret", algorithm="HS256")

        response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["detail"] == "Invalid token"

    def test_with_expired_token(self, client: TestClient):
        now = int(time.time())
        token = jwt.encode(
            {"sub": "someone", "email": "x", "wallet": True, "iat": now - 7200, "exp": now - 3600},
            TEST_SECRET,
            algorithm="HS256",
        )

        response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["detail"] == "Invalid token"

    def test_unknown_user(self, client: TestClient):
        token = jwt.encode({"sub": "missing-user", "exp": int(time.time()) + 60}, TEST_SECRET, algorithm="HS256")

        response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == status.HTTP_404_NOT_FOUND
