"""
Wallet Challenge Store

Holds the outstanding login challenge for each wallet address.

Flow:
1. Client asks for a challenge -> issue() stores a fresh random text for the address
2. Client signs the text with its wallet
3. Backend removes it with take() before verifying the signature
4. take() is atomic, so a challenge can only ever be used once
   (peek() and consume() exist for inspection and cleanup)

Rules:
- Addresses are lowercased before they are used as keys
- One live challenge per address, a new issue() replaces the previous one
- Entries older than max_age_seconds are treated as absent

Two implementations share the same interface:
- InMemoryChallengeStore: a locked dict, fine for a single worker
- RedisChallengeStore: one Redis key per address, shared by all workers
"""

from __future__ import annotations

import json
import logging
import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from threading import Lock
from typing import Callable, Dict, Optional

from redis import Connection, ConnectionPool, Redis, SSLConnection

logger = logging.getLogger(__name__)

CHALLENGE_PREFIX = "Sign this challenge: "
NONCE_NUM_BYTES = 32  # 32 bytes = 64 hex characters
MIN_NONCE_NUM_BYTES = 16
REDIS_KEY_PREFIX = "wallet-challenge:"


def normalize_address(address: str) -> str:
    return address.strip().lower()


def generate_nonce(num_bytes: int = NONCE_NUM_BYTES) -> str:
    """
    Generate a cryptographically secure random nonce for a login challenge.

    Args:
        num_bytes: Number of random bytes (never less than 16)

    Returns:
        Hex-encoded random string
    """
    if num_bytes < MIN_NONCE_NUM_BYTES:
        num_bytes = NONCE_NUM_BYTES
    return secrets.token_hex(num_bytes)


def build_challenge_text(nonce: str) -> str:
    return CHALLENGE_PREFIX + nonce


@dataclass
class Challenge:
    """A challenge waiting to be signed."""

    address: str
    challenge: str
    created_at: float

    def is_expired(self, max_age_seconds: Optional[int], now: float) -> bool:
        if not max_age_seconds or max_age_seconds <= 0:
            return False
        return now - self.created_at > max_age_seconds


class ChallengeStore(ABC):
    """Owner of every outstanding challenge, keyed by normalized address."""

    def __init__(
        self,
        max_age_seconds: Optional[int] = 300,
        clock: Callable[[], float] = time.time,
    ):
        self.max_age_seconds = max_age_seconds
        self._clock = clock

    def issue(self, address: str) -> str:
        """
        Create a new challenge for the address, replacing any previous one.

        Returns:
            The challenge text the wallet has to sign
        """
        key = normalize_address(address)
        challenge = Challenge(
            address=key,
            challenge=build_challenge_text(generate_nonce()),
            created_at=self._clock(),
        )
        self._save(challenge)
        return challenge.challenge

    def peek(self, address: str) -> Optional[Challenge]:
        """Return the live challenge for the address without consuming it."""
        key = normalize_address(address)
        challenge = self._load(key)
        if challenge is None:
            return None
        if challenge.is_expired(self.max_age_seconds, self._clock()):
            logger.info("challenge for %s expired", key)
            self._delete(key)
            return None
        return challenge

    def take(self, address: str) -> Optional[Challenge]:
        """
        Remove and return the live challenge for the address in one step.

        Two callers racing on the same address never both get the entry.
        """
        key = normalize_address(address)
        challenge = self._pop(key)
        if challenge is None:
            return None
        if challenge.is_expired(self.max_age_seconds, self._clock()):
            logger.info("challenge for %s expired", key)
            return None
        return challenge

    def consume(self, address: str) -> None:
        """Delete the challenge for the address. Missing entries are ignored."""
        self._delete(normalize_address(address))

    @abstractmethod
    def _save(self, challenge: Challenge) -> None:
        ...

    @abstractmethod
    def _load(self, key: str) -> Optional[Challenge]:
        ...

    @abstractmethod
    def _delete(self, key: str) -> None:
        ...

    @abstractmethod
    def _pop(self, key: str) -> Optional[Challenge]:
        ...


class InMemoryChallengeStore(ChallengeStore):
    """Challenge store local to one process."""

    def __init__(
        self,
        max_age_seconds: Optional[int] = 300,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(max_age_seconds=max_age_seconds, clock=clock)
        self._challenges: Dict[str, Challenge] = {}
        self._lock = Lock()

    def _save(self, challenge: Challenge) -> None:
        with self._lock:
            self._challenges[challenge.address] = challenge

    def _load(self, key: str) -> Optional[Challenge]:
        with self._lock:
            return self._challenges.get(key)

    def _delete(self, key: str) -> None:
        with self._lock:
            self._challenges.pop(key, None)

    def _pop(self, key: str) -> Optional[Challenge]:
        with self._lock:
            return self._challenges.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._challenges)


class RedisChallengeStore(ChallengeStore):
    """
    Challenge store backed by Redis so several workers see the same challenges.

    Keys expire on the Redis side after max_age_seconds; peek() still checks
    the age in case the key was written without a TTL.
    """

    def __init__(
        self,
        client: Redis,
        max_age_seconds: Optional[int] = 300,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(max_age_seconds=max_age_seconds, clock=clock)
        self.client = client

    @staticmethod
    def _key(address: str) -> str:
        return f"{REDIS_KEY_PREFIX}{address}"

    def _save(self, challenge: Challenge) -> None:
        data = json.dumps(asdict(challenge))
        ttl = self.max_age_seconds if self.max_age_seconds and self.max_age_seconds > 0 else None
        self.client.set(self._key(challenge.address), data, ex=ttl)

    def _parse(self, key: str, raw) -> Optional[Challenge]:
        if raw is None or raw == b"":
            return None
        try:
            return Challenge(**json.loads(raw))
        except (TypeError, ValueError):
            logger.warning("dropping unreadable challenge entry for %s", key)
            return None

    def _load(self, key: str) -> Optional[Challenge]:
        raw = self.client.get(self._key(key))
        challenge = self._parse(key, raw)
        if challenge is None and raw:
            self._delete(key)
        return challenge

    def _delete(self, key: str) -> None:
        self.client.delete(self._key(key))

    def _pop(self, key: str) -> Optional[Challenge]:
        # GETDEL, atomic on the server (Redis 6.2+)
        return self._parse(key, self.client.getdel(self._key(key)))


def build_challenge_store(settings) -> ChallengeStore:
    """Pick the challenge store implementation from the settings."""
    if settings.REDIS_HOST is None or settings.REDIS_HOST.strip() == "":
        return InMemoryChallengeStore(max_age_seconds=settings.CHALLENGE_EXPIRY_SECONDS)

    pool = ConnectionPool(
        host=settings.REDIS_HOST,
        port=settings.REDIS_PORT,
        socket_connect_timeout=1,
        socket_timeout=5,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
        connection_class=SSLConnection if settings.REDIS_SSL else Connection,
    )
    logger.info("using redis challenge store at %s:%s", settings.REDIS_HOST, settings.REDIS_PORT)
    return RedisChallengeStore(
        Redis(connection_pool=pool),
        max_age_seconds=settings.CHALLENGE_EXPIRY_SECONDS,
    )
