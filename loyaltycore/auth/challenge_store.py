"""Single-use, time-limited login challenges keyed by wallet address.

A challenge (nonce) is issued per normalized principal, consumed by the first
successful ``verify`` and otherwise expires after the TTL. Issuing a new
challenge for a principal silently replaces the outstanding one.

``verify`` answers only ``True`` or ``False``: absent, expired and mismatched
challenges are indistinguishable to the caller.
"""

from __future__ import annotations

import abc
import hmac
import secrets
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import delete, func, insert, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from loyaltycore.exceptions import ChallengeStoreError
from loyaltycore.models.database import AuthChallenge

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)

DEFAULT_TTL_SECONDS = 300
_TOKEN_BYTES = 32  # 256 bits


def normalize_principal(principal: str) -> str:
    """Case-fold and trim a principal identifier (e.g. a wallet address)."""
    key = principal.strip().lower()
    if not key:
        msg = "principal must be a non-empty string"
        raise ValueError(msg)
    return key


def new_token() -> str:
    return secrets.token_hex(_TOKEN_BYTES)


@dataclass(frozen=True, slots=True)
class Challenge:
    principal_key: str
    token: str
    issued_at: float


class ChallengeStore(abc.ABC):
    """Async contract shared by the in-process and database-backed stores."""

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    def _now(self) -> float:
        return self._clock() if self._clock is not None else time.time()

    def _is_expired(self, issued_at: float, now: float) -> bool:
        return now - issued_at > self._ttl

    @abc.abstractmethod
    async def generate(self, principal: str) -> str:
        """Issue a fresh token for ``principal``, replacing any outstanding one."""

    @abc.abstractmethod
    async def verify(self, principal: str, supplied_token: str) -> bool:
        """Consume the challenge if ``supplied_token`` matches and is within TTL."""

    @abc.abstractmethod
    async def sweep(self) -> int:
        """Delete every challenge older than the TTL. Returns how many were removed."""

    @abc.abstractmethod
    async def count(self) -> int:
        """Number of stored challenges, expired or not."""


class InMemoryChallengeStore(ChallengeStore):
    """Process-local challenge store.

    All reads and writes of the map happen under one lock with no awaits
    inside, so ``verify`` is an atomic check-and-delete and ``generate`` an
    atomic overwrite, including against a sweeper running on another thread.
    Only suitable for single-process deployments; use
    ``DatabaseChallengeStore`` when several instances serve logins.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] | None = None,
    ) -> None:
        super().__init__(ttl_seconds=ttl_seconds, clock=clock)
        self._store: dict[str, Challenge] = {}
        self._lock = threading.Lock()

    async def generate(self, principal: str) -> str:
        key = normalize_principal(principal)
        token = new_token()
        with self._lock:
            self._store[key] = Challenge(principal_key=key, token=token, issued_at=self._now())
        logger.debug("challenge_issued", principal=key)
        return token

    async def verify(self, principal: str, supplied_token: str) -> bool:
        try:
            key = normalize_principal(principal)
        except ValueError:
            return False

        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                reason = "missing"
            elif self._is_expired(entry.issued_at, self._now()):
                del self._store[key]
                reason = "expired"
            elif not hmac.compare_digest(entry.token.encode(), supplied_token.encode()):
                reason = "mismatch"
            else:
                del self._store[key]
                reason = None

        if reason is not None:
            logger.debug("challenge_rejected", principal=key, reason=reason)
            return False
        logger.debug("challenge_consumed", principal=key)
        return True

    async def sweep(self) -> int:
        with self._lock:
            now = self._now()
            expired = [k for k, c in self._store.items() if self._is_expired(c.issued_at, now)]
            for k in expired:
                del self._store[k]
        return len(expired)

    async def count(self) -> int:
        with self._lock:
            return len(self._store)


class DatabaseChallengeStore(ChallengeStore):
    """Challenge store shared by every instance through the ``auth_challenges`` table.

    ``verify`` is a single conditional DELETE, so two instances racing on the
    same token cannot both succeed.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] | None = None,
    ) -> None:
        super().__init__(ttl_seconds=ttl_seconds, clock=clock)
        self._engine = engine
        self._table = AuthChallenge.__table__  # type: ignore[attr-defined]

    async def generate(self, principal: str) -> str:
        key = normalize_principal(principal)
        token = new_token()
        t = self._table

        # A concurrent generate for the same key can insert between our delete
        # and insert; retrying once lets the later writer win.
        for attempt in (1, 2):
            try:
                async with self._engine.begin() as conn:
                    await conn.execute(delete(t).where(t.c.principal_key == key))
                    await conn.execute(
                        insert(t).values(principal_key=key, token=token, issued_at=self._now())
                    )
                break
            except IntegrityError:
                if attempt == 2:
                    raise ChallengeStoreError("could not issue challenge") from None
                logger.debug("challenge_issue_retry", principal=key)
            except SQLAlchemyError as exc:
                logger.error("challenge_issue_failed", principal=key, error=str(exc))
                raise ChallengeStoreError("could not issue challenge") from exc

        logger.debug("challenge_issued", principal=key)
        return token

    async def verify(self, principal: str, supplied_token: str) -> bool:
        try:
            key = normalize_principal(principal)
        except ValueError:
            return False

        t = self._table
        now = self._now()
        cutoff = now - self._ttl
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(
                    delete(t).where(
                        t.c.principal_key == key,
                        t.c.token == supplied_token,
                        t.c.issued_at >= cutoff,
                    )
                )
                if result.rowcount == 1:
                    logger.debug("challenge_consumed", principal=key)
                    return True
                # Drop an expired entry for this key; a live one is left alone.
                await conn.execute(
                    delete(t).where(t.c.principal_key == key, t.c.issued_at < cutoff)
                )
        except SQLAlchemyError as exc:
            logger.error("challenge_verify_failed", principal=key, error=str(exc))
            return False

        logger.debug("challenge_rejected", principal=key)
        return False

    async def sweep(self) -> int:
        t = self._table
        cutoff = self._now() - self._ttl
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(delete(t).where(t.c.issued_at < cutoff))
        except SQLAlchemyError as exc:
            raise ChallengeStoreError("challenge sweep failed") from exc
        return int(result.rowcount or 0)

    async def count(self) -> int:
        t = self._table
        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(select(func.count()).select_from(t))
                return int(result.scalar_one())
        except SQLAlchemyError as exc:
            raise ChallengeStoreError("could not count challenges") from exc
