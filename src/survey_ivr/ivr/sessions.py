"""
In-memory registry of IVR call sessions.

Concurrency model (single event loop, one task per HTTP request):
- the table lock guards inserts and evictions, so concurrent starts never
  collide on a call_id;
- each call has its own lock; every read-modify-write on a session runs
  under it, so two racing steps on the same call are serialised instead of
  interleaving. Steps on different calls never wait on each other.
"""

from __future__ import annotations

import asyncio
import hashlib
import secrets
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable

from survey_ivr.ivr.models import CallSession, CallStatus
from survey_ivr.shared.exceptions import CallNotFoundError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_call_id() -> str:
    """Time + random composition: `call_<epoch-ms>_<random>`."""
    return f"call_{int(time.time() * 1000)}_{secrets.token_hex(6)}"


def make_anonymous_token(
    prefix: str,
    phone_number: str,
    start_time: datetime,
    call_id: str,
) -> str:
    """Derive the opaque per-call token; the phone number never leaves this digest."""
    material = "|".join(
        (phone_number, start_time.isoformat(), call_id, secrets.token_hex(8))
    )
    digest = hashlib.blake2b(material.encode("utf-8"), digest_size=16).hexdigest()
    return f"{prefix}{digest}"


@dataclass(frozen=True)
class ReapResult:
    """Summary of one reaper sweep."""

    abandoned: list[str] = field(default_factory=list)
    evicted: list[str] = field(default_factory=list)


class CallSessionTable:
    """Concurrent call_id -> CallSession map with idle expiry."""

    def __init__(
        self,
        *,
        token_prefix: str = "ivr_",
        idle_timeout: timedelta = timedelta(minutes=15),
        retention: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = utc_now,
        call_id_factory: Callable[[], str] = generate_call_id,
    ) -> None:
        self._token_prefix = token_prefix
        self._idle_timeout = idle_timeout
        self._retention = retention
        self._clock = clock
        self._call_id_factory = call_id_factory
        self._sessions: dict[str, CallSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._table_lock = asyncio.Lock()

    @property
    def clock(self) -> Callable[[], datetime]:
        return self._clock

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._sessions

    async def create(self, phone_number: str, survey_id: str) -> CallSession:
        """Register a new active session under a fresh call_id."""
        async with self._table_lock:
            call_id = self._call_id_factory()
            while call_id in self._sessions:
                call_id = self._call_id_factory()

            now = self._clock()
            session = CallSession(
                call_id=call_id,
                phone_number=phone_number,
                survey_id=survey_id,
                anonymous_token=make_anonymous_token(
                    self._token_prefix, phone_number, now, call_id
                ),
                start_time=now,
                last_activity_at=now,
            )
            self._sessions[call_id] = session
            self._locks[call_id] = asyncio.Lock()
            return session

    def discard(self, call_id: str) -> None:
        """Drop a session outright; unknown ids are ignored."""
        self._sessions.pop(call_id, None)
        self._locks.pop(call_id, None)

    def get(self, call_id: str) -> CallSession | None:
        return self._sessions.get(call_id)

    def require(self, call_id: str) -> CallSession:
        session = self._sessions.get(call_id)
        if session is None:
            raise CallNotFoundError(call_id)
        return session

    @asynccontextmanager
    async def locked(self, call_id: str) -> AsyncIterator[CallSession]:
        """Hold the per-call lock while mutating one session.

        Raises:
            CallNotFoundError: call_id is unknown (or was evicted while waiting).
        """
        lock = self._locks.get(call_id)
        if lock is None:
            raise CallNotFoundError(call_id)
        async with lock:
            yield self.require(call_id)

    def snapshot(self) -> list[CallSession]:
        return list(self._sessions.values())

    def counts_by_status(self) -> dict[str, int]:
        counts = {status.value: 0 for status in CallStatus}
        for session in self._sessions.values():
            counts[session.status.value] += 1
        return counts

    async def reap(self) -> ReapResult:
        """Abandon idle active calls and evict long-finished ones.

        Calls whose lock is currently held (a step is in flight) are skipped
        and reconsidered on the next sweep.
        """
        now = self._clock()
        result = ReapResult()

        async with self._table_lock:
            for call_id, session in list(self._sessions.items()):
                lock = self._locks[call_id]
                if lock.locked():
                    continue

                if session.is_active and now - session.last_activity_at >= self._idle_timeout:
                    session.abandon(now)
                    result.abandoned.append(call_id)
                    continue

                if session.is_finished and session.end_time is not None:
                    if now - session.end_time >= self._retention:
                        del self._sessions[call_id]
                        del self._locks[call_id]
                        result.evicted.append(call_id)

        return result
