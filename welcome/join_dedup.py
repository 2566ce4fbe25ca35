from __future__ import annotations

import asyncio
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

DEFAULT_ENTRY_TTL_SECONDS = 30.0
DEFAULT_FOLLOWER_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True, slots=True)
class JoinKey:
    guild_id: int
    user_id: int

    @classmethod
    def for_member(cls, member) -> "JoinKey":
        return cls(guild_id=int(member.guild.id), user_id=int(member.id))

    def __str__(self) -> str:
        return f"{self.guild_id}-{self.user_id}"


class JoinState(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"


class JoinOutcome(str, Enum):
    EXECUTED = "executed"
    DUPLICATE = "duplicate"
    PRIOR_FAILED = "prior_failed"
    DUPLICATE_TIMEOUT = "duplicate_timeout"


@dataclass(slots=True)
class JoinEntry:
    state: JoinState
    # Resolves to True when the owner's body succeeded, False when it raised.
    completion: asyncio.Future
    created_at: float


class JoinDeduplicator:
    """
    Collapses repeated "member joined" notifications for the same (guild, user)
    into a single run of the join body.

    The first caller for a key becomes the owner and runs the body exactly once.
    Every other caller arriving while the entry exists is a follower: it waits
    for the owner (bounded by follower_timeout_seconds) and never runs the body.
    Entries are dropped as soon as the owner finishes; entries whose owner never
    finishes are evicted after ttl_seconds.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_ENTRY_TTL_SECONDS,
        follower_timeout_seconds: float = DEFAULT_FOLLOWER_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = max(0.0, float(ttl_seconds))
        self.follower_timeout_seconds = max(0.0, float(follower_timeout_seconds))
        self._clock = clock
        self._entries: dict[JoinKey, JoinEntry] = {}
        # The only guard for _entries. Nothing inside it may await.
        self._lock = threading.Lock()
        self._owner_tasks: set[asyncio.Task] = set()

    def _is_stale(self, entry: JoinEntry, now: float) -> bool:
        return (now - entry.created_at) >= self.ttl_seconds

    def _claim(self, key: JoinKey) -> tuple[bool, JoinEntry]:
        loop = asyncio.get_running_loop()
        with self._lock:
            now = self._clock()
            existing = self._entries.get(key)
            if existing is not None and self._is_stale(existing, now):
                del self._entries[key]
                print(f"[Welcome] evicted stale join entry key={key} age_s={now - existing.created_at:.1f}")
                existing = None
            if existing is not None:
                return (False, existing)
            entry = JoinEntry(
                state=JoinState.RUNNING,
                completion=loop.create_future(),
                created_at=now,
            )
            self._entries[key] = entry
            return (True, entry)

    def _complete(self, key: JoinKey, entry: JoinEntry, *, succeeded: bool) -> None:
        with self._lock:
            if entry.state is JoinState.RUNNING:
                entry.state = JoinState.COMPLETED
                if not entry.completion.done():
                    entry.completion.set_result(bool(succeeded))
            # A stale entry may already have been replaced by a newer owner.
            if self._entries.get(key) is entry:
                del self._entries[key]

    async def _run_owner(self, key: JoinKey, entry: JoinEntry, body: Callable[[], Awaitable[Any]]) -> None:
        succeeded = False
        try:
            await body()
            succeeded = True
        finally:
            self._complete(key, entry, succeeded=succeeded)

    async def handle(self, key: JoinKey, body: Callable[[], Awaitable[Any]]) -> JoinOutcome:
        is_owner, entry = self._claim(key)
        if is_owner:
            task = asyncio.create_task(self._run_owner(key, entry, body))
            self._owner_tasks.add(task)
            task.add_done_callback(self._owner_tasks.discard)
            # Shielded so a cancelled caller cannot abort a half-sent welcome.
            await asyncio.shield(task)
            return JoinOutcome.EXECUTED

        try:
            succeeded = await asyncio.wait_for(
                asyncio.shield(entry.completion),
                timeout=self.follower_timeout_seconds,
            )
        except asyncio.TimeoutError:
            print(f"[Welcome] duplicate join wait timed out key={key} timeout_s={self.follower_timeout_seconds}")
            return JoinOutcome.DUPLICATE_TIMEOUT
        return JoinOutcome.DUPLICATE if succeeded else JoinOutcome.PRIOR_FAILED

    def sweep(self) -> int:
        with self._lock:
            now = self._clock()
            stale = [key for key, entry in self._entries.items() if self._is_stale(entry, now)]
            for key in stale:
                del self._entries[key]
        for key in stale:
            print(f"[Welcome] evicted stale join entry key={key} (sweep)")
        return len(stale)

    def has_entry(self, key: JoinKey) -> bool:
        with self._lock:
            return key in self._entries

    def pending_count(self) -> int:
        with self._lock:
            return len(self._entries)

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()
