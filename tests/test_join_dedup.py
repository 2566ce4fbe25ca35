from __future__ import annotations

import asyncio
import unittest

from welcome.join_dedup import JoinDeduplicator
from welcome.join_dedup import JoinKey
from welcome.join_dedup import JoinOutcome


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += float(seconds)


async def _drain(rounds: int = 10) -> None:
    # Lets freshly created tasks and their shielded bodies reach their first await.
    for _ in range(rounds):
        await asyncio.sleep(0)


class JoinKeyTests(unittest.TestCase):
    def test_for_member_uses_guild_and_user_ids(self):
        class FakeMember:
            id = 42
            guild = type("G", (), {"id": 7})()

        key = JoinKey.for_member(FakeMember())
        self.assertEqual(key, JoinKey(guild_id=7, user_id=42))
        self.assertEqual(str(key), "7-42")

    def test_equal_keys_hash_equal(self):
        self.assertEqual(len({JoinKey(7, 42), JoinKey(7, 42), JoinKey(7, 43)}), 2)


class JoinDeduplicatorTests(unittest.IsolatedAsyncioTestCase):
    async def test_concurrent_duplicates_run_body_once(self):
        dedup = JoinDeduplicator()
        key = JoinKey(7, 42)
        calls: list[int] = []

        async def body():
            calls.append(1)
            for _ in range(3):
                await asyncio.sleep(0)

        outcomes = await asyncio.gather(*(dedup.handle(key, body) for _ in range(5)))

        self.assertEqual(len(calls), 1)
        self.assertEqual(outcomes.count(JoinOutcome.EXECUTED), 1)
        self.assertEqual(outcomes.count(JoinOutcome.DUPLICATE), 4)

    async def test_different_keys_do_not_block_each_other(self):
        dedup = JoinDeduplicator()
        first_started = asyncio.Event()
        second_started = asyncio.Event()

        async def body_a():
            first_started.set()
            await second_started.wait()

        async def body_b():
            second_started.set()
            await first_started.wait()

        outcomes = await asyncio.wait_for(
            asyncio.gather(
                dedup.handle(JoinKey(7, 42), body_a),
                dedup.handle(JoinKey(7, 43), body_b),
            ),
            timeout=1.0,
        )
        self.assertEqual(outcomes, [JoinOutcome.EXECUTED, JoinOutcome.EXECUTED])

    async def test_follower_returns_only_after_owner_completes(self):
        dedup = JoinDeduplicator()
        key = JoinKey(7, 42)
        gate = asyncio.Event()
        finished: list[str] = []

        async def body():
            await gate.wait()
            finished.append("owner")

        owner = asyncio.create_task(dedup.handle(key, body))
        await _drain()
        follower = asyncio.create_task(dedup.handle(key, body))
        await _drain()
        self.assertFalse(follower.done())

        gate.set()
        self.assertEqual(await follower, JoinOutcome.DUPLICATE)
        self.assertEqual(finished, ["owner"])
        self.assertEqual(await owner, JoinOutcome.EXECUTED)

    async def test_entry_removed_when_owner_returns(self):
        dedup = JoinDeduplicator()
        key = JoinKey(7, 42)
        calls: list[int] = []

        async def body():
            calls.append(1)

        self.assertEqual(await dedup.handle(key, body), JoinOutcome.EXECUTED)
        self.assertFalse(dedup.has_entry(key))
        self.assertEqual(dedup.pending_count(), 0)

        # A rejoin later is a brand new logical join.
        self.assertEqual(await dedup.handle(key, body), JoinOutcome.EXECUTED)
        self.assertEqual(len(calls), 2)

    async def test_hung_owner_is_evicted_after_ttl(self):
        clock = FakeClock()
        dedup = JoinDeduplicator(ttl_seconds=30.0, follower_timeout_seconds=5.0, clock=clock)
        key = JoinKey(7, 42)
        hang = asyncio.Event()
        second_gate = asyncio.Event()
        calls: list[str] = []

        async def hung_body():
            calls.append("first")
            await hang.wait()

        async def second_body():
            calls.append("second")
            await second_gate.wait()

        first = asyncio.create_task(dedup.handle(key, hung_body))
        await _drain()
        self.assertTrue(dedup.has_entry(key))

        clock.advance(31)
        second = asyncio.create_task(dedup.handle(key, second_body))
        await _drain()
        self.assertEqual(calls, ["first", "second"])

        # The old owner finishing must not drop the newer owner's entry.
        hang.set()
        self.assertEqual(await first, JoinOutcome.EXECUTED)
        self.assertTrue(dedup.has_entry(key))

        second_gate.set()
        self.assertEqual(await second, JoinOutcome.EXECUTED)
        self.assertFalse(dedup.has_entry(key))

    async def test_entry_younger_than_ttl_is_not_evicted(self):
        clock = FakeClock()
        dedup = JoinDeduplicator(ttl_seconds=30.0, follower_timeout_seconds=0.05, clock=clock)
        key = JoinKey(7, 42)
        hang = asyncio.Event()
        calls: list[int] = []

        async def body():
            calls.append(1)
            await hang.wait()

        owner = asyncio.create_task(dedup.handle(key, body))
        await _drain()
        clock.advance(29)
        self.assertEqual(await dedup.handle(key, body), JoinOutcome.DUPLICATE_TIMEOUT)
        self.assertEqual(len(calls), 1)

        hang.set()
        await owner

    async def test_sweep_evicts_only_stale_entries(self):
        clock = FakeClock()
        dedup = JoinDeduplicator(ttl_seconds=30.0, clock=clock)
        hang = asyncio.Event()

        async def body():
            await hang.wait()

        old = asyncio.create_task(dedup.handle(JoinKey(7, 1), body))
        await _drain()
        clock.advance(20)
        fresh = asyncio.create_task(dedup.handle(JoinKey(7, 2), body))
        await _drain()
        clock.advance(15)

        self.assertEqual(dedup.sweep(), 1)
        self.assertFalse(dedup.has_entry(JoinKey(7, 1)))
        self.assertTrue(dedup.has_entry(JoinKey(7, 2)))

        hang.set()
        await asyncio.gather(old, fresh)
        self.assertEqual(dedup.pending_count(), 0)

    async def test_owner_error_propagates_and_follower_gets_prior_failed(self):
        dedup = JoinDeduplicator()
        key = JoinKey(7, 42)
        gate = asyncio.Event()
        error = RuntimeError("missing permission to grant role")

        async def body():
            await gate.wait()
            raise error

        owner = asyncio.create_task(dedup.handle(key, body))
        await _drain()
        follower = asyncio.create_task(dedup.handle(key, body))
        await _drain()
        gate.set()

        with self.assertRaises(RuntimeError) as ctx:
            await owner
        self.assertIs(ctx.exception, error)
        self.assertEqual(await follower, JoinOutcome.PRIOR_FAILED)
        self.assertFalse(dedup.has_entry(key))

    async def test_follower_wait_is_bounded(self):
        dedup = JoinDeduplicator(follower_timeout_seconds=0.02)
        key = JoinKey(7, 42)
        hang = asyncio.Event()
        calls: list[int] = []

        async def body():
            calls.append(1)
            await hang.wait()

        owner = asyncio.create_task(dedup.handle(key, body))
        await _drain()
        self.assertEqual(await dedup.handle(key, body), JoinOutcome.DUPLICATE_TIMEOUT)
        self.assertEqual(len(calls), 1)
        self.assertTrue(dedup.has_entry(key))

        hang.set()
        self.assertEqual(await owner, JoinOutcome.EXECUTED)
        self.assertFalse(dedup.has_entry(key))

    async def test_cancelled_owner_caller_does_not_abort_body(self):
        dedup = JoinDeduplicator()
        key = JoinKey(7, 42)
        gate = asyncio.Event()
        done: list[str] = []

        async def body():
            await gate.wait()
            done.append("sent")

        owner = asyncio.create_task(dedup.handle(key, body))
        await _drain()
        owner.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await owner

        self.assertTrue(dedup.has_entry(key))
        gate.set()
        await _drain()
        self.assertEqual(done, ["sent"])
        self.assertFalse(dedup.has_entry(key))

    async def test_reset_clears_entries(self):
        dedup = JoinDeduplicator()
        hang = asyncio.Event()

        async def body():
            await hang.wait()

        owner = asyncio.create_task(dedup.handle(JoinKey(7, 42), body))
        await _drain()
        self.assertEqual(dedup.pending_count(), 1)
        dedup.reset()
        self.assertEqual(dedup.pending_count(), 0)

        hang.set()
        await owner


if __name__ == "__main__":
    unittest.main()
