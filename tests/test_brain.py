from __future__ import annotations

import threading
import unittest
from datetime import datetime, timedelta, timezone
from typing import List

from schizoid.adapters.archive import ArchiveTransport
from schizoid.brain import Brain
from schizoid.errors import TransportError
from schizoid.messages import Message
from schizoid.settings import SchizoidSettings

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_message(
    seconds: int,
    content: str,
    channel_id: str = "c1",
    *,
    is_bot: bool = False,
) -> Message:
    return Message(
        content=content,
        author_id="bot" if is_bot else "u1",
        channel_id=channel_id,
        created_at=EPOCH + timedelta(seconds=seconds),
        message_id=f"{channel_id}-m{seconds}",
        is_bot=is_bot,
    )


class FailingTransport:
    def __init__(self) -> None:
        self.calls = 0

    def fetch(self, channel_id: str, anchor_message_id: str, page_size: int) -> List[Message]:
        self.calls += 1
        raise TransportError(channel_id, "gateway timeout")

    def describe(self) -> str:
        return "failing"


class ObserveTests(unittest.TestCase):
    def setUp(self) -> None:
        self.brain = Brain.fresh("g1", SchizoidSettings(ngram_order=3))

    def test_span_driven_observation(self) -> None:
        self.assertTrue(self.brain.observe(make_message(10, "first")))
        span = self.brain.trained_span("c1")
        assert span is not None
        self.assertEqual(span.start, span.end)

        self.assertTrue(self.brain.observe(make_message(5, "second")))
        span = self.brain.trained_span("c1")
        assert span is not None
        self.assertEqual(span.start, EPOCH + timedelta(seconds=5))
        self.assertEqual(span.end, EPOCH + timedelta(seconds=10))
        self.assertEqual(self.brain.model.counts["sec"], 1)

        before = dict(self.brain.model.counts)
        self.assertFalse(self.brain.observe(make_message(7, "third")))
        self.assertEqual(self.brain.model.counts, before)

    def test_repeat_delivery_trains_once(self) -> None:
        message = make_message(10, "hello")
        self.assertTrue(self.brain.observe(message))
        self.assertFalse(self.brain.observe(message))
        self.assertEqual(self.brain.model.counts["hel"], 1)

    def test_bot_and_empty_messages_extend_span_without_training(self) -> None:
        self.brain.observe(make_message(10, "beep", is_bot=True))
        self.brain.observe(make_message(12, ""))
        self.assertEqual(self.brain.model.counts, {})
        span = self.brain.trained_span("c1")
        assert span is not None
        self.assertEqual(span.end, EPOCH + timedelta(seconds=12))

    def test_channels_keep_separate_spans(self) -> None:
        self.brain.observe(make_message(10, "one", "c1"))
        self.brain.observe(make_message(10, "two", "c2"))
        self.assertEqual(self.brain.channel_ids(), ["c1", "c2"])
        self.assertEqual(self.brain.stats()["channels"], 2)

    def test_concurrent_delivery_trains_exactly_once(self) -> None:
        message = make_message(10, "race condition")
        barrier = threading.Barrier(8)
        results: list[bool] = []
        results_lock = threading.Lock()

        def worker() -> None:
            barrier.wait()
            trained = self.brain.observe(message)
            with results_lock:
                results.append(trained)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        self.assertEqual(results.count(True), 1)
        self.assertEqual(self.brain.model.counts["rac"], 1)


class ForgetTests(unittest.TestCase):
    def setUp(self) -> None:
        self.brain = Brain.fresh("g1", SchizoidSettings(ngram_order=3))
        self.brain.observe(make_message(10, "first"))
        self.brain.observe(make_message(5, "second"))

    def test_forget_retracts_counts_and_keeps_span(self) -> None:
        self.assertTrue(self.brain.forget(make_message(5, "second")))
        self.assertEqual(self.brain.model.counts["sec"], 0)
        self.assertEqual(self.brain.model.counts["fir"], 1)
        span = self.brain.trained_span("c1")
        assert span is not None
        self.assertEqual(span.start, EPOCH + timedelta(seconds=5))
        self.assertEqual(span.end, EPOCH + timedelta(seconds=10))

    def test_forget_outside_span_is_noop(self) -> None:
        before = dict(self.brain.model.counts)
        self.assertFalse(self.brain.forget(make_message(50, "first")))
        self.assertFalse(self.brain.forget(make_message(7, "first", "other")))
        self.assertEqual(self.brain.model.counts, before)

    def test_revise_swaps_content(self) -> None:
        before = make_message(10, "first")
        after = make_message(10, "fist")
        self.assertTrue(self.brain.revise(before, after))
        self.assertEqual(self.brain.model.counts["irs"], 0)
        self.assertEqual(self.brain.model.counts["ist"], 1)


class BackfillTests(unittest.TestCase):
    def setUp(self) -> None:
        self.history = [make_message(seconds, f"message number {seconds}") for seconds in range(1, 11)]
        self.transport = ArchiveTransport(self.history)
        self.brain = Brain.fresh("g1", SchizoidSettings(ngram_order=3))

    def test_no_span_means_nothing_to_anchor(self) -> None:
        self.assertEqual(self.brain.observe_some_messages(self.transport, "c1"), 0)

    def test_pages_walk_history_backwards(self) -> None:
        self.brain.observe(self.history[-1])
        fetched = self.brain.observe_some_messages(self.transport, "c1", page_size=3)
        self.assertEqual(fetched, 3)
        self.assertEqual(self.brain.earliest_message_id("c1"), "c1-m7")
        while self.brain.observe_some_messages(self.transport, "c1", page_size=3):
            pass
        span = self.brain.trained_span("c1")
        assert span is not None
        self.assertEqual((span.start_id, span.end_id), ("c1-m1", "c1-m10"))
        # Every message contains "mes" exactly once.
        self.assertEqual(self.brain.model.counts["mes"], 10)

    def test_failed_fetch_returns_zero_and_keeps_state(self) -> None:
        self.brain.observe(self.history[-1])
        before = dict(self.brain.model.counts)
        transport = FailingTransport()
        self.assertEqual(self.brain.observe_some_messages(transport, "c1"), 0)
        self.assertEqual(transport.calls, 1)
        self.assertEqual(self.brain.model.counts, before)
        self.assertEqual(self.brain.earliest_message_id("c1"), "c1-m10")


class StateTests(unittest.TestCase):
    def test_state_round_trip(self) -> None:
        brain = Brain.fresh("g1", SchizoidSettings(ngram_order=3))
        brain.observe(make_message(10, "persist me"))
        restored = Brain.from_state(brain.to_state())
        self.assertEqual(restored.guild_id, "g1")
        self.assertEqual(restored.model.counts, brain.model.counts)
        self.assertEqual(restored.trained_span("c1"), brain.trained_span("c1"))
        self.assertFalse(restored.observe(make_message(10, "persist me")))

    def test_naive_timestamps_survive_state_round_trip(self) -> None:
        def naive(seconds: int, content: str) -> Message:
            return Message(
                content=content,
                author_id="u1",
                channel_id="c1",
                created_at=datetime(2024, 1, 1, 0, 0, seconds),
                message_id=f"n{seconds}",
            )

        brain = Brain.fresh("g1", SchizoidSettings(ngram_order=3))
        self.assertTrue(brain.observe(naive(10, "before save")))
        restored = Brain.from_state(brain.to_state())
        self.assertTrue(restored.observe(naive(20, "after load")))
        self.assertFalse(restored.observe(naive(15, "inside span")))
        self.assertTrue(restored.forget(naive(20, "after load")))
        self.assertTrue(restored.revise(naive(10, "before save"), naive(10, "edited")))
        span = restored.trained_span("c1")
        assert span is not None
        self.assertEqual(span.end, EPOCH + timedelta(seconds=20))


if __name__ == "__main__":
    unittest.main()
