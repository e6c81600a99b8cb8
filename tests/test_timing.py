"""Tests for the estimated word schedule and the frame clock.

WHY: Clip backends give no timing information, so the schedule alone
decides when each word lights up. It must fire each word once, freeze
while paused, and go quiet the moment it is stopped.

HOW: A FakeFrameClock drives the schedule frame by frame with explicit
millisecond timestamps. The asyncio-backed clock is exercised briefly on
a real loop.

RULES:
- average = (len / words) * (60 / speed) milliseconds
- "Hello world" at speed 1.0 is 330 ms per word
"""

import asyncio

import pytest

from readaloud.core.segmenter import segment_words
from readaloud.core.timing import AsyncioFrameClock, WordSchedule, average_word_duration_ms


def _schedule(text, clock, paused=None, live=None, speed=1.0):
    words = segment_words(text)
    fired = []
    paused = paused if paused is not None else [False]
    live = live if live is not None else [True]
    schedule = WordSchedule(
        words,
        average_word_duration_ms(text, len(words), speed),
        clock,
        on_word=lambda word: fired.append(word.text),
        is_paused=lambda: paused[0],
        is_live=lambda: live[0],
    )
    return schedule, fired


class TestAverageWordDuration:
    def test_hello_world(self):
        assert average_word_duration_ms("Hello world", 2, 1.0) == pytest.approx(330.0)

    def test_speed_scales_inversely(self):
        assert average_word_duration_ms("Hello world", 2, 2.0) == pytest.approx(165.0)

    def test_zero_words(self):
        assert average_word_duration_ms("", 0, 1.0) == 0.0
        assert average_word_duration_ms("   ", 0, 1.0) == 0.0


class TestWordSchedule:
    """Frame-driven dispatch of estimated word highlights."""

    def test_hello_world_dispatches_exactly_two_events(self, frame_clock):
        clock = frame_clock
        schedule, fired = _schedule("Hello world", clock)
        schedule.start()
        clock.run_until(5000)
        assert fired == ["Hello", "world"]
        assert clock.pending == 0
        assert not schedule.running

    def test_first_word_on_first_frame(self, frame_clock):
        clock = frame_clock
        schedule, fired = _schedule("Hello world", clock)
        schedule.start()
        assert fired == []
        clock.tick()
        assert fired == ["Hello"]

    def test_next_word_waits_for_average(self, frame_clock):
        clock = frame_clock
        schedule, fired = _schedule("Hello world", clock)
        schedule.start()
        clock.tick()                      # t=10: Hello
        clock.run_until(330)
        assert fired == ["Hello"]
        clock.tick()                      # t=340: 330 ms after the first word
        assert fired == ["Hello", "world"]

    def test_paused_time_does_not_count(self, frame_clock):
        clock = frame_clock
        paused = [False]
        schedule, fired = _schedule("Hello world", clock, paused=paused)
        schedule.start()
        clock.tick()                      # t=10: Hello
        clock.run_until(100)
        paused[0] = True
        clock.run_until(1100)             # paused from t=110 to t=1110
        assert fired == ["Hello"]
        paused[0] = False
        clock.run_until(1330)
        assert fired == ["Hello"]
        clock.tick()                      # t=1340: 330 ms of unpaused time
        assert fired == ["Hello", "world"]

    def test_pause_keeps_requesting_frames(self, frame_clock):
        clock = frame_clock
        paused = [True]
        schedule, fired = _schedule("Hello world", clock, paused=paused)
        schedule.start()
        clock.run_until(2000)
        assert fired == []
        assert clock.pending == 1
        paused[0] = False
        clock.run_until(5000)
        assert fired == ["Hello", "world"]

    def test_stop_prevents_further_words(self, frame_clock):
        clock = frame_clock
        schedule, fired = _schedule("one two three", clock)
        schedule.start()
        clock.tick()
        schedule.stop()
        clock.run_until(5000)
        assert fired == ["one"]
        assert clock.pending == 0

    def test_liveness_failure_ends_schedule(self, frame_clock):
        clock = frame_clock
        live = [True]
        schedule, fired = _schedule("one two three", clock, live=live)
        schedule.start()
        clock.tick()
        live[0] = False
        clock.run_until(5000)
        assert fired == ["one"]
        assert clock.pending == 0
        assert not schedule.running

    def test_each_word_fires_once_at_most(self, frame_clock):
        clock = frame_clock
        clock.frame_ms = 1
        schedule, fired = _schedule("a b c d e f", clock, speed=4.0)
        schedule.start()
        clock.run_until(10000)
        assert fired == ["a", "b", "c", "d", "e", "f"]
        assert schedule.dispatched == 6

    def test_empty_word_list_never_requests_a_frame(self, frame_clock):
        clock = frame_clock
        schedule, fired = _schedule("", clock)
        schedule.start()
        assert clock.pending == 0
        assert not schedule.running

    def test_start_twice_requests_one_frame(self, frame_clock):
        clock = frame_clock
        schedule, _fired = _schedule("Hello world", clock)
        schedule.start()
        schedule.start()
        assert clock.pending == 1


class TestAsyncioFrameClock:
    def test_fires_with_millisecond_timestamp_and_cancels(self):
        async def scenario():
            clock = AsyncioFrameClock(interval_s=0.001)
            got = []
            clock.request(got.append)
            handle = clock.request(lambda ms: got.append("cancelled"))
            clock.cancel(handle)
            await asyncio.sleep(0.05)
            return got, asyncio.get_running_loop().time() * 1000.0

        got, now_ms = asyncio.run(scenario())
        assert len(got) == 1
        assert isinstance(got[0], float)
        assert got[0] <= now_ms
