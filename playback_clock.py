# -*- coding: utf-8 -*-
########################
# playback_clock.py
########################
# Purpose:
# - Converts successive wall-clock samples (milliseconds) into whole-millisecond deltas.
# - Holds the "last driver tick" bookkeeping that CueScheduler resets on play() and pause().
#
# Design notes:
# - No Qt usage. Keep this module pure and deterministic; callers supply the samples.
# - The first sample after reset() only establishes the reference and yields 0.
# - Fractional milliseconds are carried forward, so repeated sampling never drifts.
# - A sample earlier than the reference (clock stepped backwards) yields 0 and re-anchors.
#
########################
# Interfaces:
# Public dataclasses:
# - PlaybackClockSnapshot(reference_ms: Optional[float], total_elapsed_ms: int)
#
# Public classes:
# - class PlaybackClock
#   - reset() -> None
#   - sample_delta_ms(now_ms: float) -> int
#   - reference_ms() -> Optional[float]
#   - total_elapsed_ms() -> int
#   - snapshot() -> PlaybackClockSnapshot
#
# Inputs:
# - now_ms from whatever pump drives the scheduler (time.monotonic() * 1000 in QtTimelineDriver).
#
# Outputs:
# - Integer deltas that CueScheduler.tick adds to virtual time.
#
########################

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class PlaybackClockSnapshot:
    reference_ms: Optional[float]
    total_elapsed_ms: int


class PlaybackClock:
    def __init__(self) -> None:
        self._reference_ms: Optional[float] = None
        self._total_elapsed_ms = 0

    def reset(self) -> None:
        self._reference_ms = None

    def reference_ms(self) -> Optional[float]:
        return self._reference_ms

    def total_elapsed_ms(self) -> int:
        return int(self._total_elapsed_ms)

    def sample_delta_ms(self, now_ms: float) -> int:
        now_value = float(now_ms)
        if self._reference_ms is None or now_value < self._reference_ms:
            self._reference_ms = now_value
            return 0

        delta_ms = int(now_value - self._reference_ms)
        # Advance by the whole part only; the remainder stays in the reference.
        self._reference_ms += float(delta_ms)
        self._total_elapsed_ms += delta_ms
        return delta_ms

    def snapshot(self) -> PlaybackClockSnapshot:
        return PlaybackClockSnapshot(
            reference_ms=self._reference_ms,
            total_elapsed_ms=self.total_elapsed_ms(),
        )


def _run_unit_tests() -> None:
    clock = PlaybackClock()
    assert clock.sample_delta_ms(1000.0) == 0
    assert clock.sample_delta_ms(1016.6) == 16
    assert clock.sample_delta_ms(1033.3) == 17
    assert clock.sample_delta_ms(1033.9) == 0
    assert clock.total_elapsed_ms() == 33

    clock.reset()
    assert clock.reference_ms() is None
    assert clock.sample_delta_ms(5000.0) == 0
    assert clock.sample_delta_ms(4000.0) == 0
    assert clock.sample_delta_ms(4010.0) == 10

    snap = clock.snapshot()
    assert snap.reference_ms == 4010.0
    assert snap.total_elapsed_ms == 43


if __name__ == "__main__":
    _run_unit_tests()
    print("playback_clock.py: ok")
