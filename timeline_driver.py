# -*- coding: utf-8 -*-
########################
# timeline_driver.py
########################
# Purpose:
# - Deterministic fixed-step pump for CueScheduler.
# - Used by tests and by the headless countdown demo.
#
# Design notes:
# - No Qt usage and no wall clock. Each step advances virtual time by step_ms.
# - Respects the scheduler's play state: a paused scheduler is not advanced.
# - run_until clamps the final step so virtual time lands exactly on end_ms.
#
########################
# Interfaces:
# Public classes:
# - class FixedStepDriver
#   - __init__(scheduler: CueScheduler, step_ms: int)
#   - step_ms() -> int
#   - step() -> list[FiredCue]
#   - run_until(end_ms: int) -> list[FiredCue]
#
# Inputs:
# - A CueScheduler owned by the caller.
#
# Outputs:
# - FiredCue lists in firing order.
#
########################

from __future__ import annotations

from typing import List

import cue_models
import cue_scheduler


class FixedStepDriver:
    def __init__(self, scheduler: cue_scheduler.CueScheduler, step_ms: int) -> None:
        step_value = int(step_ms)
        if step_value < 1:
            raise ValueError(f"step_ms must be >= 1, got {step_ms}")
        self._scheduler = scheduler
        self._step_ms = step_value

    def step_ms(self) -> int:
        return int(self._step_ms)

    def step(self) -> List[cue_scheduler.FiredCue]:
        if not self._scheduler.is_playing:
            return []
        return self._scheduler.advance(self._scheduler.current_time_ms + self._step_ms)

    def run_until(self, end_ms: int) -> List[cue_scheduler.FiredCue]:
        end_value = int(end_ms)
        fired: List[cue_scheduler.FiredCue] = []
        while self._scheduler.is_playing and self._scheduler.current_time_ms < end_value:
            next_time_ms = min(self._scheduler.current_time_ms + self._step_ms, end_value)
            fired.extend(self._scheduler.advance(next_time_ms))
        return fired


def _run_unit_tests() -> None:
    scheduler = cue_scheduler.CueScheduler()
    pulse = cue_models.cue(0).repeats(100).times(3)
    count = [0]

    def on_pulse() -> None:
        count[0] += 1

    scheduler.subscribe(pulse, on_pulse)
    driver = FixedStepDriver(scheduler, step_ms=16)

    assert driver.step() == []
    scheduler.play()
    fired = driver.run_until(10_000)
    assert scheduler.current_time_ms == 10_000
    assert [item.nominal_time_ms for item in fired] == [0, 100, 200]
    assert count[0] == 3

    scheduler.pause()
    assert driver.run_until(20_000) == []
    assert scheduler.current_time_ms == 10_000


if __name__ == "__main__":
    _run_unit_tests()
    print("timeline_driver.py: ok")
