# -*- coding: utf-8 -*-
########################
# cue_scheduler.py
########################
# Purpose:
# - Owns a virtual timeline position and fires subscriber callbacks when cues are crossed.
# - Tracks per-cue firing state: whether a one-shot fired, and count and last tick of a repeating cue.
#
# Design notes:
# - No Qt usage and no own timing source. A driver calls advance(to_time_ms) or tick(now_ms).
# - Firing window per advance is (previous_time, to_time]. Repeating cues catch up: every
#   interval tick inside the window fires once, in chronological order.
# - seek() forward is silent. seek() backward clears all firing state so cues can fire again.
# - Firing state lives here, keyed by cue_id, so one cue in two schedulers fires independently.
# - Callbacks run synchronously in the calling thread. Each invocation is isolated; a raising
#   callback goes to the error handler and siblings still fire.
# - Registry and subscription lists are snapshotted at the start of each advance.
#
########################
# Interfaces:
# Public dataclasses:
# - FiredCue(cue: Cue, nominal_time_ms: int)
# - SchedulerSnapshot(current_time_ms: int, is_playing: bool, registered_cue_count: int,
#                     fired_one_shot_count: int, active_repeat_count: int)
#
# Public exceptions:
# - SchedulerDestroyedError(RuntimeError)
#
# Public classes:
# - class Subscription
#   - __call__() -> None, cancel() -> None, active -> bool
# - class CueScheduler
#   - __init__(error_handler: Optional[Callable[[Cue, Exception], None]] = None)
#   - subscribe(cue: Cue, callback: Callable[[], None]) -> Subscription
#   - subscribe_once(cue: Cue, callback: Callable[[], None]) -> Subscription
#   - play() -> None, pause() -> None, seek(target_ms: int) -> None
#   - advance(to_time_ms: int) -> list[FiredCue]
#   - tick(now_ms: float) -> list[FiredCue]
#   - destroy() -> None
#   - current_time_ms -> int, is_playing -> bool, is_destroyed -> bool
#   - fire_count(cue: Cue) -> int, has_fired(cue: Cue) -> bool, listener_count(cue: Cue) -> int
#   - snapshot() -> SchedulerSnapshot
#
# Inputs:
# - Cue values (cue_models) and zero-argument callbacks from callers.
# - Absolute virtual times (advance) or wall-clock samples (tick) from a driver.
#
# Outputs:
# - Callback invocations and FiredCue lists for drivers and UI.
#
########################

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set

import cue_models
from playback_clock import PlaybackClock

logger = logging.getLogger(__name__)

CueCallback = Callable[[], None]
ErrorHandler = Callable[[cue_models.Cue, Exception], None]


class SchedulerDestroyedError(RuntimeError):
    pass


@dataclass(frozen=True)
class FiredCue:
    cue: cue_models.Cue
    nominal_time_ms: int


@dataclass(frozen=True)
class SchedulerSnapshot:
    current_time_ms: int
    is_playing: bool
    registered_cue_count: int
    fired_one_shot_count: int
    active_repeat_count: int


@dataclass
class _RepeatState:
    last_fire_time_ms: int
    count: int = 0


class Subscription:
    """Handle returned by subscribe(); calling it removes exactly that registration."""

    def __init__(self, owner: "_CueListeners", callback: CueCallback, *, once: bool) -> None:
        self._owner = owner
        self._callback = callback
        self._once = bool(once)
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    @property
    def once(self) -> bool:
        return self._once

    @property
    def callback(self) -> CueCallback:
        return self._callback

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._owner.remove(self)

    def __call__(self) -> None:
        self.cancel()


class _CueListeners:
    def __init__(self, cue: cue_models.Cue) -> None:
        self.cue = cue
        self.subscriptions: List[Subscription] = []

    def find_plain(self, callback: CueCallback) -> Optional[Subscription]:
        for subscription in self.subscriptions:
            if not subscription.once and subscription.callback == callback:
                return subscription
        return None

    def remove(self, subscription: Subscription) -> None:
        try:
            self.subscriptions.remove(subscription)
        except ValueError:
            pass


def _log_callback_error(cue: cue_models.Cue, exception: Exception) -> None:
    logger.error("Callback for %s raised %s", cue.describe(), type(exception).__name__, exc_info=exception)


class CueScheduler:
    def __init__(self, error_handler: Optional[ErrorHandler] = None) -> None:
        self._error_handler: ErrorHandler = error_handler if error_handler is not None else _log_callback_error
        self._virtual_time_ms = 0
        self._is_playing = False
        self._is_destroyed = False
        self._clock = PlaybackClock()
        self._listeners: Dict[int, _CueListeners] = {}
        self._fired_one_shots: Set[int] = set()
        self._repeat_states: Dict[int, _RepeatState] = {}

    # -----------------
    # State queries
    # -----------------

    @property
    def current_time_ms(self) -> int:
        self._ensure_alive()
        return int(self._virtual_time_ms)

    @property
    def is_playing(self) -> bool:
        self._ensure_alive()
        return bool(self._is_playing)

    @property
    def is_destroyed(self) -> bool:
        return bool(self._is_destroyed)

    def fire_count(self, cue: cue_models.Cue) -> int:
        self._ensure_alive()
        if cue.is_repeating:
            state = self._repeat_states.get(cue.cue_id)
            return int(state.count) if state is not None else 0
        return 1 if cue.cue_id in self._fired_one_shots else 0

    def has_fired(self, cue: cue_models.Cue) -> bool:
        return self.fire_count(cue) > 0

    def listener_count(self, cue: cue_models.Cue) -> int:
        self._ensure_alive()
        entry = self._listeners.get(cue.cue_id)
        return len(entry.subscriptions) if entry is not None else 0

    def snapshot(self) -> SchedulerSnapshot:
        self._ensure_alive()
        return SchedulerSnapshot(
            current_time_ms=int(self._virtual_time_ms),
            is_playing=bool(self._is_playing),
            registered_cue_count=len(self._listeners),
            fired_one_shot_count=len(self._fired_one_shots),
            active_repeat_count=len(self._repeat_states),
        )

    # -----------------
    # Subscriptions
    # -----------------

    def subscribe(self, cue: cue_models.Cue, callback: CueCallback) -> Subscription:
        self._ensure_alive()
        entry = self._entry_for(cue)
        existing = entry.find_plain(callback)
        if existing is not None:
            return existing
        subscription = Subscription(entry, callback, once=False)
        entry.subscriptions.append(subscription)
        return subscription

    def subscribe_once(self, cue: cue_models.Cue, callback: CueCallback) -> Subscription:
        self._ensure_alive()
        entry = self._entry_for(cue)
        subscription = Subscription(entry, callback, once=True)
        entry.subscriptions.append(subscription)
        return subscription

    def _entry_for(self, cue: cue_models.Cue) -> _CueListeners:
        entry = self._listeners.get(cue.cue_id)
        if entry is None:
            entry = _CueListeners(cue)
            self._listeners[cue.cue_id] = entry
        return entry

    # -----------------
    # Transport controls
    # -----------------

    def play(self) -> None:
        self._ensure_alive()
        if self._is_playing:
            return
        self._is_playing = True
        self._clock.reset()

    def pause(self) -> None:
        self._ensure_alive()
        self._is_playing = False
        self._clock.reset()

    def seek(self, target_ms: int) -> None:
        self._ensure_alive()
        target_value = int(target_ms)
        if target_value < 0:
            target_value = 0

        previous_time_ms = self._virtual_time_ms
        self._virtual_time_ms = target_value
        if target_value < previous_time_ms:
            self._fired_one_shots.clear()
            self._repeat_states.clear()
            logger.debug("Seek back %d -> %d ms; firing state reset", previous_time_ms, target_value)
        else:
            logger.debug("Seek forward %d -> %d ms (silent)", previous_time_ms, target_value)

    def destroy(self) -> None:
        if self._is_destroyed:
            return
        self._is_playing = False
        self._clock.reset()
        for entry in self._listeners.values():
            for subscription in list(entry.subscriptions):
                subscription.cancel()
        self._listeners.clear()
        self._fired_one_shots.clear()
        self._repeat_states.clear()
        self._is_destroyed = True

    # -----------------
    # Time entry points
    # -----------------

    def tick(self, now_ms: float) -> List[FiredCue]:
        self._ensure_alive()
        if not self._is_playing:
            return []
        delta_ms = self._clock.sample_delta_ms(now_ms)
        return self.advance(self._virtual_time_ms + delta_ms)

    def advance(self, to_time_ms: int) -> List[FiredCue]:
        self._ensure_alive()
        if not self._is_playing:
            return []

        previous_time_ms = self._virtual_time_ms
        current_time_ms = int(to_time_ms)
        if current_time_ms < previous_time_ms:
            logger.debug("advance() moved backwards %d -> %d ms without reset", previous_time_ms, current_time_ms)
        self._virtual_time_ms = current_time_ms

        fired: List[FiredCue] = []
        for entry in list(self._listeners.values()):
            subscriptions = list(entry.subscriptions)
            if entry.cue.is_repeating:
                self._resolve_repeating(entry.cue, subscriptions, previous_time_ms, current_time_ms, fired)
            else:
                self._resolve_one_shot(entry.cue, subscriptions, previous_time_ms, current_time_ms, fired)
        return fired

    def _resolve_one_shot(
        self,
        cue: cue_models.Cue,
        subscriptions: List[Subscription],
        previous_time_ms: int,
        current_time_ms: int,
        fired: List[FiredCue],
    ) -> None:
        if cue.cue_id in self._fired_one_shots:
            return
        if not (previous_time_ms < cue.start_time_ms <= current_time_ms):
            return
        self._fired_one_shots.add(cue.cue_id)
        fired.append(FiredCue(cue=cue, nominal_time_ms=int(cue.start_time_ms)))
        self._invoke(cue, subscriptions)

    def _resolve_repeating(
        self,
        cue: cue_models.Cue,
        subscriptions: List[Subscription],
        previous_time_ms: int,
        current_time_ms: int,
        fired: List[FiredCue],
    ) -> None:
        if current_time_ms < cue.start_time_ms:
            return
        end_time_ms = cue.until_time_ms
        if end_time_ms is not None and previous_time_ms >= end_time_ms:
            return

        interval_ms = int(cue.interval_ms or 0)
        state = self._repeat_states.get(cue.cue_id)
        if state is None:
            # Seeded one interval early so the first tick lands on start_time_ms.
            state = _RepeatState(last_fire_time_ms=int(cue.start_time_ms) - interval_ms)
            self._repeat_states[cue.cue_id] = state

        max_count = cue.max_count
        next_fire_ms = state.last_fire_time_ms + interval_ms
        while next_fire_ms <= current_time_ms:
            if end_time_ms is not None and next_fire_ms > end_time_ms:
                break
            if max_count is not None and state.count >= max_count:
                break
            state.last_fire_time_ms = next_fire_ms
            state.count += 1
            fired.append(FiredCue(cue=cue, nominal_time_ms=next_fire_ms))
            self._invoke(cue, subscriptions)
            next_fire_ms += interval_ms

    def _invoke(self, cue: cue_models.Cue, subscriptions: List[Subscription]) -> None:
        logger.debug("Firing %s (%d listeners)", cue.describe(), len(subscriptions))
        for subscription in subscriptions:
            if not subscription.active:
                continue
            if subscription.once:
                subscription.cancel()
            try:
                subscription.callback()
            except Exception as exception:
                self._report_callback_error(cue, exception)

    def _report_callback_error(self, cue: cue_models.Cue, exception: Exception) -> None:
        try:
            self._error_handler(cue, exception)
        except Exception:
            logger.exception("Error handler failed while reporting a callback error for %s", cue.describe())

    def _ensure_alive(self) -> None:
        if self._is_destroyed:
            raise SchedulerDestroyedError("CueScheduler was destroyed and can no longer be used")


def _run_unit_tests() -> None:
    hits: List[str] = []

    # One-shot fires exactly once when crossed
    scheduler = CueScheduler()
    hit = cue_models.cue(100)
    scheduler.subscribe(hit, lambda: hits.append("hit"))
    scheduler.play()
    assert scheduler.advance(50) == []
    fired = scheduler.advance(150)
    assert [item.nominal_time_ms for item in fired] == [100]
    scheduler.advance(500)
    assert hits == ["hit"]

    # Backward seek resets one-shots
    scheduler.seek(0)
    scheduler.advance(200)
    assert hits == ["hit", "hit"]

    # Catch-up firing of a repeating cue
    ticks: List[int] = []
    repeating = cue_models.cue(1000).repeats(100)
    catch_up = CueScheduler()
    catch_up.subscribe(repeating, lambda: ticks.append(1))
    catch_up.seek(999)
    catch_up.play()
    fired = catch_up.advance(1450)
    assert [item.nominal_time_ms for item in fired] == [1000, 1100, 1200, 1300, 1400]
    assert len(ticks) == 5

    # Boundary cap includes the boundary tick
    end = cue_models.cue(300)
    bounded = cue_models.cue(0).repeats(100).until(end)
    boundary_scheduler = CueScheduler()
    boundary_scheduler.subscribe(bounded, lambda: None)
    boundary_scheduler.play()
    fired = boundary_scheduler.advance(1000)
    assert [item.nominal_time_ms for item in fired] == [0, 100, 200, 300]

    # Forward seek is silent
    silent_hits: List[int] = []
    silent = CueScheduler()
    silent.subscribe(cue_models.cue(100), lambda: silent_hits.append(1))
    silent.seek(500)
    silent.play()
    silent.advance(520)
    assert silent_hits == []


if __name__ == "__main__":
    _run_unit_tests()
    print("cue_scheduler.py: ok")
