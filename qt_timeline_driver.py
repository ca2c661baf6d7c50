# -*- coding: utf-8 -*-
########################
# qt_timeline_driver.py
########################
# Purpose:
# - Real-time pump that drives a CueScheduler from the Qt event loop.
# - Emits Qt signals for fired cues and time updates so widgets can follow the timeline.
#
# Design notes:
# - CueScheduler never owns a timer. This driver is the only place wall-clock time enters.
# - Uses QObject.startTimer(tick_ms) and timerEvent, the same loop style as the gameplay harness.
# - Wall-clock samples come from an injectable now_ms source (default: time.monotonic() in ms),
#   so tests can feed synthetic values.
# - Callbacks fire on the Qt thread inside timerEvent.
#
########################
# Interfaces:
# Public classes:
# - class QtTimelineDriver(PyQt6.QtCore.QObject)
#   - Signals:
#     - cueFired(FiredCue)
#     - timeUpdated(int)
#     - playStateChanged(bool)
#   - Methods:
#     - __init__(scheduler: CueScheduler, *, tick_ms: int = 16, now_ms: Optional[Callable[[], float]] = None,
#                parent: Optional[QObject] = None)
#     - scheduler() -> CueScheduler
#     - tick_ms() -> int
#     - is_running() -> bool
#     - start() -> None
#     - stop() -> None
#     - seek(target_ms: int) -> None
#     - pump_once() -> list[FiredCue]
#
# Inputs:
# - Qt timer events, play/stop/seek requests from UI.
#
# Outputs:
# - Calls CueScheduler.tick and emits the signals above.
#
########################

from __future__ import annotations

import time
from typing import Callable, List, Optional

from PyQt6.QtCore import QObject, QTimerEvent, pyqtSignal

import cue_scheduler


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class QtTimelineDriver(QObject):
    cueFired = pyqtSignal(object)
    timeUpdated = pyqtSignal(int)
    playStateChanged = pyqtSignal(bool)

    def __init__(
        self,
        scheduler: cue_scheduler.CueScheduler,
        *,
        tick_ms: int = 16,
        now_ms: Optional[Callable[[], float]] = None,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        tick_value = int(tick_ms)
        if tick_value < 1:
            raise ValueError(f"tick_ms must be >= 1, got {tick_ms}")
        self._scheduler = scheduler
        self._tick_ms = tick_value
        self._now_ms: Callable[[], float] = now_ms if now_ms is not None else _monotonic_ms
        self._timer_id: int = 0

    def scheduler(self) -> cue_scheduler.CueScheduler:
        return self._scheduler

    def tick_ms(self) -> int:
        return int(self._tick_ms)

    def is_running(self) -> bool:
        return self._timer_id != 0

    def start(self) -> None:
        if self.is_running():
            return
        self._scheduler.play()
        # First tick after play() only anchors the wall-clock reference.
        self.pump_once()
        if not self._scheduler.is_playing:
            return
        self._timer_id = self.startTimer(self._tick_ms)
        self.playStateChanged.emit(True)

    def stop(self) -> None:
        if self._timer_id:
            self.killTimer(self._timer_id)
            self._timer_id = 0
        was_playing = self._scheduler.is_playing
        self._scheduler.pause()
        if was_playing:
            self.playStateChanged.emit(False)

    def seek(self, target_ms: int) -> None:
        self._scheduler.seek(int(target_ms))
        self.timeUpdated.emit(self._scheduler.current_time_ms)

    def pump_once(self) -> List[cue_scheduler.FiredCue]:
        fired = self._scheduler.tick(self._now_ms())
        for item in fired:
            self.cueFired.emit(item)
        self.timeUpdated.emit(self._scheduler.current_time_ms)
        return fired

    def timerEvent(self, event: QTimerEvent) -> None:  # noqa: N802
        if event.timerId() != self._timer_id:
            return
        if self._scheduler.is_destroyed:
            self.killTimer(self._timer_id)
            self._timer_id = 0
            return
        self.pump_once()
