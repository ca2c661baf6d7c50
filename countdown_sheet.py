# countdown_sheet.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List

import cue_models
import cue_scheduler

PULSE_START_MS = 4500
PULSE_INTERVAL_MS = 500
PULSE_COUNT = 5


@dataclass(frozen=True)
class CountdownMarker:
    label: str
    time_ms: int
    repeating: bool = False


@dataclass(frozen=True)
class CountdownSheet:
    ready: cue_models.OneShotCue
    three: cue_models.OneShotCue
    two: cue_models.OneShotCue
    one: cue_models.OneShotCue
    go: cue_models.OneShotCue
    pulse: cue_models.TerminatedCue
    finish: cue_models.OneShotCue
    total_duration_ms: int

    def labelled_cues(self) -> List[tuple]:
        return [
            ("READY", self.ready),
            ("3", self.three),
            ("2", self.two),
            ("1", self.one),
            ("GO!", self.go),
            ("PULSE", self.pulse),
            ("FINISH", self.finish),
        ]

    def markers(self) -> List[CountdownMarker]:
        markers = [
            CountdownMarker(label=label, time_ms=int(item.start_time_ms))
            for label, item in self.labelled_cues()
            if not item.is_repeating
        ]
        # One marker per pulse tick.
        markers.extend(
            CountdownMarker(label="PULSE", time_ms=PULSE_START_MS + index * PULSE_INTERVAL_MS, repeating=True)
            for index in range(PULSE_COUNT)
        )
        markers.sort(key=lambda marker: (marker.time_ms, marker.repeating))
        return markers


def build_countdown_sheet(*, total_duration_ms: int = 7500) -> CountdownSheet:
    return CountdownSheet(
        ready=cue_models.cue(0),
        three=cue_models.cue(1000),
        two=cue_models.cue(2000),
        one=cue_models.cue(3000),
        go=cue_models.cue(4000),
        pulse=cue_models.cue(PULSE_START_MS).repeats(PULSE_INTERVAL_MS).times(PULSE_COUNT),
        finish=cue_models.cue(7000),
        total_duration_ms=int(total_duration_ms),
    )


def attach_countdown(
    scheduler: cue_scheduler.CueScheduler,
    sheet: CountdownSheet,
    on_label: Callable[[str], None],
) -> List[cue_scheduler.Subscription]:
    subscriptions: List[cue_scheduler.Subscription] = []
    for label, item in sheet.labelled_cues():
        # label bound as a default argument.
        subscriptions.append(scheduler.subscribe(item, lambda label=label: on_label(label)))
    return subscriptions
