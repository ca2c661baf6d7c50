# -*- coding: utf-8 -*-
########################
# cue_models.py
########################
# Purpose:
# - Immutable cue definitions: when something should happen on a virtual timeline.
# - A cue is one-shot, repeating, or repeating with exactly one terminator (count or boundary).
#
# Design notes:
# - No Qt usage. Plain frozen dataclasses.
# - Cues compare by identity (eq=False). Two cues with identical fields are distinct registry keys.
# - Each cue carries a cue_id minted at construction; CueScheduler keys its state by it.
# - The chain only narrows: OneShotCue.repeats() -> RepeatingCue.times()/until() -> TerminatedCue.
#   Later stages do not expose earlier chain methods at all.
# - Times are integer milliseconds from the timeline origin.
#
########################
# Interfaces:
# Public enums:
# - class TerminatorKind(enum.Enum): COUNT | BOUNDARY
#
# Public dataclasses:
# - CueTerminator(kind: TerminatorKind, value: int)
# - OneShotCue(start_time_ms: int)
#   - repeats(interval_ms: int) -> RepeatingCue
# - RepeatingCue(start_time_ms: int, interval_ms: int)
#   - times(count: int) -> TerminatedCue
#   - until(boundary: Cue) -> TerminatedCue
# - TerminatedCue(start_time_ms: int, interval_ms: int, terminator: CueTerminator)
#
#   All variants expose: cue_id, start_time_ms, interval_ms, max_count, until_time_ms,
#   is_repeating, describe().
#
# Public functions:
# - cue(start_time_ms: int) -> OneShotCue
#
# Inputs:
# - Integer millisecond timestamps and intervals from the caller.
#
# Outputs:
# - Cue values consumed by CueScheduler.subscribe and friends.
#
########################

from __future__ import annotations

import enum
import itertools
from dataclasses import dataclass, field
from typing import Optional, Union

_cue_id_counter = itertools.count(1)


def _next_cue_id() -> int:
    return next(_cue_id_counter)


def _require_int(value: object, *, name: str, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer number of milliseconds, got {value!r}")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


class TerminatorKind(enum.Enum):
    COUNT = "count"
    BOUNDARY = "boundary"


@dataclass(frozen=True)
class CueTerminator:
    kind: TerminatorKind
    value: int


@dataclass(frozen=True, eq=False)
class OneShotCue:
    start_time_ms: int
    cue_id: int = field(default_factory=_next_cue_id, repr=False)

    def __post_init__(self) -> None:
        _require_int(self.start_time_ms, name="start_time_ms", minimum=0)

    @property
    def interval_ms(self) -> Optional[int]:
        return None

    @property
    def max_count(self) -> Optional[int]:
        return None

    @property
    def until_time_ms(self) -> Optional[int]:
        return None

    @property
    def is_repeating(self) -> bool:
        return False

    def repeats(self, interval_ms: int) -> RepeatingCue:
        return RepeatingCue(start_time_ms=self.start_time_ms, interval_ms=interval_ms)

    def describe(self) -> str:
        return f"cue#{self.cue_id}@{self.start_time_ms}ms"


@dataclass(frozen=True, eq=False)
class RepeatingCue:
    start_time_ms: int
    interval_ms: int
    cue_id: int = field(default_factory=_next_cue_id, repr=False)

    def __post_init__(self) -> None:
        _require_int(self.start_time_ms, name="start_time_ms", minimum=0)
        _require_int(self.interval_ms, name="interval_ms", minimum=1)

    @property
    def max_count(self) -> Optional[int]:
        return None

    @property
    def until_time_ms(self) -> Optional[int]:
        return None

    @property
    def is_repeating(self) -> bool:
        return True

    def times(self, count: int) -> TerminatedCue:
        _require_int(count, name="count", minimum=1)
        return TerminatedCue(
            start_time_ms=self.start_time_ms,
            interval_ms=self.interval_ms,
            terminator=CueTerminator(kind=TerminatorKind.COUNT, value=count),
        )

    def until(self, boundary: Cue) -> TerminatedCue:
        if not isinstance(boundary, (OneShotCue, RepeatingCue, TerminatedCue)):
            raise TypeError(f"until() expects a cue, got {type(boundary).__name__}")
        # Captured by value: the boundary's start time never changes.
        return TerminatedCue(
            start_time_ms=self.start_time_ms,
            interval_ms=self.interval_ms,
            terminator=CueTerminator(kind=TerminatorKind.BOUNDARY, value=int(boundary.start_time_ms)),
        )

    def describe(self) -> str:
        return f"cue#{self.cue_id}@{self.start_time_ms}ms every {self.interval_ms}ms"


@dataclass(frozen=True, eq=False)
class TerminatedCue:
    start_time_ms: int
    interval_ms: int
    terminator: CueTerminator
    cue_id: int = field(default_factory=_next_cue_id, repr=False)

    def __post_init__(self) -> None:
        _require_int(self.start_time_ms, name="start_time_ms", minimum=0)
        _require_int(self.interval_ms, name="interval_ms", minimum=1)
        if self.terminator.kind is TerminatorKind.COUNT:
            _require_int(self.terminator.value, name="count", minimum=1)
        else:
            _require_int(self.terminator.value, name="until_time_ms", minimum=0)

    @property
    def max_count(self) -> Optional[int]:
        if self.terminator.kind is TerminatorKind.COUNT:
            return int(self.terminator.value)
        return None

    @property
    def until_time_ms(self) -> Optional[int]:
        if self.terminator.kind is TerminatorKind.BOUNDARY:
            return int(self.terminator.value)
        return None

    @property
    def is_repeating(self) -> bool:
        return True

    def describe(self) -> str:
        if self.terminator.kind is TerminatorKind.COUNT:
            bound_text = f"x{self.terminator.value}"
        else:
            bound_text = f"until {self.terminator.value}ms"
        return f"cue#{self.cue_id}@{self.start_time_ms}ms every {self.interval_ms}ms {bound_text}"


Cue = Union[OneShotCue, RepeatingCue, TerminatedCue]


def cue(start_time_ms: int) -> OneShotCue:
    return OneShotCue(start_time_ms=start_time_ms)


def _run_unit_tests() -> None:
    first = cue(500)
    second = cue(500)
    assert first is not second
    assert first != second
    assert first.cue_id != second.cue_id
    assert first.interval_ms is None and not first.is_repeating

    repeating = cue(1000).repeats(500)
    assert repeating.start_time_ms == 1000 and repeating.interval_ms == 500
    assert repeating.max_count is None and repeating.until_time_ms is None

    capped = cue(0).repeats(200).times(10)
    assert capped.max_count == 10 and capped.until_time_ms is None
    assert not hasattr(capped, "times") and not hasattr(capped, "until") and not hasattr(capped, "repeats")

    bounded = cue(1000).repeats(500).until(cue(5000))
    assert bounded.until_time_ms == 5000 and bounded.max_count is None

    assert not hasattr(repeating, "repeats")

    for bad_call in (lambda: cue(-1), lambda: cue(0).repeats(0), lambda: cue(0).repeats(10).times(0)):
        try:
            bad_call()
        except ValueError:
            pass
        else:
            raise AssertionError("expected ValueError")


if __name__ == "__main__":
    _run_unit_tests()
    print("cue_models.py: ok")
