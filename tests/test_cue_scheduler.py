import logging

import pytest

from cue_models import cue
from cue_scheduler import CueScheduler, FiredCue, SchedulerDestroyedError, _run_unit_tests


class Recorder:
    def __init__(self):
        self.calls = 0

    def __call__(self):
        self.calls += 1


def _playing_scheduler(**kwargs) -> CueScheduler:
    scheduler = CueScheduler(**kwargs)
    scheduler.play()
    return scheduler


def test_module_self_checks():
    _run_unit_tests()


# -----------------
# Basic state
# -----------------


def test_new_scheduler_starts_paused_at_zero():
    scheduler = CueScheduler()
    assert scheduler.current_time_ms == 0
    assert not scheduler.is_playing
    assert not scheduler.is_destroyed


def test_play_and_pause_are_idempotent():
    scheduler = CueScheduler()
    scheduler.pause()
    scheduler.play()
    scheduler.play()
    assert scheduler.is_playing
    scheduler.pause()
    scheduler.pause()
    assert not scheduler.is_playing


def test_advance_while_paused_does_nothing():
    recorder = Recorder()
    scheduler = CueScheduler()
    scheduler.subscribe(cue(100), recorder)
    assert scheduler.advance(500) == []
    assert scheduler.current_time_ms == 0
    assert recorder.calls == 0


def test_pause_freezes_virtual_time():
    scheduler = _playing_scheduler()
    scheduler.advance(250)
    scheduler.pause()
    scheduler.advance(900)
    assert scheduler.current_time_ms == 250


# -----------------
# One-shot cues
# -----------------


def test_one_shot_fires_when_reached():
    recorder = Recorder()
    hit = cue(100)
    scheduler = _playing_scheduler()
    scheduler.subscribe(hit, recorder)
    fired = scheduler.advance(150)
    assert recorder.calls == 1
    assert fired == [FiredCue(cue=hit, nominal_time_ms=100)]


def test_one_shot_fires_exactly_on_its_time():
    recorder = Recorder()
    scheduler = _playing_scheduler()
    scheduler.subscribe(cue(100), recorder)
    scheduler.advance(99)
    assert recorder.calls == 0
    scheduler.advance(100)
    assert recorder.calls == 1


def test_one_shot_does_not_fire_early():
    recorder = Recorder()
    scheduler = _playing_scheduler()
    scheduler.subscribe(cue(500), recorder)
    for time_ms in range(0, 500, 16):
        scheduler.advance(time_ms)
    assert recorder.calls == 0


def test_one_shot_fires_only_once():
    recorder = Recorder()
    hit = cue(100)
    scheduler = _playing_scheduler()
    scheduler.subscribe(hit, recorder)
    for time_ms in range(16, 1000, 16):
        scheduler.advance(time_ms)
    assert recorder.calls == 1
    assert scheduler.fire_count(hit) == 1
    assert scheduler.has_fired(hit)


def test_one_shot_at_starting_position_does_not_fire():
    recorder = Recorder()
    scheduler = _playing_scheduler()
    scheduler.subscribe(cue(0), recorder)
    scheduler.advance(0)
    scheduler.advance(100)
    assert recorder.calls == 0


def test_multiple_listeners_fire_in_subscription_order():
    order = []
    hit = cue(100)
    scheduler = _playing_scheduler()
    scheduler.subscribe(hit, lambda: order.append("first"))
    scheduler.subscribe(hit, lambda: order.append("second"))
    scheduler.subscribe(hit, lambda: order.append("third"))
    scheduler.advance(150)
    assert order == ["first", "second", "third"]


def test_distinct_cues_fire_in_registration_order():
    order = []
    late_registered = cue(100)
    early_registered = cue(100)
    scheduler = _playing_scheduler()
    scheduler.subscribe(early_registered, lambda: order.append("early"))
    scheduler.subscribe(late_registered, lambda: order.append("late"))
    scheduler.advance(100)
    assert order == ["early", "late"]


def test_equal_field_cues_keep_separate_state():
    first = Recorder()
    second = Recorder()
    cue_a = cue(100)
    cue_b = cue(100)
    scheduler = _playing_scheduler()
    scheduler.subscribe(cue_a, first)
    scheduler.advance(150)
    scheduler.subscribe(cue_b, second)
    scheduler.advance(300)
    assert first.calls == 1
    assert second.calls == 0
    assert scheduler.fire_count(cue_b) == 0


# -----------------
# Repeating cues
# -----------------


def test_repeating_cue_catch_up_fires_every_tick_in_one_jump():
    start_ms = 1000
    interval_ms = 200
    hits = []
    repeating = cue(start_ms).repeats(interval_ms)
    scheduler = CueScheduler()
    scheduler.subscribe(repeating, lambda: hits.append(scheduler.current_time_ms))
    scheduler.seek(start_ms - 1)
    scheduler.play()
    fired = scheduler.advance(start_ms + int(4.5 * interval_ms))
    assert len(hits) == 5
    assert [item.nominal_time_ms for item in fired] == [1000, 1200, 1400, 1600, 1800]


def test_repeating_cue_is_ineligible_before_start():
    recorder = Recorder()
    repeating = cue(1000).repeats(100)
    scheduler = _playing_scheduler()
    scheduler.subscribe(repeating, recorder)
    scheduler.advance(999)
    assert recorder.calls == 0
    assert scheduler.snapshot().active_repeat_count == 0


def test_repeating_cue_fires_at_start_then_each_interval():
    recorder = Recorder()
    scheduler = _playing_scheduler()
    scheduler.subscribe(cue(0).repeats(100), recorder)
    for time_ms in range(16, 1001, 16):
        scheduler.advance(time_ms)
    scheduler.advance(1000)
    assert recorder.calls == 11


def test_count_cap_stops_after_n_firings():
    recorder = Recorder()
    capped = cue(0).repeats(100).times(3)
    scheduler = _playing_scheduler()
    scheduler.subscribe(capped, recorder)
    scheduler.advance(10_000)
    assert recorder.calls == 3
    scheduler.advance(50_000)
    assert recorder.calls == 3
    assert scheduler.fire_count(capped) == 3


def test_count_cap_holds_across_small_steps():
    recorder = Recorder()
    scheduler = _playing_scheduler()
    scheduler.subscribe(cue(0).repeats(100).times(3), recorder)
    for time_ms in range(16, 10_000, 16):
        scheduler.advance(time_ms)
    assert recorder.calls == 3


def test_boundary_cap_fires_through_boundary_inclusive():
    hits = []
    end = cue(300)
    tick = cue(0).repeats(100).until(end)
    scheduler = _playing_scheduler()
    scheduler.subscribe(tick, lambda: hits.append(1))
    fired = scheduler.advance(1000)
    assert [item.nominal_time_ms for item in fired] == [0, 100, 200, 300]
    assert len(hits) == 4
    scheduler.advance(5000)
    assert len(hits) == 4


def test_boundary_cap_with_small_steps_never_fires_past_boundary():
    fired_times = []
    tick = cue(0).repeats(100).until(cue(300))
    scheduler = _playing_scheduler()
    scheduler.subscribe(tick, lambda: None)
    for time_ms in range(16, 1000, 16):
        fired_times.extend(item.nominal_time_ms for item in scheduler.advance(time_ms))
    assert fired_times == [0, 100, 200, 300]


def test_boundary_before_start_never_fires():
    recorder = Recorder()
    scheduler = _playing_scheduler()
    scheduler.subscribe(cue(500).repeats(100).until(cue(200)), recorder)
    scheduler.advance(2000)
    assert recorder.calls == 0


def test_repeating_ticks_fire_late_but_in_order_after_long_pause():
    nominal_times = []
    scheduler = _playing_scheduler()
    scheduler.subscribe(cue(0).repeats(250), lambda: None)
    nominal_times.extend(item.nominal_time_ms for item in scheduler.advance(100))
    scheduler.pause()
    scheduler.play()
    nominal_times.extend(item.nominal_time_ms for item in scheduler.advance(1100))
    assert nominal_times == [0, 250, 500, 750, 1000]


# -----------------
# Seeking
# -----------------


def test_seek_sets_current_time_independent_of_play_state():
    scheduler = CueScheduler()
    scheduler.seek(2000)
    assert scheduler.current_time_ms == 2000
    assert not scheduler.is_playing


def test_seek_clamps_negative_targets():
    scheduler = CueScheduler()
    scheduler.seek(-50)
    assert scheduler.current_time_ms == 0


def test_backward_seek_lets_one_shot_fire_again():
    recorder = Recorder()
    hit = cue(100)
    scheduler = _playing_scheduler()
    scheduler.subscribe(hit, recorder)
    scheduler.advance(200)
    scheduler.seek(0)
    assert not scheduler.has_fired(hit)
    scheduler.advance(200)
    assert recorder.calls == 2


def test_backward_seek_resets_repeat_counts():
    recorder = Recorder()
    capped = cue(0).repeats(100).times(2)
    scheduler = _playing_scheduler()
    scheduler.subscribe(capped, recorder)
    scheduler.advance(1000)
    scheduler.seek(0)
    assert scheduler.fire_count(capped) == 0
    scheduler.advance(1000)
    assert recorder.calls == 4


def test_backward_seek_to_middle_resumes_from_target():
    hits = []
    scheduler = _playing_scheduler()
    scheduler.subscribe(cue(100), lambda: hits.append("early"))
    scheduler.subscribe(cue(600), lambda: hits.append("late"))
    scheduler.advance(1000)
    scheduler.seek(500)
    scheduler.advance(1000)
    assert hits == ["early", "late", "late"]


def test_forward_seek_is_silent():
    recorder = Recorder()
    scheduler = CueScheduler()
    scheduler.subscribe(cue(100), recorder)
    scheduler.seek(500)
    scheduler.play()
    scheduler.advance(520)
    scheduler.advance(600)
    assert recorder.calls == 0


def test_seek_to_same_position_keeps_state():
    recorder = Recorder()
    hit = cue(100)
    scheduler = _playing_scheduler()
    scheduler.subscribe(hit, recorder)
    scheduler.advance(200)
    scheduler.seek(200)
    assert scheduler.has_fired(hit)
    scheduler.advance(300)
    assert recorder.calls == 1


def test_backward_advance_does_not_reset_or_fire():
    recorder = Recorder()
    scheduler = _playing_scheduler()
    scheduler.subscribe(cue(100), recorder)
    scheduler.advance(200)
    assert scheduler.advance(50) == []
    assert scheduler.current_time_ms == 50
    scheduler.advance(200)
    assert recorder.calls == 1


# -----------------
# Wall-clock ticks
# -----------------


def test_first_tick_after_play_anchors_without_advancing():
    scheduler = _playing_scheduler()
    scheduler.tick(10_000.0)
    assert scheduler.current_time_ms == 0
    scheduler.tick(10_016.0)
    assert scheduler.current_time_ms == 16


def test_tick_while_paused_does_nothing():
    scheduler = CueScheduler()
    assert scheduler.tick(100.0) == []
    assert scheduler.current_time_ms == 0


def test_paused_interval_is_not_counted_after_resume():
    recorder = Recorder()
    scheduler = _playing_scheduler()
    scheduler.subscribe(cue(150), recorder)
    scheduler.tick(0.0)
    scheduler.tick(100.0)
    scheduler.pause()
    scheduler.play()
    scheduler.tick(5_000.0)
    assert scheduler.current_time_ms == 100
    assert recorder.calls == 0
    scheduler.tick(5_060.0)
    assert scheduler.current_time_ms == 160
    assert recorder.calls == 1


# -----------------
# Subscriptions
# -----------------


def test_unsubscribe_before_firing_prevents_callback():
    recorder = Recorder()
    scheduler = _playing_scheduler()
    unsubscribe = scheduler.subscribe(cue(100), recorder)
    unsubscribe()
    scheduler.advance(500)
    assert recorder.calls == 0


def test_unsubscribe_is_idempotent():
    kept = Recorder()
    removed = Recorder()
    hit = cue(100)
    scheduler = _playing_scheduler()
    scheduler.subscribe(hit, kept)
    unsubscribe = scheduler.subscribe(hit, removed)
    unsubscribe()
    unsubscribe()
    unsubscribe.cancel()
    assert not unsubscribe.active
    assert scheduler.listener_count(hit) == 1
    scheduler.advance(500)
    assert kept.calls == 1
    assert removed.calls == 0


def test_never_subscribed_and_unsubscribed_both_yield_zero_calls():
    never = Recorder()
    cancelled = Recorder()
    scheduler = _playing_scheduler()
    scheduler.subscribe(cue(100), cancelled)()
    scheduler.advance(500)
    assert never.calls == 0
    assert cancelled.calls == 0


def test_same_callback_subscribed_twice_is_registered_once():
    recorder = Recorder()
    hit = cue(100)
    scheduler = _playing_scheduler()
    first_handle = scheduler.subscribe(hit, recorder)
    second_handle = scheduler.subscribe(hit, recorder)
    assert first_handle is second_handle
    assert scheduler.listener_count(hit) == 1
    scheduler.advance(200)
    assert recorder.calls == 1


def test_subscribe_once_fires_then_removes_itself():
    recorder = Recorder()
    repeating = cue(0).repeats(100)
    scheduler = _playing_scheduler()
    handle = scheduler.subscribe_once(repeating, recorder)
    scheduler.advance(1000)
    assert recorder.calls == 1
    assert not handle.active
    assert scheduler.listener_count(repeating) == 0


def test_subscribe_once_with_one_shot_fires_once_across_resets():
    recorder = Recorder()
    hit = cue(100)
    scheduler = _playing_scheduler()
    scheduler.subscribe_once(hit, recorder)
    scheduler.advance(200)
    scheduler.seek(0)
    scheduler.advance(200)
    assert recorder.calls == 1


def test_subscribe_once_can_be_cancelled_preemptively():
    recorder = Recorder()
    scheduler = _playing_scheduler()
    handle = scheduler.subscribe_once(cue(100), recorder)
    handle()
    scheduler.advance(200)
    assert recorder.calls == 0


def test_callback_cancelled_mid_frame_is_not_invoked():
    calls = []
    hit = cue(100)
    scheduler = _playing_scheduler()
    handles = {}

    def first():
        calls.append("first")
        handles["second"]()

    scheduler.subscribe(hit, first)
    handles["second"] = scheduler.subscribe(hit, lambda: calls.append("second"))
    scheduler.advance(200)
    assert calls == ["first"]


def test_subscription_added_mid_frame_waits_for_next_frame():
    calls = []
    repeating = cue(0).repeats(100)
    scheduler = _playing_scheduler()

    def subscribe_more():
        if not calls:
            scheduler.subscribe(repeating, lambda: calls.append("late"))
        calls.append("early")

    scheduler.subscribe(repeating, subscribe_more)
    scheduler.advance(50)
    assert calls == ["early"]
    scheduler.advance(150)
    assert calls == ["early", "early", "late"]


# -----------------
# Error isolation
# -----------------


def test_raising_callback_does_not_block_siblings_or_other_cues(caplog):
    order = []
    first_cue = cue(100)
    second_cue = cue(100)
    scheduler = _playing_scheduler()

    def explode():
        raise RuntimeError("boom")

    scheduler.subscribe(first_cue, explode)
    scheduler.subscribe(first_cue, lambda: order.append("sibling"))
    scheduler.subscribe(second_cue, lambda: order.append("other cue"))
    with caplog.at_level(logging.ERROR, logger="cue_scheduler"):
        fired = scheduler.advance(200)
    assert order == ["sibling", "other cue"]
    assert len(fired) == 2
    assert "boom" in caplog.text or "RuntimeError" in caplog.text


def test_custom_error_handler_receives_cue_and_exception():
    reported = []
    hit = cue(100)
    scheduler = _playing_scheduler(error_handler=lambda failed_cue, exception: reported.append((failed_cue, exception)))
    error = ValueError("bad")

    def explode():
        raise error

    scheduler.subscribe(hit, explode)
    scheduler.advance(200)
    assert reported == [(hit, error)]


def test_repeating_ticks_continue_after_callback_error():
    reported = []
    scheduler = _playing_scheduler(error_handler=lambda failed_cue, exception: reported.append(exception))

    def explode():
        raise RuntimeError("tick")

    scheduler.subscribe(cue(0).repeats(100).times(3), explode)
    fired = scheduler.advance(1000)
    assert len(fired) == 3
    assert len(reported) == 3


def test_subscribe_once_is_removed_even_if_callback_raises():
    hit = cue(0).repeats(100)
    scheduler = _playing_scheduler(error_handler=lambda failed_cue, exception: None)

    def explode():
        raise RuntimeError("once")

    handle = scheduler.subscribe_once(hit, explode)
    scheduler.advance(500)
    assert not handle.active


# -----------------
# Independence and teardown
# -----------------


def test_same_cue_in_two_schedulers_counts_independently():
    shared = cue(0).repeats(100).times(5)
    first = _playing_scheduler()
    second = _playing_scheduler()
    first_recorder = Recorder()
    second_recorder = Recorder()
    first.subscribe(shared, first_recorder)
    second.subscribe(shared, second_recorder)

    first.advance(1000)
    second.advance(150)

    assert first.fire_count(shared) == 5
    assert second.fire_count(shared) == 2
    assert first_recorder.calls == 5
    assert second_recorder.calls == 2


def test_snapshot_reports_state():
    scheduler = _playing_scheduler()
    scheduler.subscribe(cue(100), lambda: None)
    scheduler.subscribe(cue(0).repeats(50), lambda: None)
    scheduler.advance(200)
    snapshot = scheduler.snapshot()
    assert snapshot.current_time_ms == 200
    assert snapshot.is_playing
    assert snapshot.registered_cue_count == 2
    assert snapshot.fired_one_shot_count == 1
    assert snapshot.active_repeat_count == 1


def test_destroy_clears_everything_and_guards_later_use():
    recorder = Recorder()
    scheduler = _playing_scheduler()
    handle = scheduler.subscribe(cue(100), recorder)
    scheduler.destroy()
    scheduler.destroy()
    assert scheduler.is_destroyed
    assert not handle.active
    handle()
    with pytest.raises(SchedulerDestroyedError):
        scheduler.advance(500)
    with pytest.raises(SchedulerDestroyedError):
        scheduler.play()
    with pytest.raises(SchedulerDestroyedError):
        scheduler.subscribe(cue(0), recorder)
    with pytest.raises(SchedulerDestroyedError):
        _ = scheduler.current_time_ms
    assert recorder.calls == 0
