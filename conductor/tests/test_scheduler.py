import pytest

from conductor.pipeline.config import SchedulerConfig
from conductor.pipeline.determinism import make_rng
from conductor.pipeline.models import BreatheCue, EnergyLevelChanged, QuestionStarted, SchedulerState
from conductor.pipeline.scheduler import EnergyScheduler
from conductor.pipeline.timers import SimulatedTimerService


def make_scheduler(seed=0, **overrides):
    cfg = SchedulerConfig(**overrides)
    timers = SimulatedTimerService()
    events = []
    sched = EnergyScheduler(cfg, timers, make_rng(seed), events.append, frequency_probe=lambda: 180.0)
    return sched, timers, events


def fire_next(timers):
    timers.advance_to(timers.next_due())


def test_first_change_leaves_default_level():
    sched, timers, events = make_scheduler(breathe_probability=0.0)
    sched.start()
    assert sched.state is SchedulerState.AWAITING_CHANGE
    assert events == []

    fire_next(timers)

    assert len(events) == 1
    change = events[0]
    assert isinstance(change, EnergyLevelChanged)
    assert change.previous_level == 5
    assert change.new_level in set(range(1, 10)) - {5}
    assert sched.current_level == change.new_level
    assert change.frequency == 180.0


def test_change_gaps_stay_within_jitter():
    sched, timers, events = make_scheduler(seed=123, breathe_probability=0.0)
    sched.start()
    for _ in range(1000):
        fire_next(timers)

    changes = [e for e in events if isinstance(e, EnergyLevelChanged)]
    assert len(changes) == 1000
    times = [0.0] + [c.relative_time_ms / 1000.0 for c in changes]
    gaps = [b - a for a, b in zip(times, times[1:])]
    assert min(gaps) >= 12.5 - 1e-6
    assert max(gaps) <= 17.5 + 1e-6

    for prev, cur in zip(changes, changes[1:]):
        assert cur.previous_level == prev.new_level
        assert cur.new_level != cur.previous_level


def test_only_one_timer_outstanding():
    sched, timers, _ = make_scheduler(seed=5, breathe_probability=0.5)
    sched.start()
    for _ in range(50):
        assert timers.pending_count() == 1
        fire_next(timers)
    assert timers.pending_count() == 1


def test_breathe_suspends_changes():
    sched, timers, events = make_scheduler(breathe_probability=1.0)
    sched.start()
    fire_next(timers)

    assert len(events) == 1
    cue = events[0]
    assert isinstance(cue, BreatheCue)
    assert cue.level == 5
    assert sched.breathing
    assert sched.state is SchedulerState.BREATHING
    assert timers.next_due() == pytest.approx(timers.now() + 3.0)

    timers.advance(3.0)
    assert not sched.breathing
    assert sched.state is SchedulerState.AWAITING_CHANGE
    assert sched.current_level == 5
    assert len(events) == 1
    assert timers.next_due() >= timers.now() + 12.5 - 1e-9


def test_stop_cancels_pending_timer():
    sched, timers, events = make_scheduler()
    sched.start()
    sched.stop()

    assert sched.state is SchedulerState.STOPPED
    assert sched.pending_timer is None
    assert timers.pending_count() == 0
    timers.advance(100.0)
    assert events == []


def test_double_fire_is_ignored():
    sched, timers, events = make_scheduler(breathe_probability=0.0)
    sched.start()
    stale_token = sched._token
    fire_next(timers)
    assert len(events) == 1

    sched._on_change_due(stale_token)
    assert len(events) == 1


def test_stop_from_event_callback_does_not_reschedule():
    timers = SimulatedTimerService()
    events = []
    holder = {}

    def emit(event):
        events.append(event)
        holder["sched"].stop()

    sched = EnergyScheduler(SchedulerConfig(breathe_probability=0.0), timers, make_rng(0), emit)
    holder["sched"] = sched
    sched.start()
    fire_next(timers)

    assert len(events) == 1
    assert sched.state is SchedulerState.STOPPED
    assert timers.pending_count() == 0


def test_question_reset_keeps_history():
    sched, timers, events = make_scheduler(breathe_probability=0.0)
    sched.start()
    fire_next(timers)
    timers.advance(1.0)

    q = sched.reset_for_question("Tell me about yourself", question_id="q2", question_index=1)

    assert isinstance(q, QuestionStarted)
    assert events[-1] is q
    assert len(events) == 2
    assert q.level == 5
    assert sched.current_level == 5
    assert q.question_id == "q2"
    assert timers.pending_count() == 1
    assert timers.next_due() >= timers.now() + 12.5 - 1e-9


def test_question_reset_requires_running_scheduler():
    sched, _, _ = make_scheduler()
    with pytest.raises(RuntimeError):
        sched.reset_for_question("q")
    sched.start()
    sched.stop()
    with pytest.raises(RuntimeError):
        sched.reset_for_question("q")


def test_cannot_start_twice():
    sched, _, _ = make_scheduler()
    sched.start()
    with pytest.raises(RuntimeError):
        sched.start()


def test_single_preset_level_is_reused():
    sched, timers, events = make_scheduler(breathe_probability=0.0, preset_levels=frozenset({3}))
    sched.start()
    fire_next(timers)
    fire_next(timers)
    assert [(e.previous_level, e.new_level) for e in events] == [(5, 3), (3, 3)]


def test_seeded_schedulers_are_identical():
    runs = []
    for _ in range(2):
        sched, timers, events = make_scheduler(seed=42, breathe_probability=0.3)
        sched.start()
        for _ in range(30):
            fire_next(timers)
        runs.append([e.to_record() for e in events])
    assert runs[0] == runs[1]


@pytest.mark.parametrize("overrides", [
    {"breathe_probability": 1.5},
    {"breathe_probability": -0.1},
    {"base_interval_s": 0.0},
    {"preset_levels": frozenset({0, 3})},
    {"preset_levels": frozenset()},
    {"default_level": 10},
    {"interval_variance_s": 40.0},
])
def test_invalid_config_rejected(overrides):
    with pytest.raises(ValueError):
        SchedulerConfig(**overrides).validate()
