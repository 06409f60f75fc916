import pytest

from conductor.pipeline.event_log import EnergyEventLog, EventLogClosedError
from conductor.pipeline.models import (
    EVENT_TYPES,
    AssessmentStarted,
    BreatheCue,
    EnergyLevelChanged,
    QuestionStarted,
)


def _change(t_ms, prev=5, new=7):
    return EnergyLevelChanged(timestamp=1000.0 + t_ms / 1000.0, relative_time_ms=t_ms,
                              previous_level=prev, new_level=new, frequency=210.0)


def test_append_and_query():
    log = EnergyEventLog()
    log.append(AssessmentStarted(timestamp=1000.0, relative_time_ms=0.0))
    log.append(_change(15000.0))
    log.append(BreatheCue(timestamp=1030.0, relative_time_ms=30000.0, level=7, frequency=205.0))

    assert len(log) == 3
    assert [e.event_type for e in log] == ["assessment_started", "energy_level_changed", "breathe_cue"]
    assert log.of_type(EnergyLevelChanged)[0].new_level == 7
    assert isinstance(log.last, BreatheCue)
    assert log[1].previous_level == 5


def test_records_carry_type_and_fields():
    record = _change(1500.0).to_record()
    assert record == {
        "type": "energy_level_changed",
        "timestamp": 1001.5,
        "relative_time_ms": 1500.0,
        "previous_level": 5,
        "new_level": 7,
        "frequency": 210.0,
    }
    assert EVENT_TYPES[record["type"]] is EnergyLevelChanged


def test_equal_times_are_allowed_but_not_decreasing():
    log = EnergyEventLog()
    log.append(_change(100.0))
    log.append(QuestionStarted(timestamp=1000.1, relative_time_ms=100.0, question="next"))
    with pytest.raises(ValueError):
        log.append(_change(50.0))
    assert len(log) == 2


def test_closed_log_rejects_appends():
    log = EnergyEventLog()
    log.append(_change(0.0))
    log.close()
    assert log.closed
    with pytest.raises(EventLogClosedError):
        log.append(_change(10.0))
    assert isinstance(EventLogClosedError("x"), RuntimeError)
    assert len(log) == 1


def test_iteration_is_a_snapshot():
    log = EnergyEventLog()
    log.append(_change(0.0))
    it = iter(log)
    log.append(_change(1.0))
    assert len(list(it)) == 1
