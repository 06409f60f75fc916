import pytest

from conductor.pipeline.config import StabilityConfig
from conductor.pipeline.stability import StabilityFilter


@pytest.fixture
def stability():
    return StabilityFilter(StabilityConfig(enabled=True))


def _feed(flt, readings, peak=0.05):
    out = None
    for i, f in enumerate(readings):
        out = flt.update(f, peak, now=i * 0.033)
    return out


def test_outlier_rejected_with_weak_signal(stability):
    out = _feed(stability, [200.0, 202.0, 198.0, 201.0, 350.0])
    assert out == pytest.approx((200.0 + 202.0 + 198.0 + 201.0) / 4.0)


def test_strong_signal_accepts_windowed_mean(stability):
    _feed(stability, [200.0, 202.0, 198.0, 201.0])
    out = stability.update(350.0, 0.2)
    assert out == pytest.approx((200.0 + 202.0 + 198.0 + 201.0 + 350.0) / 5.0)


def test_raw_readings_until_min_samples(stability):
    assert stability.update(200.0, 0.05) == 200.0
    assert stability.update(230.0, 0.05) == 230.0
    # third reading: window mean of a wide spread is rejected, hold previous
    assert stability.update(150.0, 0.05) == 230.0


def test_sustained_shift_is_eventually_accepted(stability):
    _feed(stability, [200.0, 202.0, 198.0, 201.0])
    outs = [stability.update(350.0, 0.05) for _ in range(5)]
    assert outs[0] == pytest.approx(200.25)
    assert outs[-1] == pytest.approx(350.0)


def test_silence_reset_after_two_seconds(stability):
    _feed(stability, [200.0, 202.0, 198.0])
    stability.note_voice(1.0)

    assert stability.mark_silence(2.5) == pytest.approx(200.0)
    assert stability.history

    assert stability.mark_silence(3.1) == 0.0
    assert stability.history == []


def test_disabled_is_pass_through():
    flt = StabilityFilter(StabilityConfig(enabled=False))
    assert flt.update(200.0, 0.0) == 200.0
    assert flt.update(350.0, 0.0) == 350.0
    assert flt.mark_silence(100.0) == 0.0
    assert flt.history == []


def test_config_validation():
    with pytest.raises(ValueError):
        StabilityConfig(history_size=3, min_samples=4).validate()
