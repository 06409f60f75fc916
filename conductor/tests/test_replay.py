import json

import soundfile as sf

from conductor.pipeline.config import build_config
from conductor.pipeline.models import EnergyLevelChanged
from conductor.replay import main, parse_args, config_from_args, replay
from conductor.tests.audio_utils import generate_sine_wave


def test_replay_runs_until_audio_ends(sr):
    config = build_config("standard", {
        "duration_s": None,
        "scheduler.base_interval_s": 1.0,
        "scheduler.interval_variance_s": 0.0,
        "scheduler.breathe_probability": 0.0,
        "seed": 2,
    })
    engine = replay(generate_sine_wave(220.0, 3.5, sr), sr, config)

    assert engine.stopped
    assert engine.event_log.last.reason == "end_of_audio"
    assert len(engine.event_log.of_type(EnergyLevelChanged)) == 3


def test_config_from_args():
    args = parse_args(["--audio_path", "x.wav", "--mode", "outdoor", "--detector", "autocorrelation",
                       "--seed", "9", "--duration", "0"])
    cfg = config_from_args(args)
    assert cfg.mode.value == "outdoor"
    assert cfg.pitch.detector.value == "autocorrelation"
    assert cfg.seed == 9
    assert cfg.duration_s is None


def test_main_writes_artifacts(tmp_path, capsys):
    sr = 44100
    path = tmp_path / "take.wav"
    sf.write(str(path), generate_sine_wave(180.0, 1.0, sr), sr)

    code = main(["--audio_path", str(path), "--output_dir", str(tmp_path / "out"),
                 "--run_name", "r1", "--seed", "1"])

    assert code == 0
    run_dir = tmp_path / "out" / "r1"
    assert (run_dir / "events.json").exists()
    summary = json.loads((run_dir / "summary.json").read_text())
    assert summary["total_changes"] == 0
    assert '"overall_score"' in capsys.readouterr().out


def test_main_reports_missing_file(tmp_path):
    assert main(["--audio_path", str(tmp_path / "nope.wav"), "--output_dir", str(tmp_path)]) == 1
