"""Replay a recording through the Conductor engine in simulated time.

Example:
    conductor-replay --audio_path take1.wav --mode outdoor --seed 7 --output_dir results
"""
import argparse
import json
import logging
import sys
from typing import Any, Callable, Dict, Optional

import numpy as np

from conductor.pipeline.config import EngineConfig, build_config
from conductor.pipeline.engine import ConductorEngine
from conductor.pipeline.frame_source import ArrayFrameSource, load_audio
from conductor.pipeline.instrumentation import EngineLogger
from conductor.pipeline.models import EnergyEvent, StartPolicy
from conductor.pipeline.timers import SimulatedTimerService

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Replay an audio file through the energy-matching engine")
    parser.add_argument("--audio_path", required=True, help="Path to input audio file")
    parser.add_argument("--mode", choices=["standard", "outdoor"], default="standard", help="Noise handling mode")
    parser.add_argument("--detector", choices=["yin", "autocorrelation"], default=None, help="Pitch detector")
    parser.add_argument(
        "--sample_rate",
        type=int,
        default=44100,
        choices=[16000, 22050, 44100, 48000],
        help="Analysis sample rate",
    )
    parser.add_argument("--seed", type=int, default=None, help="Scheduler seed (fixed seed = reproducible events)")
    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Assessment length in seconds (default: preset value; 0 = until the audio ends)",
    )
    parser.add_argument("--breathe_probability", type=float, default=None, help="Override breathe cue probability")
    parser.add_argument("--output_dir", default="results", help="Directory for the run's logs and JSON artifacts")
    parser.add_argument("--run_name", default=None, help="Run sub-directory name")
    parser.add_argument("--print_events", action="store_true", help="Print every event as JSON")
    return parser.parse_args(argv)


def config_from_args(args) -> EngineConfig:
    overrides: Dict[str, Any] = {"start_policy": StartPolicy.MANUAL}
    if args.detector is not None:
        overrides["pitch.detector"] = args.detector
    if args.seed is not None:
        overrides["seed"] = args.seed
    if args.duration is not None:
        overrides["duration_s"] = args.duration if args.duration > 0 else None
    if args.breathe_probability is not None:
        overrides["scheduler.breathe_probability"] = args.breathe_probability
    return build_config(args.mode, overrides)


def replay(
    audio: np.ndarray,
    sample_rate: int,
    config: EngineConfig,
    pipeline_logger: Optional[EngineLogger] = None,
    on_energy_event: Optional[Callable[[EnergyEvent], None]] = None,
) -> ConductorEngine:
    """
    Run ``audio`` through a fresh engine, one analysis tick per hop of
    ``sample_rate / analysis_rate_hz`` samples, and return the stopped engine.
    """
    period = 1.0 / config.analysis_rate_hz
    hop = max(1, int(round(sample_rate * period)))
    source = ArrayFrameSource(audio, sample_rate, window_size=config.pitch.window_size, hop=hop)
    timers = SimulatedTimerService()

    engine = ConductorEngine(
        source,
        config=config,
        timers=timers,
        on_energy_event=on_energy_event,
        pipeline_logger=pipeline_logger,
    )
    if engine.start_policy is StartPolicy.MANUAL:
        engine.start()

    while not engine.stopped:
        engine.tick()
        if source.exhausted:
            break
        timers.advance(period)

    engine.stop("end_of_audio")
    return engine


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        config = config_from_args(args)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    try:
        audio, sr = load_audio(args.audio_path, sample_rate=args.sample_rate)
    except (RuntimeError, ValueError) as e:
        logger.error(str(e))
        return 1

    pipeline_logger = EngineLogger(base_dir=args.output_dir, run_name=args.run_name)

    def _print_event(event: EnergyEvent) -> None:
        if args.print_events:
            print(json.dumps(event.to_record()))

    engine = replay(audio, sr, config, pipeline_logger=pipeline_logger, on_energy_event=_print_event)
    summary = engine.summary()

    logger.info(
        f"Replay finished: {summary.total_changes} level changes, "
        f"{summary.breathe_recoveries} breathe cues, overall score {summary.overall_score}"
    )
    logger.info(f"Artifacts written to {pipeline_logger.run_dir}")
    print(json.dumps(summary.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
