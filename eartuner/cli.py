from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from typing import Any, Iterable, get_args

import numpy as np
from rich.console import Console

from .config import EarTunerConfig, load_config
from .instruments.registry import InstrumentRegistry
from .logging_utils import configure_logging, debug_enabled, get_log_path, log_exception
from .preferences import JsonFileStore
from .spinner import Spinner, render_error
from .theory import (
    ALL_KEYS,
    MODES,
    OCTAVE_MAP,
    SCALE_LENGTH,
    SOLFEGE,
    OctaveName,
    format_key_display,
    random_degree_index,
    random_key,
    random_octave,
    scale_notes,
)
from .tuner import EarTuner

_LOGGER = logging.getLogger("eartuner.cli")
_CONSOLE = Console()


def _report(lines: Iterable[str]) -> None:
    for line in lines:
        _CONSOLE.print(line, soft_wrap=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="eartuner")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("instruments", help="List the available pianos.")

    select = sub.add_parser("select", help="Save the piano to use from now on.")
    select.add_argument("instrument", type=str)

    play = sub.add_parser("play", help="Play a cadence and a mystery scale degree.")
    play.add_argument("--key", choices=ALL_KEYS, default=None)
    play.add_argument("--mode", choices=MODES, default=None)
    play.add_argument("--octave", choices=get_args(OctaveName), default=None)
    play.add_argument(
        "--degree",
        type=int,
        choices=range(1, SCALE_LENGTH + 1),
        default=None,
        help="1-7, or 8 for the upper tonic (random when omitted).",
    )
    play.add_argument(
        "--instrument",
        type=str,
        default=None,
        help="Piano id (also saved as the preference).",
    )

    sub.add_parser("doctor", help="Check cache paths and the audio output device.")
    return parser


def _install_visibility_hook(tuner: EarTuner) -> None:
    # Being resumed after Ctrl-Z / `fg` is this process' "visible again".
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGCONT, tuner.handle_visibility_change, True)
    except (AttributeError, NotImplementedError, RuntimeError) as exc:
        _LOGGER.debug("No SIGCONT hook: %s", exc)


async def _play(args: argparse.Namespace, config: EarTunerConfig) -> int:
    tuner = EarTuner(config)
    _install_visibility_hook(tuner)
    if args.instrument:
        await tuner.switch_instrument(args.instrument)

    with Spinner("Loading piano samples"):
        unlocked = await tuner.start_audio_context()
    if not unlocked:
        _CONSOLE.print("Audio output is not available yet; try again.")
        return 1

    rng = np.random.default_rng()
    key = args.key or random_key(rng)
    mode = args.mode or MODES[int(rng.integers(0, len(MODES)))]
    octave = OCTAVE_MAP[args.octave] if args.octave else random_octave(list(OCTAVE_MAP), rng)
    note_index = args.degree - 1 if args.degree else random_degree_index(rng)

    _CONSOLE.print(
        f"{format_key_display(key, mode)} on {tuner.current_instrument_id.value}: listen..."
    )
    try:
        tuner.play_cadence_and_note(note_index, key, mode, octave)
        await tuner.wait_until_idle()
    finally:
        await tuner.close()

    pitch = scale_notes(key, mode, octave)[note_index]
    _CONSOLE.print(f"Answer: {SOLFEGE[mode][note_index]} ({pitch})")
    return 0


def _instruments(config: EarTunerConfig) -> int:
    registry = InstrumentRegistry(
        JsonFileStore(config.preferences_path), default_id=config.default_instrument
    )
    selected = registry.get_selected_id()
    for info in registry.list():
        marker = "*" if info.id == selected else " "
        _CONSOLE.print(f"{marker} {info.id:<12} {info.display_name}")
    return 0


def _select(instrument_id: str, config: EarTunerConfig) -> int:
    registry = InstrumentRegistry(
        JsonFileStore(config.preferences_path), default_id=config.default_instrument
    )
    if not registry.is_known(instrument_id):
        known = ", ".join(info.id for info in registry.list())
        _CONSOLE.print(f"Unknown instrument {instrument_id!r}; choose one of: {known}")
        return 1
    registry.set_selected_id(instrument_id)
    _CONSOLE.print(f"Selected {instrument_id}")
    return 0


def _doctor(config: EarTunerConfig) -> int:
    report = [
        f"Sample cache: {config.sample_cache_dir}",
        f"Preferences: {config.preferences_path}",
        f"Log file: {get_log_path()}",
    ]
    try:
        import sounddevice as sd_module  # type: ignore[import]
    except (ImportError, OSError) as exc:
        _LOGGER.info("sounddevice not available: %s", exc, exc_info=True)
        report.append(f"Audio output: unavailable ({exc})")
    else:
        sd: Any = sd_module
        try:
            device = sd.query_devices(kind="output")
            report.append(f"Audio output: {device['name']}")
        except Exception as exc:
            _LOGGER.info("No output device: %s", exc, exc_info=True)
            report.append(f"Audio output: none ({exc})")
    report.append("Hints:")
    report.append("- Set EARTUNER_SAMPLE_CACHE to reuse downloaded piano samples.")
    report.append("- Set EARTUNER_DEBUG=1 to log every mystery note.")
    _report(report)
    return 0


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        config = load_config()

        if args.command == "instruments":
            return _instruments(config)
        if args.command == "select":
            return _select(args.instrument, config)
        if args.command == "play":
            return asyncio.run(_play(args, config))
        if args.command == "doctor":
            return _doctor(config)

        parser.print_help()
        return 1
    except Exception as exc:
        _LOGGER.warning("eartuner CLI failed: %s", exc, exc_info=debug_enabled())
        log_exception("eartuner CLI", exc)
        render_error("eartuner CLI", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
