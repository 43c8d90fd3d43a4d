"""Thin CLI entry point — builds a CondenseConfig and calls the engine."""

import argparse
import json
import logging
import re
import sys
from dataclasses import replace
from pathlib import Path

import questionary
from rich.console import Console
from rich.logging import RichHandler

from yujin import engine, ffutil
from yujin.analyzers.transcribe import is_whisper_installed
from yujin.batch import (
    DEFAULT_OUTPUT_DIR,
    TRANSCRIPTS_DIR,
    batch_layout,
    default_single_output,
    discover,
    single_layout,
)
from yujin.config import CondenseConfig, ConfigError, load_config, resolve_api_key
from yujin.fsutil import ensure_dir
from yujin.ledger import summary_lines
from yujin.models import MediaFile

logger = logging.getLogger("yujin")

INTERACTIVE_SEGMENT_MINUTES = 10
INTERACTIVE_TEMPO_RATE = 0.75

_POSITIVE_INT_RE = re.compile(r"^[1-9][0-9]*$")
_RATE_RE = re.compile(r"^[0-9]+(\.[0-9]*)?$")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="yujin",
        description=(
            "yujin — condense audio/video for listening practice: remove silence, "
            "adjust tempo, normalize, denoise, segment and transcribe."
        ),
    )
    sub = parser.add_subparsers(dest="command")

    cond = sub.add_parser(
        "condense",
        help="Condense a file or directory (no input: interactive mode over the current directory)",
    )
    cond.add_argument("input", nargs="?", type=Path, help="Input file or directory")
    cond.add_argument(
        "output", nargs="?", type=Path,
        help=f"Output file (single) or directory (batch, default ./{DEFAULT_OUTPUT_DIR})",
    )
    cond.add_argument("--config", "-c", type=Path, help="JSON file with default settings")
    cond.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    proc = cond.add_argument_group("processing")
    proc.add_argument("-t", dest="silence_threshold", type=float, help="Silence threshold dB (default: -30.0)")
    proc.add_argument("-d", dest="min_silence", type=float, help="Min silence duration seconds (default: 0.5)")
    proc.add_argument("-s", dest="segment_minutes", type=int, help="Segment output into MINUTE chunks")
    proc.add_argument("-r", dest="tempo_rate", type=float, help="Playback rate multiplier (default: 1.0)")
    proc.add_argument("-N", dest="normalize", action="store_const", const=True, help="Loudness normalization")
    proc.add_argument("-D", dest="denoise", action="store_const", const=True, help="Apply noise reduction")

    out = cond.add_argument_group("output")
    out.add_argument("-f", dest="output_format", type=str.lower, help="mp3, opus, ogg or wav (default: mp3)")
    out.add_argument("-b", dest="bitrate", help="Audio bitrate (default: 128k)")
    out.add_argument("--channels", type=int, help="Audio channels (default: 2)")
    out.add_argument("--sample-rate", dest="sample_rate", type=int, help="Sample rate (default: 44100)")

    trans = cond.add_argument_group("transcription")
    trans.add_argument("-T", dest="transcription", action="store_const", const="local", help="Transcribe with local Whisper")
    trans.add_argument("-W", dest="transcription", action="store_const", const="api", help="Transcribe with the OpenAI Whisper API")
    trans.add_argument("-K", dest="api_key", help="OpenAI API key (default: $OPENAI_API_KEY)")
    trans.add_argument("--model", dest="whisper_model", help="Whisper model size (default: medium)")
    trans.add_argument("-G", dest="language", help="Language code, e.g. en, es, ja (default: auto-detect)")

    gen = cond.add_argument_group("general")
    gen.add_argument("-l", dest="log_level", help="FFmpeg log level (default: error)")
    gen.add_argument("-L", dest="log_file", type=Path, help="Append FFmpeg output to this file")
    gen.add_argument("-F", dest="batch_filter", help='Only process files matching a shell pattern, e.g. "Ep*.mp4"')
    gen.add_argument("-n", dest="dry_run", action="store_const", const=True, help="Dry run: print commands only")

    serve = sub.add_parser("serve", help="Launch the web job API")
    serve.add_argument("--port", type=int, default=8321, help="Port to listen on")
    serve.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to")
    return parser


_CONFIG_FLAGS = (
    "silence_threshold", "min_silence", "tempo_rate", "normalize", "denoise",
    "output_format", "bitrate", "channels", "sample_rate", "transcription",
    "whisper_model", "language", "log_level", "log_file", "batch_filter", "dry_run",
)


def build_config(args: argparse.Namespace) -> tuple[CondenseConfig, set[str]]:
    """Layer command-line flags over the optional config file.

    Returns the config and the names of fields that were set explicitly.
    """
    values = load_config(args.config) if args.config else {}
    for name in _CONFIG_FLAGS:
        value = getattr(args, name, None)
        if value is not None:
            values[name] = value
    if args.segment_minutes is not None:
        if args.segment_minutes <= 0:
            raise ConfigError(f"Invalid value for -s (minutes): {args.segment_minutes}")
        values["segment_seconds"] = args.segment_minutes * 60
    explicit = set(values)
    values["api_key"] = resolve_api_key(args.api_key or values.get("api_key"))
    return CondenseConfig(**values), explicit


def preflight_transcription(config: CondenseConfig) -> CondenseConfig:
    """Turn transcription off up front when its prerequisites are missing."""
    if config.transcription == "local" and not is_whisper_installed():
        logger.warning(
            "Local 'whisper' command required for local transcription (-T) but not found. "
            "Audio processing will continue but transcription will be skipped."
        )
        return replace(config, transcription="none")
    if config.transcription == "api" and not config.api_key:
        logger.warning(
            "OpenAI API key required for Whisper API (-W). Provide it with -K or set "
            "OPENAI_API_KEY. Audio processing will continue but transcription will be skipped."
        )
        return replace(config, transcription="none")
    return config


def _print_report(result: engine.RunResult, config: CondenseConfig) -> None:
    stats = result.stats
    print()
    print(
        f"Processed: {stats.processed}, Skipped by filter: {stats.filtered_out}, "
        f"Errors: {stats.errors}"
    )
    if stats.segment_errors:
        print(f"  Segmentation failures: {stats.segment_errors}")
    if result.transcription_ran:
        print(
            f"Transcribed: {stats.transcribed}, Skipped/Warnings: {stats.transcribe_skipped}, "
            f"Errors: {stats.transcribe_errors}"
        )
    lines = summary_lines(result.report, stats.processed, dry_run=config.dry_run)
    if lines:
        print()
        for line in lines:
            print(line)


def _run_single(input_path: Path, output: Path | None, config: CondenseConfig) -> int:
    if output is None:
        output = default_single_output(input_path, config.output_format)
    elif not output.suffix:
        fixed = output.with_name(f"{output.name}.{config.output_format}")
        logger.warning("Output file '%s' had no extension, using '%s'", output, fixed)
        output = fixed

    output = output.absolute()
    print(f"Single file mode: Processing '{input_path}' -> '{output}'")
    job = engine.Job(MediaFile(path=input_path.absolute()), single_layout(output))
    result = engine.run([job], config)
    _print_report(result, config)
    return 0


def _run_batch(input_dir: Path, output_root: Path, config: CondenseConfig) -> int:
    output_root = output_root.absolute()
    # Generated output inside the input tree must not be picked up again.
    discovery = discover(
        input_dir, recursive=True, pattern=config.batch_filter, exclude=(output_root,)
    )
    return _run_discovered(discovery, output_root, config)


def _program_path() -> Path | None:
    path = Path(sys.argv[0]) if sys.argv and sys.argv[0] else None
    if path is None or not path.is_file():
        return None
    return path


def _run_discovered(discovery, output_root: Path, config: CondenseConfig) -> int:
    if not discovery.files:
        if discovery.filtered_out:
            logger.error("No media files match filter '%s'.", config.batch_filter)
        else:
            logger.error("No compatible media files found.")
        return 1

    print(f"Found {discovery.total} potential media file(s).")
    if config.batch_filter:
        print(f"Applying filter: '{config.batch_filter}'")

    try:
        ensure_dir(output_root, dry_run=config.dry_run)
    except OSError as e:
        logger.error("Could not create output directory '%s': %s", output_root, e)
        return 1
    if config.transcription != "none":
        print(f"Transcripts will be saved to: '{output_root / TRANSCRIPTS_DIR}'")

    jobs = [
        engine.Job(m, batch_layout(m, output_root, config.output_format))
        for m in discovery.files
    ]
    result = engine.run(jobs, config, filtered_out=discovery.filtered_out)
    _print_report(result, config)
    return 0


def _ask_segment_seconds() -> int | None:
    if not questionary.confirm(
        f"Create segmented versions? (Default segment length: {INTERACTIVE_SEGMENT_MINUTES} min)",
        default=False,
    ).ask():
        print("Segmentation skipped.")
        return None
    answer = questionary.text(
        "Enter segment length in MINUTES:", default=str(INTERACTIVE_SEGMENT_MINUTES)
    ).ask()
    answer = (answer or "").strip()
    if _POSITIVE_INT_RE.match(answer):
        return int(answer) * 60
    logger.warning("Invalid input. Using default %d min.", INTERACTIVE_SEGMENT_MINUTES)
    return INTERACTIVE_SEGMENT_MINUTES * 60


def _ask_tempo_rate(current: float) -> float:
    if not questionary.confirm(
        f"Adjust audio tempo? (Default suggested rate: {INTERACTIVE_TEMPO_RATE}x)",
        default=False,
    ).ask():
        print(f"Tempo adjustment skipped. Using rate {current}x.")
        return current
    answer = questionary.text(
        "Enter desired tempo rate (e.g., 0.8 for slower, 1.2 for faster):",
        default=str(INTERACTIVE_TEMPO_RATE),
    ).ask()
    answer = (answer or "").strip()
    if _RATE_RE.match(answer) and float(answer) > 0:
        return float(answer)
    logger.warning("Invalid input. Using default rate %sx.", INTERACTIVE_TEMPO_RATE)
    return INTERACTIVE_TEMPO_RATE


def _ask_transcription(config: CondenseConfig) -> CondenseConfig:
    choices = [
        questionary.Choice("OpenAI Whisper API", value="api"),
        questionary.Choice("No", value="none"),
    ]
    # Local Whisper is only offered when the executable is on PATH.
    if is_whisper_installed():
        choices.insert(0, questionary.Choice("Local Whisper", value="local"))

    reply = questionary.select("Transcribe audio?", choices=choices, default="none").ask()

    if reply == "local":
        print(f"Transcription enabled: Using local Whisper (model: {config.whisper_model})")
        return replace(config, transcription="local")
    if reply == "api":
        api_key = config.api_key
        if not api_key:
            api_key = questionary.password(
                "Enter OpenAI API key (or press Enter to skip transcription):"
            ).ask()
            api_key = (api_key or "").strip()
        if not api_key:
            logger.warning("No API key provided. Skipping API transcription.")
            return config
        print("Transcription enabled: Using OpenAI Whisper API.")
        return replace(config, transcription="api", api_key=api_key)
    print("Transcription skipped.")
    return config


def run_interactive(config: CondenseConfig, explicit: set[str], scan_dir: Path | None = None) -> int:
    """Interactive batch over a directory, prompting for options not set by flags."""
    scan_dir = (scan_dir or Path.cwd()).absolute()
    output_root = scan_dir / DEFAULT_OUTPUT_DIR
    print(f"--- Interactive Mode --- Scanning '{scan_dir}'")

    program = _program_path()
    exclude = (output_root,) if program is None else (program, output_root)
    discovery = discover(scan_dir, recursive=False, pattern=config.batch_filter, exclude=exclude)
    if discovery.total == 0:
        logger.error("No compatible media files found directly in '%s'. Nothing to do.", scan_dir)
        return 1

    print(f"Found {discovery.total} potential media file(s):")
    for media in discovery.files + discovery.filtered_out:
        print(f" - {media.name}")
    print(f"Proposed main output directory: '{output_root}'")
    if config.batch_filter:
        print(f"Note: Batch filter '{config.batch_filter}' will be applied.")

    if not questionary.confirm("Proceed with processing?", default=False).ask():
        print("Operation cancelled.")
        return 0

    if "segment_seconds" not in explicit:
        config = replace(config, segment_seconds=_ask_segment_seconds())
    if "tempo_rate" not in explicit:
        config = replace(config, tempo_rate=_ask_tempo_rate(config.tempo_rate))
    if "transcription" not in explicit:
        config = _ask_transcription(config)

    return _run_discovered(discovery, output_root, config)


def condense(args: argparse.Namespace) -> int:
    try:
        config, explicit = build_config(args)
        for warning in config.validate():
            logger.warning(warning)
    except (ConfigError, OSError, json.JSONDecodeError) as e:
        logger.error("Invalid configuration: %s", e)
        return 1

    try:
        ffutil.check_ffmpeg()
    except ffutil.FFmpegNotFoundError as e:
        logger.error("%s. Please install ffmpeg.", e)
        return 1

    config = preflight_transcription(config)

    if args.input is None:
        return run_interactive(config, explicit)

    if not args.input.exists():
        logger.error("Input path '%s' does not exist.", args.input)
        return 1
    if args.input.is_dir():
        output_root = args.output or Path.cwd() / DEFAULT_OUTPUT_DIR
        print(f"Batch mode: Processing directory '{args.input}' -> '{output_root}'")
        return _run_batch(args.input, output_root, config)
    return _run_single(args.input, args.output, config)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    logging.captureWarnings(True)


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    _configure_logging(getattr(args, "verbose", False))

    if args.command == "serve":
        from yujin.web import create_app
        app = create_app()
        print(f"yujin web API: http://{args.host}:{args.port}")
        app.run(host=args.host, port=args.port, debug=False)
        return

    sys.exit(condense(args))


if __name__ == "__main__":
    main()
