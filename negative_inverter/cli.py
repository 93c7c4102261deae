"""Command-line interface wiring for the negative inverter."""
from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import uuid
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional

try:  # pragma: no cover - optional dependency
    import yaml
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    yaml = None

from .errors import NegativeInverterError
from .io_utils import DEFAULT_JPEG_QUALITY, OUTPUT_FORMATS, ProcessingCapabilities
from .mapping import TONE_CURVES
from .pipeline import (
    _wrap_with_progress,
    collect_images,
    ensure_output_path,
    process_single_image,
)
from .settings import CONVERSION_PRESETS, DEFAULT_PRESET_NAME, ConversionSettings
from .statistics import STATISTICS_METHODS

LOGGER = logging.getLogger("negative_inverter")

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off"}


@dataclasses.dataclass(frozen=True)
class ConversionResult:
    """Outcome of one file in a batch run."""

    source: Path
    destination: Path
    status: str  # "converted" | "skipped" | "dry-run" | "failed"
    error: Optional[str] = None


@dataclasses.dataclass
class BatchReport:
    run_id: str
    results: List[ConversionResult] = dataclasses.field(default_factory=list)

    def _count(self, status: str) -> int:
        return sum(1 for result in self.results if result.status == status)

    @property
    def converted(self) -> int:
        return self._count("converted")

    @property
    def failed(self) -> int:
        return self._count("failed")

    @property
    def skipped(self) -> int:
        return self._count("skipped")


def _load_config_data(path: Path) -> Mapping[str, Any]:
    """Load configuration from JSON or YAML file.

    Raises:
        FileNotFoundError: If configuration file doesn't exist.
        RuntimeError: If YAML file requested but pyyaml not installed.
        ValueError: If file content is not a valid mapping.
    """
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    suffix = path.suffix.lower()
    if suffix in {".yaml", ".yml"}:
        if yaml is None:
            raise RuntimeError("YAML configuration files require the optional 'pyyaml' dependency")
        try:
            data = yaml.safe_load(path.read_text())
        except yaml.YAMLError as exc:
            raise ValueError(f"Unable to parse configuration file {path}: {exc}") from exc
    else:
        try:
            data = json.loads(path.read_text())
        except json.JSONDecodeError as exc:
            raise ValueError(f"Unable to parse configuration file {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError(f"Configuration file {path} must contain a mapping of option names to values")
    return data


def _build_parser_aliases(parser: argparse.ArgumentParser) -> tuple[dict[str, argparse.Action], dict[str, str]]:
    """Map every destination and option spelling to its parser action."""

    dest_to_action: dict[str, argparse.Action] = {}
    alias_to_dest: dict[str, str] = {}
    for action in parser._actions:  # pylint: disable=protected-access
        if action.dest in {argparse.SUPPRESS, "help", "config"}:
            continue
        dest_to_action[action.dest] = action
        alias_to_dest[action.dest] = action.dest
        for option_string in action.option_strings:
            alias_to_dest[option_string.lstrip("-").replace("-", "_")] = action.dest
    return dest_to_action, alias_to_dest


def _coerce_config_value(action: argparse.Action, value: Any, *, source: Path, key: str) -> Any:
    """Convert configuration values so they match argparse expectations."""

    if value is None:
        return None

    if isinstance(action, argparse._StoreTrueAction):  # pylint: disable=protected-access
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in _TRUE_STRINGS | _FALSE_STRINGS:
            return value.strip().lower() in _TRUE_STRINGS
        raise ValueError(
            f"Invalid boolean for '{key}' in {source}: expected true/false value, got {value!r}"
        )

    converted = value
    if action.type is not None:
        try:
            converted = action.type(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid value for '{key}' in {source}: {exc}") from exc

    if action.choices is not None and converted not in action.choices:
        raise ValueError(
            f"Invalid value for '{key}' in {source}: {converted!r} (choose from {sorted(action.choices)})"
        )
    return converted


def _apply_config_defaults(parser: argparse.ArgumentParser, config_path: Path) -> None:
    raw_config = _load_config_data(config_path)
    dest_to_action, alias_to_dest = _build_parser_aliases(parser)

    converted_defaults: dict[str, Any] = {}
    for key, value in raw_config.items():
        if not isinstance(key, str):
            raise ValueError("Configuration keys must be strings")
        dest = alias_to_dest.get(key.replace("-", "_"))
        if dest is None:
            raise ValueError(f"Unknown configuration option '{key}' in {config_path}")
        converted_defaults[dest] = _coerce_config_value(
            dest_to_action[dest], value, source=config_path, key=key
        )
    parser.set_defaults(**converted_defaults)


def default_output_folder(input_folder: Path) -> Path:
    """Return the default output folder for a given input directory."""

    if input_folder.name:
        return input_folder.parent / f"{input_folder.name}_positive"
    return input_folder / "positive_output"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Invert scanned film negatives into colour-corrected positives.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional configuration file (JSON, or YAML when 'pyyaml' is installed)",
    )
    parser.add_argument("input", type=Path, help="Folder that contains scanned negatives or RAW captures")
    parser.add_argument(
        "output",
        type=Path,
        nargs="?",
        default=None,
        help="Folder where positives will be written. Defaults to '<input>_positive' next to the input folder.",
    )
    parser.add_argument(
        "--preset",
        default=DEFAULT_PRESET_NAME,
        choices=sorted(CONVERSION_PRESETS.keys()),
        help="Conversion preset that provides the metering defaults",
    )

    # Metering and tone curve overrides.
    parser.add_argument(
        "--sample-fraction",
        type=float,
        default=None,
        help="Sample the palette from this centre fraction of the frame, 0 < fraction <= 1",
    )
    parser.add_argument(
        "--lowlights",
        type=float,
        default=None,
        help="Shadows start at this percentile; lower values save more shadows",
    )
    parser.add_argument(
        "--highlights",
        type=float,
        default=None,
        help="Highlights start at this percentile; lower values save more highlights",
    )
    parser.add_argument(
        "--s-curve",
        action="store_true",
        default=None,
        dest="s_curve",
        help="Use a sigmoid tone curve instead of linear mapping",
    )
    parser.add_argument(
        "--tone-curve",
        choices=TONE_CURVES,
        default=None,
        help="Tone curve to apply (overrides --s-curve)",
    )
    parser.add_argument(
        "--sigmoid-gain",
        type=float,
        default=None,
        help="Base slope of the sigmoid curve before scaling by the percentile window",
    )
    parser.add_argument(
        "--center-weighted-metering",
        action="store_true",
        default=None,
        dest="center_weighted",
        help="Meter a centred square instead of the whole frame; useful when the negative doesn't fill the scan",
    )
    parser.add_argument(
        "--statistics",
        choices=STATISTICS_METHODS,
        default=None,
        help="Percentile strategy: exact sorted samples or a fixed-memory histogram",
    )

    # Output options.
    parser.add_argument(
        "--output-format",
        default="tiff",
        type=str.lower,
        choices=sorted(OUTPUT_FORMATS.keys()),
        help="Output file format",
    )
    parser.add_argument(
        "--compression",
        default="deflate",
        help="TIFF compression (deflate, lzw or none)",
    )
    parser.add_argument(
        "--jpeg-quality",
        type=int,
        default=DEFAULT_JPEG_QUALITY,
        help="JPEG quality passed to the encoder (1-100)",
    )
    parser.add_argument(
        "--recursive",
        action="store_true",
        help="Also process sub-folders (off by default, only the top level is scanned) and mirror the tree in the output",
    )
    parser.add_argument(
        "--suffix",
        default="",
        help="Filename suffix appended before the extension for converted files",
    )
    parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Allow overwriting existing files in the destination",
    )
    parser.add_argument(
        "--keep-going",
        action="store_true",
        help="Continue with the next file when one fails instead of aborting the batch",
    )
    parser.add_argument("--dry-run", action="store_true", help="Preview the work without writing any files")
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable progress reporting (useful for minimal or non-interactive environments)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity",
    )
    return parser


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = _build_parser()
    argv_list = list(argv) if argv is not None else None

    config_probe, _ = parser.parse_known_args(argv_list)
    if config_probe.config is not None:
        try:
            _apply_config_defaults(parser, config_probe.config)
        except (OSError, ValueError, RuntimeError) as exc:
            parser.error(str(exc))

    args = parser.parse_args(argv_list)
    if not 1 <= args.jpeg_quality <= 100:
        parser.error("--jpeg-quality must be between 1 and 100")
    if args.output is None:
        args.output = default_output_folder(args.input)
    try:
        build_settings(args)
    except ValueError as exc:
        parser.error(str(exc))
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s: %(message)s")
    return args


def build_settings(args: argparse.Namespace) -> ConversionSettings:
    """Construct conversion settings from the preset and CLI overrides.

    Raises:
        ValueError: If an override leaves the settings out of range.
    """
    settings = dataclasses.replace(CONVERSION_PRESETS[args.preset])
    if getattr(args, "s_curve", None):
        settings.tone_curve = "sigmoid"
    for field in dataclasses.fields(settings):
        value = getattr(args, field.name, None)
        if value is not None:
            setattr(settings, field.name, value)
    settings._validate()  # pylint: disable=protected-access
    LOGGER.debug("Using settings: %s", settings)
    return settings


def _ensure_non_overlapping(input_root: Path, output_root: Path) -> None:
    def _contains(parent: Path, child: Path) -> bool:
        try:
            child.relative_to(parent)
        except ValueError:
            return False
        return True

    if input_root == output_root:
        raise SystemExit("Output folder must be different from the input folder to avoid self-overwrites.")
    if _contains(input_root, output_root):
        raise SystemExit(
            "Output folder cannot be located inside the input folder; choose a sibling or separate directory."
        )
    if _contains(output_root, input_root):
        raise SystemExit(
            "Input folder cannot be located inside the output folder; choose non-overlapping directories."
        )


def run_pipeline(args: argparse.Namespace) -> BatchReport:
    """Convert every supported file below ``args.input``, one file at a time.

    Without ``--keep-going`` the first failing file aborts the batch by
    re-raising its error; with it the failure is recorded and the run continues.
    """

    report = BatchReport(run_id=uuid.uuid4().hex)
    settings = build_settings(args)
    input_root = args.input.resolve()
    output_root = args.output.resolve()

    if not input_root.exists():
        raise FileNotFoundError(f"Input folder not found: {input_root}")
    if not input_root.is_dir():
        raise SystemExit(f"Input folder '{input_root}' does not exist or is not a directory")

    _ensure_non_overlapping(input_root, output_root)

    LOGGER.info(
        "Starting batch run %s for %s using '%s' preset (%s curve)",
        report.run_id,
        input_root,
        args.preset,
        settings.tone_curve,
    )
    images = sorted(collect_images(input_root, args.recursive))
    if not images:
        LOGGER.warning("No supported images found in %s (run %s)", input_root, report.run_id)
        return report

    if not args.dry_run:
        output_root.mkdir(parents=True, exist_ok=True)

    capabilities = ProcessingCapabilities()
    if args.output_format == "tiff" and capabilities.bit_depth < 16:
        LOGGER.warning("tifffile is not installed; TIFF output will be limited to 8-bit")

    LOGGER.info("Found %s image(s) to process", len(images))
    progress_iterable = _wrap_with_progress(
        images,
        total=len(images),
        description="Processing images",
        enabled=not getattr(args, "no_progress", False),
    )

    for image_path in progress_iterable:
        destination = ensure_output_path(
            input_root,
            output_root,
            image_path,
            args.suffix,
            args.recursive,
            args.output_format,
            create=not args.dry_run,
        )
        if destination.exists() and not args.overwrite and not args.dry_run:
            LOGGER.warning("Skipping %s (exists, use --overwrite to replace)", destination)
            report.results.append(ConversionResult(image_path, destination, "skipped"))
            continue
        if args.dry_run:
            LOGGER.info("Dry run: would process %s -> %s", image_path, destination)
        try:
            wrote_output = process_single_image(
                image_path,
                destination,
                settings,
                output_format=args.output_format,
                compression=args.compression,
                jpeg_quality=args.jpeg_quality,
                dry_run=args.dry_run,
                capabilities=capabilities,
            )
        except NegativeInverterError as exc:
            LOGGER.error("Could not convert %s: %s", image_path, exc)
            report.results.append(ConversionResult(image_path, destination, "failed", str(exc)))
            if not args.keep_going:
                raise
            continue
        status = "converted" if wrote_output else "dry-run"
        report.results.append(ConversionResult(image_path, destination, status))

    LOGGER.info(
        "Finished batch run %s; converted %s, skipped %s, failed %s",
        report.run_id,
        report.converted,
        report.skipped,
        report.failed,
    )
    return report


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = parse_args(argv)
    try:
        report = run_pipeline(args)
    except NegativeInverterError:
        return 1
    return 1 if report.failed else 0


__all__ = [
    "BatchReport",
    "ConversionResult",
    "build_settings",
    "default_output_folder",
    "main",
    "parse_args",
    "run_pipeline",
]
