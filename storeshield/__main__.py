"""Entry point: python -m storeshield validate [options] <package>"""
from __future__ import annotations

import argparse
import sys
from datetime import datetime
from pathlib import Path

from . import __version__
from .core.config import ConfigError, default_config_yaml, load_config
from .core.engine import SYSTEM_RULE, Validator
from .core.models import Severity
from .core.report import FORMATS, exit_code, render

_DEFAULT_INIT_PATH = Path("storeshield.yaml")


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "validate":
        return _run_validate(args)
    if args.command == "rules":
        return _run_rules(args)
    if args.command == "init":
        return _run_init(args)

    parser.print_help(sys.stderr)
    return 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="storeshield",
        description="Static App Store submission checks for iOS builds",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command")

    validate = sub.add_parser("validate", help="Validate a .app bundle or .ipa archive")
    validate.add_argument("package", help="Path to .app bundle or .ipa file")
    validate.add_argument("-m", "--metadata", type=Path, help="Path to metadata JSON file")
    validate.add_argument("-o", "--output", choices=FORMATS, help="Output format (default: console)")
    validate.add_argument("--output-file", type=Path, help="Write output to file instead of stdout")
    validate.add_argument("-c", "--config", type=Path, help="Path to configuration YAML")
    validate.add_argument("-r", "--rules", help="Comma-separated list of rules to run (default: all)")
    validate.add_argument("-i", "--ignore", help="Comma-separated list of rules to skip")
    validate.add_argument(
        "--fail-on",
        choices=[s.value for s in Severity],
        help="Minimum severity that causes a non-zero exit code (default: high)",
    )
    validate.add_argument("-v", "--verbose", action="store_true", default=None, help="Verbose diagnostics on stderr")
    validate.add_argument("--no-color", action="store_true", help="Disable colored console output")

    rules = sub.add_parser("rules", help="List available validation rules")
    rules.add_argument("-c", "--config", type=Path, help="Path to configuration YAML")

    init = sub.add_parser("init", help="Write a starter configuration file")
    init.add_argument("--path", type=Path, default=_DEFAULT_INIT_PATH, help="Where to write the config")
    init.add_argument("--force", action="store_true", help="Overwrite an existing file")

    return parser


def _run_validate(args: argparse.Namespace) -> int:
    overrides: dict = {"output": {}}
    if args.output:
        overrides["output"]["format"] = args.output
    if args.verbose:
        overrides["output"]["verbose"] = True
    if args.no_color:
        overrides["output"]["color"] = False
    if args.fail_on:
        overrides["failOn"] = args.fail_on

    try:
        config = load_config(args.config, overrides=overrides)
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    verbose = config.output.verbose
    log = _stderr_sink(verbose)
    if config.source:
        log("info", f"Loaded configuration from: {config.source}")

    validator = Validator(
        config=config,
        include=_split(args.rules),
        exclude=_split(args.ignore),
        log=log,
    )
    report = validator.validate(args.package, args.metadata)

    fmt = config.output.format
    color = config.output.color and fmt == "console" and args.output_file is None and sys.stdout.isatty()
    output = render(report, fmt, color=color)

    if args.output_file:
        args.output_file.write_text(output, encoding="utf-8")
        print(f"Results written to {args.output_file}", file=sys.stderr)
    else:
        print(output)

    if report.failed and verbose:
        for finding in report.findings:
            if finding.rule == SYSTEM_RULE and finding.details:
                print(finding.details, file=sys.stderr)

    return exit_code(report.findings, config.fail_on)


def _run_rules(args: argparse.Namespace) -> int:
    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    validator = Validator(config=config, log=_stderr_sink(False))
    active = set(validator.registry.names())
    print("Available validation rules\n")
    for rule in validator.available:
        level = config.rules.get(rule.name, "error")
        status = "" if rule.name in active else " (disabled)"
        print(f"{rule.name} [{level}]{status}")
        print(f"  {rule.description}\n")
    print("Use --rules to run specific rules, --ignore to exclude rules")
    return 0


def _run_init(args: argparse.Namespace) -> int:
    path: Path = args.path
    if path.exists() and not args.force:
        print(f"Config file already exists at {path}. Use --force to overwrite.", file=sys.stderr)
        return 1
    path.write_text(default_config_yaml(), encoding="utf-8")
    print(f"Configuration file created at {path}")
    return 0


def _stderr_sink(verbose: bool):
    def log(level: str, message: str) -> None:
        if level == "warning":
            print(f"warning: {message}", file=sys.stderr)
        elif verbose:
            print(f"[{datetime.now().isoformat(timespec='seconds')}] {message}", file=sys.stderr)
    return log


def _split(value: str | None) -> list[str] | None:
    if not value:
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


if __name__ == "__main__":
    sys.exit(main())
