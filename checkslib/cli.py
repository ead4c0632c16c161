"""The command line interface for the checks tool."""

import argparse
import logging
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich_argparse import RichHelpFormatter

from . import config, report, task

log = logging.getLogger("cli")


def _version() -> str:
    """The installed version of the tool."""
    try:
        return version("checks-runner")
    except PackageNotFoundError:
        return "unknown"


def _get_parser() -> argparse.ArgumentParser:
    """Create a parser for the checks CLI."""
    RichHelpFormatter.styles["argparse.args"] = "cyan"
    RichHelpFormatter.styles["argparse.prog"] = "bold cyan"
    RichHelpFormatter.styles["argparse.groups"] = "bold green"
    RichHelpFormatter.styles["argparse.syntax"] = "magenta"

    parser = argparse.ArgumentParser(
        prog="checks",
        description="Run your package.json checks in parallel",
        formatter_class=RichHelpFormatter,
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging"
    )
    parser.add_argument("--version", action="version", version=_version())

    parser.add_argument(
        "-p",
        "--project",
        type=Path,
        default=Path.cwd(),
        help="Project directory, searched upwards for a package.json "
        "(defaults to cwd)",
    )

    parser.add_argument(
        "-l",
        "--list",
        action="store_true",
        help="List the checks and their commands and exit",
    )

    parser.add_argument(
        "--runner",
        help="Runner to use (e.g. npm, pnpm, yarn, bun, npx)",
    )

    parser.add_argument(
        "--fix",
        action="store_true",
        help="Run each check's fix script instead of the check",
    )

    # Output format selection - all options write to 'format' dest
    output_fmt = parser.add_mutually_exclusive_group()
    output_fmt.add_argument(
        "--format",
        choices=["auto", "interactive", "ci"],
        dest="format",
        help="Output format: auto (default), interactive, or ci",
    )
    output_fmt.add_argument(
        "--interactive",
        action="store_const",
        const="interactive",
        dest="format",
        help="Show a live view of every check (same as --format interactive)",
    )
    output_fmt.add_argument(
        "--ci",
        action="store_const",
        const="ci",
        dest="format",
        help="Print each check's output when it finishes (same as --format ci)",
    )
    parser.set_defaults(format=None)  # i.e. let the config decide

    return parser


def run(argv: list[str]) -> None:
    """Main entrypoint of the checks tool."""
    args = _get_parser().parse_args(argv)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if args.verbose else logging.INFO)
    handler = RichHandler(
        console=Console(stderr=True), show_time=False, show_path=False
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    log.debug("Called with arguments: %s", argv)

    try:
        cfg, plan = config.load_plan(
            args.project,
            cli_runner=args.runner,
            cli_format=args.format,
            fix=args.fix,
        )
    except config.ConfigError as exc:
        log.error("%s", exc)  # noqa: TRY400
        sys.exit(1)

    reporter = report.get_reporter(plan.format)

    if args.list:
        reporter.emit_plan(plan)
        return

    if cfg.project_name:
        reporter.emit_info(f"Project: {cfg.project_name}")

    if not task.run(plan, reporter):
        sys.exit(1)


def main() -> None:
    """Console script entrypoint."""
    run(sys.argv[1:])
