"""Manage the reporting of check results."""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING, Literal

from rich import box
from rich.console import Console, Group
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from . import cmd, task

if TYPE_CHECKING:
    from rich.console import RenderableType

    from .config import ExecutionPlan, Format

log = logging.getLogger("report")

ReporterName = Literal["interactive", "ci"]

_ICONS = {
    cmd.Status.RUNNING: ("○", "grey50"),
    cmd.Status.SUCCESS: ("✓", "green"),
    cmd.Status.FAILED: ("×", "red"),
}
_PLACEHOLDER = "…"

# Lines of output shown per check while the checks are running.
_TAIL_LINES = 8


class Reporter:
    """A reporter for reporting the progress and results of a run.

    The base reporter prints nothing while checks run. It only knows how to
    list a plan and print the final summary, which every subclass shares.
    Subclasses override methods to report each situation.
    """

    name: ReporterName

    def __init__(self, console: Console | None = None) -> None:
        """Initialise the reporter, printing to `console` (stdout by default)."""
        self.console = console or Console(highlight=False)

    def emit_info(self, msg: str) -> None:
        """Print a message (for an interactive reader)."""

    def emit_plan(self, plan: ExecutionPlan) -> None:
        """List the checks of a plan and the commands that would run."""
        mode = " (fix)" if plan.fix else ""
        self.console.print(
            f"[bold green]checks[/]{mode} [cyan]runner={escape(plan.runner)}[/] "
            f"[dim]{escape(str(plan.cwd))}[/]"
        )
        for name, command in task.commands(plan):
            self.console.print(
                f"  [bold]{escape(name)}[/] [grey50]{escape(command)}[/]"
            )

    def emit_start(self, results: task.ResultSet) -> None:
        """What is shown once every check has been started."""

    def emit_update(self, results: task.ResultSet) -> None:
        """What is shown whenever any check produces output or finishes."""

    def emit_summary(self, results: task.ResultSet) -> None:
        """What is printed after every check has completed."""
        for result in results:
            self.console.print(
                Text.assemble(_icon(result), " ", (result.name, "bold"))
            )

        self.console.print()
        duration = (f"({format_duration(results.elapsed_ms)})", "dim")
        if failures := len(results.failed):
            self.console.print(
                Text.assemble(
                    (f"{failures} check{_plural(failures)} failed ", "bold red"),
                    duration,
                )
            )
        else:
            self.console.print(
                Text.assemble(("All checks passed ", "bold green"), duration)
            )

    def close(self) -> None:
        """Release the terminal, called even if the run fails."""


class InteractiveReporter(Reporter):
    """Redraws a live view of every check as its output streams in."""

    name: ReporterName = "interactive"
    _live: Live | None = None

    def emit_info(self, msg: str) -> None:
        """Print to console."""
        self.console.print(msg)

    def emit_start(self, results: task.ResultSet) -> None:
        """Start the live view."""
        self._live = Live(
            _live_view(results),
            console=self.console,
            refresh_per_second=10,
        )
        self._live.start()

    def emit_update(self, results: task.ResultSet) -> None:
        """Redraw the live view."""
        assert self._live, "must have called emit_start() before emit_update()"
        self._live.update(_live_view(results))

    def close(self) -> None:
        """Stop the live view, leaving its last frame on screen."""
        if self._live is not None:
            self._live.stop()
            self._live = None


class CiReporter(Reporter):
    """Prints each check's output in one block as soon as it finishes.

    Output of different checks never interleaves, which keeps CI logs
    readable.
    """

    name: ReporterName = "ci"

    def __init__(self, console: Console | None = None) -> None:
        """Initialise the CI reporter."""
        super().__init__(console)
        self._printed: set[str] = set()

    def emit_info(self, msg: str) -> None:
        """Print to console."""
        self.console.print(msg)

    def emit_start(self, results: task.ResultSet) -> None:
        """Announce the checks being run."""
        names = escape(", ".join(result.name for result in results))
        count = len(results)
        self.console.print(f"[dim]Running {count} check{_plural(count)}: {names}[/]")
        self.emit_update(results)

    def emit_update(self, results: task.ResultSet) -> None:
        """Print the checks which have finished since the last update."""
        for result in results:
            if result.complete and result.name not in self._printed:
                self._printed.add(result.name)
                self.console.print(_result_block(result))
                self.console.print()

    def emit_summary(self, results: task.ResultSet) -> None:
        """Print the summary after a separator."""
        self.console.rule(style="dim")
        super().emit_summary(results)


def get_reporter(name: Format, console: Console | None = None) -> Reporter:
    """Get a reporter instance for the given presentation mode."""
    match name:
        case "interactive":
            return InteractiveReporter(console)
        case "ci":
            return CiReporter(console)
        case "auto":
            detected: ReporterName = "ci" if is_ci() else "interactive"
            log.debug("Detected %s presentation", detected)
            return get_reporter(detected, console)
        case _:
            raise ValueError(f"Unknown reporter: {name}")


def is_ci() -> bool:
    """Return True when running in CI or without a terminal to draw on."""
    return bool(os.environ.get("CI")) or not sys.stdout.isatty()


def format_duration(ms: int) -> str:
    """Format milliseconds as `850ms` or `1.25s`."""
    if ms < 1000:
        return f"{ms}ms"
    return f"{ms / 1000:.2f}s"


def _plural(size: int) -> str:
    """Return 's' if the size is not a single element."""
    if size == 1:
        return ""
    return "s"


def _icon(result: cmd.CheckResult) -> Text:
    symbol, style = _ICONS[result.status]
    return Text(symbol, style=style)


def _output_lines(result: cmd.CheckResult) -> list[str]:
    """The non-empty lines of a check's stdout then stderr."""
    return [line for line in result.output.splitlines() if line.strip()]


def _result_block(result: cmd.CheckResult, limit: int | None = None) -> RenderableType:
    """A rounded header with the check's status followed by its output.

    `limit` keeps only the last lines of output, 0 shows the header alone.
    """
    style = _ICONS[result.status][1]
    title = Text.assemble(_icon(result), " ", (result.name, f"bold {style}"))
    if result.complete:
        title.append(f" ({format_duration(result.duration_ms)})", style="dim")
    header = Panel(title, box=box.ROUNDED)

    lines = _output_lines(result)
    if limit is not None:
        lines = lines[-limit:] if limit else []
    if not lines and not result.complete:
        lines = [_PLACEHOLDER]
    if not lines:
        return header
    return Group(header, Text.from_ansi("\n".join(lines)))


def _live_view(results: task.ResultSet) -> RenderableType:
    """Tails of output while running, then only the output of failures."""
    if not results.all_complete:
        return Group(*(_result_block(r, _TAIL_LINES) for r in results))
    return Group(*(_result_block(r, 0 if r.success else None) for r in results))
