"""Wrappers of `asyncio` subprocesses for running checks."""

from __future__ import annotations

import asyncio
import codecs
import dataclasses
import enum
import logging
import os
import sys
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

log = logging.getLogger("cmd")

# Runners that invoke a named script with a `run` subcommand.
_RUN_SUBCOMMAND = {"npm", "pnpm", "yarn", "bun"}

# Exit code recorded when the process could not be started at all.
SPAWN_FAILURE_EXIT_CODE = 1

_CHUNK_SIZE = 4096


class Status(enum.StrEnum):
    """The state of a check."""

    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(slots=True)
class CheckResult:
    """The (possibly still changing) state of a single check.

    Only the process runner writes to a result, everyone else is handed a
    `snapshot()`.
    """

    name: str
    status: Status = Status.RUNNING
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    duration_ms: int = 0

    @property
    def complete(self) -> bool:
        """Return True once the check has reached a terminal state."""
        return self.status is not Status.RUNNING

    @property
    def success(self) -> bool:
        """Return True if the check finished successfully."""
        return self.status is Status.SUCCESS

    @property
    def output(self) -> str:
        """Standard output followed by standard error."""
        return self.stdout + self.stderr

    def snapshot(self) -> CheckResult:
        """Return an independent copy of the current state."""
        return dataclasses.replace(self)


def build_command(runner: str, check_name: str, script_body: str | None = None) -> str:
    """Build the shell command that runs `check_name` with `runner`.

    `npx` re-runs the script body through the on-demand package fetcher, so
    the tool does not need to be installed.
    """
    if runner in _RUN_SUBCOMMAND:
        return f"{runner} run {check_name}"
    if runner == "npx":
        parts = (script_body or "").split(maxsplit=1)
        if not parts:
            return f"npx -y {check_name}"
        return " ".join(["npx", "-y", *parts])
    return f"{runner} {check_name}"


def _child_env() -> dict[str, str]:
    """The environment for a check, forcing colour where it will be shown."""
    env = os.environ.copy()
    if sys.stdout.isatty() or env.get("CI"):
        env["FORCE_COLOR"] = "1"
    return env


class _Run:
    """Book-keeping for one running check."""

    def __init__(
        self, name: str, on_update: Callable[[CheckResult], None] | None
    ) -> None:
        self.result = CheckResult(name)
        self._on_update = on_update
        self._start = time.monotonic()

    def _elapsed_ms(self) -> int:
        return int((time.monotonic() - self._start) * 1000)

    def notify(self) -> None:
        """Deliver a snapshot of the result to the observer, if any."""
        if self._on_update is not None:
            self._on_update(self.result.snapshot())

    def append(self, field: str, text: str) -> None:
        """Append decoded output to the `stdout` or `stderr` buffer."""
        if not text:
            return
        setattr(self.result, field, getattr(self.result, field) + text)
        self.result.duration_ms = self._elapsed_ms()
        self.notify()

    def finish(self, exit_code: int) -> CheckResult:
        """Move the result to its terminal state."""
        self.result.status = Status.SUCCESS if exit_code == 0 else Status.FAILED
        self.result.exit_code = exit_code
        self.result.duration_ms = self._elapsed_ms()
        self.notify()
        return self.result


async def _pump(stream: asyncio.StreamReader, run: _Run, field: str) -> None:
    """Read a pipe until EOF, appending each chunk as it arrives."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while chunk := await stream.read(_CHUNK_SIZE):
        run.append(field, decoder.decode(chunk))
    run.append(field, decoder.decode(b"", final=True))


async def run_check(
    name: str,
    command: str,
    cwd: Path,
    on_update: Callable[[CheckResult], None] | None = None,
) -> CheckResult:
    """Run a check's command in a shell and stream its output.

    Failing to start the process is reported as a failed result, never
    raised.
    """
    run = _Run(name, on_update)
    log.debug("Running %s: %s (in %s)", name, command, cwd)
    try:
        process = await asyncio.create_subprocess_shell(
            command,
            cwd=cwd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=_child_env(),
        )
    except (OSError, ValueError) as exc:
        log.debug("Could not start %s: %s", name, exc)
        run.result.stderr += str(exc)
        return run.finish(SPAWN_FAILURE_EXIT_CODE)

    assert process.stdout is not None
    assert process.stderr is not None
    await asyncio.gather(
        _pump(process.stdout, run, "stdout"),
        _pump(process.stderr, run, "stderr"),
    )
    exit_code = await process.wait()
    log.debug("%s exited with %s", name, exit_code)
    return run.finish(exit_code)
