"""Orchestration of check execution."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from . import cmd

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from . import report
    from .config import ExecutionPlan

log = logging.getLogger("task")


class ResultSet:
    """The results of every check in a run, in plan order.

    Each slot is only ever written by the check it belongs to.
    """

    def __init__(self, names: list[str]) -> None:
        """Create a result per check, all running."""
        self._results = {name: cmd.CheckResult(name) for name in names}
        self.start_time = time.monotonic()

    def __iter__(self) -> Iterator[cmd.CheckResult]:
        return iter(self._results.values())

    def __len__(self) -> int:
        return len(self._results)

    def __getitem__(self, name: str) -> cmd.CheckResult:
        return self._results[name]

    def update(self, result: cmd.CheckResult) -> None:
        """Replace a check's slot with a newer snapshot."""
        if result.name not in self._results:
            raise KeyError(f"no check named `{result.name}` in this run")
        self._results[result.name] = result

    @property
    def all_complete(self) -> bool:
        """Return True once every check has finished."""
        return all(result.complete for result in self)

    @property
    def failed(self) -> list[cmd.CheckResult]:
        """The checks that have failed so far."""
        return [result for result in self if result.status is cmd.Status.FAILED]

    @property
    def success(self) -> bool:
        """Return True if no check has failed."""
        return not self.failed

    @property
    def exit_code(self) -> int:
        """The process exit code for the run."""
        return 0 if self.success else 1

    @property
    def elapsed_ms(self) -> int:
        """Milliseconds since the run started."""
        return int((time.monotonic() - self.start_time) * 1000)


def commands(plan: ExecutionPlan) -> list[tuple[str, str]]:
    """The (check name, shell command) pairs to run for a plan."""
    pairs = []
    for check in plan.checks:
        script = check.script(fix=plan.fix)
        if script is None:
            log.debug("Skipping %s, it has no fix script", check.name)
            continue
        command = cmd.build_command(plan.runner, script, plan.scripts.get(script))
        pairs.append((check.name, command))
    return pairs


async def run_all(
    plan: ExecutionPlan,
    on_update: Callable[[ResultSet], None] | None = None,
) -> ResultSet:
    """Run every check of the plan at once and wait for all of them.

    `on_update` is called with the result set whenever any check reports
    progress.
    """
    pairs = commands(plan)
    results = ResultSet([name for name, _ in pairs])

    def _notify() -> None:
        if on_update is not None:
            on_update(results)

    def _merge(snapshot: cmd.CheckResult) -> None:
        results.update(snapshot)
        _notify()

    _notify()
    await asyncio.gather(
        *(cmd.run_check(name, command, plan.cwd, _merge) for name, command in pairs)
    )
    log.debug(
        "Finished %d checks in %dms, %d failed",
        len(results),
        results.elapsed_ms,
        len(results.failed),
    )
    return results


def run(plan: ExecutionPlan, reporter: report.Reporter) -> bool:
    """Run the checks of a plan and return True if all are successful.

    Emit results as we go.
    """
    started = False

    def _emit(results: ResultSet) -> None:
        nonlocal started
        if not started:
            started = True
            reporter.emit_start(results)
        else:
            reporter.emit_update(results)

    try:
        results = asyncio.run(run_all(plan, _emit))
    finally:
        reporter.close()
    reporter.emit_summary(results)
    return results.success
