"""Test building commands and running checks."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from checkslib import cmd
from checkslib.cmd import CheckResult, Status, build_command, run_check

if TYPE_CHECKING:
    from pathlib import Path


# --- build_command() ---


@pytest.mark.parametrize("runner", ["npm", "pnpm", "yarn", "bun"])
def test_build_command_run_subcommand(runner: str) -> None:
    """Package managers run the named script with `run`."""
    assert build_command(runner, "lint", "eslint .") == f"{runner} run lint"


def test_build_command_examples() -> None:
    """The documented examples build the expected commands."""
    assert build_command("npm", "lint") == "npm run lint"
    assert build_command("pnpm", "test") == "pnpm run test"
    assert build_command("custom", "lint") == "custom lint"
    assert build_command("npx", "x", "eslint .") == "npx -y eslint ."


def test_build_command_npx_without_args() -> None:
    """npx with a bare executable omits the arguments."""
    assert build_command("npx", "fmt", "prettier") == "npx -y prettier"


def test_build_command_npx_keeps_all_args() -> None:
    """npx passes every remaining argument through as-is."""
    assert (
        build_command("npx", "types", "tsc  --noEmit -p tsconfig.json")
        == "npx -y tsc --noEmit -p tsconfig.json"
    )


def test_build_command_npx_without_body() -> None:
    """npx falls back to the check name when there's no script body."""
    assert build_command("npx", "eslint", None) == "npx -y eslint"
    assert build_command("npx", "eslint", "   ") == "npx -y eslint"


def test_build_command_custom_runner_ignores_body() -> None:
    """Unknown runners get the check name as their argument."""
    assert build_command("custom-runner", "lint", "eslint .") == "custom-runner lint"


# --- CheckResult ---


def test_check_result_starts_running() -> None:
    """A new result is running with empty buffers and no exit code."""
    result = CheckResult("lint")

    assert result.status is Status.RUNNING
    assert result.exit_code is None
    assert result.stdout == result.stderr == ""
    assert not result.complete
    assert not result.success


def test_check_result_snapshot_is_independent() -> None:
    """Changes after a snapshot don't leak into it."""
    result = CheckResult("lint", stdout="a")

    snapshot = result.snapshot()
    result.stdout += "b"

    assert snapshot.stdout == "a"
    assert snapshot == CheckResult("lint", stdout="a")


# --- run_check() ---


@pytest.mark.asyncio
async def test_run_check_success(tmp_path: Path) -> None:
    """A command exiting with 0 succeeds."""
    result = await run_check("ok", "echo hello", tmp_path)

    assert result.status is Status.SUCCESS
    assert result.exit_code == 0
    assert result.stdout == "hello\n"
    assert result.duration_ms >= 0


@pytest.mark.asyncio
async def test_run_check_failure_exit_code(tmp_path: Path) -> None:
    """A non-zero exit code fails and is recorded."""
    result = await run_check("bad", "exit 2", tmp_path)

    assert result.status is Status.FAILED
    assert result.exit_code == 2


@pytest.mark.asyncio
async def test_run_check_missing_executable(tmp_path: Path) -> None:
    """A command that doesn't exist fails without raising."""
    result = await run_check("missing", "definitely-not-a-real-command-xyz", tmp_path)

    assert result.status is Status.FAILED
    assert result.exit_code != 0
    assert result.stderr


@pytest.mark.asyncio
async def test_run_check_spawn_failure(tmp_path: Path) -> None:
    """A process that can't be started is a failed result, not an exception."""
    updates: list[CheckResult] = []

    result = await run_check(
        "nowhere", "echo hi", tmp_path / "does-not-exist", updates.append
    )

    assert result.status is Status.FAILED
    assert result.exit_code == cmd.SPAWN_FAILURE_EXIT_CODE
    assert result.stderr
    assert updates == [result]


@pytest.mark.asyncio
async def test_run_check_rejected_command(tmp_path: Path) -> None:
    """A command the OS refuses (embedded NUL) is a failed result too."""
    result = await run_check("bad", "echo a\x00b", tmp_path)

    assert result.status is Status.FAILED
    assert result.exit_code == cmd.SPAWN_FAILURE_EXIT_CODE
    assert "null byte" in result.stderr


@pytest.mark.asyncio
async def test_run_check_separates_streams(tmp_path: Path) -> None:
    """stdout and stderr are captured separately."""
    result = await run_check("both", "echo out; echo err >&2", tmp_path)

    assert result.stdout == "out\n"
    assert result.stderr == "err\n"
    assert result.output == "out\nerr\n"


@pytest.mark.asyncio
async def test_run_check_runs_in_cwd(tmp_path: Path) -> None:
    """The command runs in the given directory."""
    (tmp_path / "marker.txt").write_text("found")

    result = await run_check("cat", "cat marker.txt", tmp_path)

    assert result.stdout == "found"


@pytest.mark.asyncio
async def test_run_check_stdin_disconnected(tmp_path: Path) -> None:
    """Commands reading stdin see EOF rather than waiting forever."""
    result = await run_check("stdin", "cat", tmp_path)

    assert result.status is Status.SUCCESS
    assert result.stdout == ""


@pytest.mark.asyncio
async def test_run_check_streams_updates(tmp_path: Path) -> None:
    """Output is delivered as it arrives, before the process exits."""
    updates: list[CheckResult] = []

    result = await run_check(
        "stream", "printf a; sleep 0.2; printf b", tmp_path, updates.append
    )

    running = [u for u in updates if u.status is Status.RUNNING]
    assert any(u.stdout == "a" for u in running)
    assert all(u.exit_code is None for u in running)
    assert updates[-1] == result
    assert result.stdout == "ab"


@pytest.mark.asyncio
async def test_run_check_updates_are_snapshots(tmp_path: Path) -> None:
    """Observers receive copies, so earlier updates keep their content."""
    updates: list[CheckResult] = []

    await run_check("stream", "printf a; sleep 0.2; printf b", tmp_path, updates.append)

    assert len({id(u) for u in updates}) == len(updates)
    stdouts = [u.stdout for u in updates]
    assert stdouts == sorted(stdouts, key=len)


@pytest.mark.asyncio
async def test_run_check_without_output(tmp_path: Path) -> None:
    """A silent command only produces the final update."""
    updates: list[CheckResult] = []

    result = await run_check("quiet", "true", tmp_path, updates.append)

    assert updates == [result]
    assert result.stdout == result.stderr == ""


@pytest.mark.asyncio
async def test_run_check_decodes_split_characters(tmp_path: Path) -> None:
    """A UTF-8 character split across chunks is decoded whole."""
    result = await run_check(
        "utf8", r"printf '\342'; sleep 0.1; printf '\234\223'", tmp_path
    )

    assert result.stdout == "✓"


@pytest.mark.asyncio
async def test_run_check_forces_color_in_ci(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """FORCE_COLOR is set for the check when running in CI."""
    monkeypatch.setenv("CI", "1")
    monkeypatch.delenv("FORCE_COLOR", raising=False)

    result = await run_check("env", 'printf "%s" "$FORCE_COLOR"', tmp_path)

    assert result.stdout == "1"


@pytest.mark.asyncio
async def test_run_check_inherits_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """The check sees the parent's environment."""
    monkeypatch.setenv("CHECKS_TEST_VALUE", "inherited")

    result = await run_check("env", 'printf "%s" "$CHECKS_TEST_VALUE"', tmp_path)

    assert result.stdout == "inherited"
