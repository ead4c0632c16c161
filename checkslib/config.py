"""Loading of package.json config and resolving it into an execution plan."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, get_args

log = logging.getLogger("config")

Format = Literal["auto", "interactive", "ci"]

_FILENAME = "package.json"
_DEFAULT_RUNNER = "npm"
_DEFAULT_FORMAT: Format = "auto"


class ConfigError(ValueError):
    """The project configuration cannot be turned into a plan."""


@dataclass(slots=True)
class Config:
    """Parsed package.json."""

    path: Path
    _config: dict[str, Any]

    @classmethod
    def load(cls, package_json: Path) -> Config:
        """Load project config from file."""
        if not package_json.exists():
            raise ConfigError(
                f"project directory `{package_json.parent}` does not contain a "
                f"`{_FILENAME}`"
            )
        try:
            raw = json.loads(package_json.read_text())
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ConfigError(f"failed to parse `{package_json}`: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigError(f"`{package_json}` does not contain a JSON object")
        return cls(package_json, raw)

    @classmethod
    def find(cls, start: Path) -> Config:
        """Load the nearest package.json in `start` or any parent directory."""
        start = start.resolve()
        for directory in (start, *start.parents):
            candidate = directory / _FILENAME
            if candidate.is_file():
                log.debug("Found %s", candidate)
                return cls.load(candidate)
        raise ConfigError(f"failed to find {_FILENAME} starting from {start}")

    def get(self, path: str) -> Any | None:  # noqa: ANN401
        """Get nested config item or None if it doesn't exist.

        Path looks like 'key1.key2.key3'.
        """
        item: Any = self._config
        key = "<root>"
        try:
            for key in path.split("."):
                item = item[key]
            log.debug("Found %s=%s in %s", path, item, self.path)
        except (KeyError, TypeError):
            log.debug(
                "Reading path '%s' in %s. Could not find key '%s'", path, self.path, key
            )
            item = None
        return item

    @property
    def cwd(self) -> Path:
        """The project root, i.e. the directory holding the package.json."""
        return self.path.parent

    @property
    def project_name(self) -> str | None:
        """The `name` of the package, if it has one."""
        return self.get("name")

    @property
    def scripts(self) -> dict[str, str]:
        """The scripts available to run, by name."""
        scripts = self.get("scripts") or {}
        if not isinstance(scripts, dict):
            raise ConfigError(f"`scripts` in `{self.path}` must be an object")
        return scripts


@dataclass(frozen=True, slots=True)
class CheckDefinition:
    """A configured check, with an optional script that fixes it."""

    name: str
    fix_name: str | None = None

    def script(self, *, fix: bool = False) -> str | None:
        """The script to run, None if there's nothing to run in fix mode."""
        return self.fix_name if fix else self.name


@dataclass(frozen=True, slots=True)
class ExecutionPlan:
    """Everything needed to run the checks of one invocation."""

    checks: tuple[CheckDefinition, ...]
    runner: str
    cwd: Path
    format: Format = _DEFAULT_FORMAT
    scripts: dict[str, str] = field(default_factory=dict, hash=False)
    fix: bool = False


@dataclass(frozen=True, slots=True)
class _Options:
    """Options found next to the check entries."""

    entries: list[Any]
    runner: str | None = None
    format: str | None = None


def _split_options(checks: Any) -> _Options:  # noqa: ANN401
    """Detect the shape of the `checks` value."""
    if checks is None:
        raise ConfigError("no checks declared")
    if isinstance(checks, list):
        return _Options(checks)
    if isinstance(checks, dict) and isinstance(checks.get("scripts"), list):
        return _Options(checks["scripts"], checks.get("runner"), checks.get("format"))
    raise ConfigError(
        "invalid checks format, expected a list or an object with a `scripts` list"
    )


def _definition(entry: Any) -> CheckDefinition:  # noqa: ANN401
    """Normalize a `"lint"` or `{"check": "lint", "fix": "lint:fix"}` entry."""
    if isinstance(entry, str):
        return CheckDefinition(entry)
    if isinstance(entry, dict) and isinstance(entry.get("check"), str):
        fix = entry.get("fix")
        if fix is None or isinstance(fix, str):
            return CheckDefinition(entry["check"], fix)
    raise ConfigError(
        f"invalid check entry {entry!r}, expected a string or an object with a "
        "`check` string"
    )


def _missing_scripts(
    definitions: list[CheckDefinition], scripts: dict[str, str]
) -> list[str]:
    """Names referenced by the checks that are not declared scripts."""
    referenced = [
        name
        for d in definitions
        for name in (d.name, d.fix_name)
        if name is not None
    ]
    return [name for name in dict.fromkeys(referenced) if name not in scripts]


def _pick(
    name: str, cli: str | None, configured: Any, default: str  # noqa: ANN401
) -> str:
    """CLI override > configured value > default."""
    value = cli or configured or default
    if not isinstance(value, str):
        raise ConfigError(f"`{name}` must be a string, got {value!r}")
    return value


def resolve(
    checks: Any,  # noqa: ANN401
    scripts: dict[str, str],
    cwd: Path,
    *,
    cli_runner: str | None = None,
    cli_format: Format | None = None,
    fix: bool = False,
) -> ExecutionPlan:
    """Resolve the raw `checks` config into an execution plan.

    CLI overrides take precedence over the config, which takes precedence
    over the defaults. In fix mode, checks without a fix script are left
    out of the plan.
    """
    options = _split_options(checks)
    if not options.entries:
        raise ConfigError("checks list is empty")

    definitions = [_definition(entry) for entry in options.entries]
    names = [d.name for d in definitions]
    if duplicates := [n for n in dict.fromkeys(names) if names.count(n) > 1]:
        raise ConfigError(f"duplicate checks: {', '.join(duplicates)}")
    if missing := _missing_scripts(definitions, scripts):
        raise ConfigError(f"missing scripts: {', '.join(missing)}")

    runner = _pick("runner", cli_runner, options.runner, _DEFAULT_RUNNER)
    fmt = _pick("format", cli_format, options.format, _DEFAULT_FORMAT)
    if fmt not in get_args(Format):
        raise ConfigError(
            f"invalid format `{fmt}`, must be one of: {', '.join(get_args(Format))}"
        )

    if fix:
        for d in definitions:
            if d.fix_name is None:
                log.debug("Skipping %s, it has no fix script", d.name)
        definitions = [d for d in definitions if d.fix_name is not None]
        if not definitions:
            log.warning("None of the checks have a fix script")

    log.debug(
        "Resolved %d checks with runner=%s format=%s", len(definitions), runner, fmt
    )
    return ExecutionPlan(
        checks=tuple(definitions),
        runner=runner,
        cwd=cwd.absolute(),
        format=fmt,  # ty: ignore[invalid-argument-type]
        scripts=dict(scripts),
        fix=fix,
    )


def load_plan(
    project: Path,
    *,
    cli_runner: str | None = None,
    cli_format: Format | None = None,
    fix: bool = False,
) -> tuple[Config, ExecutionPlan]:
    """Find the project's package.json and resolve its checks."""
    config = Config.find(project)
    plan = resolve(
        config.get("checks"),
        config.scripts,
        config.cwd,
        cli_runner=cli_runner,
        cli_format=cli_format,
        fix=fix,
    )
    return config, plan
