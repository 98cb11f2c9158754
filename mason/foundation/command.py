"""Single seam for invoking external programs.

Everything the pipeline spawns (git, go, gox, gpg) goes through a
`CommandRunner`. The environment passed to a child is always a fresh copy of
the inherited environment with an explicit overlay applied; `os.environ` itself
is never modified.
"""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol

from mason.foundation.errors import SubprocessError


@dataclass(frozen=True)
class CommandResult:
    program: str
    args: tuple[str, ...]
    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    def run(
        self,
        program: str,
        args: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
    ) -> CommandResult:
        ...


def overlay_environment(overlay: Mapping[str, str] | None) -> dict[str, str]:
    env = dict(os.environ)
    if overlay:
        env.update({str(k): str(v) for k, v in overlay.items()})
    return env


class SubprocessRunner:
    def run(
        self,
        program: str,
        args: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
    ) -> CommandResult:
        argv = [program, *[str(arg) for arg in args]]
        try:
            proc = subprocess.run(
                argv,
                cwd=cwd,
                env=overlay_environment(env),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                check=False,
            )
        except FileNotFoundError as exc:
            raise SubprocessError(
                program,
                argv[1:],
                127,
                reason=f"Cannot find program {program!r} in PATH. Is it installed?",
            ) from exc
        return CommandResult(
            program=program,
            args=tuple(argv[1:]),
            returncode=proc.returncode,
            output=proc.stdout or "",
        )


def run_checked(
    runner: CommandRunner,
    program: str,
    args: Sequence[str],
    *,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
    logger: logging.Logger | None = None,
) -> CommandResult:
    """Run and raise SubprocessError on a non-zero exit; output goes to `logger`."""

    if logger is not None:
        logger.debug("Running %s %s (cwd=%s)", program, " ".join(str(a) for a in args), cwd or ".")
    result = runner.run(program, args, env=env, cwd=cwd)
    if logger is not None and result.output.strip():
        level = logging.DEBUG if result.ok else logging.ERROR
        logger.log(level, "%s output:\n%s", program, result.output.rstrip())
    if not result.ok:
        raise SubprocessError(program, result.args, result.returncode, result.output)
    return result
