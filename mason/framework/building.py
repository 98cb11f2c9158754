"""Build matrix executor.

Each `BuildTarget` becomes exactly one cross-compiler invocation with its own
environment overlay. Targets run in descriptor order and the matrix stops at
the first failure; later targets are never attempted.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from mason.foundation.command import run_checked
from mason.foundation.errors import FileIOError, PartialBuildError
from mason.framework.extras import build_extras
from mason.framework.golang import ensure_cross_compiler
from mason.framework.metadata import BuildTarget, PackageDescriptor
from mason.framework.runtime import RunContext
from mason.framework.workspace import Workspace


@dataclass(frozen=True)
class BuildOutput:
    binaries: list[str] = field(default_factory=list)
    extras: list[str] = field(default_factory=list)


def binary_name(descriptor: PackageDescriptor, target: BuildTarget) -> str:
    """gox's default output name: `<dir>_<os>_<arch>`."""
    return f"{descriptor.binary_prefix}_{target.os}_{target.arch}"


def target_environment(workspace: Workspace, target: BuildTarget) -> dict[str, str]:
    env = workspace.env()
    env.update(target.flags)
    if target.cgo:
        env["CGO_ENABLED"] = "1"
    return env


def gox_args(target: BuildTarget) -> list[str]:
    args: list[str] = []
    if target.cgo:
        args.append("-cgo")
    args.append(f"-osarch={target.name}")
    args.append("./...")
    return args


def compile_targets(ctx: RunContext, workspace: Workspace, descriptor: PackageDescriptor) -> None:
    gox = ensure_cross_compiler(ctx, workspace)
    wd = workspace.checkout_dir(descriptor.package)

    for index, target in enumerate(descriptor.targets):
        ctx.logger.info("Building target %d/%d: %s", index + 1, len(descriptor.targets), target.name)
        env = target_environment(workspace, target)
        for key, value in target.flags.items():
            ctx.logger.debug("Build flag: %s=%s", key, value)
        run_checked(ctx.runner, gox, gox_args(target), env=env, cwd=wd, logger=ctx.logger)


def verify_binaries(descriptor: PackageDescriptor, workdir: str) -> list[str]:
    """Return the expected binary paths, raising if any is absent."""

    expected = [os.path.join(workdir, binary_name(descriptor, target)) for target in descriptor.targets]
    missing = [path for path in expected if not os.path.isfile(path)]
    if missing:
        raise PartialBuildError(missing)
    return expected


def collect(paths: list[str], dest_dir: str) -> list[str]:
    """Move files into `dest_dir`; the first failed rename aborts the rest."""

    moved: list[str] = []
    for path in paths:
        destination = os.path.join(dest_dir, os.path.basename(path))
        try:
            os.replace(path, destination)
        except OSError as exc:
            raise FileIOError(f"Failed to collect {path} into {dest_dir}: {exc}") from exc
        moved.append(destination)
    return moved


def build(ctx: RunContext, workspace: Workspace, descriptor: PackageDescriptor) -> BuildOutput:
    if not descriptor.targets:
        ctx.logger.warning("Descriptor lists no build targets; nothing to compile")

    compile_targets(ctx, workspace, descriptor)

    wd = workspace.checkout_dir(descriptor.package)
    built = verify_binaries(descriptor, wd)
    rendered = build_extras(ctx, descriptor, wd)

    binaries = collect(built, ctx.cwd)
    for path in binaries:
        ctx.logger.info("Collected binary %s", path)
    extras = collect(rendered, ctx.cwd)
    for path in extras:
        ctx.logger.info("Collected extra artifact %s", path)

    return BuildOutput(binaries=binaries, extras=extras)
