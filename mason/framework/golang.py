"""Contracts for the Go toolchain and git collaborators.

Each function builds the argument list, environment overlay and working
directory for one external invocation and hands it to the run's
`CommandRunner`. None of them change the process working directory.
"""

from __future__ import annotations

import os

from mason.foundation.command import run_checked
from mason.framework.metadata import PackageDescriptor
from mason.framework.runtime import RunContext
from mason.framework.workspace import Workspace

GOX_MODULE = "github.com/mitchellh/gox@latest"


def checkout(ctx: RunContext, workspace: Workspace, descriptor: PackageDescriptor) -> str:
    """Clone the package into `<gopath>/src/<package>` and switch to the run's branch."""

    dest = workspace.checkout_dir(descriptor.package)
    os.makedirs(os.path.dirname(dest), exist_ok=True)
    ctx.logger.info("Checking out %s (branch %s) into %s", descriptor.git_url, ctx.branch, dest)

    env = workspace.env()
    run_checked(ctx.runner, "git", ["clone", descriptor.git_url, dest], env=env, logger=ctx.logger)
    run_checked(ctx.runner, "git", ["checkout", ctx.branch], env=env, cwd=dest, logger=ctx.logger)
    return dest


def sync_dependencies(ctx: RunContext, workspace: Workspace, descriptor: PackageDescriptor) -> bool:
    """Download module dependencies. Returns False when there is nothing to sync."""

    wd = workspace.checkout_dir(descriptor.package)
    if not os.path.isfile(os.path.join(wd, "go.mod")):
        ctx.logger.info("No go.mod in %s; skipping dependency sync", wd)
        return False

    ctx.logger.info("Syncing module dependencies")
    run_checked(ctx.runner, "go", ["mod", "download"], env=workspace.env(), cwd=wd, logger=ctx.logger)
    return True


def run_tests(ctx: RunContext, workspace: Workspace, descriptor: PackageDescriptor) -> None:
    wd = workspace.checkout_dir(descriptor.package)
    ctx.logger.info("Running 'go test -v ./...' in %s", wd)
    run_checked(ctx.runner, "go", ["test", "-v", "./..."], env=workspace.env(), cwd=wd, logger=ctx.logger)


def ensure_cross_compiler(ctx: RunContext, workspace: Workspace) -> str:
    """Install gox into the workspace GOPATH unless it is already there."""

    gox = workspace.tool_path("gox")
    if os.path.exists(gox):
        ctx.logger.debug("gox already installed at %s", gox)
        return gox

    ctx.logger.info("Installing gox with GOPATH=%s", workspace.gopath)
    run_checked(ctx.runner, "go", ["install", GOX_MODULE], env=workspace.env(), logger=ctx.logger)
    return gox
