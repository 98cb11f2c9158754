from __future__ import annotations

import os
from typing import Any

import requests

from mason.foundation.command import CommandRunner, SubprocessRunner
from mason.foundation.errors import PipelineError
from mason.foundation.logging_utils import (
    close_logger,
    generate_run_id,
    setup_operational_logger,
    utc_now_iso8601,
)
from mason.foundation.run_index import append_run_index_entry
from mason.framework import building, golang, publishing, signing
from mason.framework.metadata import (
    METADATA_FILENAME,
    PackageDescriptor,
    SigningPolicy,
    load_metadata,
    load_user_config,
)
from mason.framework.runtime import PipelineResult, RunContext
from mason.framework.stages import PipelineStage, StageRecorder, StageRunner, StageStep
from mason.framework.workspace import Workspace

RUN_INDEX_FILENAME = "runs_index.jsonl"


def run_pipeline(
    ctx: RunContext,
    descriptor: PackageDescriptor,
    *,
    build: bool = False,
    sign: bool = False,
    publish: bool = False,
    recorder: StageRecorder | None = None,
    session: requests.Session | None = None,
) -> PipelineResult:
    """
    Check out, test and optionally build/sign/publish one package.

    Checkout, dependency sync and test always run. On failure a PipelineError
    is raised whose `.result` holds everything populated so far.
    """

    result = PipelineResult(
        package=descriptor.package,
        version=descriptor.version,
        git_path=descriptor.git_url,
    )
    workspace = Workspace(ctx.logger)
    try:
        try:
            root, gopath = workspace.acquire(ctx.workdir)
        except Exception as exc:
            result.failed_stage = PipelineStage.INIT.value
            result.state = PipelineStage.FAILED.value
            raise PipelineError(PipelineStage.INIT.value, exc, result) from exc
        result.workdir = root
        result.gopath = gopath

        def do_build() -> None:
            output = building.build(ctx, workspace, descriptor)
            result.binaries.extend(output.binaries)
            result.extras.extend(output.extras)

        def do_sign() -> None:
            targets = [*result.binaries, *result.extras]
            if not targets:
                ctx.logger.warning("Nothing to sign")
            result.signatures.extend(
                signing.sign_artifacts(ctx, targets, descriptor.signing, descriptor.options)
            )

        def do_publish() -> None:
            result.published.extend(
                publishing.publish(
                    ctx,
                    descriptor,
                    [*result.binaries, *result.extras],
                    signatures=result.signatures,
                    session=session,
                )
            )

        steps = [
            StageStep(PipelineStage.CHECKOUT, lambda: golang.checkout(ctx, workspace, descriptor), doc=descriptor.git_url),
            StageStep(PipelineStage.DEPENDENCY_SYNC, lambda: golang.sync_dependencies(ctx, workspace, descriptor)),
            StageStep(PipelineStage.TEST, lambda: golang.run_tests(ctx, workspace, descriptor)),
        ]
        if build:
            steps.append(StageStep(PipelineStage.BUILD, do_build, doc=f"{len(descriptor.targets)} target(s)"))
        if sign:
            steps.append(StageStep(PipelineStage.SIGN, do_sign))
        if publish:
            steps.append(StageStep(PipelineStage.PUBLISH, do_publish, doc=descriptor.publishing.target_repo))

        return StageRunner(recorder=recorder).run(ctx, result, steps)
    finally:
        workspace.release()


def _run_index_entry(ctx: RunContext, result: PipelineResult | None, error: BaseException | None) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "schema_version": 1,
        "run_id": ctx.run_id,
        "created_at": utc_now_iso8601(),
        "status": "error" if error is not None else "success",
        "branch": ctx.branch,
        "result": result.to_dict() if result is not None else None,
    }
    if error is not None:
        entry["error"] = {"type": error.__class__.__name__, "message": str(error)}
        if isinstance(error, PipelineError):
            entry["error"]["stage"] = error.stage
    return entry


def run_release(
    *,
    build: bool = False,
    sign: bool = False,
    publish: bool = False,
    branch: str = "master",
    workdir: str | None = None,
    verbose: bool = False,
    cwd: str | None = None,
    runner: CommandRunner | None = None,
    user_config_path: str | None = None,
    run_id: str | None = None,
    session: requests.Session | None = None,
) -> PipelineResult:
    """
    Load `metadata.json` from `cwd` plus the per-user config, then run the pipeline.

    Load failures are raised as-is (the pipeline never started); anything after
    that surfaces as PipelineError.
    """

    cwd = os.path.abspath(cwd or os.getcwd())
    run_id = run_id or generate_run_id()

    user_config, user_warnings = load_user_config(user_config_path)
    logger, log_file = setup_operational_logger(run_id, verbose=verbose, log_dir=user_config.log_dir)
    ctx = RunContext(
        run_id=run_id,
        cwd=cwd,
        logger=logger,
        runner=runner or SubprocessRunner(),
        user_config=user_config,
        branch=branch,
        workdir=workdir or None,
        verbose=verbose,
    )

    result: PipelineResult | None = None
    error: BaseException | None = None
    try:
        for warning in user_warnings:
            logger.warning("%s", warning)
        if user_config.path:
            logger.debug("Loaded user config from %s", user_config.path)

        descriptor, warnings = load_metadata(os.path.join(cwd, METADATA_FILENAME))
        for warning in warnings:
            logger.warning("%s", warning)

        logger.info("Run %s started for %s %s", run_id, descriptor.package, descriptor.version or "<unversioned>")
        try:
            result = run_pipeline(
                ctx,
                descriptor,
                build=build,
                sign=sign,
                publish=publish,
                session=session,
            )
        except PipelineError as exc:
            result = exc.result
            raise
        logger.info("Run %s completed successfully", run_id)
        return result
    except Exception as exc:
        error = exc
        raise
    finally:
        if user_config.log_dir:
            index_path = os.path.join(user_config.log_dir, RUN_INDEX_FILENAME)
            try:
                append_run_index_entry(index_path, _run_index_entry(ctx, result, error))
                logger.debug("Appended run index entry to %s", index_path)
            except OSError as exc:
                logger.error("Run index append failed: %s", exc)
        if log_file:
            logger.info("Operational log stored at %s", log_file)
        close_logger(logger)


def verify_artifacts(
    paths: list[str],
    *,
    verbose: bool = False,
    cwd: str | None = None,
    runner: CommandRunner | None = None,
    user_config_path: str | None = None,
) -> dict[str, tuple[bool, str | None]]:
    """Verify detached signatures using the program and keyring the descriptor resolves to."""

    cwd = os.path.abspath(cwd or os.getcwd())
    user_config, _ = load_user_config(user_config_path)
    metadata_path = os.path.join(cwd, METADATA_FILENAME)
    descriptor: PackageDescriptor | None = None
    if os.path.exists(metadata_path):
        descriptor, _ = load_metadata(metadata_path)

    run_id = generate_run_id()
    logger, _ = setup_operational_logger(run_id, verbose=verbose)
    ctx = RunContext(
        run_id=run_id,
        cwd=cwd,
        logger=logger,
        runner=runner or SubprocessRunner(),
        user_config=user_config,
        verbose=verbose,
    )
    try:
        program = signing.resolve_program(
            descriptor.signing if descriptor is not None else SigningPolicy(), user_config
        )
        options = descriptor.options if descriptor is not None else None
        outcomes: dict[str, tuple[bool, str | None]] = {}
        for path in paths:
            outcomes[path] = signing.verify(ctx, os.path.join(cwd, path), program, options)
            ok, detail = outcomes[path]
            if ok:
                logger.info("Signature OK: %s", path)
            else:
                logger.error("Signature check failed for %s: %s", path, detail)
        return outcomes
    finally:
        close_logger(logger)
