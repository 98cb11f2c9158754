"""Fixed-order stage execution for a pipeline run."""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Protocol

from mason.foundation.errors import PipelineError
from mason.foundation.logging_utils import utc_now_iso8601
from mason.framework.runtime import PipelineResult, RunContext


class PipelineStage(str, Enum):
    INIT = "init"
    CHECKOUT = "checkout"
    DEPENDENCY_SYNC = "dependency_sync"
    TEST = "test"
    BUILD = "build"
    SIGN = "sign"
    PUBLISH = "publish"
    DONE = "done"
    FAILED = "failed"


STAGE_ORDER: tuple[PipelineStage, ...] = (
    PipelineStage.INIT,
    PipelineStage.CHECKOUT,
    PipelineStage.DEPENDENCY_SYNC,
    PipelineStage.TEST,
    PipelineStage.BUILD,
    PipelineStage.SIGN,
    PipelineStage.PUBLISH,
    PipelineStage.DONE,
)
RUNNABLE_STAGES = frozenset(STAGE_ORDER[1:-1])


@dataclass(frozen=True)
class StageStep:
    stage: PipelineStage
    fn: Callable[[], Any]
    doc: str | None = None

    def __post_init__(self) -> None:
        if self.stage not in RUNNABLE_STAGES:
            raise ValueError(f"Stage {self.stage.value} cannot be executed")
        if not callable(self.fn):
            raise TypeError(f"Stage fn must be callable (type={type(self.fn).__name__})")


class StageRecorder(Protocol):
    def on_stage_start(self, ctx: RunContext, stage: PipelineStage, doc: str | None) -> None:
        ...

    def on_stage_end(self, ctx: RunContext, stage: PipelineStage, record: dict[str, Any]) -> None:
        ...

    def on_stage_error(self, ctx: RunContext, stage: PipelineStage, exc: Exception) -> None:
        ...


class DefaultStageRecorder:
    def __init__(self) -> None:
        self.records: list[dict[str, Any]] = []

    def on_stage_start(self, ctx: RunContext, stage: PipelineStage, doc: str | None) -> None:
        if doc:
            ctx.logger.info("Stage: %s (%s)", stage.value, doc)
        else:
            ctx.logger.info("Stage: %s", stage.value)

    def on_stage_end(self, ctx: RunContext, stage: PipelineStage, record: dict[str, Any]) -> None:
        self.records.append(record)
        ctx.logger.info("Completed stage %s (%.2fs)", stage.value, record.get("elapsed_s", 0.0))

    def on_stage_error(self, ctx: RunContext, stage: PipelineStage, exc: Exception) -> None:
        ctx.logger.error("Stage failed: %s (%s)", stage.value, exc)


class NullStageRecorder:
    def on_stage_start(self, ctx: RunContext, stage: PipelineStage, doc: str | None) -> None:
        return

    def on_stage_end(self, ctx: RunContext, stage: PipelineStage, record: dict[str, Any]) -> None:
        return

    def on_stage_error(self, ctx: RunContext, stage: PipelineStage, exc: Exception) -> None:
        return


class StageRunner:
    def __init__(self, *, recorder: StageRecorder | None = None):
        self._recorder = recorder or DefaultStageRecorder()
        for name in ("on_stage_start", "on_stage_end", "on_stage_error"):
            if not callable(getattr(self._recorder, name, None)):
                raise TypeError(f"Stage recorder missing required method: {name}")

    def run(self, ctx: RunContext, result: PipelineResult, steps: list[StageStep]) -> PipelineResult:
        """
        Execute `steps` in order, stopping at the first failure.

        Raises:
            PipelineError: wrapping the failing stage's exception; `.result` is
            the same `result` object, populated as far as the run got.
        """

        self._validate_order(steps)

        for step in steps:
            result.state = step.stage.value
            started = time.monotonic()
            try:
                self._recorder.on_stage_start(ctx, step.stage, step.doc)
                step.fn()
            except Exception as exc:
                try:
                    self._recorder.on_stage_error(ctx, step.stage, exc)
                except Exception:
                    ctx.logger.exception("Stage recorder failed during error handling for %s", step.stage.value)
                result.failed_stage = step.stage.value
                result.state = PipelineStage.FAILED.value
                raise PipelineError(step.stage.value, exc, result) from exc

            result.completed.append(step.stage.value)
            self._recorder.on_stage_end(
                ctx,
                step.stage,
                {
                    "stage": step.stage.value,
                    "elapsed_s": round(time.monotonic() - started, 3),
                    "finished_at": utc_now_iso8601(),
                },
            )

        result.state = PipelineStage.DONE.value
        return result

    def _validate_order(self, steps: list[StageStep]) -> None:
        positions = [STAGE_ORDER.index(step.stage) for step in steps]
        if any(later <= earlier for earlier, later in zip(positions, positions[1:])):
            order = ", ".join(step.stage.value for step in steps)
            raise ValueError(f"Stages must run once each in pipeline order, got: {order}")
