from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any

from mason.foundation.command import CommandRunner
from mason.framework.metadata import UserConfig


@dataclass
class RunContext:
    """Everything a stage needs to know about the current run."""

    run_id: str
    cwd: str
    logger: logging.Logger
    runner: CommandRunner
    user_config: UserConfig = field(default_factory=UserConfig)
    branch: str = "master"
    workdir: str | None = None
    verbose: bool = False


@dataclass
class PipelineResult:
    workdir: str | None = None
    gopath: str | None = None
    package: str | None = None
    version: str | None = None
    git_path: str | None = None
    binaries: list[str] = field(default_factory=list)
    extras: list[str] = field(default_factory=list)
    signatures: list[str] = field(default_factory=list)
    published: list[str] = field(default_factory=list)
    state: str = "init"
    failed_stage: str | None = None
    completed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
