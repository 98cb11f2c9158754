from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class MasonError(RuntimeError):
    """Base class for every failure raised by the release pipeline."""


class ConfigError(MasonError):
    """Descriptor or user config is malformed or incomplete."""


class ParseError(ConfigError):
    """File is not well-formed structured text."""


class MissingFieldError(ConfigError):
    def __init__(self, field_path: str, source: str | None = None):
        self.field_path = field_path
        self.source = source
        message = f"Missing required field: {field_path}"
        if source:
            message += f" (in {source})"
        super().__init__(message)


class ResolutionError(MasonError):
    """No signing identity could be resolved."""


class SubprocessError(MasonError):
    def __init__(
        self,
        program: str,
        args: Sequence[str],
        returncode: int,
        output: str = "",
        *,
        reason: str | None = None,
    ):
        self.program = program
        self.args_list = list(args)
        self.returncode = returncode
        self.output = output
        command = " ".join([program, *self.args_list])
        message = reason or f"Command failed with exit status {returncode}: {command}"
        tail = output.strip()
        if tail:
            message += f"\n{tail[-2000:]}"
        super().__init__(message)


class FileIOError(MasonError):
    """Reading or writing a template, artifact or binary failed."""


class PartialBuildError(MasonError):
    def __init__(self, missing: Sequence[str]):
        self.missing = list(missing)
        super().__init__("Cross compiler reported success but binaries are missing: " + ", ".join(self.missing))


class VerificationError(MasonError):
    """A freshly produced signature did not verify."""


class PublishError(MasonError):
    """Uploading an artifact to the target repository failed."""


class PipelineError(MasonError):
    """A pipeline stage failed; carries the partially populated result."""

    def __init__(self, stage: str, cause: BaseException, result: Any):
        self.stage = stage
        self.result = result
        super().__init__(f"Stage {stage} failed: {cause}")


def format_error_chain(exc: BaseException) -> str:
    """Render an exception and its causes, outermost first."""
    parts: list[str] = []
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        parts.append(f"{current.__class__.__name__}: {current}")
        current = current.__cause__ or current.__context__
    return "\n  caused by ".join(parts)
