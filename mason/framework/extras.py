from __future__ import annotations

import os
import re

from mason.foundation.errors import FileIOError
from mason.framework.metadata import ExtraArtifact, PackageDescriptor
from mason.framework.runtime import RunContext

# {{.Package}}, {{ .Version }}, {{description}} ...
_PLACEHOLDER_RE = re.compile(r"\{\{\s*\.?\s*(package|version|description)\s*\}\}", re.IGNORECASE)


def render_template(text: str, descriptor: PackageDescriptor) -> str:
    values = {
        "package": descriptor.package,
        "version": descriptor.version,
        "description": descriptor.description,
    }
    return _PLACEHOLDER_RE.sub(lambda m: values[m.group(1).lower()], text)


def write_artifact(path: str, content: str, *, executable: bool) -> None:
    mode = 0o755 if executable else 0o644
    try:
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.chmod(path, mode)
    except OSError as exc:
        raise FileIOError(f"Failed to write file {path}: {exc}") from exc


def build_extra(ctx: RunContext, descriptor: PackageDescriptor, extra: ExtraArtifact, workdir: str) -> str:
    template_path = os.path.join(workdir, extra.template)
    output_path = os.path.join(workdir, extra.file_name)

    ctx.logger.debug("Reading template from %s", template_path)
    try:
        with open(template_path, "r", encoding="utf-8") as handle:
            template_text = handle.read()
    except OSError as exc:
        raise FileIOError(f"Failed to read template file {template_path}: {exc}") from exc

    write_artifact(output_path, render_template(template_text, descriptor), executable=extra.executable)
    ctx.logger.info("Rendered %s -> %s (mode %o)", extra.template, extra.file_name, extra.mode)
    return output_path


def build_extras(ctx: RunContext, descriptor: PackageDescriptor, workdir: str) -> list[str]:
    """Render every extra artifact, in descriptor order, into `workdir`."""

    if descriptor.extras:
        ctx.logger.info("Building %d extra artifact(s)", len(descriptor.extras))
    return [build_extra(ctx, descriptor, extra, workdir) for extra in descriptor.extras]
