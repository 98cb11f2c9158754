from __future__ import annotations

import os
from collections.abc import Iterable

import requests

from mason.foundation.errors import ConfigError, FileIOError, PublishError
from mason.framework.metadata import PackageDescriptor
from mason.framework.runtime import RunContext
from mason.framework.signing import signature_path


def artifact_url(target_repo: str, descriptor: PackageDescriptor, file_name: str) -> str:
    return "/".join([target_repo.rstrip("/"), descriptor.package.strip("/"), descriptor.version, file_name])


def _upload(session: requests.Session, url: str, path: str, auth: tuple[str, str] | None, timeout: float) -> None:
    try:
        handle = open(path, "rb")
    except OSError as exc:
        raise FileIOError(f"Failed to read {path} for upload: {exc}") from exc

    # RequestException derives from OSError, so the transport call gets its own guard.
    with handle:
        try:
            response = session.put(url, data=handle, auth=auth, timeout=timeout)
        except requests.exceptions.RequestException as exc:
            raise PublishError(f"Upload of {path} to {url} failed: {exc}") from exc

    if not 200 <= response.status_code < 300:
        raise PublishError(f"Upload of {path} to {url} failed: HTTP {response.status_code} {response.text[:500]}")


def publish(
    ctx: RunContext,
    descriptor: PackageDescriptor,
    paths: Iterable[str],
    *,
    signatures: Iterable[str] = (),
    session: requests.Session | None = None,
    timeout: float = 60.0,
) -> list[str]:
    """
    PUT each artifact to the target repository, followed by its detached
    signature when that signature is listed in `signatures`.

    Signature files already on disk but not listed are never uploaded.
    """

    target_repo = descriptor.publishing.target_repo
    if not target_repo:
        raise ConfigError("Cannot publish without publishing.targetRepo in metadata.json")
    if not descriptor.version:
        raise ConfigError("Cannot publish without a version in metadata.json")

    auth: tuple[str, str] | None = None
    cfg = ctx.user_config
    if cfg.publish_username and cfg.publish_password:
        auth = (cfg.publish_username, cfg.publish_password)

    owns_session = session is None
    http = session or requests.Session()
    signed = {os.path.abspath(sig) for sig in signatures}
    uploaded: list[str] = []
    try:
        for path in paths:
            candidates = [path]
            sig = signature_path(path)
            if os.path.abspath(sig) in signed:
                candidates.append(sig)
            elif os.path.isfile(sig):
                ctx.logger.warning("Skipping %s: not produced by this run", sig)
            for candidate in candidates:
                url = artifact_url(target_repo, descriptor, os.path.basename(candidate))
                ctx.logger.info("Uploading %s to %s", candidate, url)
                _upload(http, url, candidate, auth, timeout)
                uploaded.append(url)
    finally:
        if owns_session:
            http.close()
    return uploaded
