"""Signing and verification of release artifacts.

Identity resolution, highest precedence last:

1. descriptor `signing.program` (default `gpg`) and `signing.email`
2. user config `signing.program`, when non-empty
3. user config `user.email`, when non-empty

Signatures are detached, ASCII armored and live next to the signed file as
`<path>.asc`.
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from dataclasses import dataclass

from mason.foundation.command import run_checked
from mason.foundation.errors import ResolutionError, SubprocessError, VerificationError
from mason.framework.metadata import (
    DEFAULT_SIGNING_PROGRAM,
    KeyringOverride,
    PackageOptions,
    SigningPolicy,
    UserConfig,
)
from mason.framework.runtime import RunContext

SIGNATURE_SUFFIX = ".asc"


@dataclass(frozen=True)
class SigningIdentity:
    program: str
    email: str


def signature_path(path: str) -> str:
    return path + SIGNATURE_SUFFIX


def resolve_program(policy: SigningPolicy, user_config: UserConfig | None = None) -> str:
    program = policy.program or DEFAULT_SIGNING_PROGRAM
    if user_config is not None and user_config.program:
        program = user_config.program
    return program


def resolve_signing(policy: SigningPolicy, user_config: UserConfig | None = None) -> SigningIdentity:
    program = resolve_program(policy, user_config)
    email = policy.email
    if user_config is not None and user_config.email:
        email = user_config.email

    if not email:
        raise ResolutionError(
            "Cannot sign without a signing identity (email). Set 'signing.email' in "
            "metadata.json, or 'user.email' in the per-user config file."
        )
    return SigningIdentity(program=program, email=email)


def _keyring_args(keyring: KeyringOverride | None) -> list[str]:
    if keyring is None:
        return []
    return ["--trustdb", keyring.trustdb, "--no-default-keyring", "--keyring", keyring.keyring]


def sign(ctx: RunContext, path: str, identity: SigningIdentity, options: PackageOptions | None = None) -> str:
    """Write a detached armored signature for `path` and return its location."""

    keyring = options.keyring if options is not None else None
    # -b detached, -a ascii armor, -u signing identity
    args = [*_keyring_args(keyring), "-bau", identity.email, path]

    ctx.logger.info("Signing %s with identity %s", path, identity.email)
    run_checked(ctx.runner, identity.program, args, logger=ctx.logger)
    return signature_path(path)


def verify(
    ctx: RunContext,
    path: str,
    program: str = DEFAULT_SIGNING_PROGRAM,
    options: PackageOptions | None = None,
) -> tuple[bool, str | None]:
    """Check the detached signature of `path`. Failures are returned, not raised."""

    sig_file = signature_path(path)
    if not os.path.isfile(sig_file):
        return False, f"Signature file not found: {sig_file}"

    keyring = options.keyring if options is not None else None
    try:
        result = ctx.runner.run(program, [*_keyring_args(keyring), "--verify", sig_file])
    except SubprocessError as exc:
        ctx.logger.error("Verification of %s could not run: %s", path, exc)
        return False, str(exc)
    if not result.ok:
        ctx.logger.error("Verification failed for %s (exit %d)", path, result.returncode)
        return False, result.output.strip() or f"{program} exited with status {result.returncode}"

    ctx.logger.debug("Verified signature %s", sig_file)
    return True, None


def sign_artifacts(
    ctx: RunContext,
    paths: Iterable[str],
    policy: SigningPolicy,
    options: PackageOptions | None = None,
) -> list[str]:
    """Sign then verify every path; identity is resolved before anything is spawned."""

    identity = resolve_signing(policy, ctx.user_config)
    signatures: list[str] = []
    for path in paths:
        sig = sign(ctx, path, identity, options)
        ok, detail = verify(ctx, path, identity.program, options)
        if not ok:
            raise VerificationError(f"Signature for {path} did not verify: {detail}")
        signatures.append(sig)
    return signatures
