from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from mason.foundation.config_io import (
    collect_unknown_keys,
    get_mapping,
    load_json_mapping,
    load_yaml_mapping,
    optional_str,
    parse_bool,
    user_config_path,
)
from mason.foundation.errors import ConfigError, MissingFieldError

METADATA_FILENAME = "metadata.json"
DEFAULT_SIGNING_PROGRAM = "gpg"


@dataclass(frozen=True)
class BuildTarget:
    name: str
    cgo: bool = False
    flags: dict[str, str] = field(default_factory=dict)

    @property
    def os(self) -> str:
        return self.name.split("/", 1)[0]

    @property
    def arch(self) -> str:
        return self.name.split("/", 1)[1]


@dataclass(frozen=True)
class ExtraArtifact:
    template: str
    file_name: str
    executable: bool = False

    @property
    def mode(self) -> int:
        return 0o755 if self.executable else 0o644


@dataclass(frozen=True)
class SigningPolicy:
    program: str = ""
    email: str = ""


@dataclass(frozen=True)
class PublishInfo:
    target_repo: str | None = None


@dataclass(frozen=True)
class KeyringOverride:
    """Alternate keyring/trust database pair handed to the signer."""

    keyring: str
    trustdb: str


@dataclass(frozen=True)
class PackageOptions:
    keyring: KeyringOverride | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PackageDescriptor:
    package: str
    version: str = ""
    description: str = ""
    targets: tuple[BuildTarget, ...] = ()
    extras: tuple[ExtraArtifact, ...] = ()
    signing: SigningPolicy = field(default_factory=SigningPolicy)
    publishing: PublishInfo = field(default_factory=PublishInfo)
    options: PackageOptions = field(default_factory=PackageOptions)

    @property
    def binary_prefix(self) -> str:
        return self.package.rstrip("/").split("/")[-1]

    @property
    def git_url(self) -> str:
        """SSH clone URL: github.com/acme/widget -> git@github.com:acme/widget.git"""
        host, _, path = self.package.strip("/").partition("/")
        if not path:
            return f"git@{host}.git"
        return f"git@{host}:{path}.git"

    @staticmethod
    def from_dict(payload: Mapping[str, Any], *, source: str | None = None) -> tuple["PackageDescriptor", list[str]]:
        """
        Parse and validate a descriptor mapping, returning (descriptor, warnings).

        Raises:
            MissingFieldError: if `package` is absent or empty.
            ConfigError: if any field has the wrong shape.
        """

        if not isinstance(payload, Mapping):
            raise ConfigError("Descriptor must be a mapping")

        warnings: list[str] = []

        raw_package = payload.get("package")
        if raw_package is None or (isinstance(raw_package, str) and not raw_package.strip()):
            raise MissingFieldError("package", source)
        if not isinstance(raw_package, str):
            raise ConfigError("Invalid descriptor type for package: expected string")
        package = raw_package.strip()

        version = optional_str(payload, "version") or ""
        description = optional_str(payload, "description") or ""
        if not version:
            warnings.append("Descriptor has no version")

        build_info = get_mapping(payload, "buildInfo")
        targets = _parse_targets(build_info.get("targets"))
        extras = _parse_extras(build_info.get("extras"))

        signing = SigningPolicy(
            program=optional_str(payload, "signing.program") or "",
            email=optional_str(payload, "signing.email") or "",
        )
        publishing = PublishInfo(target_repo=optional_str(payload, "publishing.targetRepo"))
        options = _parse_options(get_mapping(payload, "options"), warnings)

        schema: Mapping[str, Any] = {
            "package": None,
            "version": None,
            "description": None,
            "buildInfo": {"targets": None, "extras": None},
            "signing": {"program": None, "email": None},
            "publishing": {"targetRepo": None},
            "options": None,
        }
        warnings.extend(f"Unknown descriptor key: {key}" for key in collect_unknown_keys(payload, schema))

        descriptor = PackageDescriptor(
            package=package,
            version=version,
            description=description,
            targets=targets,
            extras=extras,
            signing=signing,
            publishing=publishing,
            options=options,
        )
        return descriptor, warnings


def _parse_targets(raw: Any) -> tuple[BuildTarget, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ConfigError("Invalid descriptor type for buildInfo.targets: expected list")

    targets: list[BuildTarget] = []
    for idx, item in enumerate(raw):
        path = f"buildInfo.targets[{idx}]"
        if not isinstance(item, Mapping):
            raise ConfigError(f"Invalid descriptor type for {path}: expected mapping")
        name = optional_str(item, "name")
        if not name:
            raise MissingFieldError(f"{path}.name")
        osname, sep, arch = name.partition("/")
        if not sep or not osname or not arch or "/" in arch:
            raise ConfigError(f"Invalid build target {name!r} at {path}: expected '<os>/<arch>'")

        cgo = parse_bool(item["cgo"], f"{path}.cgo") if item.get("cgo") is not None else False

        raw_flags = item.get("flags") or {}
        if not isinstance(raw_flags, Mapping):
            raise ConfigError(f"Invalid descriptor type for {path}.flags: expected mapping")
        flags = {str(k): str(v) for k, v in raw_flags.items()}

        targets.append(BuildTarget(name=name, cgo=cgo, flags=flags))
    return tuple(targets)


def _parse_extras(raw: Any) -> tuple[ExtraArtifact, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ConfigError("Invalid descriptor type for buildInfo.extras: expected list")

    extras: list[ExtraArtifact] = []
    for idx, item in enumerate(raw):
        path = f"buildInfo.extras[{idx}]"
        if not isinstance(item, Mapping):
            raise ConfigError(f"Invalid descriptor type for {path}: expected mapping")
        template = optional_str(item, "template")
        if not template:
            raise MissingFieldError(f"{path}.template")
        file_name = optional_str(item, "fileName")
        if not file_name:
            raise MissingFieldError(f"{path}.fileName")
        executable = False
        if item.get("executable") is not None:
            executable = parse_bool(item["executable"], f"{path}.executable")
        extras.append(ExtraArtifact(template=template, file_name=file_name, executable=executable))
    return tuple(extras)


def _parse_options(raw: Mapping[str, Any], warnings: list[str]) -> PackageOptions:
    keyring = optional_str(raw, "keyring")
    trustdb = optional_str(raw, "trustdb")
    if bool(keyring) != bool(trustdb):
        raise ConfigError("options.keyring and options.trustdb must be given together")

    extra = {str(k): v for k, v in raw.items() if k not in ("keyring", "trustdb")}
    warnings.extend(f"Unrecognized descriptor option: options.{key}" for key in sorted(extra))

    override = KeyringOverride(keyring=keyring, trustdb=trustdb) if keyring and trustdb else None
    return PackageOptions(keyring=override, extra=extra)


def load_metadata(path: str = METADATA_FILENAME) -> tuple[PackageDescriptor, list[str]]:
    """Load `metadata.json`; a missing file is a ConfigError."""

    try:
        payload = load_json_mapping(path)
    except FileNotFoundError as exc:
        raise ConfigError(f"Descriptor not found: {os.path.abspath(path)}") from exc
    return PackageDescriptor.from_dict(payload, source=path)


@dataclass(frozen=True)
class UserConfig:
    email: str = ""
    program: str = ""
    publish_username: str | None = None
    publish_password: str | None = None
    log_dir: str | None = None
    path: str | None = None

    @staticmethod
    def from_dict(payload: Mapping[str, Any], *, path: str | None = None) -> tuple["UserConfig", list[str]]:
        schema: Mapping[str, Any] = {
            "user": {"email": None},
            "signing": {"program": None},
            "publishing": {"username": None, "password": None},
            "logging": {"dir": None},
        }
        warnings = [f"Unknown user config key: {key}" for key in collect_unknown_keys(payload, schema)]

        log_dir = optional_str(payload, "logging.dir")
        if log_dir:
            log_dir = os.path.abspath(os.path.expandvars(os.path.expanduser(log_dir)))

        cfg = UserConfig(
            email=optional_str(payload, "user.email") or "",
            program=optional_str(payload, "signing.program") or "",
            publish_username=optional_str(payload, "publishing.username"),
            publish_password=optional_str(payload, "publishing.password"),
            log_dir=log_dir,
            path=path,
        )
        return cfg, warnings


def load_user_config(path: str | None = None) -> tuple[UserConfig, list[str]]:
    """Load the per-operator config. A missing file yields an empty config."""

    resolved = path or user_config_path()
    try:
        payload = load_yaml_mapping(resolved)
    except FileNotFoundError:
        return UserConfig(), []
    return UserConfig.from_dict(payload, path=resolved)
