import json
import logging
import os
from dataclasses import dataclass, field

import pytest

from mason.foundation.command import CommandResult
from mason.framework.runtime import RunContext
from mason.framework.workspace import Workspace


@dataclass
class Call:
    program: str
    args: list[str]
    env: dict[str, str] = field(default_factory=dict)
    cwd: str | None = None

    @property
    def name(self) -> str:
        return os.path.basename(self.program)


class FakeRunner:
    """Recording stand-in for the external toolchain.

    - `git clone URL DEST` creates DEST
    - `gox ... -osarch=OS/ARCH` writes `<prefix>_<os>_<arch>` into cwd
    - `<signer> ... -bau EMAIL PATH` writes PATH.asc tagged with the keyring used
    - `<signer> ... --verify SIG` succeeds only if SIG was made with the same keyring
    """

    def __init__(self, prefix: str = "widget"):
        self.prefix = prefix
        self.calls: list[Call] = []
        self.fail_programs: dict[str, int] = {}
        self.fail_targets: set[str] = set()
        self.missing_targets: set[str] = set()

    def calls_to(self, name: str) -> list[Call]:
        return [call for call in self.calls if call.name == name]

    def run(self, program, args, *, env=None, cwd=None):
        args = [str(arg) for arg in args]
        call = Call(program=program, args=args, env=dict(env or {}), cwd=cwd)
        self.calls.append(call)

        if call.name in self.fail_programs:
            return CommandResult(program, tuple(args), self.fail_programs[call.name], f"{call.name}: boom\n")

        if call.name == "git" and args[:1] == ["clone"]:
            os.makedirs(args[2], exist_ok=True)
        elif call.name == "gox":
            osarch = next(arg for arg in args if arg.startswith("-osarch=")).split("=", 1)[1]
            if osarch in self.fail_targets:
                return CommandResult(program, tuple(args), 1, f"build failed for {osarch}\n")
            if osarch not in self.missing_targets:
                osname, arch = osarch.split("/")
                with open(os.path.join(cwd, f"{self.prefix}_{osname}_{arch}"), "w", encoding="utf-8") as handle:
                    handle.write("binary")
        elif "-bau" in args:
            target = args[-1]
            with open(target + ".asc", "w", encoding="utf-8") as handle:
                handle.write(json.dumps({"keyring": _keyring_of(args), "email": args[args.index("-bau") + 1]}))
        elif "--verify" in args:
            sig = args[args.index("--verify") + 1]
            with open(sig, "r", encoding="utf-8") as handle:
                made_with = json.load(handle)["keyring"]
            if made_with != _keyring_of(args):
                return CommandResult(program, tuple(args), 1, "gpg: Can't check signature: No public key\n")

        return CommandResult(program, tuple(args), 0, "")


def _keyring_of(args: list[str]) -> str:
    if "--keyring" in args:
        return args[args.index("--keyring") + 1]
    return "<default>"


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def caller_dir(tmp_path):
    path = tmp_path / "caller"
    path.mkdir()
    return path


@pytest.fixture
def run_ctx(fake_runner, caller_dir):
    return RunContext(
        run_id="unit_test",
        cwd=str(caller_dir),
        logger=logging.getLogger("mason.unit_test"),
        runner=fake_runner,
    )


@pytest.fixture
def workspace(tmp_path):
    ws = Workspace(logging.getLogger("mason.unit_test"))
    ws.acquire(str(tmp_path / "ws"))
    yield ws
    ws.release()
