import json
import os
from pathlib import Path

import pytest

from mason.foundation.errors import ConfigError, PipelineError, ResolutionError, SubprocessError
from mason.foundation.run_index import read_run_index
from mason.app.pipeline import run_release, verify_artifacts


def _write_metadata(caller_dir: Path, **overrides) -> None:
    payload = {
        "package": "acme/widget",
        "version": "1.2.3",
        "description": "Widgets for all",
        "buildInfo": {"targets": [{"name": "linux/amd64"}]},
    }
    payload.update(overrides)
    (caller_dir / "metadata.json").write_text(json.dumps(payload), encoding="utf-8")


def _write_user_config(tmp_path: Path, text: str) -> str:
    path = tmp_path / "user.yaml"
    path.write_text(text, encoding="utf-8")
    return str(path)


@pytest.fixture
def no_user_config(tmp_path):
    return str(tmp_path / "absent.yaml")


def test_build_places_binary_in_caller_dir(caller_dir, fake_runner, no_user_config):
    _write_metadata(caller_dir)

    result = run_release(build=True, cwd=str(caller_dir), runner=fake_runner, user_config_path=no_user_config)

    assert result.package == "acme/widget"
    assert result.version == "1.2.3"
    assert result.state == "done"
    assert result.completed == ["checkout", "dependency_sync", "test", "build"]
    assert sorted(p.name for p in caller_dir.iterdir()) == ["metadata.json", "widget_linux_amd64"]
    assert result.binaries == [str(caller_dir / "widget_linux_amd64")]

    clone = fake_runner.calls_to("git")[0]
    assert clone.args[:2] == ["clone", "git@acme:widget.git"]
    assert clone.args[2] == os.path.join(result.gopath, "src", "acme", "widget")
    checkout = fake_runner.calls_to("git")[1]
    assert checkout.args == ["checkout", "master"]

    go_test = [call for call in fake_runner.calls_to("go") if call.args[:1] == ["test"]]
    assert go_test[0].args == ["test", "-v", "./..."]
    assert go_test[0].env == {"GOPATH": result.gopath}


def test_test_only_run_builds_nothing(caller_dir, fake_runner, no_user_config):
    _write_metadata(caller_dir)

    result = run_release(cwd=str(caller_dir), runner=fake_runner, user_config_path=no_user_config, branch="dev")

    assert result.completed == ["checkout", "dependency_sync", "test"]
    assert fake_runner.calls_to("gox") == []
    assert fake_runner.calls_to("git")[1].args == ["checkout", "dev"]


def test_temp_workspace_removed_explicit_workdir_kept(caller_dir, fake_runner, no_user_config, tmp_path):
    _write_metadata(caller_dir)

    result = run_release(cwd=str(caller_dir), runner=fake_runner, user_config_path=no_user_config)
    assert not os.path.exists(result.workdir)

    explicit = tmp_path / "keep"
    result = run_release(
        cwd=str(caller_dir), runner=fake_runner, user_config_path=no_user_config, workdir=str(explicit)
    )
    assert result.workdir == str(explicit)
    assert (explicit / "go" / "src" / "acme" / "widget").is_dir()


def test_sign_without_identity_fails_before_spawning_signer(caller_dir, fake_runner, no_user_config):
    _write_metadata(caller_dir)

    with pytest.raises(PipelineError) as excinfo:
        run_release(build=True, sign=True, cwd=str(caller_dir), runner=fake_runner, user_config_path=no_user_config)

    assert excinfo.value.stage == "sign"
    assert isinstance(excinfo.value.__cause__, ResolutionError)
    assert excinfo.value.result.binaries == [str(caller_dir / "widget_linux_amd64")]
    assert not any("-bau" in call.args for call in fake_runner.calls)


def test_user_identity_overrides_descriptor(caller_dir, fake_runner, tmp_path):
    _write_metadata(caller_dir, signing={"email": "meta@acme.test"})
    user_config = _write_user_config(tmp_path, "user:\n  email: me@acme.test\n")

    result = run_release(build=True, sign=True, cwd=str(caller_dir), runner=fake_runner, user_config_path=user_config)

    assert result.signatures == [str(caller_dir / "widget_linux_amd64.asc")]
    sign_call = next(call for call in fake_runner.calls if "-bau" in call.args)
    assert sign_call.args == ["-bau", "me@acme.test", str(caller_dir / "widget_linux_amd64")]


def test_checkout_failure_reports_stage_and_partial_result(caller_dir, fake_runner, no_user_config):
    _write_metadata(caller_dir)
    fake_runner.fail_programs["git"] = 128

    with pytest.raises(PipelineError) as excinfo:
        run_release(build=True, cwd=str(caller_dir), runner=fake_runner, user_config_path=no_user_config)

    err = excinfo.value
    assert err.stage == "checkout"
    assert isinstance(err.__cause__, SubprocessError)
    assert err.result.package == "acme/widget"
    assert err.result.failed_stage == "checkout"
    assert err.result.binaries == []
    assert fake_runner.calls_to("gox") == []


def test_missing_descriptor_is_config_error(caller_dir, fake_runner, no_user_config):
    with pytest.raises(ConfigError, match="Descriptor not found"):
        run_release(cwd=str(caller_dir), runner=fake_runner, user_config_path=no_user_config)
    assert fake_runner.calls == []


def test_run_index_written_when_log_dir_configured(caller_dir, fake_runner, tmp_path):
    _write_metadata(caller_dir)
    logs = tmp_path / "logs"
    user_config = _write_user_config(tmp_path, f"logging:\n  dir: '{logs.as_posix()}'\n")

    run_release(build=True, cwd=str(caller_dir), runner=fake_runner, user_config_path=user_config, run_id="r1")
    fake_runner.fail_programs["go"] = 1
    with pytest.raises(PipelineError):
        run_release(cwd=str(caller_dir), runner=fake_runner, user_config_path=user_config, run_id="r2")

    entries = read_run_index(str(logs / "runs_index.jsonl"))
    assert [(e["run_id"], e["status"]) for e in entries] == [("r1", "success"), ("r2", "error")]
    assert entries[0]["result"]["binaries"] == [str(caller_dir / "widget_linux_amd64")]
    assert entries[1]["error"]["stage"] == "test"
    assert (logs / "r1_oplog.log").is_file()


def test_verify_artifacts_uses_descriptor_keyring(caller_dir, fake_runner, no_user_config):
    _write_metadata(caller_dir, options={"keyring": "/k/pubring.gpg", "trustdb": "/k/trustdb.gpg"})
    (caller_dir / "widget_linux_amd64").write_text("bin", encoding="utf-8")
    (caller_dir / "widget_linux_amd64.asc").write_text(
        json.dumps({"keyring": "/k/pubring.gpg", "email": "x"}), encoding="utf-8"
    )

    outcomes = verify_artifacts(
        ["widget_linux_amd64", "missing_bin"], cwd=str(caller_dir), runner=fake_runner, user_config_path=no_user_config
    )

    assert outcomes["widget_linux_amd64"] == (True, None)
    assert outcomes["missing_bin"][0] is False
    assert len(fake_runner.calls) == 1


class RecordingSession:
    def __init__(self):
        self.urls = []

    def put(self, url, data=None, auth=None, timeout=None):
        self.urls.append(url)
        return type("Response", (), {"status_code": 201, "text": ""})()

    def close(self):
        pass


def test_publish_without_signing_skips_leftover_signature(caller_dir, fake_runner, no_user_config):
    _write_metadata(caller_dir, version="2.0.0", publishing={"targetRepo": "https://repo.acme.test"})
    (caller_dir / "widget_linux_amd64.asc").write_text("from 1.2.3", encoding="utf-8")
    session = RecordingSession()

    result = run_release(
        build=True,
        publish=True,
        cwd=str(caller_dir),
        runner=fake_runner,
        user_config_path=no_user_config,
        session=session,
    )

    assert result.signatures == []
    assert result.published == ["https://repo.acme.test/acme/widget/2.0.0/widget_linux_amd64"]
    assert session.urls == result.published


def test_publish_after_signing_uploads_fresh_signature(caller_dir, fake_runner, tmp_path):
    _write_metadata(caller_dir, publishing={"targetRepo": "https://repo.acme.test"})
    user_config = _write_user_config(tmp_path, "user:\n  email: me@acme.test\n")
    session = RecordingSession()

    result = run_release(
        build=True,
        sign=True,
        publish=True,
        cwd=str(caller_dir),
        runner=fake_runner,
        user_config_path=user_config,
        session=session,
    )

    base = "https://repo.acme.test/acme/widget/1.2.3/"
    assert result.published == [base + "widget_linux_amd64", base + "widget_linux_amd64.asc"]
