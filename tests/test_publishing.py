from dataclasses import replace

import pytest
import requests

from mason.foundation.errors import ConfigError, FileIOError, PublishError
from mason.framework.metadata import PackageDescriptor, PublishInfo, UserConfig
from mason.framework.publishing import artifact_url, publish


class FakeResponse:
    def __init__(self, status_code: int = 201, text: str = ""):
        self.status_code = status_code
        self.text = text


class FakeSession:
    def __init__(self, responses=None, exc=None):
        self.puts = []
        self._responses = list(responses or [])
        self._exc = exc
        self.closed = False

    def put(self, url, data=None, auth=None, timeout=None):
        self.puts.append({"url": url, "body": data.read(), "auth": auth, "timeout": timeout})
        if self._exc is not None:
            raise self._exc
        if self._responses:
            return self._responses.pop(0)
        return FakeResponse()

    def close(self):
        self.closed = True


def _descriptor(target_repo="https://repo.acme.test/releases/") -> PackageDescriptor:
    return PackageDescriptor(
        package="github.com/acme/widget",
        version="1.2.3",
        publishing=PublishInfo(target_repo=target_repo),
    )


def test_artifact_url_layout():
    assert (
        artifact_url("https://repo.acme.test/releases/", _descriptor(), "widget_linux_amd64")
        == "https://repo.acme.test/releases/github.com/acme/widget/1.2.3/widget_linux_amd64"
    )


def test_publish_uploads_artifact_and_signature(run_ctx, tmp_path):
    binary = tmp_path / "widget_linux_amd64"
    binary.write_bytes(b"ELF")
    (tmp_path / "widget_linux_amd64.asc").write_text("sig", encoding="utf-8")
    unsigned = tmp_path / "install.sh"
    unsigned.write_text("#!/bin/sh\n", encoding="utf-8")
    run_ctx.user_config = UserConfig(publish_username="ci", publish_password="s3cret")
    session = FakeSession()

    urls = publish(
        run_ctx,
        _descriptor(),
        [str(binary), str(unsigned)],
        signatures=[str(tmp_path / "widget_linux_amd64.asc")],
        session=session,
        timeout=5.0,
    )

    base = "https://repo.acme.test/releases/github.com/acme/widget/1.2.3/"
    assert urls == [base + "widget_linux_amd64", base + "widget_linux_amd64.asc", base + "install.sh"]
    assert session.puts[0]["body"] == b"ELF"
    assert session.puts[1]["body"] == b"sig"
    assert all(put["auth"] == ("ci", "s3cret") for put in session.puts)
    assert all(put["timeout"] == 5.0 for put in session.puts)
    assert session.closed is False


def test_publish_without_credentials_sends_no_auth(run_ctx, tmp_path):
    binary = tmp_path / "widget_linux_amd64"
    binary.write_bytes(b"ELF")
    session = FakeSession()

    publish(run_ctx, _descriptor(), [str(binary)], session=session)

    assert session.puts[0]["auth"] is None


def test_publish_rejects_non_2xx(run_ctx, tmp_path):
    binary = tmp_path / "widget_linux_amd64"
    binary.write_bytes(b"ELF")
    session = FakeSession(responses=[FakeResponse(403, "forbidden")])

    with pytest.raises(PublishError, match="HTTP 403 forbidden"):
        publish(run_ctx, _descriptor(), [str(binary)], session=session)


def test_publish_wraps_transport_errors(run_ctx, tmp_path):
    binary = tmp_path / "widget_linux_amd64"
    binary.write_bytes(b"ELF")
    session = FakeSession(exc=requests.exceptions.ConnectionError("refused"))

    with pytest.raises(PublishError, match="refused") as excinfo:
        publish(run_ctx, _descriptor(), [str(binary)], session=session)
    assert isinstance(excinfo.value.__cause__, requests.exceptions.ConnectionError)


@pytest.mark.parametrize(
    "descriptor",
    [_descriptor(target_repo=None), replace(_descriptor(), version="")],
    ids=["no-target-repo", "no-version"],
)
def test_publish_requires_target_and_version(run_ctx, tmp_path, descriptor):
    session = FakeSession()

    with pytest.raises(ConfigError):
        publish(run_ctx, descriptor, [str(tmp_path / "widget_linux_amd64")], session=session)
    assert session.puts == []


def test_signature_left_on_disk_is_not_uploaded(run_ctx, tmp_path):
    binary = tmp_path / "widget_linux_amd64"
    binary.write_bytes(b"ELF")
    (tmp_path / "widget_linux_amd64.asc").write_text("old release", encoding="utf-8")
    session = FakeSession()

    urls = publish(run_ctx, _descriptor(), [str(binary)], session=session)

    assert urls == ["https://repo.acme.test/releases/github.com/acme/widget/1.2.3/widget_linux_amd64"]
    assert [put["body"] for put in session.puts] == [b"ELF"]


def test_unreadable_artifact_is_file_io_error(run_ctx, tmp_path):
    session = FakeSession()

    with pytest.raises(FileIOError, match="for upload"):
        publish(run_ctx, _descriptor(), [str(tmp_path / "absent_bin")], session=session)
    assert session.puts == []
