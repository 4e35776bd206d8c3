import os
from unittest import mock

import paramiko
import pytest

from vela.models.edit_request import LocalEdit, RemoteEdit
from vela.models.panel import PanelModel
from vela.services import edit_roundtrip
from vela.services.errors import RemotePathError, TransportError

from conftest import HOME


@pytest.fixture
def panels(tmp_path, session):
    local = PanelModel(str(tmp_path))
    remote = PanelModel(session.remote_path)
    return local, remote


def bump_mtime(path):
    st = os.stat(path)
    os.utime(path, ns=(st.st_atime_ns, st.st_mtime_ns + 5_000_000_000))


def test_prepare_remote_edit_downloads_to_scratch(session, remote_home):
    (remote_home / "app.conf").write_text("port=80\n")
    request = edit_roundtrip.prepare_remote_edit(session, "app.conf")
    assert isinstance(request, RemoteEdit)
    assert request.remote_path == HOME + "/app.conf"
    assert open(request.scratch_path).read() == "port=80\n"
    assert request.mtime_before == os.stat(request.scratch_path).st_mtime_ns
    os.remove(request.scratch_path)


def test_prepare_remote_edit_failure_leaves_no_scratch(session):
    with pytest.raises(RemotePathError):
        edit_roundtrip.prepare_remote_edit(session, "missing.txt")


def test_unchanged_file_is_not_uploaded(session, remote_home, panels):
    (remote_home / "app.conf").write_text("port=80\n")
    request = edit_roundtrip.prepare_remote_edit(session, "app.conf")
    uploader = mock.Mock()
    local, remote = panels

    outcome = edit_roundtrip.finish_edit(request, session, local, remote, uploader=uploader)

    uploader.assert_not_called()
    assert not outcome.uploaded and not outcome.refreshed
    assert remote.entries == []
    assert not os.path.exists(request.scratch_path)


def test_modified_file_is_uploaded_over_fresh_session(session, remote_home, panels,
                                                      connect_factory):
    (remote_home / "app.conf").write_text("port=80\n")
    request = edit_roundtrip.prepare_remote_edit(session, "app.conf")
    with open(request.scratch_path, "w") as f:
        f.write("port=8080\n")
    bump_mtime(request.scratch_path)
    local, remote = panels

    def uploader(profile, password, local_path, remote_path):
        edit_roundtrip.upload_file_fresh(profile, password, local_path, remote_path,
                                         connect=connect_factory)

    outcome = edit_roundtrip.finish_edit(request, session, local, remote, uploader=uploader)

    assert outcome.uploaded and outcome.refreshed
    assert (remote_home / "app.conf").read_text() == "port=8080\n"
    # the live session was not used for the upload
    assert len(connect_factory.opened) == 1
    assert connect_factory.opened[0] is not session
    assert [e.name for e in remote.entries] == ["..", "app.conf"]
    assert not os.path.exists(request.scratch_path)


def test_failed_upload_keeps_remote_and_deletes_scratch(session, remote_home, panels):
    (remote_home / "app.conf").write_text("port=80\n")
    request = edit_roundtrip.prepare_remote_edit(session, "app.conf")
    bump_mtime(request.scratch_path)
    local, remote = panels
    uploader = mock.Mock(side_effect=TransportError("TCP connection failed: refused"))

    outcome = edit_roundtrip.finish_edit(request, session, local, remote, uploader=uploader)

    assert outcome.message == "Upload failed: TCP connection failed: refused"
    assert (remote_home / "app.conf").read_text() == "port=80\n"
    assert not os.path.exists(request.scratch_path)


def test_no_session_discards_scratch(session, remote_home, panels):
    (remote_home / "app.conf").write_text("x")
    request = edit_roundtrip.prepare_remote_edit(session, "app.conf")
    bump_mtime(request.scratch_path)
    uploader = mock.Mock()
    local, remote = panels

    outcome = edit_roundtrip.finish_edit(request, None, local, remote, uploader=uploader)

    uploader.assert_not_called()
    assert not outcome.uploaded
    assert not os.path.exists(request.scratch_path)


def test_local_edit_reloads_local_panel(tmp_path, session):
    local = PanelModel(str(tmp_path))
    remote = PanelModel("/")
    (tmp_path / "notes.txt").write_text("x")
    request = edit_roundtrip.prepare_local_edit(str(tmp_path), "notes.txt")
    assert request == LocalEdit(str(tmp_path / "notes.txt"))

    outcome = edit_roundtrip.finish_edit(request, session, local, remote)

    assert outcome.refreshed
    assert "notes.txt" in [e.name for e in local.entries]


def test_live_session_dropped_while_editing(session, fake_sftp, remote_home, panels):
    (remote_home / "app.conf").write_text("port=80\n")
    request = edit_roundtrip.prepare_remote_edit(session, "app.conf")
    bump_mtime(request.scratch_path)
    # the idle live session timed out while the editor was open
    fake_sftp.listdir_attr = mock.Mock(
        side_effect=paramiko.SSHException("Server connection dropped: "))
    uploader = mock.Mock()
    local, remote = panels

    outcome = edit_roundtrip.finish_edit(request, session, local, remote, uploader=uploader)

    uploader.assert_called_once()
    assert outcome.uploaded
    assert not outcome.refreshed
    assert not os.path.exists(request.scratch_path)
