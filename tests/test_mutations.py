import os

from vela.models.panel import PanelModel
from vela.services.local_fs import LocalTarget, load_local_directory
from vela.services.mutations import MutationOps

from conftest import HOME


def remote_ops(session):
    panel = PanelModel(session.remote_path)
    panel.load(session.remote_path, session.list())
    return MutationOps(session, panel), panel


def test_delete_batch_is_best_effort(session, fake_sftp, remote_home):
    for name in ("a.txt", "b.txt", "c.txt"):
        (remote_home / name).write_text(name)
    fake_sftp.fail_remove.add(HOME + "/b.txt")
    ops, panel = remote_ops(session)
    panel.mark_all()

    summary = ops.delete_batch([("a.txt", False), ("b.txt", False), ("c.txt", False)])

    assert (summary.succeeded, summary.total) == (2, 3)
    assert "b.txt" in summary.last_error
    assert summary.message().startswith("2/3 deleted")
    assert sorted(os.listdir(remote_home)) == ["b.txt"]
    assert [e.name for e in panel.entries] == ["..", "b.txt"]
    assert panel.marked == set()


def test_delete_batch_keeps_only_last_error(session, fake_sftp, remote_home):
    for name in ("a", "b", "c"):
        (remote_home / name).write_text(name)
    fake_sftp.fail_remove.update({HOME + "/a", HOME + "/c"})
    ops, _ = remote_ops(session)
    summary = ops.delete_batch([("a", False), ("b", False), ("c", False)])
    assert summary.succeeded == 1
    assert summary.last_error.startswith("'c'")


def test_delete_batch_mixes_files_and_directories(session, remote_home):
    (remote_home / "dir" / "sub").mkdir(parents=True)
    (remote_home / "dir" / "sub" / "f").write_text("f")
    (remote_home / "file").write_text("x")
    ops, _ = remote_ops(session)
    summary = ops.delete_batch([("dir", True), ("file", False)])
    assert summary.message() == "2 entries deleted"
    assert os.listdir(remote_home) == []


def test_single_delete_message(session, remote_home):
    (remote_home / "only").write_text("x")
    ops, _ = remote_ops(session)
    assert ops.delete_batch([("only", False)]).message("only") == "'only' deleted"


def test_remote_rename_refreshes_listing(session, remote_home):
    (remote_home / "draft.md").write_text("x")
    ops, panel = remote_ops(session)
    message = ops.rename("draft.md", "final.md")
    assert message == "Renamed: draft.md → final.md"
    assert [e.name for e in panel.entries] == ["..", "final.md"]


def test_failed_mkdir_reports_and_still_refreshes(session, remote_home):
    (remote_home / "exists").mkdir()
    ops, panel = remote_ops(session)
    (remote_home / "late.txt").write_text("appeared meanwhile")
    message = ops.mkdir("exists")
    assert message.startswith("Create directory failed")
    assert "late.txt" in [e.name for e in panel.entries]


def test_local_mutations(tmp_path):
    (tmp_path / "one.txt").write_text("1")
    (tmp_path / "tree" / "leaf").mkdir(parents=True)
    panel = PanelModel(str(tmp_path))
    panel.load(str(tmp_path), load_local_directory(str(tmp_path)))
    ops = MutationOps(LocalTarget(str(tmp_path)), panel)

    ops.rename("one.txt", "two.txt")
    ops.mkdir("new")
    summary = ops.delete_batch([("tree", True), ("missing.txt", False)])

    assert summary.succeeded == 1
    assert "missing.txt" in summary.last_error
    assert [e.name for e in panel.entries] == ["..", "new", "two.txt"]
