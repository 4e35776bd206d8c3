import os

import pytest

from vela.services.errors import LocalIOError
from vela.services.local_fs import (
    count_local_files,
    expand_local_path,
    is_root,
    load_local_directory,
)


def test_expand_tilde(monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))
    assert expand_local_path("~") == str(tmp_path)
    assert expand_local_path("~/docs") == str(tmp_path / "docs")
    assert expand_local_path("/etc/../tmp") == "/tmp"
    # only a leading ~ is special
    assert expand_local_path("/a/~/b") == "/a/~/b"


def test_listing_puts_directories_first(tmp_path):
    (tmp_path / "b.txt").write_text("bb")
    (tmp_path / "a.txt").write_text("a")
    (tmp_path / "zdir").mkdir()
    (tmp_path / "adir").mkdir()

    entries = load_local_directory(str(tmp_path))

    assert [e.name for e in entries] == ["..", "adir", "zdir", "a.txt", "b.txt"]
    by_name = {e.name: e for e in entries}
    assert by_name["b.txt"].size == 2
    assert by_name["adir"].size is None
    assert by_name["adir"].is_dir


def test_root_has_no_parent_entry():
    assert is_root("/")
    assert ".." not in [e.name for e in load_local_directory("/")]


def test_dangling_symlink_is_listed(tmp_path):
    os.symlink(tmp_path / "gone", tmp_path / "link")
    entries = load_local_directory(str(tmp_path))
    link = [e for e in entries if e.name == "link"][0]
    assert link.size is None and link.modified is None


def test_missing_directory_raises(tmp_path):
    with pytest.raises(LocalIOError):
        load_local_directory(str(tmp_path / "missing"))


def test_count_local_files(tmp_path):
    (tmp_path / "d" / "e").mkdir(parents=True)
    (tmp_path / "d" / "1").write_text("")
    (tmp_path / "d" / "e" / "2").write_text("")
    (tmp_path / "3").write_text("")
    assert count_local_files(str(tmp_path)) == 3
    assert count_local_files(str(tmp_path / "3")) == 1
    assert count_local_files(str(tmp_path / "d" / "e")) == 1
    assert count_local_files(str(tmp_path / "nothing")) == 0
