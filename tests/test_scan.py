import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

import pytest

from myphotos import scan as scan_mod
from myphotos.errors import ConfigError, ParseError, TransportError, TraversalError
from myphotos.model import REMOTE, RemoteConfig
from myphotos.scan import parse_listing, remote_listing_command, scan_local, scan_remote

EXTS = [".jpg", ".JPG", ".mp4"]


class TestScanLocal(unittest.TestCase):
    def test_scan_filters_extensions_and_orders(self):
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            (root / "sub").mkdir()
            (root / "sub" / "b.mp4").write_bytes(b"xx")
            (root / "a.jpg").write_bytes(b"x")
            (root / "c.txt").write_text("nope", encoding="utf-8")
            # A directory whose name matches is never a candidate.
            (root / "folder.jpg").mkdir()
            (root / "folder.jpg" / "real_file.txt").write_text("n", encoding="utf-8")

            res = scan_local(root, EXTS)
            self.assertEqual([c.filename for c in res.candidates], ["a.jpg", "b.mp4"])
            self.assertEqual(res.count, 2)
            self.assertEqual(res.filtered, 2)
            self.assertEqual(res.skipped, 0)
            b = res.candidates[1]
            self.assertEqual(b.size, 2)
            self.assertTrue(os.path.isabs(b.path))
            self.assertTrue(b.path.endswith(os.path.join("sub", "b.mp4")))

    def test_missing_root_is_fatal(self):
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(ConfigError):
                scan_local(Path(td) / "nope", EXTS)

    def test_root_must_be_directory(self):
        with tempfile.TemporaryDirectory() as td:
            f = Path(td) / "a.jpg"
            f.write_bytes(b"x")
            with self.assertRaises(ConfigError):
                scan_local(f, EXTS)


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
def test_broken_symlink_is_counted_not_fatal(tmp_path):
    (tmp_path / "good.jpg").write_bytes(b"abc")
    os.symlink(tmp_path / "gone.jpg", tmp_path / "dangling.jpg")

    res = scan_local(tmp_path, EXTS)
    assert [c.filename for c in res.candidates] == ["good.jpg"]
    assert res.skipped == 1
    assert isinstance(res.errors[0], TraversalError)
    assert res.errors[0].path.endswith("dangling.jpg")


def test_parse_listing_skips_malformed_lines():
    text = (
        "a.jpg\t100\t/srv/backup/a.jpg\n"
        "\n"
        "too\tmany\tfields\there\n"
        "b.jpg\tbig\t/srv/backup/b.jpg\n"
        "c.txt\t5\t/srv/backup/c.txt\n"
        "d.mp4\t-1\t/srv/backup/d.mp4\n"
        "e.JPG\t7\t/srv/backup/2020/e.JPG\n"
    )
    res = parse_listing(text, EXTS, root="host:/srv/backup")
    assert res.origin == REMOTE
    assert [(c.filename, c.size, c.path) for c in res.candidates] == [
        ("a.jpg", 100, "/srv/backup/a.jpg"),
        ("e.JPG", 7, "/srv/backup/2020/e.JPG"),
    ]
    assert res.filtered == 1
    assert res.skipped == 3
    assert all(isinstance(e, ParseError) for e in res.errors)
    assert [e.lineno for e in res.errors] == [3, 4, 6]


def test_remote_listing_command_quotes_for_remote_shell():
    cfg = RemoteConfig(ssh_bin="ssh", ssh_args=["-o", "BatchMode=yes"])
    cmd = remote_listing_command("me@nas", "/srv/My Photos", cfg)
    assert cmd[:4] == ["ssh", "-o", "BatchMode=yes", "me@nas"]
    assert cmd[4] == "find '/srv/My Photos' -type f -printf '%f\\t%s\\t%p\\n'"


def _fake_run(stdout=b"", stderr=b"", returncode=0, calls=None):
    # ssh output arrives as raw bytes.
    if isinstance(stdout, str):
        stdout = stdout.encode("utf-8")
    if isinstance(stderr, str):
        stderr = stderr.encode("utf-8")

    def run(cmd, **kwargs):
        if calls is not None:
            calls.append((cmd, kwargs))
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)

    return run


def test_scan_remote_parses_output(monkeypatch):
    calls = []
    monkeypatch.setattr(
        scan_mod.subprocess,
        "run",
        _fake_run(stdout="a.jpg\t1\t/b/a.jpg\nbad\n", calls=calls),
    )
    res = scan_remote("nas", "/b", EXTS, RemoteConfig(timeout_s=12))
    assert res.count == 1
    assert res.skipped == 1
    assert res.root == "nas:/b"
    assert calls[0][1]["timeout"] == 12


def test_scan_remote_nonzero_exit_is_fatal(monkeypatch):
    monkeypatch.setattr(
        scan_mod.subprocess,
        "run",
        _fake_run(stdout="a.jpg\t1\t/b/a.jpg\n", stderr="Permission denied", returncode=255),
    )
    with pytest.raises(TransportError) as ei:
        scan_remote("nas", "/b", EXTS)
    assert ei.value.stderr == "Permission denied"
    assert "Permission denied" in str(ei.value)


def test_scan_remote_stderr_is_fatal(monkeypatch):
    monkeypatch.setattr(
        scan_mod.subprocess,
        "run",
        _fake_run(stdout="a.jpg\t1\t/b/a.jpg\n", stderr="find: '/b/x': Permission denied\n"),
    )
    with pytest.raises(TransportError):
        scan_remote("nas", "/b", EXTS)


def test_scan_remote_timeout_is_fatal(monkeypatch):
    def run(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, kwargs["timeout"], stderr=b"slow")

    monkeypatch.setattr(scan_mod.subprocess, "run", run)
    with pytest.raises(TransportError, match="timed out") as ei:
        scan_remote("nas", "/b", EXTS, RemoteConfig(timeout_s=1))
    assert ei.value.stderr == "slow"


def test_scan_remote_missing_ssh_binary(monkeypatch):
    def run(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(scan_mod.subprocess, "run", run)
    with pytest.raises(TransportError, match="ssh not found"):
        scan_remote("nas", "/b", EXTS, RemoteConfig(ssh_bin="no-such-ssh"))


def test_scan_remote_skips_line_that_is_not_utf8(monkeypatch):
    monkeypatch.setattr(
        scan_mod.subprocess,
        "run",
        _fake_run(stdout=b"a.jpg\t1\t/b/a.jpg\nf\xe9te.jpg\t2\t/b/f\xe9te.jpg\n"),
    )
    res = scan_remote("nas", "/b", EXTS)
    assert [c.filename for c in res.candidates] == ["a.jpg"]
    assert res.count == 1
    assert res.skipped == 1
    assert isinstance(res.errors[0], ParseError)
    assert res.errors[0].lineno == 2
    assert res.errors[0].reason == "line is not valid UTF-8"


def test_scan_remote_stderr_not_utf8_still_reported(monkeypatch):
    monkeypatch.setattr(
        scan_mod.subprocess,
        "run",
        _fake_run(stderr=b"find: '/b/f\xe9te': Permission denied", returncode=1),
    )
    with pytest.raises(TransportError) as ei:
        scan_remote("nas", "/b", EXTS)
    assert "Permission denied" in ei.value.stderr


@pytest.mark.skipif(sys.platform != "linux", reason="needs arbitrary byte file names")
def test_undecodable_local_name_is_skipped(tmp_path):
    (tmp_path / "ok.jpg").write_bytes(b"ok")
    with open(os.path.join(os.fsencode(tmp_path), b"f\xe9te.jpg"), "wb") as f:
        f.write(b"x")

    res = scan_local(tmp_path, EXTS)
    assert [c.filename for c in res.candidates] == ["ok.jpg"]
    assert res.skipped == 1
    assert isinstance(res.errors[0], TraversalError)
    assert res.errors[0].reason == "undecodable file name"
    assert res.errors[0].path.endswith("f\\xe9te.jpg")


@pytest.mark.skipif(
    not hasattr(os, "geteuid") or os.geteuid() == 0,
    reason="permission bits are not enforced for root",
)
def test_unreadable_subdirectory_is_counted_not_fatal(tmp_path):
    (tmp_path / "good.jpg").write_bytes(b"abc")
    locked = tmp_path / "locked"
    locked.mkdir()
    (locked / "hidden.jpg").write_bytes(b"x")
    locked.chmod(0)
    try:
        res = scan_local(tmp_path, EXTS)
    finally:
        locked.chmod(0o755)

    assert [c.filename for c in res.candidates] == ["good.jpg"]
    assert res.skipped == 1
    assert isinstance(res.errors[0], TraversalError)
    assert res.errors[0].path == str(locked)
