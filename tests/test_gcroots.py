"""Tests for GC root bookkeeping."""

import os
from unittest.mock import patch

import pytest

from nixdeploy.core.exceptions import FilesystemError
from nixdeploy.core.models import ExecutionMode
from nixdeploy.deploy.gcroots import GcRootManager


def test_record_creates_root(tmp_path):
    manager = GcRootManager(tmp_path / "state")
    manager.record_root("web1", "/nix/store/abc-web1", ExecutionMode.APPLY)

    link = tmp_path / "state" / "gcroots" / "switch-to-configuration-web1"
    assert link.is_symlink()
    assert os.readlink(link) == "/nix/store/abc-web1"
    assert manager.current_root("web1") == "/nix/store/abc-web1"


def test_record_overwrites_previous_root(tmp_path):
    manager = GcRootManager(tmp_path)
    manager.record_root("web1", "/nix/store/old-web1", ExecutionMode.APPLY)
    manager.record_root("web1", "/nix/store/new-web1", ExecutionMode.APPLY)

    assert manager.current_root("web1") == "/nix/store/new-web1"
    # No temporary links left behind
    assert os.listdir(tmp_path / "gcroots") == ["switch-to-configuration-web1"]


def test_roots_are_per_host(tmp_path):
    manager = GcRootManager(tmp_path)
    manager.record_root("web1", "/nix/store/a", ExecutionMode.APPLY)
    manager.record_root("db1", "/nix/store/b", ExecutionMode.APPLY)
    assert manager.current_root("web1") == "/nix/store/a"
    assert manager.current_root("db1") == "/nix/store/b"


def test_simulate_leaves_root_unchanged(tmp_path):
    manager = GcRootManager(tmp_path)
    manager.record_root("web1", "/nix/store/old-web1", ExecutionMode.APPLY)
    manager.record_root("web1", "/nix/store/new-web1", ExecutionMode.SIMULATE)
    assert manager.current_root("web1") == "/nix/store/old-web1"


def test_simulate_without_previous_root(tmp_path):
    manager = GcRootManager(tmp_path)
    manager.record_root("web1", "/nix/store/new-web1", ExecutionMode.SIMULATE)
    assert (tmp_path / "gcroots").is_dir()
    assert manager.current_root("web1") is None


def test_replace_failure_keeps_old_root(tmp_path):
    manager = GcRootManager(tmp_path)
    manager.record_root("web1", "/nix/store/old-web1", ExecutionMode.APPLY)

    with patch("nixdeploy.deploy.gcroots.os.replace", side_effect=OSError("read-only file system")):
        with pytest.raises(FilesystemError, match="read-only"):
            manager.record_root("web1", "/nix/store/new-web1", ExecutionMode.APPLY)

    assert manager.current_root("web1") == "/nix/store/old-web1"
    assert os.listdir(tmp_path / "gcroots") == ["switch-to-configuration-web1"]


def test_unwritable_state_dir(tmp_path):
    blocker = tmp_path / "state"
    blocker.write_text("not a directory")
    with pytest.raises(FilesystemError):
        GcRootManager(blocker).record_root("web1", "/nix/store/a", ExecutionMode.APPLY)
