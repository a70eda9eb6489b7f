"""Tests for the machine identity check."""

import pytest

from conftest import MACHINE_ID
from nixdeploy.core.exceptions import IdentityMismatch, IdentityReadError
from nixdeploy.deploy.safety import check_identity, read_machine_id


def test_absent_expectation_always_passes(tmp_path):
    # The identity file is not even read
    check_identity(None, tmp_path / "does-not-exist")


def test_matching_identity(machine_id_file):
    check_identity(MACHINE_ID, machine_id_file)


def test_trailing_newline_is_stripped(machine_id_file):
    assert read_machine_id(machine_id_file) == MACHINE_ID


def test_mismatch_carries_both_values(machine_id_file):
    with pytest.raises(IdentityMismatch) as exc_info:
        check_identity("ffffffffffffffffffffffffffffffff", machine_id_file)
    assert exc_info.value.expected == "ffffffffffffffffffffffffffffffff"
    assert exc_info.value.actual == MACHINE_ID


def test_unreadable_identity_is_an_error(tmp_path):
    with pytest.raises(IdentityReadError) as exc_info:
        check_identity(MACHINE_ID, tmp_path / "missing")
    assert exc_info.value.path == str(tmp_path / "missing")
