"""Tests for the build directory naming scheme."""

import pytest

from prpreview_store.models import build_dir_name, is_valid_pr, is_valid_sha, parse_build_dir_name


def test_name_round_trip():
    assert build_dir_name(42, "abc123") == "pr42-abc123"
    assert parse_build_dir_name("pr42-abc123") == (42, "abc123")


@pytest.mark.parametrize(
    "name",
    [".incoming-pr42-abc-1", ".trash-pr42-abc-1", "pr-abc", "prx-abc", "pr42-", "pr42-abc123\n", "README"],
)
def test_non_build_names(name):
    assert parse_build_dir_name(name) is None


@pytest.mark.parametrize("pr, valid", [(1, True), (42, True), (0, False), (-3, False), (True, False), ("42", False)])
def test_is_valid_pr(pr, valid):
    assert is_valid_pr(pr) is valid


@pytest.mark.parametrize(
    "sha, valid",
    [("abc123", True), ("ABC", True), ("", False), ("a/b", False), ("abc123\n", False), (None, False)],
)
def test_is_valid_sha(sha, valid):
    assert is_valid_sha(sha) is valid
