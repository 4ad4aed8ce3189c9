"""Tests for reading Cartfile.resolved."""

import pytest

from carttool import (
    CartfileEntry,
    ConfigurationError,
    parse_cartfile,
    read_cartfile,
)

CARTFILE_RESOLVED = """\
github "utahiosmac/Marshal" "7a814e26312d5e7f1209168ca1a7860dcc12cf5f"
github "pluralsight/PSOperations" "785cf88eb3b6fcce4c2d7ecdb231067b8c832baf"
github "antitypical/Result" "d7f10e2b1745d189434d262072fac764c3021ba8"
git "http://stash01.test.com/scm/mif/acextensionkit.git" "e68966e063d84a70044f2945f9d05af1909e5797"
git "http://stash/scm/mntv/native-tree-viewer.git" "1.5.2"
git "http://stash01.test.com/scm/mif/acrestkit.git" "ed6f61fa144d3e2291b700227f7af1a58293a2f7"
git "http://stash01.test.com/scm/mif/treekit.git" "4fcb19deba5c5379086dc4f5c8a8c8d5164c46ad"
git "http://stash01.test.com/scm/mif/acapikit.git" "f2625df41ff4b0f33d9d21e3ba412cf6b84d204d"
"""


def test_git_line():
    line = 'git "ssh://git@stash.test.com:7999/migf/apicore.git" "1.1.0"'
    entry = CartfileEntry.from_line(line)

    assert entry is not None
    assert entry.type == "git"
    assert entry.repo_name == "apicore"
    assert entry.remote_url == "ssh://git@stash.test.com:7999/migf/apicore.git"
    assert entry.tag == "1.1.0"


def test_resolved_file():
    entries = parse_cartfile(CARTFILE_RESOLVED)

    assert len(entries) == 8
    assert entries[1].repo_name == "PSOperations"
    assert entries[1].type == "github"
    assert entries[7].type == "git"
    assert entries[4].repo_name == "native-tree-viewer"
    assert entries[6].repo_name == "treekit"
    assert entries[2].repo_name == "Result"
    assert entries[0].remote_url == "https://github.com/utahiosmac/Marshal.git"


def test_github_enterprise_url_kept():
    entry = CartfileEntry.from_line(
        'github "https://ghe.example.com/mobile/Kit" "2.0.0"'
    )
    assert entry.remote_url == "https://ghe.example.com/mobile/Kit"
    assert entry.repo_name == "Kit"


@pytest.mark.parametrize(
    "line",
    [
        "",
        "# comment",
        'binary "https://example.com/Foo.json" "1.0"',
        'github "owner/repo"',
        'github "owner/repo" "1.0" extra',
    ],
)
def test_unrecognised_lines_skipped(line):
    assert CartfileEntry.from_line(line) is None


def test_read_cartfile_default_location(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "Cartfile.resolved").write_text(CARTFILE_RESOLVED)

    assert len(read_cartfile()) == 8


def test_read_cartfile_missing(tmp_path):
    with pytest.raises(ConfigurationError):
        read_cartfile(tmp_path / "Cartfile.resolved")
