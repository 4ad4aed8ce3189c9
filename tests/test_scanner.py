"""Tests for parsing `otool -L` output and scanning binaries."""

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from carttool import (
    FrameworkResolver,
    dependency_name,
    parse_dependency_line,
    parse_dependency_output,
)

from conftest import otool_output

FOO_LINE = (
    "\t@rpath/Foo.framework/Foo "
    "(compatibility version 1.0.0, current version 1.0.0)"
)


class TestParseDependencyLine:
    def test_rpath_framework_line(self):
        reference = parse_dependency_line(FOO_LINE)
        assert reference == "Foo.framework/Foo"
        assert dependency_name(reference) == "Foo.framework"

    def test_absolute_system_path_ignored(self):
        line = (
            "\t/usr/lib/libSystem.B.dylib "
            "(compatibility version 1.0.0, current version 1252.250.1)"
        )
        assert parse_dependency_line(line) is None

    def test_system_framework_ignored(self):
        line = (
            "\t/System/Library/Frameworks/UIKit.framework/UIKit "
            "(compatibility version 1.0.0, current version 61000.0.0)"
        )
        assert parse_dependency_line(line) is None

    def test_swift_runtime_ignored_even_with_marker(self):
        line = (
            "\t@rpath/libswiftCore.dylib "
            "(compatibility version 1.0.0, current version 1000.11.42)"
        )
        assert parse_dependency_line(line) is None

    def test_custom_runtime_marker(self):
        line = "\t@rpath/libswiftCore.dylib (compatibility version 1.0.0)"
        assert parse_dependency_line(line, runtime_marker="libkotlin") == (
            "libswiftCore.dylib"
        )

    def test_line_without_annotation(self):
        assert parse_dependency_line("  @rpath/libbar.dylib  ") == "libbar.dylib"

    def test_header_line_ignored(self):
        assert parse_dependency_line("/path/to/TestApp:") is None

    def test_bare_marker_ignored(self):
        assert parse_dependency_line("\t@rpath/ (compatibility version 1)") is None


class TestParseDependencyOutput:
    def test_full_output(self):
        output = otool_output(
            Path("/build/TestApp"),
            ["Foo.framework/Foo", "Bar.framework/Bar", "libbaz.dylib"],
        )
        assert parse_dependency_output(output) == {
            "Foo.framework/Foo",
            "Bar.framework/Bar",
            "libbaz.dylib",
        }

    def test_duplicates_collapse(self):
        output = "\n".join([FOO_LINE, FOO_LINE, ""])
        assert parse_dependency_output(output) == {"Foo.framework/Foo"}

    def test_empty_output(self):
        assert parse_dependency_output("") == frozenset()


class TestDependencyName:
    @pytest.mark.parametrize(
        "reference, name",
        [
            ("Foo.framework/Foo", "Foo.framework"),
            ("Foo.framework/Versions/A/Foo", "Foo.framework"),
            ("libbar.dylib", "libbar.dylib"),
        ],
    )
    def test_top_level_component(self, reference, name):
        assert dependency_name(reference) == name


class TestScan:
    def test_scan_invokes_tool_with_absolute_path(self, fake_otool, tmp_path):
        fake = fake_otool({"TestApp": ["Foo.framework/Foo"]})
        binary = tmp_path / "TestApp"

        assert FrameworkResolver().scan(binary) == {"Foo.framework/Foo"}
        assert fake.calls == [["otool", "-L", str(binary.absolute())]]

    def test_scan_tool_with_arguments(self, fake_otool, tmp_path):
        fake = fake_otool({})
        FrameworkResolver(scan_tool="xcrun otool").scan(tmp_path / "TestApp")
        assert fake.calls[0][:3] == ["xcrun", "otool", "-L"]

    def test_scan_failure_is_empty_and_logged(
        self, fake_otool, tmp_path, caplog
    ):
        fake_otool({"TestApp": ["Foo.framework/Foo"]}, failing={"TestApp"})
        result = FrameworkResolver().scan(tmp_path / "TestApp")

        assert result == frozenset()
        assert "Failed to get dependency listing" in caplog.text

    def test_missing_tool_is_scan_failure(self, tmp_path):
        resolver = FrameworkResolver(scan_tool="no-such-otool-binary")
        assert resolver.scan(tmp_path / "TestApp") == frozenset()

    def test_non_zero_exit_is_scan_failure(self, tmp_path):
        error = subprocess.CalledProcessError(1, ["otool"], "", "bad file")
        with patch("subprocess.run", side_effect=error):
            assert FrameworkResolver().scan(tmp_path / "x") == frozenset()
