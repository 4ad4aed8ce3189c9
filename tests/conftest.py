"""Shared fixtures: a fake `otool -L` and Carthage-style framework trees."""

from pathlib import Path

import pytest

from carttool import CommandError, FrameworkResolver

# The dependency graph of the sample app, keyed by binary name
TEST_APP_GRAPH = {
    "TestApp": [
        "SwiftBits.framework/SwiftBits",
        "FBSDKLoginKit.framework/FBSDKLoginKit",
    ],
    "FBSDKLoginKit": [
        "FBSDKCoreKit.framework/FBSDKCoreKit",
        "Bolts.framework/Bolts",
    ],
    "FBSDKCoreKit": ["Bolts.framework/Bolts"],
}

TEST_APP_FRAMEWORKS = [
    "SwiftBits.framework",
    "FBSDKLoginKit.framework",
    "FBSDKCoreKit.framework",
    "Bolts.framework",
]


def otool_output(binary: Path, references: list[str]) -> str:
    """Render `otool -L` output for a binary with the given rpath references."""
    lines = [f"{binary}:"]
    for reference in references:
        lines.append(
            f"\t@rpath/{reference} "
            "(compatibility version 1.0.0, current version 1.0.0)"
        )
    lines.append(
        "\t/usr/lib/libSystem.B.dylib "
        "(compatibility version 1.0.0, current version 1252.250.1)"
    )
    lines.append(
        "\t@rpath/libswiftCore.dylib "
        "(compatibility version 1.0.0, current version 1000.11.42)"
    )
    return "\n".join(lines) + "\n"


class FakeOtool:
    """Stands in for FrameworkResolver.run_command, keyed by binary name."""

    def __init__(self, graph, failing=()):
        self.graph = graph
        self.failing = set(failing)
        self.calls: list[list[str]] = []

    def __call__(self, command: list[str]) -> str:
        self.calls.append(command)
        binary = Path(command[-1])
        if binary.name in self.failing:
            raise CommandError(" ".join(command), 1, "not an object file")
        return otool_output(binary, self.graph.get(binary.name, []))

    @property
    def scanned(self) -> list[str]:
        return [Path(c[-1]).name for c in self.calls]


def make_frameworks(directory: Path, names: list[str]) -> list[Path]:
    """Create `<name>.framework/<name>` binaries under directory."""
    created = []
    for name in names:
        framework = directory / name
        framework.mkdir(parents=True, exist_ok=True)
        binary = framework / name.split(".")[0]
        binary.write_bytes(b"\xcf\xfa\xed\xfe")
        created.append(framework)
    return created


@pytest.fixture
def fake_otool(monkeypatch):
    """Install a FakeOtool for a graph; returns the installed fake."""

    def install(graph, failing=()):
        fake = FakeOtool(graph, failing)
        monkeypatch.setattr(FrameworkResolver, "run_command", fake)
        return fake

    return install


@pytest.fixture
def carthage_build(tmp_path):
    """Carthage/Build/iOS holding the sample app's four frameworks."""
    build = tmp_path / "Carthage" / "Build" / "iOS"
    make_frameworks(build, TEST_APP_FRAMEWORKS)
    return build


@pytest.fixture
def app_executable(tmp_path):
    """build/TestApp.app/TestApp"""
    bundle = tmp_path / "build" / "TestApp.app"
    bundle.mkdir(parents=True)
    executable = bundle / "TestApp"
    executable.write_bytes(b"\xcf\xfa\xed\xfe")
    executable.chmod(0o755)
    return executable
