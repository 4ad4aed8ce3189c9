#!/usr/bin/env python3
"""carttool - resolve, stage and verify Carthage framework dependencies.

This module provides tools for:
1. Computing the transitive closure of the dynamic frameworks a compiled
   binary needs, resolving each against FRAMEWORK_SEARCH_PATHS
2. Handing the stale ones to ``carthage copy-frameworks`` from an Xcode
   Run Script build phase
3. Verifying that a built .app bundle embeds every framework its binaries
   (and the frameworks already inside it) require
4. Listing the entries of a Cartfile.resolved

Usage (CLI, as an Xcode Run Script build phase):
    carttool copy-frameworks
    carttool verify-dependencies

Usage (API):
    from carttool import BundleVerifier, FrameworkResolver

    resolver = FrameworkResolver(search_paths=["Carthage/Build/iOS"])
    closure = resolver.collect_dependencies(["build/MyApp.app/MyApp"])
    print(sorted(closure.names))

    BundleVerifier("build/MyApp.app").verify()
"""

import argparse
import collections
import datetime
import logging
import os
import shlex
import shutil
import subprocess
import sys
import tomllib
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol
from urllib.parse import urlparse

from dotenv import dotenv_values, find_dotenv

# ----------------------------------------------------------------------------
# Constants

__version__ = "1.0.4"

# Type aliases
Pathlike = Path | str

# Marker otool prints for dependencies resolved through LC_RPATH entries
RPATH_MARKER = "@rpath/"

# Substring identifying the Swift runtime's own libraries (never staged)
DEFAULT_RUNTIME_MARKER = "libswift"

# Dependency listing tool, invoked as `<tool> -L <file>`
DEFAULT_SCAN_TOOL = "otool"

# Staging command run with the SCRIPT_INPUT_FILE_*/SCRIPT_OUTPUT_FILE_* env
DEFAULT_STAGING_COMMAND = "carthage copy-frameworks"

# Return code reported for a command that could not be started (as sh does)
COMMAND_NOT_STARTED = 127

# Placeholder used while splitting escaped-space path lists
ESCAPED_SPACE_PLACEHOLDER = "_escaped_space_placeholder_"

# Staged item suffixes recognised inside a bundle's frameworks directory
FRAMEWORK_EXT = ".framework"
STAGED_SUFFIXES = (FRAMEWORK_EXT, ".dylib")

# Default bundle layout
DEFAULT_BUNDLE_EXT = ".app"
DEFAULT_FRAMEWORKS_DIR = "Frameworks"

# Lock manifest written by `carthage update`
CARTFILE_RESOLVED = "Cartfile.resolved"

# Xcode build setting environment variable names
ENV_FRAMEWORK_SEARCH_PATHS = "FRAMEWORK_SEARCH_PATHS"
ENV_BUILT_PRODUCTS_DIR = "BUILT_PRODUCTS_DIR"
ENV_FRAMEWORKS_FOLDER_PATH = "FRAMEWORKS_FOLDER_PATH"
ENV_EXECUTABLE_NAME = "EXECUTABLE_NAME"

# Staging command environment keys
SCRIPT_INPUT_FILE = "SCRIPT_INPUT_FILE_{}"
SCRIPT_OUTPUT_FILE = "SCRIPT_OUTPUT_FILE_{}"
SCRIPT_INPUT_FILE_COUNT = "SCRIPT_INPUT_FILE_COUNT"
SCRIPT_OUTPUT_FILE_COUNT = "SCRIPT_OUTPUT_FILE_COUNT"

# ----------------------------------------------------------------------------
# Error handling


class CartToolError(Exception):
    """Base exception class for carttool errors."""


class ConfigurationError(CartToolError):
    """Exception raised when a required setting is missing or unusable."""

    def __init__(self, message: str, variable: str | None = None):
        self.variable = variable
        super().__init__(message)


class ResolutionError(CartToolError):
    """Exception raised when a dependency is not in any search path."""

    def __init__(self, name: str, search_paths: Iterable[Pathlike] = ()):
        self.name = name
        self.search_paths = [Path(p) for p in search_paths]
        super().__init__(
            f"Unable to find {name} in {ENV_FRAMEWORK_SEARCH_PATHS}"
        )


class ScanError(CartToolError):
    """Exception raised when a binary's dependencies cannot be listed."""

    def __init__(self, path: Pathlike, returncode: int | None = None):
        self.path = Path(path)
        self.returncode = returncode
        super().__init__(f"Failed to get dependency listing from {path}")


class VerificationError(CartToolError):
    """Exception raised when a bundle is missing required frameworks."""

    def __init__(self, missing: Iterable[str]):
        self.missing = sorted(missing)
        super().__init__(
            "Missing required frameworks: " + ", ".join(self.missing)
        )


class CommandError(CartToolError):
    """Exception raised when a command fails."""

    def __init__(
        self, command: str, returncode: int, output: str | None = None
    ):
        self.command = command
        self.returncode = returncode
        self.output = output
        super().__init__(
            f"Command '{command}' failed with return code {returncode}"
        )


class ToolNotFoundError(CartToolError):
    """Exception raised when a required executable is not installed."""

    def __init__(self, tool: str):
        self.tool = tool
        super().__init__(f"{tool} executable not found")


# ----------------------------------------------------------------------------
# Configuration


def load_config(config_path: Path | None = None) -> dict[str, object]:
    """Load tool defaults from a TOML file.

    Searches for configuration in the following order:
    1. Explicit config_path if provided
    2. .carttool.toml in current directory
    3. carttool.toml in current directory

    Args:
        config_path: Optional explicit path to config file

    Returns:
        Configuration dictionary (empty if no config found)

    Example .carttool.toml:
        [scan]
        tool = "xcrun otool"
        runtime_marker = "libswift"

        [copy-frameworks]
        command = "carthage copy-frameworks"
    """
    log = logging.getLogger("carttool")

    if config_path and config_path.exists():
        paths_to_try = [config_path]
    else:
        cwd = Path.cwd()
        paths_to_try = [
            cwd / ".carttool.toml",
            cwd / "carttool.toml",
        ]

    for path in paths_to_try:
        if path.exists():
            try:
                with open(path, "rb") as f:
                    data: dict[str, object] = tomllib.load(f)
                return data
            except (OSError, tomllib.TOMLDecodeError) as e:
                log.warning("ignoring unreadable config %s: %s", path, e)
                continue

    return {}


def get_config_value(
    config: Mapping[str, object],
    section: str,
    key: str,
    default: str | None = None,
) -> str | None:
    """Get a value from config with section.key lookup.

    Args:
        config: Configuration dictionary
        section: Section name (e.g., "scan", "copy-frameworks")
        key: Key name within section
        default: Default value if not found

    Returns:
        Configuration value or default
    """
    section_config = config.get(section, {})
    if not isinstance(section_config, dict):
        return default
    value = section_config.get(key, default)
    if value is None or isinstance(value, str):
        return value
    return default


def load_environment(dotenv_path: Pathlike | None = None) -> dict[str, str]:
    """Return the process environment overlaid on a .env file, if any.

    Values already present in the process environment win. Nothing is
    written back to ``os.environ``.
    """
    path = dotenv_path or find_dotenv(usecwd=True)
    values = {
        key: value
        for key, value in dotenv_values(path).items()
        if value is not None
    }
    values.update(os.environ)
    return values


def _get_env(environ: Mapping[str, str], key: str) -> str:
    value = environ.get(key)
    if value is None:
        raise ConfigurationError(
            f"Missing {key} environment variable", variable=key
        )
    return value


@dataclass(frozen=True)
class BuildSettings:
    """The Xcode build settings the engine needs, read once per run.

    Args:
        search_paths: Ordered framework search directories
        built_products_dir: Build output root (BUILT_PRODUCTS_DIR)
        frameworks_folder_path: Staging directory relative to the build
            output root (FRAMEWORKS_FOLDER_PATH)
        executable_name: The app's main executable name (EXECUTABLE_NAME)
    """

    search_paths: tuple[Path, ...] = ()
    built_products_dir: Path | None = None
    frameworks_folder_path: str | None = None
    executable_name: str | None = None

    @classmethod
    def from_environ(
        cls,
        environ: Mapping[str, str],
        require: Iterable[str] = (
            ENV_FRAMEWORK_SEARCH_PATHS,
            ENV_BUILT_PRODUCTS_DIR,
            ENV_FRAMEWORKS_FOLDER_PATH,
            ENV_EXECUTABLE_NAME,
        ),
    ) -> "BuildSettings":
        """Build settings from an environment mapping.

        Raises:
            ConfigurationError: If any variable named in ``require`` is
                missing
        """
        for key in require:
            _get_env(environ, key)

        search_paths = environ.get(ENV_FRAMEWORK_SEARCH_PATHS)
        built_products_dir = environ.get(ENV_BUILT_PRODUCTS_DIR)
        return cls(
            search_paths=tuple(
                Path(p) for p in split_search_paths(search_paths or "")
            ),
            built_products_dir=(
                Path(built_products_dir) if built_products_dir else None
            ),
            frameworks_folder_path=environ.get(ENV_FRAMEWORKS_FOLDER_PATH),
            executable_name=environ.get(ENV_EXECUTABLE_NAME),
        )

    def _products_dir(self) -> Path:
        if self.built_products_dir is None:
            raise ConfigurationError(
                f"Missing {ENV_BUILT_PRODUCTS_DIR} environment variable",
                variable=ENV_BUILT_PRODUCTS_DIR,
            )
        return self.built_products_dir

    def _executable_name(self) -> str:
        if self.executable_name is None:
            raise ConfigurationError(
                f"Missing {ENV_EXECUTABLE_NAME} environment variable",
                variable=ENV_EXECUTABLE_NAME,
            )
        return self.executable_name

    @property
    def app_bundle(self) -> Path:
        """<BUILT_PRODUCTS_DIR>/<EXECUTABLE_NAME>.app"""
        return self._products_dir() / (
            self._executable_name() + DEFAULT_BUNDLE_EXT
        )

    @property
    def app_executable(self) -> Path:
        return self.app_bundle / self._executable_name()

    @property
    def frameworks_dir(self) -> Path:
        """<BUILT_PRODUCTS_DIR>/<FRAMEWORKS_FOLDER_PATH>"""
        if self.frameworks_folder_path is None:
            raise ConfigurationError(
                f"Missing {ENV_FRAMEWORKS_FOLDER_PATH} environment variable",
                variable=ENV_FRAMEWORKS_FOLDER_PATH,
            )
        return self._products_dir() / self.frameworks_folder_path


# ----------------------------------------------------------------------------
# Logging configuration


class CustomFormatter(logging.Formatter):
    """Custom logging formatting class with color support."""

    class color:
        """Text colors for terminal output."""

        white = "\x1b[97;20m"
        grey = "\x1b[38;20m"
        green = "\x1b[32;20m"
        yellow = "\x1b[33;20m"
        red = "\x1b[31;20m"
        bold_red = "\x1b[31;1m"
        reset = "\x1b[0m"

    cfmt = (
        f"{color.white}%(delta)s{color.reset} - "
        f"{{}}%(levelname)s{color.reset} - "
        f"{color.white}%(name)s.%(funcName)s{color.reset} - "
        f"{color.grey}%(message)s{color.reset}"
    )

    FORMATS = {
        logging.DEBUG: cfmt.format(color.grey),
        logging.INFO: cfmt.format(color.green),
        logging.WARNING: cfmt.format(color.yellow),
        logging.ERROR: cfmt.format(color.red),
        logging.CRITICAL: cfmt.format(color.bold_red),
    }

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color
        self.fmt = (
            "%(delta)s - %(levelname)s - %(name)s.%(funcName)s - %(message)s"
        )

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record with color if enabled."""
        if not self.use_color:
            log_fmt = self.fmt
        else:
            log_fmt = self.FORMATS[record.levelno]
        duration = datetime.datetime.fromtimestamp(
            record.relativeCreated / 1000, datetime.timezone.utc
        )
        record.delta = duration.strftime("%H:%M:%S")
        formatter = logging.Formatter(log_fmt)
        return formatter.format(record)


def setup_logging(debug: bool = False, use_color: bool = True) -> None:
    """Configure logging for the application.

    Args:
        debug: Whether to enable debug logging
        use_color: Whether to use colored output
    """
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(CustomFormatter(use_color))
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        handlers=[stream_handler],
        force=True,
    )


# ----------------------------------------------------------------------------
# Command execution utilities


def run_command(
    command: list[str],
    env: Mapping[str, str] | None = None,
    log: logging.Logger | None = None,
) -> str:
    """Run a command and return its output.

    Uses shell=False; ``env`` replaces the child's environment when given.

    Args:
        command: The command as a list of arguments
        env: Optional complete environment for the child process
        log: Optional logger for debug output

    Returns:
        The command stdout output

    Raises:
        CommandError: If the command exits non-zero or cannot be started
    """
    cmd_str = " ".join(command)
    if log:
        log.debug("%s", cmd_str)
    try:
        result = subprocess.run(
            command,
            shell=False,
            check=True,
            encoding="utf-8",
            capture_output=True,
            env=dict(env) if env is not None else None,
        )
        return result.stdout
    except subprocess.CalledProcessError as e:
        raise CommandError(cmd_str, e.returncode, e.stderr or e.output) from e
    except OSError as e:
        raise CommandError(cmd_str, COMMAND_NOT_STARTED, str(e)) from e


def require_tool(tool: str) -> str:
    """Return the full path of ``tool`` on PATH.

    Raises:
        ToolNotFoundError: If the executable is not installed
    """
    found = shutil.which(tool)
    if found is None:
        raise ToolNotFoundError(tool)
    return found


# ----------------------------------------------------------------------------
# Dependency listing and search paths


def parse_dependency_line(
    line: str, runtime_marker: str = DEFAULT_RUNTIME_MARKER
) -> str | None:
    """Extract the rpath-relative reference from one line of `otool -L`.

    Returns None for lines that are not ``@rpath/`` references or that
    name one of the Swift runtime's own libraries.

    Example:
        >>> parse_dependency_line(
        ...     "\\t@rpath/Foo.framework/Foo (compatibility version 1.0.0)")
        'Foo.framework/Foo'
    """
    path = line.split("(", 1)[0].strip()
    if not path.startswith(RPATH_MARKER):
        return None
    if runtime_marker and runtime_marker in path:
        return None
    reference = path[len(RPATH_MARKER) :]
    return reference or None


def parse_dependency_output(
    output: str, runtime_marker: str = DEFAULT_RUNTIME_MARKER
) -> frozenset[str]:
    """Parse full `otool -L` output into a set of rpath-relative references."""
    references = set()
    for line in output.splitlines():
        if not line.strip():
            continue
        reference = parse_dependency_line(line, runtime_marker)
        if reference:
            references.add(reference)
    return frozenset(references)


def dependency_name(reference: str) -> str:
    """Top-level name of a reference: 'Foo.framework/Foo' -> 'Foo.framework'."""
    return reference.split("/", 1)[0]


def bare_name(name: str) -> str:
    """Name without its packaging suffix: 'Foo.framework' -> 'Foo'."""
    return name.split(".", 1)[0]


def framework_reference(name: str) -> str:
    """Reference to the binary inside a declared framework.

    'Foo.framework' -> 'Foo.framework/Foo'; other names are returned as is.
    """
    if name.endswith(FRAMEWORK_EXT):
        return f"{name}/{name[: -len(FRAMEWORK_EXT)]}"
    return name


def bundle_root(path: Pathlike, reference: str) -> Path:
    """Strip the inner executable from a resolved reference path.

    ``/build/Foo.framework/Foo`` resolved from ``Foo.framework/Foo`` becomes
    ``/build/Foo.framework``; single component references are unchanged.
    """
    path = Path(path)
    for _ in Path(reference).parts[1:]:
        path = path.parent
    return path


def split_search_paths(value: str) -> list[str]:
    """Split a space-delimited path list, honouring backslash-escaped spaces.

    This is how Xcode escapes spaces inside FRAMEWORK_SEARCH_PATHS entries.

    Example:
        >>> split_search_paths("/a/b /c/d\\\\ e/f")
        ['/a/b', '/c/d e/f']
    """
    tmp = value.replace("\\ ", ESCAPED_SPACE_PLACEHOLDER)
    return [
        segment.replace(ESCAPED_SPACE_PLACEHOLDER, " ")
        for segment in tmp.split(" ")
        if segment
    ]


# ----------------------------------------------------------------------------
# Dependency resolution


@dataclass(frozen=True)
class DependencyClosure:
    """Every reference reachable from a set of root binaries.

    ``resolved`` maps each rpath-relative reference to the file it resolved
    to, or None when it could not be found (non-strict collection only).
    """

    roots: tuple[Path, ...]
    resolved: Mapping[str, Path | None] = field(default_factory=dict)

    @property
    def references(self) -> frozenset[str]:
        return frozenset(self.resolved)

    @property
    def names(self) -> frozenset[str]:
        return frozenset(dependency_name(r) for r in self.resolved)

    @property
    def paths(self) -> frozenset[Path]:
        return frozenset(p for p in self.resolved.values() if p is not None)

    @property
    def unresolved(self) -> frozenset[str]:
        return frozenset(r for r, p in self.resolved.items() if p is None)

    @property
    def bundle_paths(self) -> frozenset[Path]:
        """Resolved paths stripped to the unit that gets staged."""
        return frozenset(
            bundle_root(p, r) for r, p in self.resolved.items() if p is not None
        )


class FrameworkResolver:
    """Lists, resolves and expands dynamic framework dependencies.

    Args:
        search_paths: Ordered directories searched for each reference
        scan_tool: Dependency listing tool, run as ``<tool> -L <file>``
        runtime_marker: Substring marking runtime libraries to ignore

    Example:
        resolver = FrameworkResolver(search_paths=["Carthage/Build/iOS"])
        closure = resolver.collect_dependencies(["build/MyApp.app/MyApp"])
    """

    def __init__(
        self,
        search_paths: Iterable[Pathlike] | None = None,
        scan_tool: str = DEFAULT_SCAN_TOOL,
        runtime_marker: str = DEFAULT_RUNTIME_MARKER,
    ):
        self.search_paths = [Path(p) for p in (search_paths or [])]
        self.scan_tool = shlex.split(scan_tool)
        self.runtime_marker = runtime_marker
        self.log = logging.getLogger(self.__class__.__name__)

    def run_command(self, command: list[str]) -> str:
        """Run a command and return its output.

        Raises:
            CommandError: If the command fails
        """
        return run_command(command, log=self.log)

    def _list_dependencies(self, binary: Path) -> str:
        command = self.scan_tool + ["-L", str(binary.absolute())]
        try:
            return self.run_command(command)
        except CommandError as e:
            raise ScanError(binary, e.returncode) from e
        except (OSError, UnicodeDecodeError) as e:
            raise ScanError(binary) from e

    def scan(self, binary: Pathlike) -> frozenset[str]:
        """Direct rpath-relative dependencies of one binary.

        A failed listing is logged and reported as no dependencies.
        """
        binary = Path(binary)
        try:
            output = self._list_dependencies(binary)
        except ScanError as e:
            self.log.warning("%s", e)
            return frozenset()
        references = parse_dependency_output(output, self.runtime_marker)
        self.log.debug("%s -> %s", binary, sorted(references))
        return references

    def find(self, reference: str) -> Path | None:
        """First ``search_path / reference`` that exists, or None."""
        for search_path in self.search_paths:
            candidate = search_path / reference
            if candidate.exists():
                return candidate.absolute()
        return None

    def resolve(self, reference: str) -> Path:
        """Resolve a reference against the search paths, in order.

        Raises:
            ResolutionError: If no search path contains the reference
        """
        path = self.find(reference)
        if path is None:
            raise ResolutionError(reference, self.search_paths)
        return path

    def collect_dependencies(
        self,
        roots: Iterable[Pathlike],
        extra_references: Iterable[str] = (),
        strict: bool = True,
    ) -> DependencyClosure:
        """Transitive closure of the dependencies of ``roots``.

        Work items are taken from the front of the queue. A reference that
        resolves to one of the roots is not part of the closure.

        Args:
            roots: Binaries whose dependencies seed the closure
            extra_references: Additional references to seed, e.g. the
                frameworks a target declares
            strict: Raise on unresolvable references; when False they are
                recorded with a None path and not expanded

        Raises:
            ResolutionError: In strict mode, for the first reference that
                cannot be found
        """
        root_paths = tuple(Path(r).absolute() for r in roots)
        # compared after following symlinks and collapsing ".."
        root_files = {root.resolve() for root in root_paths}
        queue: collections.deque[str] = collections.deque()
        for root in root_paths:
            queue.extend(sorted(self.scan(root)))
        queue.extend(extra_references)

        resolved: dict[str, Path | None] = {}
        visited: set[str] = set()
        while queue:
            reference = queue.popleft()
            if reference in visited:
                continue
            visited.add(reference)

            path = self.find(reference)
            if path is None:
                if strict:
                    raise ResolutionError(reference, self.search_paths)
                self.log.debug("unresolved dependency %s", reference)
                resolved[reference] = None
                continue
            if path.resolve() in root_files:
                continue

            resolved[reference] = path
            queue.extend(sorted(self.scan(path) - visited))

        return DependencyClosure(roots=root_paths, resolved=resolved)


# ----------------------------------------------------------------------------
# Staging


def _mtime(path: Path) -> float | None:
    try:
        return path.stat().st_mtime
    except OSError:
        return None


def filter_stale(
    pairs: Iterable[tuple[Path, Path]],
    log: logging.Logger | None = None,
) -> list[tuple[Path, Path]]:
    """Keep the (source, destination) pairs that need to be staged.

    A pair is dropped only when both modification times can be read and the
    source is not newer than the destination.
    """
    log = log or logging.getLogger("carttool")
    stale = []
    for source, destination in pairs:
        source_mtime = _mtime(source)
        destination_mtime = _mtime(destination)
        if (
            source_mtime is not None
            and destination_mtime is not None
            and source_mtime <= destination_mtime
        ):
            log.info(
                "Skipping %s (%s) because it is not newer than %s (%s)",
                source,
                datetime.datetime.fromtimestamp(source_mtime),
                destination,
                datetime.datetime.fromtimestamp(destination_mtime),
            )
            continue
        stale.append((source, destination))
    return stale


@dataclass(frozen=True)
class CopyInstruction:
    """One framework to stage: source bundle and its destination."""

    index: int
    source: Path
    destination: Path


def build_copy_instructions(
    pairs: Iterable[tuple[Path, Path]],
) -> list[CopyInstruction]:
    """Number (source, destination) pairs from 0, in the given order."""
    return [
        CopyInstruction(index, source, destination)
        for index, (source, destination) in enumerate(pairs)
    ]


def staging_environment(
    instructions: Iterable[CopyInstruction],
    base: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Environment for the staging command; ``base`` is copied, not changed."""
    env = dict(base or {})
    count = 0
    for instruction in instructions:
        env[SCRIPT_INPUT_FILE.format(instruction.index)] = str(
            instruction.source
        )
        env[SCRIPT_OUTPUT_FILE.format(instruction.index)] = str(
            instruction.destination
        )
        count += 1
    env[SCRIPT_INPUT_FILE_COUNT] = str(count)
    env[SCRIPT_OUTPUT_FILE_COUNT] = str(count)
    return env


class ProjectModelReader(Protocol):
    """Read-only view of an Xcode project's link phases."""

    def declared_frameworks(self, project: str, target: str) -> list[str]:
        """Framework names (e.g. 'Foo.framework') target links against."""
        ...


class FrameworkCopier:
    """Stages an app's framework closure with `carthage copy-frameworks`.

    Intended to be executed as a Run Script build phase in Xcode: resolves
    every framework the app executable needs (directly or transitively) in
    FRAMEWORK_SEARCH_PATHS, skips those already current in the app's
    frameworks folder and passes the rest to the staging command as
    SCRIPT_INPUT_FILE_n/SCRIPT_OUTPUT_FILE_n pairs.

    Args:
        settings: Build settings for this run
        environ: Base environment handed to the staging command
        staging_command: Command line of the staging tool
        scan_tool: Dependency listing tool
        runtime_marker: Substring marking runtime libraries to ignore
        project_model: Optional reader for frameworks declared by a target
        project: Project passed to ``project_model``
        target: Target passed to ``project_model``
        dry_run: If True, report what would be staged without staging
    """

    def __init__(
        self,
        settings: BuildSettings,
        environ: Mapping[str, str] | None = None,
        staging_command: str = DEFAULT_STAGING_COMMAND,
        scan_tool: str = DEFAULT_SCAN_TOOL,
        runtime_marker: str = DEFAULT_RUNTIME_MARKER,
        project_model: ProjectModelReader | None = None,
        project: str | None = None,
        target: str | None = None,
        dry_run: bool = False,
    ):
        self.settings = settings
        self.environ = dict(environ if environ is not None else os.environ)
        self.staging_command = shlex.split(staging_command)
        self.project_model = project_model
        self.project = project
        self.target = target
        self.dry_run = dry_run
        self.resolver = FrameworkResolver(
            search_paths=settings.search_paths,
            scan_tool=scan_tool,
            runtime_marker=runtime_marker,
        )
        self.log = logging.getLogger(self.__class__.__name__)

        if not self.staging_command:
            raise ConfigurationError("Staging command is empty")

    def declared_references(self) -> list[str]:
        """References for the frameworks the project model declares."""
        if self.project_model is None:
            return []
        if self.project is None or self.target is None:
            raise ConfigurationError(
                "A project and target are required to read declared frameworks"
            )
        names = self.project_model.declared_frameworks(
            self.project, self.target
        )
        return [framework_reference(name) for name in names]

    def resolve_inputs(self) -> list[Path]:
        """Bundle paths of every framework the app needs, sorted."""
        closure = self.resolver.collect_dependencies(
            [self.settings.app_executable],
            extra_references=self.declared_references(),
        )
        inputs = sorted(closure.bundle_paths)
        self.log.info(
            "Resolved frameworks for `%s`:", " ".join(self.staging_command)
        )
        for path in inputs:
            self.log.info("%s", path)
        return inputs

    def instructions(self) -> list[CopyInstruction]:
        """Copy instructions for the frameworks that are out of date."""
        frameworks_dir = self.settings.frameworks_dir
        pairs = [
            (source, frameworks_dir / source.name)
            for source in self.resolve_inputs()
        ]
        return build_copy_instructions(filter_stale(pairs, log=self.log))

    def process(self) -> list[CopyInstruction]:
        """Resolve, filter and stage; returns the instructions acted on.

        Raises:
            ToolNotFoundError: If the staging command is not installed
            ResolutionError: If a dependency is not in any search path
            CommandError: If the staging command fails
        """
        if not self.dry_run:
            require_tool(self.staging_command[0])

        instructions = self.instructions()
        if not instructions:
            self.log.info("All frameworks are up to date")
            return instructions

        if self.dry_run:
            for instruction in instructions:
                self.log.info(
                    "[DRY RUN] Would stage %s to %s",
                    instruction.source,
                    instruction.destination,
                )
            return instructions

        env = staging_environment(instructions, self.environ)
        output = run_command(self.staging_command, env=env, log=self.log)
        if output:
            self.log.info("%s", output.rstrip())
        return instructions


# ----------------------------------------------------------------------------
# Verification


@dataclass(frozen=True)
class VerificationResult:
    """Bare framework names expected in and actually staged in a bundle."""

    expected: frozenset[str]
    actual: frozenset[str]

    @property
    def missing(self) -> frozenset[str]:
        return self.expected - self.actual

    @property
    def ok(self) -> bool:
        return not self.missing


class BundleVerifier:
    """Checks that a built app bundle embeds every framework it needs.

    The expected set is the closure of the main executable together with
    every binary already staged in the frameworks directory, since a staged
    framework can need frameworks the executable does not link directly.

    Args:
        bundle: Path to the .app bundle
        executable_name: Main executable name (default: bundle stem)
        frameworks_dir: Staging directory (default: <bundle>/Frameworks)
        scan_tool: Dependency listing tool
        runtime_marker: Substring marking runtime libraries to ignore

    Example:
        BundleVerifier("build/MyApp.app").verify()
    """

    def __init__(
        self,
        bundle: Pathlike,
        executable_name: str | None = None,
        frameworks_dir: Pathlike | None = None,
        scan_tool: str = DEFAULT_SCAN_TOOL,
        runtime_marker: str = DEFAULT_RUNTIME_MARKER,
    ):
        self.bundle = Path(bundle)
        self.executable = self.bundle / (executable_name or self.bundle.stem)
        self.frameworks_dir = (
            Path(frameworks_dir)
            if frameworks_dir is not None
            else self.bundle / DEFAULT_FRAMEWORKS_DIR
        )
        self.resolver = FrameworkResolver(
            search_paths=[self.frameworks_dir],
            scan_tool=scan_tool,
            runtime_marker=runtime_marker,
        )
        self.log = logging.getLogger(self.__class__.__name__)

    @classmethod
    def from_settings(
        cls, settings: BuildSettings, **kwargs: str
    ) -> "BundleVerifier":
        """Verifier for the app described by Xcode build settings."""
        return cls(
            settings.app_bundle,
            executable_name=settings.executable_name,
            frameworks_dir=settings.frameworks_dir,
            **kwargs,
        )

    def staged_items(self) -> list[Path]:
        """Items in the frameworks directory with a staged suffix.

        Raises:
            ConfigurationError: If the directory cannot be listed
        """
        if not self.frameworks_dir.exists():
            return []
        try:
            entries = sorted(self.frameworks_dir.iterdir())
        except OSError as e:
            raise ConfigurationError(
                f"Cannot list frameworks directory {self.frameworks_dir}: {e}"
            ) from e
        return [p for p in entries if p.name.endswith(STAGED_SUFFIXES)]

    def check(self) -> VerificationResult:
        """Compare expected against staged framework names.

        Raises:
            ConfigurationError: If the bundle has no main executable or its
                frameworks directory cannot be listed
        """
        if not self.executable.is_file():
            raise ConfigurationError(
                f"Bundle executable not found: {self.executable}"
            )
        staged = self.staged_items()
        closure = self.resolver.collect_dependencies(
            [self.executable],
            extra_references=[framework_reference(i.name) for i in staged],
            strict=False,
        )

        expected = frozenset(bare_name(n) for n in closure.names)
        actual = frozenset(bare_name(i.name) for i in staged)
        return VerificationResult(expected=expected, actual=actual)

    def verify(self) -> VerificationResult:
        """Check the bundle and raise if anything is missing.

        Raises:
            VerificationError: Naming every missing framework
        """
        result = self.check()
        if not result.ok:
            raise VerificationError(result.missing)
        self.log.info(
            "Verified %d frameworks in %s", len(result.expected), self.bundle
        )
        return result


# ----------------------------------------------------------------------------
# Cartfile.resolved


@dataclass(frozen=True)
class CartfileEntry:
    """One `<type> "<repo>" "<tag>"` line of a Cartfile.resolved."""

    type: str
    repo: str
    tag: str

    REPO_TYPES = ("git", "github")

    @classmethod
    def from_line(cls, line: str) -> "CartfileEntry | None":
        tokens = line.split()
        if len(tokens) != 3 or tokens[0] not in cls.REPO_TYPES:
            return None
        return cls(
            type=tokens[0],
            repo=tokens[1].strip("\"'"),
            tag=tokens[2].strip("\"'"),
        )

    @property
    def repo_name(self) -> str:
        repo = self.repo
        if repo.endswith(".git"):
            repo = repo[:-4]
        return repo.split("/")[-1]

    @property
    def remote_url(self) -> str:
        if self.type == "git":
            return self.repo
        # GitHub Enterprise entries are full URLs
        if urlparse(self.repo).hostname:
            return self.repo
        return f"https://github.com/{self.repo}.git"


def parse_cartfile(text: str) -> list[CartfileEntry]:
    entries = []
    for line in text.strip().splitlines():
        entry = CartfileEntry.from_line(line)
        if entry is not None:
            entries.append(entry)
    return entries


def read_cartfile(path: Pathlike | None = None) -> list[CartfileEntry]:
    """Parse a Cartfile.resolved (default: in the current directory).

    Raises:
        ConfigurationError: If the file cannot be read
    """
    path = Path(path) if path else Path.cwd() / CARTFILE_RESOLVED
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from e
    return parse_cartfile(text)


# ----------------------------------------------------------------------------
# Command-line interface


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    """Add common options to a parser."""
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="enable verbose/debug logging",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="disable colored output",
    )
    parser.add_argument(
        "--config",
        metavar="FILE",
        help="path to a carttool TOML config file",
    )


def _tool_options(args: argparse.Namespace) -> dict[str, str]:
    config = load_config(Path(args.config) if args.config else None)
    return {
        "scan_tool": get_config_value(config, "scan", "tool", DEFAULT_SCAN_TOOL)
        or DEFAULT_SCAN_TOOL,
        "runtime_marker": get_config_value(
            config, "scan", "runtime_marker", DEFAULT_RUNTIME_MARKER
        )
        or DEFAULT_RUNTIME_MARKER,
        "staging_command": get_config_value(
            config, "copy-frameworks", "command", DEFAULT_STAGING_COMMAND
        )
        or DEFAULT_STAGING_COMMAND,
    }


def _cmd_copy_frameworks(args: argparse.Namespace) -> None:
    """Handle 'copy-frameworks' subcommand."""
    setup_logging(args.verbose, not args.no_color)
    options = _tool_options(args)

    environ = load_environment()
    settings = BuildSettings.from_environ(environ)
    copier = FrameworkCopier(
        settings,
        environ=environ,
        staging_command=options["staging_command"],
        scan_tool=options["scan_tool"],
        runtime_marker=options["runtime_marker"],
        dry_run=args.dry_run,
    )
    copier.process()


def _cmd_verify_dependencies(args: argparse.Namespace) -> None:
    """Handle 'verify-dependencies' subcommand."""
    setup_logging(args.verbose, not args.no_color)
    options = _tool_options(args)

    settings = BuildSettings.from_environ(
        load_environment(),
        require=(
            ENV_BUILT_PRODUCTS_DIR,
            ENV_FRAMEWORKS_FOLDER_PATH,
            ENV_EXECUTABLE_NAME,
        ),
    )
    verifier = BundleVerifier.from_settings(
        settings,
        scan_tool=options["scan_tool"],
        runtime_marker=options["runtime_marker"],
    )
    verifier.verify()


def _cmd_list(args: argparse.Namespace) -> None:
    """Handle 'list' subcommand."""
    setup_logging(args.verbose, not args.no_color)
    for entry in read_cartfile(args.cartfile):
        print(f"{entry.repo_name} {entry.remote_url} {entry.tag}")


def _cmd_version(args: argparse.Namespace) -> None:
    """Handle 'version' subcommand."""
    print(__version__)


def main(argv: list[str] | None = None) -> None:
    """Command line interface for carttool."""
    try:
        parser = argparse.ArgumentParser(
            prog="carttool",
            description="Utility for managing Carthage dependencies.",
            epilog=(
                "Examples (from an Xcode Run Script build phase):\n"
                "  carttool copy-frameworks\n"
                "  carttool verify-dependencies\n"
            ),
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )

        subparsers = parser.add_subparsers(
            title="commands",
            dest="command",
            required=True,
        )

        # --- copy-frameworks subcommand ---
        copy_parser = subparsers.add_parser(
            "copy-frameworks",
            help="stage required frameworks; used as an Xcode Run Script",
            description=(
                "Resolve every framework the app executable needs in "
                "FRAMEWORK_SEARCH_PATHS and pass the out of date ones to "
                "`carthage copy-frameworks`."
            ),
        )
        copy_parser.add_argument(
            "--dry-run",
            action="store_true",
            help="show what would be staged without staging",
        )
        _add_common_options(copy_parser)
        copy_parser.set_defaults(func=_cmd_copy_frameworks)

        # --- verify-dependencies subcommand ---
        verify_parser = subparsers.add_parser(
            "verify-dependencies",
            help="verify all required frameworks are embedded",
            description=(
                "Verify that all required frameworks are properly embedded "
                "in the app. Intended to be used in an Xcode Run Script."
            ),
        )
        _add_common_options(verify_parser)
        verify_parser.set_defaults(func=_cmd_verify_dependencies)

        # --- list subcommand ---
        list_parser = subparsers.add_parser(
            "list",
            help="list dependencies",
            description="List the dependencies in Cartfile.resolved.",
        )
        list_parser.add_argument(
            "cartfile",
            nargs="?",
            help=f"path to the lock file (default: ./{CARTFILE_RESOLVED})",
        )
        _add_common_options(list_parser)
        list_parser.set_defaults(func=_cmd_list)

        # --- version subcommand ---
        version_parser = subparsers.add_parser(
            "version",
            help="print the carttool version",
        )
        version_parser.set_defaults(func=_cmd_version)

        args = parser.parse_args(argv)
        args.func(args)

    except CartToolError as e:
        logging.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        sys.exit(130)
    except Exception as e:
        logging.error("Unexpected error: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
