"""Pytest configuration and shared fixtures."""

import os
from pathlib import Path
from typing import Callable, Iterable, List, Optional

import pytest

from shimenv.core.builder import BuildOptions
from shimenv.core.config_manager import ConfigManager
from shimenv.core.hook_registry import HookRegistry
from shimenv.core.interfaces import IBuilder
from shimenv.core.shim_manager import ShimManager
from shimenv.core.version_resolver import VersionResolver
from shimenv.core.version_store import VersionStore
from shimenv.utils.logger import setup_logger


def write_executable(path: Path, body: str = "#!/bin/sh\nexit 0\n") -> Path:
    """Write a small executable script, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body)
    path.chmod(0o755)
    return path


class FakeBuilder(IBuilder):
    """Builder double that records calls instead of compiling anything.

    On success it populates ``prefix/bin`` with the configured executables.
    On failure it leaves a partially written prefix behind so rollback has
    something to delete.
    """

    def __init__(self, status: int = 0, executables: Iterable[str] = ("tool",)):
        self.status = status
        self.executables = list(executables)
        self.calls: List[tuple] = []
        self.side_effect: Optional[Callable[[str], None]] = None

    def build(self, definition: str, prefix: str, options: BuildOptions) -> int:
        self.calls.append((definition, prefix, options))
        prefix_path = Path(prefix)
        prefix_path.mkdir(parents=True, exist_ok=True)
        (prefix_path / "partial.log").write_text("building\n")

        if self.side_effect is not None:
            self.side_effect(prefix)

        if self.status == 0:
            for name in self.executables:
                write_executable(prefix_path / "bin" / name)
        return self.status


@pytest.fixture
def shimenv_root(tmp_path: Path) -> Path:
    """Isolated installation root."""
    root = tmp_path / "shimenv-root"
    root.mkdir()
    return root


@pytest.fixture
def system_bin(tmp_path: Path) -> Path:
    """Directory standing in for an unmanaged system PATH entry."""
    path = tmp_path / "system-bin"
    path.mkdir()
    return path


@pytest.fixture
def environ(shimenv_root: Path, system_bin: Path) -> dict:
    return {
        "PATH": str(system_bin),
        "SHIMENV_ROOT": str(shimenv_root),
    }


@pytest.fixture
def config_manager(shimenv_root: Path, environ: dict) -> ConfigManager:
    return ConfigManager(root=str(shimenv_root), environ=environ)


@pytest.fixture
def version_store(config_manager: ConfigManager) -> VersionStore:
    return VersionStore(config_manager)


@pytest.fixture
def resolver(config_manager: ConfigManager) -> VersionResolver:
    return VersionResolver(config_manager)


@pytest.fixture
def shim_manager(config_manager, version_store, resolver) -> ShimManager:
    return ShimManager(config_manager, version_store, resolver, python_executable="/usr/bin/python3")


@pytest.fixture
def hook_registry(config_manager: ConfigManager) -> HookRegistry:
    return HookRegistry(config_manager)


@pytest.fixture
def fake_builder() -> FakeBuilder:
    return FakeBuilder()


@pytest.fixture
def make_version(shimenv_root: Path) -> Callable[..., Path]:
    """Factory that lays out ``versions/<name>/bin/<exe>`` for an installed version."""

    def _make_version(name: str, executables: Iterable[str] = ("tool",)) -> Path:
        prefix = shimenv_root / "versions" / name
        (prefix / "bin").mkdir(parents=True, exist_ok=True)
        for exe in executables:
            write_executable(prefix / "bin" / exe)
        return prefix

    return _make_version


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Nested working directory for local marker file lookups."""
    path = tmp_path / "workspace" / "project"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def cli_env(monkeypatch, shimenv_root: Path, system_bin: Path, project_dir: Path) -> Path:
    """Point the CLI at the isolated root and working directory."""
    for name in list(os.environ):
        if name.startswith("SHIMENV_"):
            monkeypatch.delenv(name)
    monkeypatch.setenv("SHIMENV_ROOT", str(shimenv_root))
    monkeypatch.setenv("PATH", str(system_bin))
    monkeypatch.chdir(project_dir)
    return shimenv_root


@pytest.fixture(autouse=True)
def reset_logger():
    """Rebuild console-only logging after tests that reconfigure it."""
    yield
    setup_logger()
