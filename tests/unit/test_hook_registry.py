"""Unit tests for hook discovery, registration and invocation."""

import json
from types import SimpleNamespace

import pytest

from shimenv.core.config_manager import ConfigManager
from shimenv.core.hook_registry import HookRegistry

RECORDING_HOOK = """
def _before(session):
    session.calls.append("before:{tag}")

def _after(session):
    session.calls.append("after:{tag}")

session.calls.append("sourced:{tag}")
before_{event}(_before)
after_{event}(_after)
"""


def write_hook(directory, filename, tag, event="install"):
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    path.write_text(RECORDING_HOOK.format(tag=tag, event=event))
    return path


class TestHookDiscovery:
    """Test hook path ordering and script matching."""

    def test_hook_paths_order(self, shimenv_root, environ, tmp_path):
        """Should list config paths, then env paths, then plugins sorted by name."""
        config_dir = tmp_path / "from-config"
        env_dir = tmp_path / "from-env"
        for path in (config_dir, env_dir,
                     shimenv_root / "plugins" / "zeta" / "hooks",
                     shimenv_root / "plugins" / "alpha" / "hooks"):
            path.mkdir(parents=True)
        (shimenv_root / "plugins" / "no-hooks").mkdir()
        (shimenv_root / "config.json").write_text(json.dumps({"settings": {"hook_paths": [str(config_dir)]}}))

        config = ConfigManager(root=str(shimenv_root), environ={**environ, "SHIMENV_HOOK_PATH": str(env_dir)})
        paths = HookRegistry(config).hook_paths()

        assert paths == [
            config_dir,
            env_dir,
            shimenv_root / "plugins" / "alpha" / "hooks",
            shimenv_root / "plugins" / "zeta" / "hooks",
        ]

    def test_load_hooks_matches_event_names(self, hook_registry, shimenv_root):
        """Should match <event>.py and <event>.*.py only."""
        hooks_dir = shimenv_root / "plugins" / "demo" / "hooks"
        write_hook(hooks_dir, "install.py", "a")
        write_hook(hooks_dir, "install.extra.py", "b")
        write_hook(hooks_dir, "installer.py", "c")
        write_hook(hooks_dir, "uninstall.py", "d", event="uninstall")
        (hooks_dir / "install.sh").write_text("echo no")

        names = [p.name for p in hook_registry.load_hooks("install")]

        assert names == ["install.extra.py", "install.py"]

    def test_load_hooks_without_plugins(self, hook_registry):
        """Should return nothing when no hook directories exist."""
        assert hook_registry.load_hooks("install") == []


class TestHookExecution:
    """Test sourcing scripts and running registered bodies."""

    def test_source_registers_in_order(self, hook_registry, shimenv_root):
        """Should run before/after bodies in registration order."""
        write_hook(shimenv_root / "plugins" / "a" / "hooks", "install.py", "a")
        write_hook(shimenv_root / "plugins" / "b" / "hooks", "install.py", "b")
        session = SimpleNamespace(calls=[])

        sourced = hook_registry.source("install", session)
        hook_registry.run_before("install", session)
        hook_registry.run_after("install", session)

        assert len(sourced) == 2
        assert session.calls == [
            "sourced:a", "sourced:b",
            "before:a", "before:b",
            "after:a", "after:b",
        ]

    def test_events_are_isolated(self, hook_registry):
        """Should only run bodies registered for the given event."""
        calls = []
        hook_registry.before("install", lambda s: calls.append("install"))
        hook_registry.before("uninstall", lambda s: calls.append("uninstall"))

        hook_registry.run_before("uninstall")

        assert calls == ["uninstall"]

    def test_hook_exception_propagates(self, hook_registry):
        """Should not swallow errors raised by a hook body."""
        calls = []

        def failing(session):
            raise RuntimeError("hook failed")

        hook_registry.before("install", failing)
        hook_registry.before("install", lambda s: calls.append("second"))

        with pytest.raises(RuntimeError, match="hook failed"):
            hook_registry.run_before("install")
        assert calls == []

    def test_script_error_propagates(self, hook_registry, shimenv_root):
        """Should surface errors raised while sourcing a script."""
        hooks_dir = shimenv_root / "plugins" / "broken" / "hooks"
        hooks_dir.mkdir(parents=True)
        (hooks_dir / "install.py").write_text("raise ValueError('bad hook script')\n")

        with pytest.raises(ValueError, match="bad hook script"):
            hook_registry.source("install", SimpleNamespace())

    def test_hook_can_mutate_session(self, hook_registry, shimenv_root):
        """Should let a hook body change session state."""
        hooks_dir = shimenv_root / "plugins" / "env" / "hooks"
        hooks_dir.mkdir(parents=True)
        (hooks_dir / "install.py").write_text(
            "def _flags(session):\n"
            "    session.env['CFLAGS'] = '-O3'\n"
            "before_install(_flags)\n"
        )
        session = SimpleNamespace(env={})

        hook_registry.source("install", session)
        hook_registry.run_before("install", session)

        assert session.env == {"CFLAGS": "-O3"}

    def test_resourcing_replaces_script_bodies(self, hook_registry, shimenv_root):
        """Should not accumulate script registrations across sessions."""
        write_hook(shimenv_root / "plugins" / "a" / "hooks", "install.py", "a")
        in_code = []
        hook_registry.before("install", lambda s: in_code.append(1))

        hook_registry.source("install", SimpleNamespace(calls=[]))
        session = SimpleNamespace(calls=[])
        hook_registry.source("install", session)
        hook_registry.run_before("install", session)

        assert session.calls == ["sourced:a", "before:a"]
        assert in_code == [1]
        assert len(hook_registry.get_before("install")) == 2

    def test_clear(self, hook_registry):
        """Should drop registrations for one event or all."""
        hook_registry.before("install", print)
        hook_registry.after("uninstall", print)

        hook_registry.clear("install")
        assert hook_registry.get_before("install") == []
        assert len(hook_registry.get_after("uninstall")) == 1

        hook_registry.clear()
        assert hook_registry.get_after("uninstall") == []
