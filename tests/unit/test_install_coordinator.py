"""Unit tests for the install and uninstall state machines."""

import os
import signal
from unittest.mock import MagicMock

import pytest

from shimenv.core.install_coordinator import (
    InstallCoordinator,
    InstallOptions,
    OperationAbortedError,
)
from shimenv.core.version_store import VersionNotInstalledError
from shimenv.utils.input_validator import InputValidationError

HOOK_MARKER_SCRIPT = """
from pathlib import Path

Path(session.prefix).parent.parent.joinpath("hook-sourced").write_text("yes")
"""


@pytest.fixture
def confirm():
    return MagicMock(return_value=True)


@pytest.fixture
def definition_index():
    index = MagicMock()
    index.search.return_value = ["3.12.0", "3.12.1"]
    return index


@pytest.fixture
def coordinator(config_manager, version_store, shim_manager, hook_registry, fake_builder, definition_index, confirm):
    return InstallCoordinator(
        config_manager,
        version_store,
        shim_manager,
        hook_registry,
        fake_builder,
        definition_index=definition_index,
        confirm=confirm,
    )


def write_marker_hook(shimenv_root, event):
    hooks_dir = shimenv_root / "plugins" / "marker" / "hooks"
    hooks_dir.mkdir(parents=True, exist_ok=True)
    (hooks_dir / f"{event}.py").write_text(HOOK_MARKER_SCRIPT)


class TestInstallSuccess:
    """Test the happy path."""

    def test_install_builds_and_rehashes(self, coordinator, fake_builder, shim_manager, version_store):
        """Should invoke the builder once and create shims for its executables."""
        fake_builder.executables = ["tool", "tool-config"]

        status = coordinator.install("1.0")

        assert status == 0
        assert len(fake_builder.calls) == 1
        definition, prefix, _ = fake_builder.calls[0]
        assert definition == "1.0"
        assert prefix == version_store.prefix_for("1.0")
        assert version_store.is_installed("1.0")
        assert shim_manager.list_shims() == ["tool", "tool-config"]

    def test_version_name_from_definition_path(self, coordinator, fake_builder, version_store, tmp_path):
        """Should name the version after the definition file's basename."""
        definition = str(tmp_path / "defs" / "custom-1.2")

        session = coordinator.run_install(definition)

        assert session.version_name == "custom-1.2"
        assert fake_builder.calls[0][0] == definition
        assert version_store.is_installed("custom-1.2")

    def test_explicit_version_name(self, coordinator, version_store):
        """Should prefer an explicit name over the derived one."""
        coordinator.install("1.0", InstallOptions(version_name="stable"))
        assert version_store.list_versions() == ["stable"]

    def test_build_options_are_forwarded(self, coordinator, fake_builder, config_manager):
        """Should pass keep, verbose, patch and path overrides to the builder."""
        config_manager.environ["SHIMENV_BUILD_ROOT"] = "/tmp/build"
        config_manager.environ["SHIMENV_CACHE_PATH"] = "/tmp/cache"

        coordinator.install("1.0", InstallOptions(keep=True, verbose=True, patch=True))

        options = fake_builder.calls[0][2]
        assert (options.keep, options.verbose, options.patch) == (True, True, True)
        assert options.build_root == "/tmp/build"
        assert options.cache_path == "/tmp/cache"

    def test_hooks_run_around_build(self, coordinator, hook_registry, fake_builder):
        """Should run before hooks ahead of the build and after hooks with the final status."""
        events = []
        hook_registry.before("install", lambda s: events.append(("before", len(fake_builder.calls))))
        hook_registry.after("install", lambda s: events.append(("after", s.status)))

        coordinator.install("1.0")

        assert events == [("before", 0), ("after", 0)]

    def test_reused_coordinator_runs_script_hooks_once(self, coordinator, shimenv_root):
        """Should run each script's hook bodies once per session."""
        hooks_dir = shimenv_root / "plugins" / "env" / "hooks"
        hooks_dir.mkdir(parents=True)
        (hooks_dir / "install.py").write_text(
            "before_install(lambda s: s.build_options.env.setdefault('N', []).append(1))\n"
        )

        first = coordinator.run_install("1.0")
        second = coordinator.run_install("2.0")

        assert first.build_options.env["N"] == [1]
        assert second.build_options.env["N"] == [1]

    def test_system_cannot_be_installed(self, coordinator, fake_builder):
        """Should reject the reserved name before doing anything."""
        with pytest.raises(InputValidationError):
            coordinator.install("system")
        assert fake_builder.calls == []


class TestInstallExisting:
    """Test the force, skip-existing and prompt tri-state."""

    def test_skip_existing_does_nothing(self, coordinator, fake_builder, hook_registry, make_version, shimenv_root, confirm):
        """Should return 0 with no builder, hook or prompt activity."""
        make_version("0.18.0")
        write_marker_hook(shimenv_root, "install")
        calls = []
        hook_registry.before("install", lambda s: calls.append("before"))
        hook_registry.after("install", lambda s: calls.append("after"))

        status = coordinator.install("0.18.0", InstallOptions(skip_existing=True))

        assert status == 0
        assert fake_builder.calls == []
        assert calls == []
        assert not (shimenv_root / "hook-sourced").exists()
        confirm.assert_not_called()

    def test_force_reinstalls_without_prompt(self, coordinator, fake_builder, make_version, confirm):
        """Should rebuild an installed version without asking."""
        make_version("1.0")

        assert coordinator.install("1.0", InstallOptions(force=True)) == 0
        assert len(fake_builder.calls) == 1
        confirm.assert_not_called()

    def test_prompt_accepted_reinstalls(self, coordinator, fake_builder, make_version, confirm):
        """Should continue after the user confirms."""
        make_version("1.0")

        assert coordinator.install("1.0") == 0
        confirm.assert_called_once()
        assert len(fake_builder.calls) == 1

    def test_prompt_declined_aborts(self, coordinator, fake_builder, make_version, confirm):
        """Should abort without building when the user declines."""
        make_version("1.0")
        confirm.return_value = False

        with pytest.raises(OperationAbortedError):
            coordinator.install("1.0")
        assert fake_builder.calls == []


class TestInstallFailure:
    """Test rollback and status propagation."""

    def test_failed_build_removes_new_prefix(self, coordinator, fake_builder, version_store, shim_manager):
        """Should delete a prefix created by the failed attempt."""
        fake_builder.status = 1

        status = coordinator.install("1.0")

        assert status == 1
        assert not os.path.exists(version_store.prefix_for("1.0"))
        assert shim_manager.list_shims() == []

    def test_failed_build_keeps_preexisting_prefix(self, coordinator, fake_builder, version_store, shimenv_root):
        """Should never delete a prefix that existed before the attempt."""
        prefix = shimenv_root / "versions" / "1.0"
        prefix.mkdir(parents=True)
        (prefix / "manual-install.txt").write_text("keep me")
        fake_builder.status = 1

        assert coordinator.install("1.0") == 1
        assert (prefix / "manual-install.txt").read_text() == "keep me"

    def test_after_hooks_run_on_failure(self, coordinator, fake_builder, hook_registry):
        """Should run after hooks even when the build fails."""
        statuses = []
        hook_registry.after("install", lambda s: statuses.append(s.status))
        fake_builder.status = 5

        assert coordinator.install("1.0") == 5
        assert statuses == [5]

    def test_definition_not_found_collects_suggestions(self, coordinator, fake_builder, definition_index):
        """Should attach suggestions without changing the status."""
        fake_builder.status = 2

        session = coordinator.run_install("3.12")

        assert session.status == 2
        assert session.suggestions == ["3.12.0", "3.12.1"]
        definition_index.search.assert_called_once_with("3.12")

    def test_suggestion_errors_do_not_change_status(self, coordinator, fake_builder, definition_index):
        """Should keep status 2 when the suggestion lookup fails."""
        fake_builder.status = 2
        definition_index.search.side_effect = OSError("disk gone")

        session = coordinator.run_install("3.12")

        assert session.status == 2
        assert session.suggestions == []

    def test_other_failures_skip_suggestions(self, coordinator, fake_builder, definition_index):
        """Should only look up suggestions for the not-found status."""
        fake_builder.status = 1
        coordinator.install("3.12")
        definition_index.search.assert_not_called()

    def test_before_hook_failure_rolls_back(self, coordinator, fake_builder, hook_registry, version_store):
        """Should propagate a before hook error without building."""
        def failing(session):
            os.makedirs(session.prefix)
            raise RuntimeError("hook failed")

        hook_registry.before("install", failing)

        with pytest.raises(RuntimeError, match="hook failed"):
            coordinator.install("1.0")
        assert fake_builder.calls == []
        assert not version_store.exists("1.0")

    def test_after_hook_failure_keeps_successful_install(self, coordinator, hook_registry, version_store):
        """Should propagate an after hook error but keep the finished build."""
        def failing(session):
            raise RuntimeError("after failed")

        hook_registry.after("install", failing)

        with pytest.raises(RuntimeError, match="after failed"):
            coordinator.install("1.0")
        assert version_store.is_installed("1.0")


class TestInstallInterruption:
    """Test rollback on interruption."""

    def test_keyboard_interrupt_rolls_back(self, coordinator, fake_builder, version_store):
        """Should delete the new prefix and re-raise."""
        def interrupt(prefix):
            raise KeyboardInterrupt

        fake_builder.side_effect = interrupt

        with pytest.raises(KeyboardInterrupt):
            coordinator.install("1.0")
        assert not version_store.exists("1.0")

    def test_sigterm_rolls_back(self, coordinator, fake_builder, version_store):
        """Should turn SIGTERM into an interruption that triggers rollback."""
        def terminate(prefix):
            os.kill(os.getpid(), signal.SIGTERM)

        fake_builder.side_effect = terminate
        previous = signal.getsignal(signal.SIGTERM)

        with pytest.raises(KeyboardInterrupt):
            coordinator.install("1.0")
        assert not version_store.exists("1.0")
        assert signal.getsignal(signal.SIGTERM) == previous

    def test_interrupt_keeps_preexisting_prefix(self, coordinator, fake_builder, shimenv_root):
        """Should not delete a pre-existing prefix on interruption."""
        prefix = shimenv_root / "versions" / "1.0"
        prefix.mkdir(parents=True)

        def interrupt(prefix):
            raise KeyboardInterrupt

        fake_builder.side_effect = interrupt

        with pytest.raises(KeyboardInterrupt):
            coordinator.install("1.0")
        assert prefix.is_dir()


class TestUninstall:
    """Test the uninstall state machine."""

    def test_force_on_missing_version_is_noop(self, coordinator, hook_registry, shimenv_root, confirm):
        """Should exit 0 without touching disk or running hooks."""
        calls = []
        hook_registry.before("uninstall", lambda s: calls.append("before"))
        before = sorted(p.name for p in shimenv_root.rglob("*"))

        assert coordinator.uninstall("9.9", force=True) == 0
        assert calls == []
        assert sorted(p.name for p in shimenv_root.rglob("*")) == before
        confirm.assert_not_called()

    def test_missing_version_without_force(self, coordinator):
        """Should report the version as not installed."""
        with pytest.raises(VersionNotInstalledError):
            coordinator.uninstall("9.9")

    def test_uninstall_removes_and_rehashes(self, coordinator, make_version, shim_manager, version_store, confirm):
        """Should delete the prefix and drop shims only it provided."""
        make_version("1.0", executables=("tool",))
        make_version("2.0", executables=("tool", "only-two"))
        shim_manager.rehash()

        assert coordinator.uninstall("2.0") == 0

        confirm.assert_called_once()
        assert version_store.list_versions() == ["1.0"]
        assert shim_manager.list_shims() == ["tool"]

    def test_uninstall_declined(self, coordinator, make_version, version_store, confirm):
        """Should keep the version when the user declines."""
        make_version("1.0")
        confirm.return_value = False

        with pytest.raises(OperationAbortedError):
            coordinator.uninstall("1.0")
        assert version_store.exists("1.0")

    def test_uninstall_hook_order(self, coordinator, make_version, hook_registry, version_store):
        """Should run before hooks while the prefix exists and after hooks once it is gone."""
        make_version("1.0")
        seen = []
        hook_registry.before("uninstall", lambda s: seen.append(("before", os.path.isdir(s.prefix))))
        hook_registry.after("uninstall", lambda s: seen.append(("after", os.path.isdir(s.prefix))))

        coordinator.uninstall("1.0", force=True)

        assert seen == [("before", True), ("after", False)]

    def test_uninstall_sources_hook_scripts(self, coordinator, make_version, shimenv_root):
        """Should source uninstall hook scripts with the session."""
        make_version("1.0")
        write_marker_hook(shimenv_root, "uninstall")

        coordinator.uninstall("1.0", force=True)

        assert (shimenv_root / "hook-sourced").read_text() == "yes"
