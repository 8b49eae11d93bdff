"""Tests for atomic, lock-serialized installs."""

import json
import os
import threading

import pytest

from common.locks import FileLock
from errors import InstallFailed, LockTimeout, NotInstalled, PluginNotFound
from installer import Installer
from installer.installer import InstallAttempt, InstallState
from installer.layout import installed_versions, read_install
from conftest import FakePlugin, FakeRegistry


@pytest.fixture
def plugin():
    return FakePlugin()


@pytest.fixture
def installer(settings, plugin):
    return Installer(settings, FakeRegistry(plugin))


def staging_entries(settings, tool="node"):
    root = os.path.join(settings.installs_dir, tool, ".staging")
    return os.listdir(root) if os.path.isdir(root) else []


class TestEnsureInstalled:
    """Happy path and idempotency."""

    def test_installs_and_publishes(self, installer, plugin, settings):
        installed = installer.ensure_installed("node", "20.0.0")
        assert installed.version == "20.0.0"
        assert installed.path == settings.install_path("node", "20.0.0")
        assert os.path.isfile(os.path.join(installed.path, "bin", "node"))
        assert os.path.isfile(os.path.join(installed.path, ".toolpin-install.json"))
        assert installer.is_installed("node", "20.0.0")
        assert plugin.builds == ["20.0.0"]
        assert staging_entries(settings) == []

    def test_second_call_does_no_work(self, installer, plugin):
        first = installer.ensure_installed("node", "20.0.0")
        second = installer.ensure_installed("node", "20.0.0")
        assert first == second
        assert plugin.builds == ["20.0.0"]

    def test_unknown_tool(self, installer):
        with pytest.raises(PluginNotFound):
            installer.ensure_installed("ruby", "3.3.0")

    def test_ref_install_type(self, installer, settings):
        seen = []

        class RefPlugin(FakePlugin):
            def install_version(self, ctx):
                seen.append((ctx.install_type, ctx.version))
                super().install_version(ctx)

        installer.registry = FakeRegistry(RefPlugin())
        installer.ensure_installed("node", "ref-main")
        assert seen == [("ref", "main")]
        assert os.path.isdir(settings.install_path("node", "ref-main"))

    def test_concurrent_requests_build_once(self, installer, plugin):
        plugin.build_delay = 0.3
        results = []
        errors = []

        def worker():
            try:
                results.append(installer.ensure_installed("node", "20.0.0"))
            except Exception as e:  # pylint: disable=broad-exception-caught
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert errors == []
        assert plugin.builds == ["20.0.0"]
        assert len(results) == 4
        assert all(r == results[0] for r in results)

    def test_different_versions_do_not_serialize(self, installer, plugin):
        threads = [
            threading.Thread(target=installer.ensure_installed, args=("node", v))
            for v in ("18.20.4", "20.0.0")
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert sorted(plugin.builds) == ["18.20.4", "20.0.0"]


class TestFailure:
    """A failed build never becomes visible."""

    def test_failed_hook(self, installer, plugin, settings):
        plugin.fail_versions = {"20.0.0"}
        with pytest.raises(InstallFailed) as exc_info:
            installer.ensure_installed("node", "20.0.0")
        assert exc_info.value.step == "install"
        assert "compiler error" in exc_info.value.reason
        assert not os.path.exists(settings.install_path("node", "20.0.0"))
        assert staging_entries(settings) == []
        assert installed_versions(settings, "node") == []

    def test_retry_after_failure(self, installer, plugin):
        plugin.fail_versions = {"20.0.0"}
        with pytest.raises(InstallFailed):
            installer.ensure_installed("node", "20.0.0")
        plugin.fail_versions = set()
        installed = installer.ensure_installed("node", "20.0.0")
        assert installed.version == "20.0.0"
        assert plugin.builds == ["20.0.0", "20.0.0"]
        assert not os.path.exists(installer.failure_path("node", "20.0.0"))

    def test_waiters_see_the_failure(self, installer, plugin):
        plugin.fail_versions = {"20.0.0"}
        plugin.build_delay = 0.3
        failures = []

        def worker():
            try:
                installer.ensure_installed("node", "20.0.0")
            except InstallFailed as e:
                failures.append(e)

        threads = [threading.Thread(target=worker) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(failures) == 3
        assert plugin.builds == ["20.0.0"]

    def test_failed_download(self, installer, plugin, settings):
        def broken_download(ctx):
            raise OSError("connection reset")

        plugin.download = broken_download
        with pytest.raises(InstallFailed) as exc_info:
            installer.ensure_installed("node", "20.0.0")
        assert exc_info.value.step == "download"
        assert plugin.builds == []

    def test_keep_staging_on_failure(self, installer, plugin, settings):
        settings.always_keep_staging = True
        plugin.fail_versions = {"20.0.0"}
        with pytest.raises(InstallFailed):
            installer.ensure_installed("node", "20.0.0")
        assert len(staging_entries(settings)) == 1
        assert not os.path.exists(settings.install_path("node", "20.0.0"))

    def test_unmarked_leftover_is_replaced(self, installer, settings):
        leftover = settings.install_path("node", "20.0.0")
        os.makedirs(leftover)
        with open(os.path.join(leftover, "junk"), "w", encoding="utf-8") as f:
            f.write("half a build")
        installed = installer.ensure_installed("node", "20.0.0")
        assert not os.path.exists(os.path.join(installed.path, "junk"))


class TestDefaultPackages:
    """Default packages run after the hook; failures are warnings."""

    def write_manifest(self, settings, text, configure=True):
        path = os.path.join(settings.env["HOME"], ".default-node-packages")
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
        if configure:
            settings.default_packages_files["node"] = path

    def test_unconfigured_manifest_is_ignored(self, installer, plugin, settings):
        self.write_manifest(settings, "typescript\n", configure=False)
        installed = installer.ensure_installed("node", "20.0.0")
        assert plugin.default_packages == []
        assert installed.default_packages == {}

    def test_packages_installed_in_order(self, installer, plugin, settings):
        self.write_manifest(settings, "# globals\ntypescript\n\neslint\n")
        installed = installer.ensure_installed("node", "20.0.0")
        assert plugin.default_packages == [("20.0.0", "typescript"), ("20.0.0", "eslint")]
        assert installed.default_packages == {"typescript": "ok", "eslint": "ok"}
        assert installed.warnings == []

    def test_failed_package_is_a_warning(self, installer, plugin, settings):
        self.write_manifest(settings, "typescript\nbroken-pkg\neslint\n")
        plugin.broken_packages = {"broken-pkg"}
        installed = installer.ensure_installed("node", "20.0.0")
        assert installer.is_installed("node", "20.0.0")
        assert installed.default_packages == {"typescript": "ok", "broken-pkg": "failed", "eslint": "ok"}
        assert [w.package for w in installed.warnings] == ["broken-pkg"]
        with open(os.path.join(installed.path, ".toolpin-install.json"), encoding="utf-8") as f:
            assert json.load(f)["default_packages"]["broken-pkg"] == "failed"


class TestLocking:

    def test_lock_timeout(self, installer, settings):
        settings.lock_timeout = 0.3
        holder = FileLock(installer.lock_path("node", "20.0.0"))
        with holder:
            with pytest.raises(LockTimeout) as exc_info:
                installer.ensure_installed("node", "20.0.0")
        assert exc_info.value.owner_pid == os.getpid()
        assert exc_info.value.exit_code == 4

    def test_stale_lock_is_stolen(self, installer, plugin):
        path = installer.lock_path("node", "20.0.0")
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write("999999999\n")
        installer.ensure_installed("node", "20.0.0")
        assert plugin.builds == ["20.0.0"]
        assert not os.path.exists(path)


class TestUninstallAndCleanup:

    def test_uninstall(self, installer, settings):
        installer.ensure_installed("node", "20.0.0")
        installer.uninstall("node", "20.0.0")
        assert not os.path.exists(settings.install_path("node", "20.0.0"))
        assert read_install(settings, "node", "20.0.0") is None
        with pytest.raises(NotInstalled):
            installer.uninstall("node", "20.0.0")

    def test_cleanup_removes_orphans(self, installer, settings):
        orphan = os.path.join(settings.installs_dir, "node", ".staging", "20.0.0.999999999.deadbeef")
        os.makedirs(orphan)
        stale_lock = installer.lock_path("node", "18.20.4")
        os.makedirs(os.path.dirname(stale_lock), exist_ok=True)
        with open(stale_lock, "w", encoding="utf-8") as f:
            f.write("999999999\n")
        download = settings.download_path("node", "18.20.4")
        os.makedirs(download)
        report = installer.cleanup()
        assert report.staging_removed == [orphan]
        assert report.locks_removed == [stale_lock]
        assert report.downloads_removed == [download]
        assert not os.path.exists(orphan)

    def test_cleanup_keeps_live_staging(self, installer, settings):
        live = os.path.join(settings.installs_dir, "node", ".staging", f"20.0.0.{os.getpid()}.cafebabe")
        os.makedirs(live)
        installer.cleanup()
        assert os.path.isdir(live)


class TestInstallAttempt:

    def test_transitions(self):
        attempt = InstallAttempt("node", "20.0.0")
        attempt.transition(InstallState.STAGING)
        attempt.transition(InstallState.HOOK_RUNNING)
        attempt.transition(InstallState.PUBLISHED)
        assert attempt.history == [
            InstallState.REQUESTED, InstallState.STAGING, InstallState.HOOK_RUNNING, InstallState.PUBLISHED
        ]
        with pytest.raises(RuntimeError):
            attempt.transition(InstallState.STAGING)
