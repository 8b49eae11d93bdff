"""In-process tests for the CLI handlers through ``toolpin.run``."""

import os
from unittest.mock import patch

import pytest

import toolpin
from conftest import make_script_plugin


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    home = tmp_path / "home"
    home.mkdir()
    project = tmp_path / "project"
    project.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("TOOLPIN_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("TOOLPIN_CONFIG_DIR", str(tmp_path / "config"))
    for var in ("TOOLPIN_NODE_VERSION", "TOOLPIN_LOG_LEVEL", "TOOLPIN_DEBUG",
                "TOOLPIN_MISSING_RUNTIME_BEHAVIOR", "TOOLPIN_EXPERIMENTAL",
                "TOOLPIN_NODE_DEFAULT_PACKAGES_FILE"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(str(project))
    return tmp_path


@pytest.fixture
def with_plugin(cli_env):
    source = make_script_plugin(cli_env / "node-plugin")
    assert toolpin.run(["plugin", "install", "node", source]) == 0
    return cli_env


class TestPluginCommands:

    def test_install_and_list(self, cli_env, capsys):
        source = make_script_plugin(cli_env / "node-plugin")
        assert toolpin.run(["plugin", "install", "node", source]) == 0
        assert toolpin.run(["plugin", "install", "node", source]) == 0
        assert toolpin.run(["plugin", "ls"]) == 0
        out = capsys.readouterr().out
        assert "Added plugin node" in out
        assert "already installed" in out
        assert "node\tScriptPlugin" in out

    def test_uninstall_unknown(self, cli_env):
        assert toolpin.run(["plugin", "uninstall", "ruby"]) == 1


class TestInstallCommand:

    def test_install_specs(self, with_plugin, capsys):
        assert toolpin.run(["install", "node", "lts/hydrogen", "20"]) == 0
        out = capsys.readouterr().out
        assert "node lts/hydrogen -> 18.20.4 installed" in out
        assert "node 20 -> 20.1.0 installed" in out
        shims = os.listdir(str(with_plugin / "data" / "shims"))
        assert sorted(shims) == ["node", "nodebuild"]
        assert toolpin.run(["install", "node", "18.20.4"]) == 0
        assert "already installed" in capsys.readouterr().out

    def test_install_configured_versions(self, with_plugin, capsys):
        (with_plugin / "project" / ".tool-versions").write_text("node 20.0.0\n")
        assert toolpin.run(["install"]) == 0
        assert "node 20.0.0 installed" in capsys.readouterr().out

    def test_install_configured_fallbacks(self, with_plugin, capsys):
        (with_plugin / "project" / ".tool-versions").write_text("node 20.0.0 18.20.4\n")
        assert toolpin.run(["install"]) == 0
        out = capsys.readouterr().out
        assert "node 20.0.0 installed" in out
        assert "node 18.20.4 installed" in out

    def test_install_failure(self, with_plugin, monkeypatch):
        monkeypatch.setenv("FAKE_FAIL_VERSION", "20.0.0")
        assert toolpin.run(["install", "node", "20.0.0", "18.20.4"]) == 1
        assert not (with_plugin / "data" / "installs" / "node" / "20.0.0").exists()
        assert (with_plugin / "data" / "installs" / "node" / "18.20.4").is_dir()

    def test_unknown_version(self, with_plugin):
        assert toolpin.run(["install", "node", "99"]) == 1

    def test_default_package_warnings(self, with_plugin, monkeypatch):
        manifest = with_plugin / "home" / ".default-node-packages"
        manifest.write_text("typescript\nbroken-pkg\n")
        monkeypatch.setenv("TOOLPIN_NODE_DEFAULT_PACKAGES_FILE", str(manifest))
        assert toolpin.run(["install", "node", "20.0.0"]) == 0
        assert toolpin.run(["uninstall", "node", "20.0.0"]) == 0
        assert toolpin.run(["install", "node", "20.0.0", "--error-on-warnings"]) == 3
        log = with_plugin / "data" / "installs" / "node" / "20.0.0" / "default-packages.log"
        assert log.read_text() == "typescript\n"

    def test_invalid_spec_is_a_usage_error(self, with_plugin):
        assert toolpin.run(["install", "node", "path:/opt/node"]) == 2


class TestPinCommands:

    def test_local_and_current(self, with_plugin, capsys):
        assert toolpin.run(["install", "node", "20.0.0"]) == 0
        assert toolpin.run(["local", "node", "20.0.0"]) == 0
        pin_file = with_plugin / "project" / ".tool-versions"
        assert pin_file.read_text() == "node 20.0.0\n"
        capsys.readouterr()
        assert toolpin.run(["current"]) == 0
        assert capsys.readouterr().out == f"node\t20.0.0\t{pin_file}\n"

    def test_current_not_installed(self, with_plugin, capsys):
        assert toolpin.run(["local", "node", "18.20.4"]) == 0
        capsys.readouterr()
        assert toolpin.run(["current", "node"]) == 1
        assert "(not installed)" in capsys.readouterr().out

    def test_global_and_unset(self, with_plugin):
        global_file = with_plugin / "config" / "tool-versions"
        assert toolpin.run(["global", "node", "lts/hydrogen"]) == 0
        assert global_file.read_text() == "node lts/hydrogen\n"
        assert toolpin.run(["global", "node", "--unset"]) == 0
        assert global_file.read_text() == ""

    def test_pin_requires_plugin(self, cli_env):
        assert toolpin.run(["local", "ruby", "3.3.0"]) == 1
        assert not (cli_env / "project" / ".tool-versions").exists()

    def test_pin_requires_spec(self, with_plugin):
        assert toolpin.run(["local", "node"]) == 2


class TestQueries:

    def test_where_and_which(self, with_plugin, capsys):
        assert toolpin.run(["install", "node", "20.0.0"]) == 0
        assert toolpin.run(["local", "node", "20"]) == 0
        capsys.readouterr()
        install_dir = with_plugin / "data" / "installs" / "node" / "20.0.0"
        assert toolpin.run(["where", "node"]) == 0
        assert capsys.readouterr().out == f"{install_dir}\n"
        assert toolpin.run(["which", "nodebuild"]) == 0
        assert capsys.readouterr().out == f"{install_dir / 'bin' / 'nodebuild'}\n"

    def test_which_without_version(self, with_plugin):
        assert toolpin.run(["install", "node", "20.0.0"]) == 0
        assert toolpin.run(["which", "node"]) == 1

    def test_ls_and_ls_remote(self, with_plugin, capsys):
        assert toolpin.run(["install", "node", "18.20.4", "20.0.0"]) == 0
        assert toolpin.run(["local", "node", "20.0.0"]) == 0
        capsys.readouterr()
        assert toolpin.run(["ls", "node"]) == 0
        assert capsys.readouterr().out == "   18.20.4\n  *20.0.0\n"
        assert toolpin.run(["ls-remote", "node", "18"]) == 0
        assert capsys.readouterr().out == "18.19.0\n18.20.4\n"

    def test_cleanup(self, with_plugin, capsys):
        orphan = with_plugin / "data" / "installs" / "node" / ".staging" / "20.0.0.999999999.0badf00d"
        orphan.mkdir(parents=True)
        assert toolpin.run(["cleanup"]) == 0
        assert not orphan.exists()
        assert "removed staging" in capsys.readouterr().out


class TestExecCommands:
    """exec/shim with the process replacement stubbed out."""

    def test_exec_usage(self, with_plugin):
        assert toolpin.run(["exec", "node@20"]) == 2

    def test_exec(self, with_plugin):
        assert toolpin.run(["install", "node", "20.0.0"]) == 0
        with patch("common.process.ExecutionEngine.exec_replace") as exec_replace:
            assert toolpin.run(["exec", "node@20.0.0", "--", "node", "--version"]) == 0
        path, argv, env = exec_replace.call_args[0]
        assert path.endswith(os.path.join("node", "20.0.0", "bin", "node"))
        assert argv == ["node", "--version"]
        assert env["TOOLPIN_NODE_VERSION"] == "20.0.0"

    def test_exec_command_not_found(self, with_plugin):
        assert toolpin.run(["install", "node", "20.0.0"]) == 0
        assert toolpin.run(["exec", "node@20.0.0", "--", "no-such-command-here"]) == 127

    def test_shim_not_installed(self, with_plugin):
        assert toolpin.run(["install", "node", "18.20.4"]) == 0
        assert toolpin.run(["local", "node", "20.0.0"]) == 0
        with patch("common.process.ExecutionEngine.exec_replace") as exec_replace:
            assert toolpin.run(["shim", "node", "--", "--version"]) == 1
        exec_replace.assert_not_called()

    def test_shim_autoinstall_flag(self, with_plugin):
        assert toolpin.run(["install", "node", "18.20.4"]) == 0
        assert toolpin.run(["local", "node", "20.0.0"]) == 0
        with patch("common.process.ExecutionEngine.exec_replace") as exec_replace:
            assert toolpin.run(["--auto-install", "shim", "node", "--", "--version"]) == 0
        path = exec_replace.call_args[0][0]
        assert os.path.join("20.0.0", "bin", "node") in path
