"""End-to-end: real toolpin processes, real shims, a script plugin standing in for node."""

import os
import subprocess
import sys

import pytest

from conftest import make_script_plugin

SRC_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "src")

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="shims are POSIX sh scripts")


@pytest.fixture
def workspace(tmp_path):
    home = tmp_path / "home"
    home.mkdir()
    project = tmp_path / "project"
    project.mkdir()
    env = {
        k: v for k, v in os.environ.items()
        if not k.startswith("TOOLPIN_") and k not in ("PYTHONPATH", "FAKE_FAIL_VERSION")
    }
    env.update({
        "HOME": str(home),
        "PYTHONPATH": SRC_DIR,
        "TOOLPIN_DATA_DIR": str(tmp_path / "data"),
        "TOOLPIN_CONFIG_DIR": str(tmp_path / "config"),
    })
    return {
        "env": env,
        "project": str(project),
        "plugin": make_script_plugin(tmp_path / "node-plugin"),
        "shims": str(tmp_path / "data" / "shims"),
        "root": tmp_path,
    }


def toolpin(ws, *argv, env=None):
    return subprocess.run(
        [sys.executable, "-m", "toolpin"] + list(argv),
        cwd=ws["project"], env=env or ws["env"], capture_output=True, text=True, timeout=120, check=False,
    )


def shim(ws, name, *argv, env=None):
    return subprocess.run(
        [os.path.join(ws["shims"], name)] + list(argv),
        cwd=ws["project"], env=env or ws["env"], capture_output=True, text=True, timeout=120, check=False,
    )


class TestNodeScenario:
    """Register a plugin, install two versions, run them through exec and shims."""

    def test_full_flow(self, workspace):
        ws = workspace
        result = toolpin(ws, "plugin", "install", "node", ws["plugin"])
        assert result.returncode == 0, result.stderr

        result = toolpin(ws, "install", "node", "lts/hydrogen", "20.0.0")
        assert result.returncode == 0, result.stderr
        assert sorted(os.listdir(ws["shims"])) == ["node", "nodebuild"]

        result = toolpin(ws, "exec", "node@lts/hydrogen", "--", "node", "--version")
        assert result.returncode == 0, result.stderr
        assert result.stdout == "v18.20.4\n"

        result = toolpin(ws, "global", "node", "20.0.0")
        assert result.returncode == 0, result.stderr
        result = shim(ws, "node", "--version")
        assert result.returncode == 0, result.stderr
        assert result.stdout == "v20.0.0\n"

        result = shim(ws, "nodebuild")
        assert result.stdout == "nodebuild helper for node v20.0.0\n"

        result = shim(ws, "node", "--exit", "3")
        assert result.returncode == 3

        result = shim(ws, "node")
        assert result.stdout == "node v20.0.0 20.0.0\n"

        # nearest directory pin beats the global one
        result = toolpin(ws, "local", "node", "18.20.4")
        assert result.returncode == 0, result.stderr
        assert shim(ws, "node", "--version").stdout == "v18.20.4\n"

        # environment beats the directory pin
        env = dict(ws["env"], TOOLPIN_NODE_VERSION="20.0.0")
        assert shim(ws, "node", "--version", env=env).stdout == "v20.0.0\n"

        result = toolpin(ws, "plugin", "uninstall", "node")
        assert result.returncode == 0, result.stderr
        result = shim(ws, "node", "--version")
        assert result.returncode == 1
        assert result.stdout == ""
        assert "plugin 'node' is not installed" in result.stderr

    def test_missing_version_through_shim(self, workspace):
        ws = workspace
        assert toolpin(ws, "plugin", "install", "node", ws["plugin"]).returncode == 0
        assert toolpin(ws, "install", "node", "20.0.0").returncode == 0
        with open(os.path.join(ws["project"], ".tool-versions"), "w", encoding="utf-8") as f:
            f.write("node 18.20.4\n")
        result = shim(ws, "node", "--version")
        assert result.returncode == 1
        assert "toolpin install node 18.20.4" in result.stderr

        env = dict(ws["env"], TOOLPIN_MISSING_RUNTIME_BEHAVIOR="autoinstall")
        result = shim(ws, "node", "--version", env=env)
        assert result.returncode == 0, result.stderr
        assert result.stdout == "v18.20.4\n"


class TestConcurrentInstalls:
    """Two processes installing the same version build it once."""

    def test_one_build(self, workspace):
        ws = workspace
        assert toolpin(ws, "plugin", "install", "node", ws["plugin"]).returncode == 0
        build_log = str(ws["root"] / "builds.log")
        env = dict(ws["env"], FAKE_BUILD_LOG=build_log, FAKE_BUILD_DELAY="1")
        procs = [
            subprocess.Popen(
                [sys.executable, "-m", "toolpin", "install", "node", "20.1.0"],
                cwd=ws["project"], env=env, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True,
            )
            for _ in range(3)
        ]
        for proc in procs:
            proc.communicate(timeout=120)
            assert proc.returncode == 0
        with open(build_log, encoding="utf-8") as f:
            assert f.read() == "20.1.0\n"
        staging = os.path.join(str(ws["root"]), "data", "installs", "node", ".staging")
        assert not os.path.isdir(staging) or os.listdir(staging) == []
