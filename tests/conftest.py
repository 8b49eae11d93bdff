"""Shared fixtures: isolated data/config roots and fake plugins."""

import json
import os
import stat
import threading

import pytest

from plugins.base import Plugin
from settings import Settings

FAKE_INSTALL = r'''#!/bin/sh
set -e
if [ -n "$FAKE_FAIL_VERSION" ] && [ "$TOOLPIN_INSTALL_VERSION" = "$FAKE_FAIL_VERSION" ]; then
  echo "build exploded" >&2
  exit 1
fi
if [ -n "$FAKE_BUILD_DELAY" ]; then
  sleep "$FAKE_BUILD_DELAY"
fi
if [ -n "$FAKE_BUILD_LOG" ]; then
  echo "$TOOLPIN_INSTALL_VERSION" >> "$FAKE_BUILD_LOG"
fi
mkdir -p "$TOOLPIN_INSTALL_PATH/bin"
cat > "$TOOLPIN_INSTALL_PATH/bin/node" <<EOF
#!/bin/sh
if [ "\$1" = "--version" ]; then echo "v$TOOLPIN_INSTALL_VERSION"; exit 0; fi
if [ "\$1" = "--exit" ]; then exit "\$2"; fi
echo "node v$TOOLPIN_INSTALL_VERSION \$TOOLPIN_NODE_VERSION"
EOF
cat > "$TOOLPIN_INSTALL_PATH/bin/nodebuild" <<EOF
#!/bin/sh
echo "nodebuild helper for node v$TOOLPIN_INSTALL_VERSION"
EOF
chmod +x "$TOOLPIN_INSTALL_PATH/bin/node" "$TOOLPIN_INSTALL_PATH/bin/nodebuild"
'''

FAKE_HOOKS = {
    "list-all": "#!/bin/sh\necho 16.20.2 18.19.0 18.20.4 20.0.0 20.1.0\n",
    "list-aliases": "#!/bin/sh\necho 'lts/hydrogen 18.20.4'\necho 'lts/gallium 16.20.2'\n",
    "install": FAKE_INSTALL,
    "install-default-package": (
        "#!/bin/sh\n"
        "if [ \"$1\" = \"broken-pkg\" ]; then echo 'no such package' >&2; exit 1; fi\n"
        "echo \"$1\" >> \"$TOOLPIN_INSTALL_PATH/default-packages.log\"\n"
    ),
    "list-legacy-filenames": "#!/bin/sh\necho .nvmrc .node-version\n",
}


def write_script(path, body):
    os.makedirs(os.path.dirname(str(path)), exist_ok=True)
    with open(str(path), "w", encoding="utf-8") as f:
        f.write(body)
    os.chmod(str(path), os.stat(str(path)).st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def make_script_plugin(root, hooks=None):
    """Write an asdf-style plugin directory and return its path."""
    root = str(root)
    for name, body in (hooks or FAKE_HOOKS).items():
        write_script(os.path.join(root, "bin", name), body)
    return root


def publish_install(settings, tool, version, bins=("node",)):
    """Create a published install directly on disk (no plugin involved)."""
    path = settings.install_path(tool, version)
    os.makedirs(os.path.join(path, "bin"), exist_ok=True)
    for name in bins:
        write_script(os.path.join(path, "bin", name), f"#!/bin/sh\necho {name} {version}\n")
    with open(os.path.join(path, ".toolpin-install.json"), "w", encoding="utf-8") as f:
        json.dump({"tool": tool, "version": version, "installed_at": "2024-01-01T00:00:00+00:00",
                   "default_packages": {}}, f)
    return path


class FakePlugin(Plugin):
    """In-process plugin recording every build."""

    def __init__(self, name="node", versions=("18.20.4", "20.0.0", "20.1.0"), aliases=None,
                 fail_versions=(), build_delay=0.0, bins=("node",), legacy=()):
        super().__init__(name, "/nonexistent/plugins/" + name, engine=None)
        self.versions = list(versions)
        self.alias_map = dict(aliases if aliases is not None else {"lts/hydrogen": "18.20.4"})
        self.fail_versions = set(fail_versions)
        self.build_delay = build_delay
        self.bins = bins
        self.legacy = list(legacy)
        self.builds = []
        self.default_packages = []
        self.broken_packages = set()
        self._lock = threading.Lock()

    def list_remote_versions(self):
        return list(self.versions)

    def get_aliases(self):
        return dict(self.alias_map)

    def legacy_filenames(self):
        return list(self.legacy)

    def install_version(self, ctx):
        with self._lock:
            self.builds.append(ctx.version)
        if self.build_delay:
            threading.Event().wait(self.build_delay)
        if ctx.version in self.fail_versions:
            raise RuntimeError(f"compiler error building {ctx.version}")
        os.makedirs(os.path.join(ctx.install_path, "bin"), exist_ok=True)
        for name in self.bins:
            write_script(os.path.join(ctx.install_path, "bin", name), f"#!/bin/sh\necho {name} v{ctx.version}\n")

    def install_default_package(self, install, package):
        if package in self.broken_packages:
            raise RuntimeError(f"{package} not found in registry")
        self.default_packages.append((install.version, package))


class FakeRegistry:
    """Registry stand-in mapping tool names to plugin objects."""

    def __init__(self, *plugins):
        self.plugins = {p.name: p for p in plugins}

    def exists(self, tool):
        return tool in self.plugins

    def get(self, tool):
        from errors import PluginNotFound
        if tool not in self.plugins:
            raise PluginNotFound(tool)
        return self.plugins[tool]

    def list(self):
        return sorted(self.plugins)

    def legacy_filenames(self):
        mapping = {}
        for name, plugin in self.plugins.items():
            for filename in plugin.legacy_names():
                mapping.setdefault(filename, []).append(name)
        return mapping


@pytest.fixture
def env(tmp_path):
    home = tmp_path / "home"
    home.mkdir()
    return {
        "HOME": str(home),
        "PATH": os.environ.get("PATH", os.defpath),
        "TOOLPIN_DATA_DIR": str(tmp_path / "data"),
        "TOOLPIN_CONFIG_DIR": str(tmp_path / "config"),
    }


@pytest.fixture
def settings(env):
    return Settings.load(env)
