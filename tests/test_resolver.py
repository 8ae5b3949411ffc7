"""
Tests for installer script resolution.
"""

import pytest

from installwizard.errors import ScriptMissingError, UnsupportedPlatformError
from installwizard.execution.resolver import ScriptResolver, script_extension


class TestScriptExtension:

    @pytest.mark.parametrize("platform, ext", [
        ("darwin", ".sh"),
        ("linux", ".sh"),
        ("win32", ".ps1"),
    ])
    def test_known(self, platform, ext):
        assert script_extension(platform) == ext

    def test_unsupported(self):
        with pytest.raises(UnsupportedPlatformError):
            script_extension("sunos5")


class TestScriptResolver:

    def test_development_build(self, scripts_dir):
        resolver = ScriptResolver(scripts_dir)

        path = resolver.resolve("install-nodejs-with-progress", platform="darwin")

        assert path == scripts_dir / "install-nodejs-with-progress.sh"

    def test_windows_script(self, scripts_dir):
        path = ScriptResolver(scripts_dir).resolve("install-claude-cli", platform="win32")
        assert path.suffix == ".ps1"

    def test_packaged_build(self, tmp_path):
        resources = tmp_path / "Resources"
        (resources / "scripts").mkdir(parents=True)
        (resources / "scripts" / "install-claude-cli.sh").write_text("echo ok\n")

        resolver = ScriptResolver(tmp_path / "unused", resources_dir=resources)

        assert resolver.resolve("install-claude-cli", platform="linux", packaged=True) == (
            resources / "scripts" / "install-claude-cli.sh"
        )

    def test_packaged_without_resources_dir(self, scripts_dir):
        with pytest.raises(ScriptMissingError):
            ScriptResolver(scripts_dir).resolve("install-claude-cli", platform="linux", packaged=True)

    def test_missing_script(self, scripts_dir):
        with pytest.raises(ScriptMissingError, match="not found"):
            ScriptResolver(scripts_dir).resolve("install-python", platform="linux")

    def test_unsupported_platform(self, scripts_dir):
        with pytest.raises(UnsupportedPlatformError):
            ScriptResolver(scripts_dir).resolve("install-claude-cli", platform="aix")
