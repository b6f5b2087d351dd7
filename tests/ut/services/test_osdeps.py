"""OS 依赖安装器单元测试"""

from __future__ import annotations

import pytest

import wsmgr.services.osdeps as osdeps_mod
from wsmgr.services.osdeps import ShellInstaller
from wsmgr.utils.shell import CommandResult


class RecordingExecutor:
    def __init__(self, returncode: int = 0) -> None:
        self.returncode = returncode
        self.calls: list[list[str]] = []

    def execute(self, args: list[str], *, cwd: str | None = None, timeout: int | None = None) -> CommandResult:
        self.calls.append(list(args))
        return CommandResult(returncode=self.returncode, stdout="", stderr="E: unable to locate package")


class TestShellInstaller:
    def test_install_cmd_template(self) -> None:
        ex = RecordingExecutor()
        installer = ShellInstaller("sudo apt-get install -y {packages}", executor=ex)
        assert installer.install(["git", "svn"])
        assert ex.calls == [["sudo", "apt-get", "install", "-y", "git", "svn"]]

    def test_installed_once(self) -> None:
        ex = RecordingExecutor()
        installer = ShellInstaller("apt-get install {packages}", executor=ex)
        installer.install(["git"])
        assert installer.install(["git", "local", "none"])
        assert len(ex.calls) == 1

    def test_install_failure(self) -> None:
        installer = ShellInstaller("apt-get install {packages}", executor=RecordingExecutor(returncode=100))
        assert not installer.install(["git"])

    def test_tool_check_without_cmd(self, monkeypatch: pytest.MonkeyPatch) -> None:
        seen: list[str] = []

        def fake_which(cmd: str) -> str | None:
            seen.append(cmd)
            return None if cmd == "svn" else f"/usr/bin/{cmd}"

        monkeypatch.setattr(osdeps_mod.shutil, "which", fake_which)
        installer = ShellInstaller()
        assert installer.install(["archive"])
        assert seen == ["tar"]
        assert not installer.install(["svn"])
