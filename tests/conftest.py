"""测试公共夹具: 内存中的 fake 导入器 / 安装器与工作空间构造器"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Callable

import pytest
import yaml

from wsmgr.core.config import Config
from wsmgr.core.exceptions import ImportFailure
from wsmgr.core.importers import ImporterTable
from wsmgr.core.vcs import VCSDefinition
from wsmgr.core.workspace import Workspace

REPO_BASE = "https://repos.example"


def repo_url(name: str) -> str:
    return f"{REPO_BASE}/{name}"


def write_yaml(path: Path, data: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    return path


class FakeImporter:
    """把 url → {相对路径: 内容} 的映射 "检出" 到目标目录

    内容为 dict/list 时写成 YAML，为 str 时原样写入。
    """

    def __init__(self, interactive: bool = False) -> None:
        self.interactive = interactive
        self.repos: dict[str, dict[str, Any]] = {}
        self.fail: set[str] = set()
        self.interrupt: set[str] = set()
        self.calls: list[str] = []
        self.threads: dict[str, threading.Thread] = {}
        self._lock = threading.Lock()

    def add_repo(self, name: str, files: dict[str, Any]) -> str:
        url = repo_url(name)
        self.repos[url] = files
        return url

    def checkout(
        self,
        vcs: VCSDefinition,
        target_dir: Path,
        *,
        update: bool = True,
        only_local: bool = False,
        retry_count: int = 0,
    ) -> bool:
        with self._lock:
            self.calls.append(vcs.url)
            self.threads[vcs.url] = threading.current_thread()
        if vcs.url in self.interrupt:
            raise KeyboardInterrupt
        if vcs.url in self.fail:
            raise ImportFailure(str(vcs), "connection refused")
        if target_dir.is_dir():
            return False
        if vcs.url not in self.repos:
            raise ImportFailure(str(vcs), "repository not found")
        target_dir.mkdir(parents=True)
        for rel, content in self.repos[vcs.url].items():
            if isinstance(content, str):
                (target_dir / rel).parent.mkdir(parents=True, exist_ok=True)
                (target_dir / rel).write_text(content, encoding="utf-8")
            else:
                write_yaml(target_dir / rel, content)
        return True

    def is_present(self, target_dir: Path) -> bool:
        return target_dir.is_dir()

    def snapshot(
        self, vcs: VCSDefinition, source_dir: Path, target_dir: Path,
    ) -> dict[str, Any] | None:
        return {"type": vcs.type, "url": vcs.url, "commit": "0123abcd"}


class FakeInstaller:
    def __init__(self, ok: bool = True) -> None:
        self.ok = ok
        self.calls: list[list[str]] = []

    def install(self, names: list[str], **options: Any) -> bool:
        self.calls.append(list(names))
        return self.ok


@pytest.fixture
def importer() -> FakeImporter:
    return FakeImporter()


@pytest.fixture
def installer() -> FakeInstaller:
    return FakeInstaller()


@pytest.fixture
def make_ws(tmp_path: Path, importer: FakeImporter) -> Callable[..., Workspace]:
    """构造工作空间: 写入主配置 manifest.yml / overrides.yml 并注册 fake 导入器"""

    def _make(
        manifest: dict[str, Any] | None = None,
        *,
        overrides: list[Any] | None = None,
        root: Path | None = None,
        **config: Any,
    ) -> Workspace:
        root_dir = root or tmp_path / "ws"
        cfg = Config(root_dir=str(root_dir), **config)
        cfg.config_path.mkdir(parents=True, exist_ok=True)
        write_yaml(cfg.config_path / cfg.manifest_file, manifest or {})
        if overrides is not None:
            write_yaml(cfg.config_path / cfg.overrides_file, {"overrides": overrides})
        table = ImporterTable()
        table.register("fake", importer)
        return Workspace(config=cfg, importers=table)

    return _make
