"""VCS 导入器实现 - Git / Svn / Archive

职责:
- git clone / fetch + checkout，固定版本快照
- svn checkout / update
- tar 归档下载与解压

所有外部命令经 CommandExecutor 执行；失败统一转换为 ImportFailure，
按 retry_count 重试。
"""

from __future__ import annotations

import logging
import re
import shutil
import tarfile
import urllib.error
import urllib.request
from pathlib import Path
from typing import Any

from wsmgr.core.exceptions import ExecutionError, ImportFailure
from wsmgr.core.importers import ImporterTable, git_server_handler
from wsmgr.core.vcs import VCSDefinition
from wsmgr.utils.shell import CommandExecutor, LocalExecutor, run_cmd

logger = logging.getLogger(__name__)

_SAFE_REF_RE = re.compile(r"^[a-zA-Z0-9_./@\-]+$")


def _with_retries(vcs: VCSDefinition, retry_count: int, action: Any) -> bool:
    """执行 action，ExecutionError / OSError 时最多重试 retry_count 次"""
    last_error: Exception | None = None
    for attempt in range(max(0, retry_count) + 1):
        if attempt:
            logger.warning("重试 %s (第 %d 次): %s", vcs, attempt, last_error)
        try:
            return bool(action())
        except (ExecutionError, OSError) as e:
            last_error = e
    raise ImportFailure(str(vcs), str(last_error))


class GitImporter:
    """Git 仓库导入器"""

    interactive = False

    def __init__(self, executor: CommandExecutor | None = None) -> None:
        self.executor = executor or LocalExecutor()

    @staticmethod
    def _ref(vcs: VCSDefinition) -> str:
        ref = str(vcs.options.get("tag") or vcs.options.get("branch") or "")
        if ref and not _SAFE_REF_RE.match(ref):
            raise ImportFailure(str(vcs), f"ref 包含非法字符: {ref}")
        return ref

    def is_present(self, target_dir: Path) -> bool:
        return (target_dir / ".git").exists()

    def checkout(
        self,
        vcs: VCSDefinition,
        target_dir: Path,
        *,
        update: bool = True,
        only_local: bool = False,
        retry_count: int = 0,
    ) -> bool:
        ref = self._ref(vcs)
        commit = str(vcs.options.get("commit") or "")
        if self.is_present(target_dir):
            if not update or only_local:
                return False
            return _with_retries(vcs, retry_count, lambda: self._update(vcs, ref, commit, target_dir))
        if only_local:
            raise ImportFailure(str(vcs), f"only_local 模式下无法检出到 {target_dir}")
        return _with_retries(vcs, retry_count, lambda: self._clone(vcs, ref, commit, target_dir))

    def _clone(self, vcs: VCSDefinition, ref: str, commit: str, target_dir: Path) -> bool:
        logger.info("  克隆: %s -> %s", vcs, target_dir)
        if target_dir.exists():
            shutil.rmtree(target_dir)
        target_dir.parent.mkdir(parents=True, exist_ok=True)
        args = ["git", "clone"]
        if ref:
            args += ["--branch", ref]
        run_cmd(self.executor, [*args, vcs.url, str(target_dir)], label="git clone")
        if commit:
            run_cmd(self.executor, ["git", "checkout", commit], cwd=str(target_dir), label="git checkout")
        return True

    def _update(self, vcs: VCSDefinition, ref: str, commit: str, target_dir: Path) -> bool:
        before = self.head(target_dir)
        run_cmd(
            self.executor, ["git", "fetch", "origin", ref or "HEAD"],
            cwd=str(target_dir), label="git fetch",
        )
        run_cmd(
            self.executor, ["git", "checkout", commit or "FETCH_HEAD"],
            cwd=str(target_dir), label="git checkout",
        )
        return self.head(target_dir) != before

    def head(self, target_dir: Path) -> str:
        r = self.executor.execute(["git", "rev-parse", "HEAD"], cwd=str(target_dir))
        return r.stdout.strip() if r.success else ""

    def snapshot(
        self, vcs: VCSDefinition, source_dir: Path, target_dir: Path,
    ) -> dict[str, Any] | None:
        sha = self.head(source_dir)
        if not sha:
            return None
        options = {k: v for k, v in vcs.options.items() if k not in ("tag", "commit")}
        return {"type": vcs.type, "url": vcs.url, **options, "commit": sha}


class SvnImporter:
    """Subversion 导入器"""

    interactive = False

    def __init__(self, executor: CommandExecutor | None = None) -> None:
        self.executor = executor or LocalExecutor()

    def is_present(self, target_dir: Path) -> bool:
        return (target_dir / ".svn").exists()

    def checkout(
        self,
        vcs: VCSDefinition,
        target_dir: Path,
        *,
        update: bool = True,
        only_local: bool = False,
        retry_count: int = 0,
    ) -> bool:
        revision = vcs.options.get("revision")
        rev_args = ["-r", str(revision)] if revision else []
        if self.is_present(target_dir):
            if not update or only_local:
                return False
            return _with_retries(vcs, retry_count, lambda: run_cmd(
                self.executor, ["svn", "update", "--non-interactive", *rev_args],
                cwd=str(target_dir), label="svn update",
            ))
        if only_local:
            raise ImportFailure(str(vcs), f"only_local 模式下无法检出到 {target_dir}")
        target_dir.parent.mkdir(parents=True, exist_ok=True)
        return _with_retries(vcs, retry_count, lambda: run_cmd(
            self.executor,
            ["svn", "checkout", "--non-interactive", *rev_args, vcs.url, str(target_dir)],
            label="svn checkout",
        ))

    def snapshot(
        self, vcs: VCSDefinition, source_dir: Path, target_dir: Path,
    ) -> dict[str, Any] | None:
        r = self.executor.execute(["svn", "info", "--show-item", "revision"], cwd=str(source_dir))
        if not r.success or not r.stdout.strip():
            return None
        return {"type": vcs.type, "url": vcs.url, **vcs.options, "revision": r.stdout.strip()}


class ArchiveImporter:
    """tar 归档导入器（本地路径或 http/https URL）

    解压目录中记录来源 URL，URL 变化时重新解压。
    """

    interactive = False
    STAMP_FILE = ".wsmgr-archive"

    def is_present(self, target_dir: Path) -> bool:
        return (target_dir / self.STAMP_FILE).is_file()

    def checkout(
        self,
        vcs: VCSDefinition,
        target_dir: Path,
        *,
        update: bool = True,
        only_local: bool = False,
        retry_count: int = 0,
    ) -> bool:
        if self.is_present(target_dir):
            current = (target_dir / self.STAMP_FILE).read_text(encoding="utf-8").strip()
            if current == vcs.url or not update or only_local:
                return False
        if only_local and not vcs.url.startswith("/"):
            raise ImportFailure(str(vcs), "only_local 模式下无法下载远程归档")
        return _with_retries(vcs, retry_count, lambda: self._extract(vcs, target_dir))

    def _extract(self, vcs: VCSDefinition, target_dir: Path) -> bool:
        target_dir.parent.mkdir(parents=True, exist_ok=True)
        archive = Path(vcs.url)
        if "://" in vcs.url:
            archive = target_dir.parent / f"{target_dir.name}.archive"
            logger.info("  下载: %s", vcs.url)
            try:
                urllib.request.urlretrieve(vcs.url, str(archive))  # nosec B310
            except urllib.error.URLError as e:
                archive.unlink(missing_ok=True)
                raise OSError(f"下载失败: {vcs.url} - {e}") from e

        if target_dir.exists():
            shutil.rmtree(target_dir)
        target_dir.mkdir(parents=True)
        try:
            with tarfile.open(archive) as tf:
                tf.extractall(path=str(target_dir), filter="data")  # noqa: S202
        except tarfile.TarError as e:
            raise OSError(f"解压失败: {archive} - {e}") from e
        (target_dir / self.STAMP_FILE).write_text(vcs.url, encoding="utf-8")
        logger.info("  归档已解压: %s -> %s", vcs.url, target_dir)
        return True

    def snapshot(
        self, vcs: VCSDefinition, source_dir: Path, target_dir: Path,
    ) -> dict[str, Any] | None:
        return None


def default_importer_table(executor: CommandExecutor | None = None) -> ImporterTable:
    """注册内置导入器与常用托管服务的快捷写法"""
    table = ImporterTable()
    table.register("git", GitImporter(executor))
    table.register("svn", SvnImporter(executor))
    table.register("archive", ArchiveImporter())
    table.add_source_handler("github", git_server_handler("https://github.com"))
    table.add_source_handler("gitlab", git_server_handler("https://gitlab.com"))
    return table
