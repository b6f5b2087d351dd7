"""包集合解析单元测试"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

import pytest

from conftest import FakeImporter, FakeInstaller, repo_url
from wsmgr.core.exceptions import ConfigError, ImportFailure
from wsmgr.core.package_set import LocalPackageSet, PackageSet
from wsmgr.core.vcs import normalize
from wsmgr.core.workspace import Workspace
from wsmgr.services.pkgset.resolver import PackageSetResolver, ResolveResult
from wsmgr.services.pkgset.sequencer import sequence


def _source(name: str, *imports: Any, **extra: Any) -> dict[str, Any]:
    return {"source.yml": {"name": name, "imports": list(imports), **extra}}


def _fake(name: str, **options: Any) -> dict[str, Any]:
    return {"type": "fake", "url": repo_url(name), **options}


def _resolve(ws: Workspace, installer: FakeInstaller, **kwargs: Any) -> tuple[LocalPackageSet, ResolveResult]:
    root = LocalPackageSet(ws)
    root.load_description_file()
    result = PackageSetResolver(ws, installer, **kwargs).resolve(root)
    return root, result


def _by_name(result: ResolveResult, name: str) -> PackageSet:
    return next(s for s in result.package_sets if s.name == name)


class TestResolveBasics:
    def test_transitive_imports(
        self, make_ws: Callable[..., Workspace], importer: FakeImporter, installer: FakeInstaller,
    ) -> None:
        importer.add_repo("a", _source("a", _fake("b")))
        importer.add_repo("b", _source("b"))
        ws = make_ws({"package_sets": [_fake("a")]})

        root, result = _resolve(ws, installer)

        assert result.names == ["main configuration", "a", "b"]
        assert result.failures == []
        a, b = _by_name(result, "a"), _by_name(result, "b")
        assert root.imports == [a]
        assert a.imports == [b] and b.imported_from == [a]
        assert installer.calls == [["fake"], ["fake"]]

    def test_user_symlinks_created(
        self, make_ws: Callable[..., Workspace], importer: FakeImporter, installer: FakeInstaller,
    ) -> None:
        importer.add_repo("a", _source("a"))
        ws = make_ws({"package_sets": [_fake("a")]})
        _, result = _resolve(ws, installer)
        link = ws.remotes_user_dir / "a"
        assert link.is_symlink()
        assert link.resolve() == _by_name(result, "a").raw_local_dir.resolve()
        assert _by_name(result, "a").local_dir == link

    def test_local_package_set(
        self, make_ws: Callable[..., Workspace], importer: FakeImporter, installer: FakeInstaller,
        tmp_path: Path,
    ) -> None:
        local_dir = tmp_path / "sets" / "mine"
        local_dir.mkdir(parents=True)
        (local_dir / "source.yml").write_text("name: mine\n", encoding="utf-8")
        ws = make_ws({"package_sets": [str(local_dir)]})

        _, result = _resolve(ws, installer)

        assert result.names == ["main configuration", "mine"]
        assert importer.calls == []
        assert installer.calls == []

    def test_auto_imports_disabled(
        self, make_ws: Callable[..., Workspace], importer: FakeImporter, installer: FakeInstaller,
    ) -> None:
        importer.add_repo("a", _source("a", _fake("b")))
        importer.add_repo("b", _source("b"))
        ws = make_ws({"package_sets": [_fake("a", auto_imports=False)]})

        _, result = _resolve(ws, installer)

        assert result.names == ["main configuration", "a"]
        assert repo_url("b") not in importer.calls

    def test_root_overrides_applied_to_imports(
        self, make_ws: Callable[..., Workspace], importer: FakeImporter, installer: FakeInstaller,
    ) -> None:
        importer.add_repo("a", _source("a", _fake("b")))
        importer.add_repo("b", _source("b"))
        ws = make_ws(
            {"package_sets": [_fake("a")]},
            overrides=[{f"fake:{repo_url('b')}": {"branch": "stable"}}],
        )
        _, result = _resolve(ws, installer)
        assert _by_name(result, "b").vcs.options == {"branch": "stable"}

    def test_missing_description_is_fatal(
        self, make_ws: Callable[..., Workspace], importer: FakeImporter, installer: FakeInstaller,
    ) -> None:
        importer.add_repo("a", {"README": "no source.yml here"})
        ws = make_ws({"package_sets": [_fake("a")]})
        with pytest.raises(ConfigError, match="source.yml"):
            _resolve(ws, installer, keep_going=True)


class TestDeduplication:
    def test_same_repository_fetched_once(
        self, make_ws: Callable[..., Workspace], importer: FakeImporter, installer: FakeInstaller,
    ) -> None:
        importer.add_repo("a", _source("a", _fake("c")))
        importer.add_repo("b", _source("b", _fake("c", branch="other")))
        importer.add_repo("c", _source("c"))
        ws = make_ws({"package_sets": [_fake("a"), _fake("b")]})

        _, result = _resolve(ws, installer)

        assert result.names == ["main configuration", "a", "b", "c"]
        assert importer.calls.count(repo_url("c")) == 1
        c = _by_name(result, "c")
        assert [s.name for s in c.imported_from] == ["a", "b"]
        # 保留第一次的设置
        assert c.vcs.options == {}

    def test_conflict_warning_names_first_importer(
        self, make_ws: Callable[..., Workspace], importer: FakeImporter, installer: FakeInstaller,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        importer.add_repo("a", _source("a", _fake("c")))
        importer.add_repo("b", _source("b", _fake("c", branch="other")))
        importer.add_repo("c", _source("c"))
        ws = make_ws({"package_sets": [_fake("a"), _fake("b")]})

        with caplog.at_level(logging.WARNING):
            _resolve(ws, installer)

        warnings = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "由 a 导入" in warnings[0]
        assert "branch=other" in warnings[0]

    def test_no_warning_when_root_imported_first(
        self, make_ws: Callable[..., Workspace], importer: FakeImporter, installer: FakeInstaller,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        importer.add_repo("a", _source("a", _fake("c", branch="other")))
        importer.add_repo("c", _source("c"))
        ws = make_ws({"package_sets": [_fake("c"), _fake("a")]})

        with caplog.at_level(logging.WARNING):
            _, result = _resolve(ws, installer)

        assert not [r for r in caplog.records if r.levelno == logging.WARNING]
        c = _by_name(result, "c")
        assert {s.name for s in c.imported_from} == {"main configuration", "a"}


class TestNameCollision:
    def test_second_repository_redirected_to_first(
        self, make_ws: Callable[..., Workspace], importer: FakeImporter, installer: FakeInstaller,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        importer.add_repo("a", _source("common"))
        importer.add_repo("a-fork", _source("common", _fake("extra")))
        importer.add_repo("x", _source("x", _fake("a-fork")))
        importer.add_repo("extra", _source("extra"))
        ws = make_ws({"package_sets": [_fake("a"), _fake("x")]})

        with caplog.at_level(logging.WARNING):
            _, result = _resolve(ws, installer)

        assert result.names == ["main configuration", "common", "x"]
        first = _by_name(result, "common")
        x = _by_name(result, "x")
        assert x.imports == [first]
        assert first.vcs.url == repo_url("a")
        # 第二个仓库仍然检出在磁盘上，但它的导入不会被处理
        fork_dir = PackageSet.raw_local_dir_of(ws, normalize(_fake("a-fork"), ws.importers))
        assert fork_dir.is_dir()
        assert repo_url("extra") not in importer.calls
        assert any("同名" in r.getMessage() for r in caplog.records)


class TestFailures:
    def _setup(self, make_ws: Callable[..., Workspace], importer: FakeImporter) -> Workspace:
        importer.add_repo("good", _source("good"))
        importer.fail.add(repo_url("bad"))
        return make_ws({"package_sets": [_fake("bad"), _fake("good")]})

    def test_keep_going_accumulates(
        self, make_ws: Callable[..., Workspace], importer: FakeImporter, installer: FakeInstaller,
    ) -> None:
        ws = self._setup(make_ws, importer)
        _, result = _resolve(ws, installer, keep_going=True)
        assert result.names == ["main configuration", "good"]
        assert len(result.failures) == 1
        assert isinstance(result.failures[0], ImportFailure)

    def test_without_keep_going_raises_immediately(
        self, make_ws: Callable[..., Workspace], importer: FakeImporter, installer: FakeInstaller,
    ) -> None:
        ws = self._setup(make_ws, importer)
        with pytest.raises(ImportFailure, match="connection refused"):
            _resolve(ws, installer, keep_going=False)
        assert repo_url("good") not in importer.calls

    def test_failed_update_with_existing_checkout_continues(
        self, make_ws: Callable[..., Workspace], importer: FakeImporter, installer: FakeInstaller,
    ) -> None:
        importer.add_repo("a", _source("a"))
        ws = make_ws({"package_sets": [_fake("a")]})
        _resolve(ws, installer)
        importer.fail.add(repo_url("a"))

        _, result = _resolve(ws, installer, keep_going=True)

        assert result.names == ["main configuration", "a"]
        assert len(result.failures) == 1

    def test_no_update_skips_existing_checkout(
        self, make_ws: Callable[..., Workspace], importer: FakeImporter, installer: FakeInstaller,
    ) -> None:
        importer.add_repo("a", _source("a"))
        ws = make_ws({"package_sets": [_fake("a")]})
        _resolve(ws, installer)
        calls = len(importer.calls)

        offline = FakeInstaller(ok=False)
        _, result = _resolve(ws, offline, update=False)

        assert result.names == ["main configuration", "a"]
        assert offline.calls == []
        assert len(importer.calls) == calls

    @pytest.mark.parametrize("keep_going", [True, False])
    def test_interrupt_always_propagates(
        self, make_ws: Callable[..., Workspace], importer: FakeImporter, installer: FakeInstaller,
        keep_going: bool,
    ) -> None:
        importer.add_repo("good", _source("good"))
        importer.interrupt.add(repo_url("bad"))
        ws = make_ws({"package_sets": [_fake("bad"), _fake("good")]})
        with pytest.raises(KeyboardInterrupt):
            _resolve(ws, installer, keep_going=keep_going)

    def test_installer_failure_is_import_failure(
        self, make_ws: Callable[..., Workspace], importer: FakeImporter,
    ) -> None:
        importer.add_repo("a", _source("a"))
        ws = make_ws({"package_sets": [_fake("a")]})
        _, result = _resolve(ws, FakeInstaller(ok=False), keep_going=True)
        assert result.names == ["main configuration"]
        assert "无法安装 fake" in str(result.failures[0])


class TestCleanupAndDeterminism:
    def test_stale_checkouts_removed(
        self, make_ws: Callable[..., Workspace], importer: FakeImporter, installer: FakeInstaller,
    ) -> None:
        importer.add_repo("a", _source("a"))
        ws = make_ws({"package_sets": [_fake("a")]})
        stale = ws.remotes_dir / "fake_https___old"
        stale.mkdir(parents=True)
        ws.remotes_user_dir.mkdir(parents=True)
        (ws.remotes_user_dir / "old").symlink_to(stale)

        _resolve(ws, installer)

        assert not stale.exists()
        assert not (ws.remotes_user_dir / "old").is_symlink()
        assert (ws.remotes_user_dir / "a").is_symlink()

    def test_same_input_same_order(
        self, make_ws: Callable[..., Workspace], importer: FakeImporter, installer: FakeInstaller,
        tmp_path: Path,
    ) -> None:
        importer.add_repo("a", _source("a", _fake("c"), _fake("b")))
        importer.add_repo("b", _source("b", _fake("d")))
        importer.add_repo("c", _source("c", _fake("d")))
        importer.add_repo("d", _source("d"))
        manifest = {"package_sets": [_fake("a"), _fake("b")]}

        first_root, first = _resolve(make_ws(manifest, root=tmp_path / "one"), installer)
        second_root, second = _resolve(make_ws(manifest, root=tmp_path / "two"), installer)
        # 重复解析已检出的工作空间
        third_root, third = _resolve(make_ws(manifest, root=tmp_path / "one"), installer)

        assert first.names == second.names == third.names == ["main configuration", "a", "b", "c", "d"]
        orders = [
            [s.name for s in sequence(r.package_sets, root)]
            for root, r in ((first_root, first), (second_root, second), (third_root, third))
        ]
        assert orders[0] == orders[1] == orders[2]

    def test_import_of_root_is_cycle(
        self, make_ws: Callable[..., Workspace], importer: FakeImporter, installer: FakeInstaller,
    ) -> None:
        ws = make_ws()
        importer.add_repo("a", _source("a", str(ws.config_dir)))
        (ws.config_dir / "manifest.yml").write_text(
            f"package_sets:\n  - type: fake\n    url: {repo_url('a')}\n", encoding="utf-8",
        )
        root, result = _resolve(ws, installer)
        assert root in _by_name(result, "a").imports
        with pytest.raises(ConfigError, match="循环"):
            sequence(result.package_sets, root)
