"""VCSDefinition 与导入器能力表单元测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import FakeImporter
from wsmgr.core.exceptions import ConfigError
from wsmgr.core.importers import ImporterTable, git_server_handler
from wsmgr.core.vcs import VCSDefinition, normalize, to_absolute_url


@pytest.fixture()
def table() -> ImporterTable:
    t = ImporterTable()
    t.register("git", FakeImporter())
    t.register("svn", FakeImporter())
    t.add_source_handler("github", git_server_handler("https://github.com"))
    return t


class TestNormalize:
    def test_type_url_string(self, table: ImporterTable) -> None:
        vcs = normalize("git:https://host/repo.git", table)
        assert vcs.type == "git"
        assert vcs.url == "https://host/repo.git"
        assert vcs.options == {}

    def test_mapping_with_options(self, table: ImporterTable) -> None:
        vcs = normalize({"type": "git", "url": "https://host/r.git", "branch": "dev"}, table)
        assert vcs.options == {"branch": "dev"}
        assert str(vcs) == "git:https://host/r.git branch=dev"

    def test_source_handler_mapping(self, table: ImporterTable) -> None:
        vcs = normalize({"github": "rock-core/base-types", "branch": "master"}, table)
        assert vcs.type == "git"
        assert vcs.url == "https://github.com/rock-core/base-types.git"
        assert vcs.options == {"branch": "master"}

    def test_source_handler_string(self, table: ImporterTable) -> None:
        vcs = normalize("github:rock-core/package_set", table)
        assert vcs.url == "https://github.com/rock-core/package_set.git"

    def test_local_directory(self, table: ImporterTable, tmp_path: Path) -> None:
        (tmp_path / "sets" / "a").mkdir(parents=True)
        vcs = normalize("sets/a", table, base_dir=tmp_path)
        assert vcs.is_local
        assert vcs.url == str((tmp_path / "sets" / "a").resolve())

    def test_missing_local_directory(self, table: ImporterTable, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="本地目录"):
            normalize("does/not/exist", table, base_dir=tmp_path)

    def test_unknown_type(self, table: ImporterTable) -> None:
        with pytest.raises(ConfigError, match="未知"):
            normalize({"type": "hg", "url": "https://host/r"}, table)

    def test_missing_type(self, table: ImporterTable) -> None:
        with pytest.raises(ConfigError, match="没有 VCS 类型"):
            normalize({"url": "https://host/r"}, table)

    def test_missing_url(self, table: ImporterTable) -> None:
        with pytest.raises(ConfigError, match="没有 URL"):
            normalize({"type": "git"}, table)

    def test_none_without_url(self, table: ImporterTable) -> None:
        vcs = normalize({"type": "none"}, table)
        assert vcs.is_none
        assert vcs.overrides_key() is None

    def test_invalid_raw_type(self, table: ImporterTable) -> None:
        with pytest.raises(ConfigError, match="格式错误"):
            normalize(42, table)

    def test_relative_url_made_absolute(self, table: ImporterTable, tmp_path: Path) -> None:
        vcs = normalize({"type": "git", "url": "mirror/r.git"}, table, base_dir=tmp_path)
        assert vcs.url == str((tmp_path / "mirror" / "r.git").resolve())


class TestOverridesKey:
    def test_options_ignored(self) -> None:
        a = VCSDefinition("git", "https://host/r.git", {"branch": "a"})
        b = VCSDefinition("git", "https://host/r", {"branch": "b"})
        assert a.overrides_key() == b.overrides_key() == "git:https://host/r"
        assert a != b

    def test_local_key(self) -> None:
        assert VCSDefinition("local", "/x/y").overrides_key() == "local:/x/y"

    def test_empty_type_rejected(self) -> None:
        with pytest.raises(ConfigError):
            VCSDefinition("")


class TestApplyOverride:
    def test_merge_same_type(self, table: ImporterTable) -> None:
        vcs = VCSDefinition("git", "https://host/r.git", {"branch": "master"})
        new = vcs.apply_override({"branch": "stable", "tag": "v1"}, table)
        assert new.options == {"branch": "stable", "tag": "v1"}
        assert new.url == vcs.url
        assert vcs.options == {"branch": "master"}

    def test_type_change_replaces(self, table: ImporterTable) -> None:
        vcs = VCSDefinition("git", "https://host/r.git", {"branch": "master"})
        new = vcs.apply_override({"type": "svn", "url": "https://svn/r"}, table)
        assert new.type == "svn"
        assert new.options == {}

    def test_invalid_override(self, table: ImporterTable) -> None:
        vcs = VCSDefinition("git", "https://host/r.git")
        with pytest.raises(ConfigError):
            vcs.apply_override({"type": "hg", "url": "x"}, table)


class TestImporterTable:
    def test_builtin_types_known(self) -> None:
        t = ImporterTable()
        assert t.is_known("local") and t.is_known("none")
        assert not t.is_known("git")

    def test_register_builtin_rejected(self) -> None:
        with pytest.raises(ValueError):
            ImporterTable().register("local", FakeImporter())

    def test_get_unknown(self) -> None:
        with pytest.raises(ConfigError):
            ImporterTable().get("git")


class TestToAbsoluteUrl:
    @pytest.mark.parametrize("url", [
        "https://host/r.git",
        "/abs/path",
        "git@github.com:user/repo.git",
        "host:path/repo",
    ])
    def test_absolute_kept(self, url: str, tmp_path: Path) -> None:
        assert to_absolute_url(url, tmp_path) == url

    def test_relative_resolved(self, tmp_path: Path) -> None:
        assert to_absolute_url("a/b", tmp_path) == str((tmp_path / "a" / "b").resolve())
