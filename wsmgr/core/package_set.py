"""包集合 (package set)

一个包集合本身就是一个由 VCS 管理的目录，目录中的 source.yml 描述:

    name: rock.core
    required_wsmgr_version: "0.3"
    constants:
      ROCK_GIT: https://github.com/rock-core
    imports:
      - github: rock-core/package_set
      - type: git
        url: $ROCK_GIT/extra.git
        auto_imports: false
    packages:
      base/types:
        vcs: github:rock-core/base-types
        depends: [base/cmake, boost]
    osdeps:
      boost: available
    overrides:
      - "git:https://github.com/rock-core/base-types":
          branch: stable

远程包集合检出到 <root>/<remotes_dir>/<仓库身份>，并在
<config_dir>/remotes/<name> 下提供面向用户的符号链接。
名称只有在检出之后（读取 source.yml）才能知道。
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from packaging.version import InvalidVersion, Version

from wsmgr import __version__
from wsmgr.core.exceptions import ConfigError, InternalError
from wsmgr.core.expansion import expand, resolve_constants
from wsmgr.core.vcs import VCSDefinition, normalize
from wsmgr.utils.yaml_io import load_yaml

if TYPE_CHECKING:
    from wsmgr.core.workspace import Workspace

logger = logging.getLogger(__name__)

SOURCE_FILE = "source.yml"
_NAME_RE = re.compile(r"^[\w.-]+$")

RawImport = tuple[VCSDefinition, dict[str, Any]]


def validate_description(path: Path, data: dict[str, Any]) -> dict[str, Any]:
    """校验并补全描述文件中各个段的类型"""
    data = dict(data)
    for key in ("imports", "overrides"):
        data[key] = data.get(key) or []
        if not isinstance(data[key], list):
            raise ConfigError(f"{path}: '{key}' 段应为列表", file=str(path))
    for key in ("constants", "packages", "osdeps"):
        data[key] = data.get(key) or {}
        if not isinstance(data[key], Mapping):
            raise ConfigError(f"{path}: '{key}' 段应为映射", file=str(path))
    return data


def parse_overrides(path: Path, entries: list[Any]) -> list[tuple[str, Any]]:
    """overrides 段: [{matcher: patch}, ...] → [(matcher, patch), ...]"""
    result: list[tuple[str, Any]] = []
    for entry in entries:
        if not isinstance(entry, Mapping) or not entry:
            raise ConfigError(
                f"{path}: overrides 的每一项应为 {{匹配键: VCS 描述}} 形式的映射 (实际: {entry!r})",
                file=str(path),
            )
        for matcher, patch in entry.items():
            result.append((str(matcher), patch))
    return result


def _matches(matcher: str, key: str) -> bool:
    if matcher == key:
        return True
    try:
        return re.fullmatch(matcher, key) is not None
    except re.error:
        return False


class PackageSet:
    """远程或本地包集合"""

    def __init__(
        self,
        ws: Workspace,
        vcs: VCSDefinition,
        *,
        raw_local_dir: Path | None = None,
        name: str | None = None,
    ) -> None:
        if vcs.is_none:
            raise ConfigError("包集合的 VCS 类型不能为 none")
        self.ws = ws
        self.vcs = vcs
        self.raw_local_dir = raw_local_dir or self.raw_local_dir_of(ws, vcs)
        self._name = name

        self.explicit = False
        self.auto_imports = True
        self.required_version: str | None = None
        self.constants: dict[str, Any] = {}
        self.raw_imports: list[RawImport] = []
        self.package_entries: dict[str, Any] = {}
        self.osdep_entries: dict[str, Any] = {}
        self.overrides: list[tuple[str, list[tuple[str, Any]]]] = []

        # 按仓库身份键控的有序集合，imports / imported_from 互为对偶
        self._imports: dict[str, PackageSet] = {}
        self._imported_from: dict[str, PackageSet] = {}

    # ------------------------------------------------------------------
    # 身份与路径
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        if self._name is None:
            return self.name_of(self.vcs, self.raw_local_dir)
        return self._name

    @property
    def main(self) -> bool:
        return False

    @property
    def is_local(self) -> bool:
        return self.vcs.is_local

    @property
    def present(self) -> bool:
        return self.raw_local_dir.is_dir()

    @property
    def repository_id(self) -> str:
        key = self.vcs.overrides_key()
        if key is None:
            raise InternalError(f"包集合 {self.vcs} 没有仓库身份")
        return key

    @property
    def user_local_dir(self) -> Path:
        """面向用户的目录: 本地集合就是其目录本身，远程集合是 remotes/ 下的符号链接"""
        if self.is_local:
            return Path(self.vcs.url)
        return self.ws.remotes_user_dir / self.name

    @property
    def local_dir(self) -> Path:
        ugly_dir = self.raw_local_dir
        pretty_dir = self.user_local_dir
        if ugly_dir == pretty_dir:
            return pretty_dir
        if pretty_dir.is_symlink() and Path(pretty_dir.readlink()) == ugly_dir:
            return pretty_dir
        return ugly_dir

    @staticmethod
    def raw_local_dir_of(ws: Workspace, vcs: VCSDefinition) -> Path:
        if vcs.needs_import:
            key = vcs.overrides_key() or ""
            return ws.remotes_dir / re.sub(r"[^\w]", "_", key)
        return Path(vcs.url)

    @staticmethod
    def name_of(vcs: VCSDefinition, raw_local_dir: Path) -> str:
        """已检出时返回 source.yml 中的名称，否则返回 VCS 的字符串形式"""
        if raw_local_dir.is_dir():
            return str(PackageSet.raw_description_file(raw_local_dir, str(vcs))["name"])
        return str(vcs)

    # ------------------------------------------------------------------
    # 导入关系
    # ------------------------------------------------------------------

    @property
    def imports(self) -> list[PackageSet]:
        return list(self._imports.values())

    @property
    def imported_from(self) -> list[PackageSet]:
        return list(self._imported_from.values())

    def add_import(self, other: PackageSet) -> None:
        """记录 self 导入 other，同时维护反向关系"""
        self._imports[other.repository_id] = other
        other._imported_from[self.repository_id] = self

    def imports_set(self, other: PackageSet) -> bool:
        return other.repository_id in self._imports

    def each_raw_imported_set(self) -> Iterator[RawImport]:
        """本集合自身声明的导入（尚未应用覆盖），按声明顺序"""
        yield from self.raw_imports

    # ------------------------------------------------------------------
    # 描述文件
    # ------------------------------------------------------------------

    @staticmethod
    def raw_description_file(raw_local_dir: Path, set_name: str = "") -> dict[str, Any]:
        path = raw_local_dir / SOURCE_FILE
        if not path.is_file():
            raise ConfigError(
                f"包集合 {set_name} 位于 {raw_local_dir}，但缺少 {SOURCE_FILE} 文件",
                file=str(path),
            )
        data = validate_description(path, load_yaml(path))
        if not data.get("name"):
            raise ConfigError(f"{path} 缺少 'name' 字段", file=str(path))
        return data

    def source_file(self) -> Path:
        return self.raw_local_dir / SOURCE_FILE

    def load_description_file(self) -> None:
        """读取 source.yml 并解析其全部内容

        异常:
            ConfigError: 尚未检出、文件缺失或内容无效
        """
        if not self.present:
            raise ConfigError(f"包集合 {self.vcs} 尚未检出，无法读取其描述文件")
        data = self.raw_description_file(self.raw_local_dir, str(self.vcs))
        name = str(data["name"])
        path = self.source_file()
        if not _NAME_RE.match(name):
            raise ConfigError(
                f"{path}: 无效的包集合名称 '{name}'，只允许字母数字和 .-_",
                file=str(path),
            )
        if name == "local":
            raise ConfigError(f"{path}: 'local' 是保留名称", file=str(path))
        self._name = name
        self.parse_description(data, path)

    def parse_description(self, data: dict[str, Any], path: Path) -> None:
        required = data.get("required_wsmgr_version")
        if required is not None:
            self.required_version = str(required)
            self.check_required_version(path)

        variables = self.expansions()
        if data["constants"]:
            self.constants = resolve_constants(data["constants"], variables)
            variables = self.expansions()

        self.raw_imports = [
            self.resolve_definition(self.ws, entry, variables, path)
            for entry in data["imports"]
        ]
        self.package_entries = {
            str(k): expand(v, variables) for k, v in data["packages"].items()
        }
        self.osdep_entries = {str(k): v for k, v in data["osdeps"].items()}
        if data["overrides"]:
            self.overrides = [(str(path), parse_overrides(path, expand(data["overrides"], variables)))]
        logger.debug(
            "已加载包集合描述: %s (%d 个导入, %d 个包)",
            self.name, len(self.raw_imports), len(self.package_entries),
            extra={"pkg_set": self.name},
        )

    def check_required_version(self, path: Path) -> None:
        try:
            required = Version(str(self.required_version))
        except InvalidVersion as e:
            raise ConfigError(f"{path}: 无效的版本要求 '{self.required_version}'", file=str(path)) from e
        if Version(__version__) < required:
            raise ConfigError(
                f"包集合 {self.name} 需要 wsmgr >= {required}，当前版本 {__version__}",
                file=str(path),
            )

    def expansions(self) -> dict[str, Any]:
        return {
            **self.ws.default_expansions(),
            "WSMGR_SOURCE_DIR": str(self.raw_local_dir),
            **self.constants,
        }

    @staticmethod
    def resolve_definition(
        ws: Workspace,
        raw_spec: Any,
        variables: Mapping[str, Any],
        path: Path | None = None,
    ) -> RawImport:
        """解析 imports / package_sets 中的一项，返回 (VCS, 导入选项)"""
        if not isinstance(raw_spec, (str, Mapping)):
            raise ConfigError(
                f"{path}: imports 段格式错误，应为映射或字符串的列表 (例如 - github: my/url)",
                file=str(path) if path else None,
            )
        options = {"auto_imports": True}
        if isinstance(raw_spec, Mapping):
            raw_spec = dict(raw_spec)
            options["auto_imports"] = bool(raw_spec.pop("auto_imports", True))
        vcs = normalize(expand(raw_spec, variables), ws.importers, base_dir=ws.config_dir)
        return vcs, options

    # ------------------------------------------------------------------
    # 覆盖
    # ------------------------------------------------------------------

    def overrides_for(self, key: str | None, vcs: VCSDefinition) -> VCSDefinition:
        """按本集合的 overrides 段依次更新 vcs"""
        if key is None:
            return vcs
        for file, entries in self.overrides:
            for matcher, patch in entries:
                if not _matches(matcher, key):
                    continue
                try:
                    vcs = vcs.apply_override(patch, self.ws.importers, base_dir=self.ws.config_dir)
                except ConfigError as e:
                    raise ConfigError(
                        f"{file}: {key} 的覆盖结果不是合法的 VCS 描述: {e}", file=file,
                    ) from e
        return vcs

    # ------------------------------------------------------------------
    # 快照
    # ------------------------------------------------------------------

    def snapshot(self, target_dir: Path) -> dict[str, Any] | None:
        """返回固定版本描述；本地集合返回空字典，不支持固定版本的类型返回 None"""
        if self.is_local:
            return {}
        importer = self.ws.importers.get(self.vcs.type)
        return importer.snapshot(self.vcs, self.raw_local_dir, target_dir)

    def __repr__(self) -> str:
        name = self._name or str(self.vcs)
        return f"<PackageSet {name}>"


class LocalPackageSet(PackageSet):
    """主配置: 配置目录中的 manifest.yml + overrides.yml，作为导入图的根

    manifest.yml:
        package_sets: [...]       # 根的导入，顺序即用户偏好的顺序
        layout: [...]             # 默认选择的包
        exclude_packages: [...]   # 正则
        ignore_packages: [...]
        constants: {...}
    """

    def __init__(self, ws: Workspace) -> None:
        config_dir = ws.config_dir.resolve()
        super().__init__(
            ws, VCSDefinition("local", str(config_dir)),
            raw_local_dir=config_dir, name="main configuration",
        )
        self.explicit = True
        self.layout: list[str] = []
        self.exclude_packages: list[str] = []
        self.ignore_packages: list[str] = []

    @property
    def main(self) -> bool:
        return True

    @property
    def user_local_dir(self) -> Path:
        return self.raw_local_dir

    def manifest_file(self) -> Path:
        return self.raw_local_dir / self.ws.config.manifest_file

    def overrides_file(self) -> Path:
        return self.raw_local_dir / self.ws.config.overrides_file

    def load_description_file(self) -> None:
        path = self.manifest_file()
        raw = load_yaml(path, required=True)
        data = validate_description(path, {
            "imports": raw.get("package_sets"),
            "constants": raw.get("constants"),
            "packages": raw.get("packages"),
            "osdeps": raw.get("osdeps"),
            "overrides": raw.get("overrides"),
            "required_wsmgr_version": raw.get("required_wsmgr_version"),
        })
        for key in ("layout", "exclude_packages", "ignore_packages"):
            value = raw.get(key) or []
            if not isinstance(value, list):
                raise ConfigError(f"{path}: '{key}' 段应为列表", file=str(path))
            setattr(self, key, [str(v) for v in value])

        self.parse_description(data, path)

        overrides_path = self.overrides_file()
        extra = load_yaml(overrides_path).get("overrides") or []
        if not isinstance(extra, list):
            raise ConfigError(f"{overrides_path}: 'overrides' 段应为列表", file=str(overrides_path))
        if extra:
            self.overrides.append((str(overrides_path), parse_overrides(overrides_path, extra)))

    def __repr__(self) -> str:
        return "<LocalPackageSet main configuration>"
