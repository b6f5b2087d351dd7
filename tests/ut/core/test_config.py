"""配置 / YAML 读写 / 日志格式 单元测试"""

from __future__ import annotations

import io
import json
import logging
from pathlib import Path

import pytest

from wsmgr.core.config import Config
from wsmgr.core.exceptions import ConfigError
from wsmgr.utils.logger import JSONFormatter, setup_logging
from wsmgr.utils.yaml_io import load_yaml, save_yaml

# =========================================================================
# config.py
# =========================================================================


class TestConfig:
    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        cfg = Config.from_file(str(tmp_path / "none.yml"))
        assert cfg.parallel_import_level == 4 and not cfg.keep_going

    def test_unknown_keys_kept_in_extra(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yml"
        save_yaml(path, {"root_dir": str(tmp_path), "keep_going": True, "mirror": "internal"})
        cfg = Config.from_file(str(path))
        assert cfg.keep_going
        assert cfg.extra == {"mirror": "internal"}

    def test_derived_paths(self, tmp_path: Path) -> None:
        cfg = Config(root_dir=str(tmp_path))
        assert cfg.config_path == tmp_path.resolve() / "wsconfig"
        assert cfg.remotes_path == tmp_path.resolve() / ".remotes"
        assert cfg.remotes_user_path == cfg.config_path / "remotes"


# =========================================================================
# yaml_io.py
# =========================================================================


class TestYamlIO:
    def test_required_missing(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="配置文件不存在"):
            load_yaml(tmp_path / "missing.yml", required=True)

    def test_top_level_must_be_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="顶层应为映射") as exc_info:
            load_yaml(path)
        assert exc_info.value.file == str(path)

    def test_syntax_error(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yml"
        path.write_text("a: [1, 2\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="解析 YAML 文件失败"):
            load_yaml(path)

    def test_save_keeps_key_order(self, tmp_path: Path) -> None:
        path = tmp_path / "out" / "overrides.yml"
        save_yaml(path, {"z": 1, "a": "中文"})
        assert path.read_text(encoding="utf-8").splitlines() == ["z: 1", "a: 中文"]
        assert not list(path.parent.glob("*.tmp"))


# =========================================================================
# logger.py
# =========================================================================


class TestLogging:
    def test_json_formatter_context(self) -> None:
        record = logging.LogRecord("wsmgr.test", logging.WARNING, __file__, 1, "跳过 %s", ("core",), None)
        record.pkg_set = "core"
        entry = json.loads(JSONFormatter().format(record))
        assert entry["message"] == "跳过 core"
        assert entry["level"] == "WARNING"
        assert entry["pkg_set"] == "core"
        assert "package" not in entry

    def test_setup_logging_replaces_handlers(self) -> None:
        root = logging.getLogger()
        saved, level = root.handlers[:], root.level
        try:
            stream = io.StringIO()
            setup_logging("DEBUG", json_output=True, stream=stream)
            setup_logging("DEBUG", json_output=True, stream=stream)
            assert len(root.handlers) == 1
            logging.getLogger("wsmgr.test").info("hello")
            assert json.loads(stream.getvalue().strip())["message"] == "hello"
        finally:
            for handler in root.handlers[:]:
                root.removeHandler(handler)
            for handler in saved:
                root.addHandler(handler)
            root.setLevel(level)
