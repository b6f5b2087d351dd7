"""wsmgr 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

import functools
import os
from typing import Any, Callable

import click

from wsmgr import __version__
from wsmgr.core.config import init_config
from wsmgr.core.exceptions import WsmgrError
from wsmgr.services.container import get_container, reset_container
from wsmgr.utils.logger import setup_logging


def _svc() -> Any:
    """获取全局服务容器的快捷方式"""
    return get_container()


def handle_errors(fn: Callable[..., Any]) -> Callable[..., Any]:
    """把 WsmgrError 转换为 click 的友好错误输出"""

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except WsmgrError as e:
            raise click.ClickException(f"[{e.code}] {e}") from e

    return wrapper


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config", "config_path", default="wsconfig/config.yml",
    envvar="WSMGR_CONFIG_FILE", help="wsmgr 配置文件路径",
)
def main(config_path: str) -> None:
    """wsmgr - 多仓库工作空间管理"""
    setup_logging(
        level=os.getenv("WSMGR_LOG_LEVEL", "INFO"),
        json_output=os.getenv("WSMGR_LOG_JSON", "") == "1",
    )
    init_config(config_path)
    reset_container()


# 注册各领域子命令
from wsmgr.cli.cmd_config import register as _reg_config  # noqa: E402
from wsmgr.cli.cmd_import import register as _reg_import  # noqa: E402

_reg_config(main)
_reg_import(main)
