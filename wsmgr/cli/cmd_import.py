"""CLI — 源码包导入命令"""

from __future__ import annotations

import click

from wsmgr.cli import _svc, handle_errors
from wsmgr.services.importer.walker import NON_IMPORTED_POLICIES


def register(group: click.Group) -> None:
    group.add_command(import_cmd)
    group.add_command(excluded)


@click.command(name="import")
@click.argument("names", nargs=-1)
@click.option("--keep-going", "-k", is_flag=True, help="导入失败时继续处理其余包")
@click.option("--auto-exclude", is_flag=True, help="导入失败的包自动排除")
@click.option("--parallel", "-p", type=int, default=None, help="并行导入数")
@click.option("--retry-count", type=int, default=None, help="导入失败时的重试次数")
@click.option("--no-deps", is_flag=True, help="只导入选中的包，不处理依赖")
@click.option("--checkout-only", is_flag=True, help="只检出缺失的包，不更新已有的包")
@click.option(
    "--non-imported", type=click.Choice(NON_IMPORTED_POLICIES), default="checkout",
    help="对尚未检出的包: checkout 检出 / ignore 忽略 / return 只遍历依赖",
)
@click.option("--only-local", is_flag=True, help="不访问网络")
@handle_errors
def import_cmd(
    names: tuple[str, ...],
    keep_going: bool,
    auto_exclude: bool,
    parallel: int | None,
    retry_count: int | None,
    no_deps: bool,
    checkout_only: bool,
    non_imported: str,
    only_local: bool,
) -> None:
    """导入选中的包（默认 layout）及其依赖"""
    svc = _svc().workspace_service
    svc.update_configuration(only_local=only_local, keep_going=keep_going or None)
    result = svc.import_packages(
        names,
        keep_going=keep_going or None,
        auto_exclude=auto_exclude or None,
        parallel=parallel,
        retry_count=retry_count,
        recursive=not no_deps,
        checkout_only=checkout_only,
        non_imported_packages=non_imported,
        only_local=only_local,
    )
    click.echo(f"源码包 ({len(result.source_packages)}): {' '.join(result.source_packages)}")
    if result.osdep_packages:
        click.echo(f"OS 依赖 ({len(result.osdep_packages)}): {' '.join(result.osdep_packages)}")


@click.command()
@handle_errors
def excluded() -> None:
    """列出被排除的包及原因"""
    svc = _svc().workspace_service
    svc.update_configuration(only_local=True)
    manifest = svc.ws.manifest
    names = sorted(n for n in {*manifest.packages, *manifest.osdeps} if manifest.is_excluded(n))
    if not names:
        click.echo("没有被排除的包。")
        return
    for name in names:
        click.echo(f"  {name}: {manifest.exclusion_reason(name)}")
