"""CLI — 配置与包集合命令"""

from __future__ import annotations

from pathlib import Path

import click

from wsmgr.cli import _svc, handle_errors


def register(group: click.Group) -> None:
    group.add_command(update_config)
    group.add_command(list_sets)
    group.add_command(snapshot)


@click.command(name="update-config")
@click.option("--only-local", is_flag=True, help="不访问网络，只使用已有检出")
@click.option("--keep-going", "-k", is_flag=True, help="包集合检出失败时继续")
@handle_errors
def update_config(only_local: bool, keep_going: bool) -> None:
    """更新包集合并重新加载配置"""
    result = _svc().workspace_service.update_configuration(
        only_local=only_local, keep_going=keep_going or None,
    )
    for pkg_set in result.package_sets:
        click.echo(f"  {pkg_set.name}")
    if result.failures:
        for failure in result.failures:
            click.echo(f"失败: {failure}", err=True)
        raise click.ClickException(f"{len(result.failures)} 个包集合更新失败")


@click.command(name="sets")
@handle_errors
def list_sets() -> None:
    """按加载顺序列出包集合"""
    svc = _svc().workspace_service
    svc.update_configuration(only_local=True)
    for pkg_set in svc.package_sets():
        flag = " (explicit)" if pkg_set.explicit else ""
        click.echo(f"{pkg_set.name}{flag}")
        if not pkg_set.main:
            click.echo(f"  from: {pkg_set.vcs}")
        click.echo(f"  dir:  {pkg_set.local_dir}")
        imports = [s.name for s in pkg_set.imports]
        if imports:
            click.echo(f"  imports: {', '.join(imports)}")


@click.command()
@click.argument("target_dir", type=click.Path(file_okay=False, path_type=Path))
@click.option(
    "--output", "-o", type=click.Path(dir_okay=False, path_type=Path), default=None,
    help="输出的 overrides 文件（默认 TARGET_DIR/overrides.yml）",
)
@handle_errors
def snapshot(target_dir: Path, output: Path | None) -> None:
    """把所有远程包集合固定到当前版本"""
    svc = _svc().workspace_service
    svc.update_configuration(only_local=True)
    output = output or target_dir / "overrides.yml"
    data = svc.snapshot_package_sets(target_dir, output)
    click.echo(f"已固定 {len(data['overrides'])} 个包集合 -> {output}")
