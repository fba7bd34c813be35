"""
homemigf 包的命令行入口点，使用 Typer 实现命令行界面
"""
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console

from .config import CONFIG_FILE, load_config
from .core.control_table import ControlTable
from .core.errors import ConfigError, HomeMigError
from .core.runner import MigrationRunner
from .ui.tables import show_control_table, show_run_report


def setup_logger(app_name="app", project_root=None, console_output=True):
    """配置 Loguru 日志系统

    Args:
        app_name: 应用名称，用于日志目录
        project_root: 项目根目录，默认为当前文件所在目录
        console_output: 是否输出到控制台，默认为True

    Returns:
        tuple: (logger, config_info)
            - logger: 配置好的 logger 实例
            - config_info: 包含日志配置信息的字典
    """
    if project_root is None:
        project_root = Path(__file__).parent.resolve()

    # 清除默认处理器
    logger.remove()

    if console_output:
        logger.add(
            sys.stdout,
            level="INFO",
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <blue>{elapsed}</blue> | <level>{level.icon} {level: <8}</level> | <cyan>{name}:{function}:{line}</cyan> - <level>{message}</level>"
        )

    current_time = datetime.now()
    date_str = current_time.strftime("%Y-%m-%d")
    hour_str = current_time.strftime("%H")
    minute_str = current_time.strftime("%M%S")

    log_dir = os.path.join(project_root, "logs", app_name, date_str, hour_str)
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, f"{minute_str}.log")

    logger.add(
        log_file,
        level="DEBUG",
        rotation="10 MB",
        retention="30 days",
        compression="zip",
        encoding="utf-8",
        format="{time:YYYY-MM-DD HH:mm:ss} | {elapsed} | {level.icon} {level: <8} | {name}:{function}:{line} - {message}",
        enqueue=True,
    )

    config_info = {
        'log_file': log_file,
    }

    logger.info(f"日志系统已初始化，应用名称: {app_name}")
    return logger, config_info


# 创建 Typer 应用
app = typer.Typer(help="用户主目录迁移工具 - 按控制表镜像复制用户目录并重置权限")

console = Console()


@app.command()
def run(
    control_file: Optional[Path] = typer.Option(None, "--control-file", "-c", help="控制文件路径（分号分隔，无表头）"),
    log_dir: Optional[Path] = typer.Option(None, "--log-dir", "-l", help="用户日志目录"),
    adhoc: bool = typer.Option(False, "--adhoc", help="只处理标记了 FinalizeMigration 的激活记录"),
    dry_run: bool = typer.Option(False, "--dry-run", help="只显示将被迁移的记录，不修改任何文件"),
    config_path: Path = typer.Option(CONFIG_FILE, "--config", help="配置文件路径"),
    backend: Optional[str] = typer.Option(None, "--backend", help="auto / windows / posix"),
):
    """按控制表执行一次迁移"""
    try:
        config = load_config(config_path)
    except ConfigError as e:
        logger.error(f"错误: {e}")
        raise typer.Exit(code=1)
    if backend:
        config.backend = backend

    control_file = control_file or (Path(config.control_file) if config.control_file else None)
    log_dir = log_dir or (Path(config.log_dir) if config.log_dir else None)
    if not control_file or not log_dir:
        logger.error("错误: 未指定控制文件或日志目录。请使用 --control-file 和 --log-dir 选项")
        raise typer.Exit(code=1)

    setup_logger(app_name="homemigf", project_root=log_dir, console_output=True)

    runner = MigrationRunner(config, console=console)
    try:
        report = runner.run(control_file, log_dir, adhoc=adhoc, dry_run=dry_run)
    except HomeMigError as e:
        logger.error(f"运行中止: {e}")
        raise typer.Exit(code=1)

    show_run_report(report, console)
    if report.failed > 0:
        raise typer.Exit(code=2)


@app.command()
def status(
    control_file: Optional[Path] = typer.Option(None, "--control-file", "-c", help="控制文件路径"),
    config_path: Path = typer.Option(CONFIG_FILE, "--config", help="配置文件路径"),
):
    """只读显示控制表"""
    try:
        config = load_config(config_path)
        control_file = control_file or (Path(config.control_file) if config.control_file else None)
        if not control_file:
            logger.error("错误: 未指定控制文件。请使用 --control-file 选项")
            raise typer.Exit(code=1)
        table = ControlTable.load(control_file, config.columns, config.delimiter)
    except HomeMigError as e:
        logger.error(f"错误: {e}")
        raise typer.Exit(code=1)

    show_control_table(table.records, console, title=str(table.path))


def main():
    """主入口函数"""
    app()


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        logger.error("操作已中断")
