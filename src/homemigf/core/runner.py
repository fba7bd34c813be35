"""
运行模块 - 读取控制表、逐条迁移、备份并写回控制表
"""
from datetime import datetime
from pathlib import Path
from typing import Optional

from loguru import logger
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from ..config import MigrationConfig
from .control_table import ControlTable
from .engine import MigrationEngine, is_eligible
from .mirror_copy import MirrorCopy, create_mirror
from .models import RecordOutcome, RunContext, RunMode, RunReport
from .permission_reset import PermissionReset, create_permission_reset


class MigrationRunner:
    """迁移运行器 - 整次运行的入口"""

    def __init__(
        self,
        config: MigrationConfig,
        permissions: Optional[PermissionReset] = None,
        mirror: Optional[MirrorCopy] = None,
        console: Console = None,
    ):
        self.config = config
        self.console = console or Console()
        self.permissions = permissions or create_permission_reset(
            config.platform, config.domain, config.system_principal
        )
        self.mirror = mirror or create_mirror(config.platform, config.retries, config.wait_seconds)
        self.engine = MigrationEngine(self.permissions, self.mirror)

    def run(
        self,
        control_file,
        log_dir,
        adhoc: bool = False,
        dry_run: bool = False,
        now: Optional[datetime] = None,
    ) -> RunReport:
        """
        执行一次迁移运行

        Args:
            control_file: 控制文件路径
            log_dir: 用户日志目录
            adhoc: True 时只处理标记了 FinalizeMigration 的激活记录
            dry_run: 只评估哪些记录会被处理，不修改任何文件
            now: 运行时间，默认为当前时间

        Returns:
            RunReport: 运行汇总

        Raises:
            ControlTableNotFound, ControlTableReadError: 读取控制文件失败，不处理任何记录
            BackupFailed: 备份失败，控制文件不被覆盖
        """
        context = RunContext(
            started_at=now or datetime.now(),
            log_dir=Path(log_dir),
            mode=RunMode.ADHOC if adhoc else RunMode.CONTINUOUS,
        )
        logger.info(f"运行模式: {context.mode.value}，时间戳: {context.stamp}")

        table = ControlTable.load(control_file, self.config.columns, self.config.delimiter)
        report = RunReport(control_file=table.path, dry_run=dry_run)

        if dry_run:
            report.outcomes = [
                RecordOutcome(record=record, status="planned" if is_eligible(record, context.mode) else "skipped")
                for record in table.records
            ]
            logger.info(f"预览模式: {sum(1 for o in report.outcomes if o.processed)} 条记录将被迁移")
            return report

        try:
            context.log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"无法创建日志目录 {context.log_dir}: {e}")

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("•"),
            TextColumn("[{task.completed}/{task.total}]"),
            TextColumn("•"),
            TimeElapsedColumn(),
            console=self.console,
            transient=False,
        ) as progress:
            task_id = progress.add_task("[cyan]正在迁移用户目录...", total=len(table))

            def advance(outcome: RecordOutcome) -> None:
                name = outcome.record.user_name
                if outcome.status == "success":
                    description = f"[green]成功:[/green] [dim]{name}[/dim]"
                elif outcome.status == "failed":
                    description = f"[red]失败:[/red] [dim]{name}[/dim]"
                else:
                    description = f"[yellow]跳过:[/yellow] [dim]{name}[/dim]"
                progress.update(task_id, advance=1, description=description)

            report.outcomes = self.engine.run(table.records, context, on_record=advance)

        table.records = [outcome.record for outcome in report.outcomes]
        report.backup_path = table.save(context.backup_suffix)

        logger.info("迁移总结:")
        logger.info(f"  成功: {report.success} 个用户")
        if report.failed > 0:
            logger.error(f"  失败: {report.failed} 个用户")
        else:
            logger.info("  失败: 0 个用户")
        logger.info(f"  跳过: {report.skipped} 条记录")
        return report
