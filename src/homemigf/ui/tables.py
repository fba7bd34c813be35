"""
表格输出模块 - 使用 Rich 展示控制表和运行结果
"""
from typing import Iterable

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..core.models import ControlRecord, MigrationResult, RunReport

RESULT_STYLES = {
    MigrationResult.SUCCESS: "green",
    MigrationResult.FAILED: "red",
    MigrationResult.UNSET: "dim",
}

STATUS_STYLES = {
    "success": "green",
    "failed": "red",
    "planned": "cyan",
    "skipped": "dim",
}


def _flag(value: bool) -> str:
    return "[green]✓[/green]" if value else "[dim]-[/dim]"


def show_control_table(records: Iterable[ControlRecord], console: Console, title: str = "控制表") -> None:
    """显示控制表内容"""
    table = Table(title=title)
    table.add_column("No.", style="cyan", no_wrap=True)
    table.add_column("Active", justify="center")
    table.add_column("Finalize", justify="center")
    table.add_column("User", style="magenta")
    table.add_column("Source", overflow="fold")
    table.add_column("Destination", overflow="fold")
    table.add_column("Last", no_wrap=True)
    table.add_column("Result", no_wrap=True)

    for i, record in enumerate(records, 1):
        result = record.last_migration_result
        style = RESULT_STYLES[result]
        table.add_row(
            str(i),
            _flag(record.migration_active),
            _flag(record.finalize_migration),
            escape(record.user_name),
            escape(record.user_src_path),
            escape(record.user_dst_path),
            record.last_migration.strftime("%d.%m.%Y") if record.last_migration else "",
            f"[{style}]{result.value or '-'}[/{style}]",
        )
    console.print(table)


def show_run_report(report: RunReport, console: Console) -> None:
    """显示本次运行处理过的记录"""
    title = "预览: 将被迁移的用户" if report.dry_run else "迁移结果"
    table = Table(title=title)
    table.add_column("User", style="magenta")
    table.add_column("Status", no_wrap=True)
    if report.dry_run:
        table.add_column("Source", overflow="fold")
        table.add_column("Destination", overflow="fold")
    else:
        table.add_column("Exit code", justify="right")
        table.add_column("Log", overflow="fold")

    for outcome in report.outcomes:
        if not outcome.processed:
            continue
        record = outcome.record
        style = STATUS_STYLES.get(outcome.status, "white")
        status = f"[{style}]{outcome.status}[/{style}]"
        if report.dry_run:
            table.add_row(
                escape(record.user_name), status, escape(str(record.source_path)), escape(str(record.destination_path))
            )
        else:
            exit_code = "" if outcome.exit_code is None else str(outcome.exit_code)
            table.add_row(escape(record.user_name), status, exit_code, escape(record.migration_log))

    console.print(table)
    if not report.dry_run:
        console.print(
            f"[green]成功 {report.success}[/green] • [red]失败 {report.failed}[/red] • "
            f"[dim]跳过 {report.skipped}[/dim]"
        )
        if report.backup_path:
            console.print(f"[dim]备份: {report.backup_path}[/dim]")
