"""homemigf 数据模型"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional

# 控制文件中的日期格式 (day.month.year)
DATE_FORMAT = "%d.%m.%Y"
# 运行时间戳格式，用于日志文件名和备份后缀
STAMP_FORMAT = "%d%m%Y-%H%M%S"


def join_user_path(base: str, user_name: str) -> Path:
    """把用户名拼到基础路径后面；去掉末尾分隔符，但根目录（/、D:\\）保持不变"""
    trimmed = base.rstrip("/\\")
    if not trimmed or trimmed.endswith(":"):
        return Path(base) / user_name
    return Path(trimmed) / user_name


class MigrationResult(str, Enum):
    UNSET = ""
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class RunMode(str, Enum):
    CONTINUOUS = "continuous"
    ADHOC = "adhoc"


@dataclass(frozen=True)
class ControlRecord:
    """控制表中的一行，对应一个用户的迁移状态"""
    migration_active: bool
    finalize_migration: bool
    user_name: str
    user_src_path: str
    user_dst_path: str
    last_migration: Optional[date] = None
    last_migration_result: MigrationResult = MigrationResult.UNSET
    migration_log: str = ""

    @property
    def source_path(self) -> Path:
        """源目录 = UserSrcPath + UserName"""
        return join_user_path(self.user_src_path, self.user_name)

    @property
    def destination_path(self) -> Path:
        """目标目录 = UserDstPath(去掉末尾分隔符) + UserName"""
        return join_user_path(self.user_dst_path, self.user_name)


@dataclass(frozen=True)
class RunContext:
    """一次运行共享的只读上下文"""
    started_at: datetime
    log_dir: Path
    mode: RunMode = RunMode.CONTINUOUS

    @property
    def stamp(self) -> str:
        return self.started_at.strftime(STAMP_FORMAT)

    @property
    def run_date(self) -> date:
        return self.started_at.date()

    @property
    def backup_suffix(self) -> str:
        return f".{self.stamp}.bak"

    def log_file_for(self, user_name: str) -> Path:
        return self.log_dir / f"{self.stamp}_{user_name}.log"

    def copy_log_file_for(self, user_name: str, tag: str = "Robocopy") -> Path:
        return self.log_dir / f"{self.stamp}_{user_name}_{tag}.log"


@dataclass
class RecordOutcome:
    """单条记录的处理结果"""
    record: ControlRecord
    status: str = "skipped"  # skipped, success, failed
    exit_code: Optional[int] = None
    log_lines: List[str] = field(default_factory=list)

    @property
    def processed(self) -> bool:
        return self.status != "skipped"


@dataclass
class RunReport:
    """整次运行的汇总"""
    control_file: Path
    backup_path: Optional[Path] = None
    outcomes: List[RecordOutcome] = field(default_factory=list)
    dry_run: bool = False

    @property
    def success(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "success")

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "failed")

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "skipped")
