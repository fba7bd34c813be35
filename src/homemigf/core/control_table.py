"""
控制表模块 - 负责控制文件的读取与带备份的写回
"""
import csv
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from loguru import logger

from .errors import BackupFailed, ControlTableNotFound, ControlTableReadError, ControlTableWriteError
from .models import DATE_FORMAT, ControlRecord, MigrationResult

# 控制文件列名 -> ControlRecord 字段
FIELD_MAP: Dict[str, str] = {
    "MigrationActive": "migration_active",
    "FinalizeMigration": "finalize_migration",
    "UserName": "user_name",
    "UserSrcPath": "user_src_path",
    "UserDstPath": "user_dst_path",
    "LastMigration": "last_migration",
    "LastMigrationResult": "last_migration_result",
    "MigrationLog": "migration_log",
}


def parse_bool(text: str) -> bool:
    value = text.strip().lower()
    if value in ("true", "1"):
        return True
    if value in ("false", "0", ""):
        return False
    raise ValueError(f"无效的布尔值: {text!r}")


def parse_date(text: str):
    text = text.strip()
    if not text:
        return None
    return datetime.strptime(text, DATE_FORMAT).date()


def parse_result(text: str) -> MigrationResult:
    value = text.strip().upper()
    for result in MigrationResult:
        if result.value == value:
            return result
    raise ValueError(f"无效的迁移结果: {text!r}")


def format_field(name: str, value) -> str:
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, MigrationResult):
        return value.value
    if name == "last_migration":
        return value.strftime(DATE_FORMAT) if value else ""
    return "" if value is None else str(value)


def parse_row(fields: Sequence[str], columns: Sequence[str]) -> ControlRecord:
    """按给定列顺序把一行文本转换为 ControlRecord，在此处完成类型校验

    UserName 去掉首尾空白；记录被修改后写回的是去掉空白的值。
    """
    if len(fields) > len(columns):
        raise ValueError(f"字段数 {len(fields)} 超过列数 {len(columns)}")
    padded = list(fields) + [""] * (len(columns) - len(fields))
    raw = {FIELD_MAP[col]: text for col, text in zip(columns, padded)}
    return ControlRecord(
        migration_active=parse_bool(raw["migration_active"]),
        finalize_migration=parse_bool(raw["finalize_migration"]),
        user_name=raw["user_name"].strip(),
        user_src_path=raw["user_src_path"],
        user_dst_path=raw["user_dst_path"],
        last_migration=parse_date(raw["last_migration"]),
        last_migration_result=parse_result(raw["last_migration_result"]),
        migration_log=raw["migration_log"],
    )


def format_row(record: ControlRecord, columns: Sequence[str]) -> List[str]:
    return [format_field(FIELD_MAP[col], getattr(record, FIELD_MAP[col])) for col in columns]


class ControlTable:
    """控制表 - 有序的 ControlRecord 序列，与控制文件逐行对应"""

    def __init__(
        self,
        path: Path,
        records: List[ControlRecord],
        columns: Sequence[str],
        delimiter: str = ";",
        originals: Optional[List[Tuple[ControlRecord, List[str]]]] = None,
    ):
        self.path = Path(path)
        self.records = records
        self.columns = list(columns)
        self.delimiter = delimiter
        # 读取时的记录和原始文本，未修改的行按原文写回
        self._originals = originals or []

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    @classmethod
    def load(cls, path, columns: Sequence[str], delimiter: str = ";") -> "ControlTable":
        """
        读取控制文件

        空行（所有字段都为空）不对应任何记录，写回时不会保留。

        Args:
            path: 控制文件路径
            columns: 列名列表（文件本身没有表头）
            delimiter: 分隔符

        Raises:
            ControlTableNotFound: 文件不存在
            ControlTableReadError: 文件无法打开或解析
        """
        path = Path(path)
        unknown = [col for col in columns if col not in FIELD_MAP]
        if unknown or len(columns) != len(FIELD_MAP) or len(set(columns)) != len(FIELD_MAP):
            raise ValueError(f"列定义无效: {list(columns)}")

        if not path.exists():
            raise ControlTableNotFound(f"控制文件不存在: {path}")

        records: List[ControlRecord] = []
        originals: List[Tuple[ControlRecord, List[str]]] = []
        try:
            with open(path, "r", encoding="utf-8-sig", newline="") as f:
                reader = csv.reader(f, delimiter=delimiter)
                for fields in reader:
                    if not any(field.strip() for field in fields):
                        continue
                    try:
                        record = parse_row(fields, columns)
                    except ValueError as e:
                        raise ControlTableReadError(f"{path} 第 {reader.line_num} 行无法解析: {e}") from e
                    records.append(record)
                    padded = list(fields) + [""] * (len(columns) - len(fields))
                    originals.append((record, padded))
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            raise ControlTableReadError(f"无法读取控制文件 {path}: {e}") from e

        logger.info(f"已读取控制文件 {path}: {len(records)} 条记录")
        return cls(path, records, columns, delimiter, originals)

    def rows(self) -> List[List[str]]:
        """按列顺序序列化所有记录"""
        result = []
        for index, record in enumerate(self.records):
            if index < len(self._originals) and self._originals[index][0] == record:
                result.append(self._originals[index][1])
            else:
                result.append(format_row(record, self.columns))
        return result

    def save(self, backup_suffix: str, path=None) -> Path:
        """
        先把当前文件复制到 path + backup_suffix，再写回记录

        备份失败时抛出 BackupFailed，原文件保持不变。

        Returns:
            Path: 备份文件路径
        """
        path = Path(path) if path else self.path
        backup_path = path.with_name(path.name + backup_suffix)

        try:
            shutil.copy2(path, backup_path)
        except OSError as e:
            raise BackupFailed(f"无法备份控制文件 {path} -> {backup_path}: {e}") from e
        logger.info(f"已备份控制文件: {backup_path}")

        rows = self.rows()
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                writer = csv.writer(f, delimiter=self.delimiter, lineterminator="\n")
                writer.writerows(rows)
                f.flush()
                os.fsync(f.fileno())
            shutil.copymode(path, tmp_name)
            os.replace(tmp_name, path)
        except OSError as e:
            try:
                os.unlink(tmp_name)
            except OSError as cleanup_error:
                logger.warning(f"清理临时文件 {tmp_name} 失败: {cleanup_error}")
            raise ControlTableWriteError(f"写回控制文件 {path} 失败，备份位于 {backup_path}: {e}") from e

        logger.info(f"已写回控制文件 {path}: {len(rows)} 条记录")
        return backup_path
