"""
迁移引擎 - 对每条符合条件的记录依次执行权限接管、镜像复制、权限交还和结果记录
"""
from dataclasses import replace
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple

from loguru import logger

from .errors import MirrorCopyError, PermissionResetError
from .mirror_copy import MirrorCopy
from .models import ControlRecord, MigrationResult, RecordOutcome, RunContext, RunMode
from .permission_reset import PermissionReset
from .user_log import UserLog


def is_eligible(record: ControlRecord, mode: RunMode) -> bool:
    """continuous 模式处理所有激活记录，adhoc 模式只处理同时标记了 FinalizeMigration 的记录"""
    if not record.migration_active:
        return False
    if mode == RunMode.ADHOC:
        return record.finalize_migration
    return True


def record_outcome(record: ControlRecord, success: bool, context: RunContext) -> ControlRecord:
    """同时写入 LastMigrationResult 和 LastMigration，成功且 finalize 时停用记录"""
    return replace(
        record,
        last_migration_result=MigrationResult.SUCCESS if success else MigrationResult.FAILED,
        last_migration=context.run_date,
        migration_active=False if (success and record.finalize_migration) else record.migration_active,
    )


class MigrationEngine:
    """迁移引擎类"""

    def __init__(self, permissions: PermissionReset, mirror: MirrorCopy):
        self.permissions = permissions
        self.mirror = mirror

    def migrate_record(self, record: ControlRecord, context: RunContext) -> RecordOutcome:
        """
        处理单条记录，返回更新后的记录和该次尝试的日志行

        不符合条件的记录原样返回，不创建日志文件。单条记录内的任何错误都不会向外抛出。
        """
        if not is_eligible(record, context.mode):
            return RecordOutcome(record=record)

        user = record.user_name
        log_file = context.log_file_for(user)
        copy_log_file = context.copy_log_file_for(user, self.mirror.log_tag)
        record = replace(record, migration_log=str(log_file))

        exit_code: Optional[int] = None
        with UserLog(log_file, user) as user_log:
            try:
                success, exit_code = self._attempt(record, copy_log_file, user_log)
            except Exception as e:
                user_log.error(f"Unexpected error while migrating user {user}: {e}")
                success = False
            record = record_outcome(record, success, context)
            if success and not record.migration_active:
                user_log.write(f"Migration of user {user} finalized, record deactivated")
            user_log.write(f"Migration of user {user} finished: {record.last_migration_result.value}")

        return RecordOutcome(
            record=record,
            status="success" if success else "failed",
            exit_code=exit_code,
            log_lines=list(user_log.lines),
        )

    def _attempt(self, record: ControlRecord, copy_log_file: Path, user_log: UserLog) -> Tuple[bool, Optional[int]]:
        user = record.user_name
        src = record.source_path
        dst = record.destination_path
        user_log.write(f"Starting migration of user {user}: {src} -> {dst}")

        if not src.exists():
            user_log.error(f"Source path {src} does not exist, nothing copied")
            return False, None

        if not dst.exists():
            try:
                dst.mkdir(parents=True)
            except OSError as e:
                user_log.error(f"Could not create destination path {dst}: {e}")
                return False, None
            user_log.write(f"Created destination path {dst}")

        owned = False
        try:
            self.permissions.take_ownership(dst)
            owned = True
            user_log.write(f"Took ownership of {dst}")
        except PermissionResetError as e:
            user_log.error(f"Could not take ownership of {dst}: {e}")

        copied = False
        exit_code: Optional[int] = None
        try:
            if owned:
                copied, exit_code = self._copy(src, dst, copy_log_file, user_log)
            else:
                user_log.error("Mirror copy skipped")
        finally:
            # 无论复制结果如何（包括意外异常）都把目录交还给用户
            granted = self._grant(dst, user, user_log)

        return copied and granted, exit_code

    def _copy(self, src: Path, dst: Path, copy_log_file: Path, user_log: UserLog) -> Tuple[bool, Optional[int]]:
        try:
            exit_code = self.mirror.run(src, dst, copy_log_file)
        except MirrorCopyError as e:
            user_log.error(f"Mirror copy could not be started: {e}")
            return False, None

        copied = self.mirror.is_success(exit_code)
        meaning = self.mirror.describe(exit_code)
        message = f"Mirror copy exit code {exit_code}" + (f" ({meaning})" if meaning else "")
        if copied:
            user_log.write(message)
        else:
            user_log.error(f"{message}, see {copy_log_file}")
        return copied, exit_code

    def _grant(self, dst: Path, user: str, user_log: UserLog) -> bool:
        try:
            failures = self.permissions.grant_user_and_system(dst, user)
        except PermissionResetError as e:
            user_log.error(f"Could not reset permissions on {dst}: {e}")
            return False
        for child, message in failures:
            user_log.error(f"Could not set owner of {child}: {message}")
        user_log.write(f"Granted full control on {dst} to {user} and system, owner reset")
        return True

    def run(
        self,
        records: Iterable[ControlRecord],
        context: RunContext,
        on_record: Optional[Callable[[RecordOutcome], None]] = None,
    ) -> List[RecordOutcome]:
        """按文件顺序逐条处理，一次只处理一条"""
        outcomes = []
        for record in records:
            outcome = self.migrate_record(record, context)
            if outcome.processed:
                logger.info(f"用户 {record.user_name}: {outcome.status}")
            outcomes.append(outcome)
            if on_record:
                on_record(outcome)
        return outcomes
