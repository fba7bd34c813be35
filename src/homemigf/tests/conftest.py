"""homemigf 测试公共夹具"""

import shutil
from datetime import datetime
from pathlib import Path

import pytest

from homemigf.core.errors import MirrorCopyError, PermissionResetError
from homemigf.core.mirror_copy import RobocopyMirror
from homemigf.core.models import ControlRecord, RunContext, RunMode
from homemigf.core.permission_reset import PermissionReset

RUN_AT = datetime(2026, 3, 14, 9, 30, 5)


class FakePermissionReset(PermissionReset):
    """在内存中模拟所有者、继承和访问规则"""

    def __init__(self, identity="svc_migration", system_identity="SYSTEM",
                 fail_take=False, fail_grant=False, fail_children=()):
        self.identity = identity
        self.system_identity = system_identity
        self.fail_take = fail_take
        self.fail_grant = fail_grant
        self.fail_children = set(fail_children)
        self.calls = []
        self.owners = {}
        self.inherits = {}
        self.rules = {}

    def take_ownership(self, path):
        path = Path(path)
        self.calls.append(("take_ownership", path))
        if self.fail_take:
            raise PermissionResetError("access denied")
        self.owners[path] = self.identity
        self.rules.setdefault(path, []).append((self.identity, "FullControl"))

    def grant_user_and_system(self, path, user_name):
        path = Path(path)
        self.calls.append(("grant_user_and_system", path, user_name))
        if self.fail_grant:
            raise PermissionResetError("access denied")
        self.inherits[path] = False
        self.rules.setdefault(path, []).extend([(user_name, "FullControl"), (self.system_identity, "FullControl")])
        failures = []
        for child in self._list_children(path):
            if child.name in self.fail_children:
                failures.append((child, "access denied"))
                continue
            self.owners[child] = user_name
        self.owners[path] = user_name
        return failures


class FakeMirror(RobocopyMirror):
    """返回预设退出码的 robocopy，可选择真的复制文件"""

    def __init__(self, exit_code=1, copy_files=True, error=None):
        super().__init__()
        self.exit_code = exit_code
        self.copy_files = copy_files
        self.error = error
        self.calls = []

    def run(self, src, dst, log_file):
        self.calls.append((Path(src), Path(dst), Path(log_file)))
        if self.error:
            raise MirrorCopyError(self.error)
        if self.copy_files:
            shutil.copytree(src, dst, dirs_exist_ok=True)
        return self.exit_code


@pytest.fixture
def workspace(tmp_path):
    """创建源共享、目标存储和日志目录"""
    src_root = tmp_path / "legacy"
    dst_root = tmp_path / "storage"
    log_dir = tmp_path / "logs"
    for path in (src_root, dst_root, log_dir):
        path.mkdir()
    return tmp_path


def make_user_source(workspace: Path, user: str) -> Path:
    home = workspace / "legacy" / user
    (home / "Documents").mkdir(parents=True)
    (home / "Documents" / "report.txt").write_text("quarterly numbers", encoding="utf-8")
    (home / "notes.txt").write_text("hello", encoding="utf-8")
    return home


def make_record(workspace: Path, user: str = "alice", active=True, finalize=False, **kwargs) -> ControlRecord:
    return ControlRecord(
        migration_active=active,
        finalize_migration=finalize,
        user_name=user,
        user_src_path=str(workspace / "legacy"),
        user_dst_path=str(workspace / "storage"),
        **kwargs,
    )


@pytest.fixture
def context(workspace):
    return RunContext(started_at=RUN_AT, log_dir=workspace / "logs", mode=RunMode.CONTINUOUS)


@pytest.fixture
def adhoc_context(workspace):
    return RunContext(started_at=RUN_AT, log_dir=workspace / "logs", mode=RunMode.ADHOC)
