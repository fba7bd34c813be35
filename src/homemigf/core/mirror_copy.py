"""
镜像复制模块 - 调用外部镜像工具并解释其退出码
"""
import subprocess
import time
from pathlib import Path
from typing import List

from loguru import logger

from .errors import MirrorCopyError

# robocopy 退出码按位组合
ROBOCOPY_EXIT_FLAGS = {
    1: "One or more files were copied successfully",
    2: "Extra files or directories were detected",
    4: "Mismatched files or directories were detected",
    8: "Some files or directories could not be copied",
    16: "Serious error, no files were copied",
}

RSYNC_EXIT_CODES = {
    0: "Success",
    1: "Syntax or usage error",
    2: "Protocol incompatibility",
    3: "Errors selecting input/output files, dirs",
    4: "Requested action not supported",
    5: "Error starting client-server protocol",
    10: "Error in socket I/O",
    11: "Error in file I/O",
    12: "Error in rsync protocol data stream",
    20: "Received SIGUSR1 or SIGINT",
    23: "Partial transfer due to error",
    24: "Partial transfer due to vanished source files",
    30: "Timeout in data send/receive",
}

# 文件级错误，值得重试
RSYNC_RETRYABLE = {10, 11, 12, 23, 30}


class MirrorCopy:
    """镜像复制接口

    run() 阻塞直到外部工具结束，返回原始退出码。
    """

    log_tag = "Mirror"

    def run(self, src: Path, dst: Path, log_file: Path) -> int:
        raise NotImplementedError

    def is_success(self, exit_code: int) -> bool:
        raise NotImplementedError

    def describe(self, exit_code: int) -> str:
        return ""


def _execute(cmd: List[str]) -> int:
    logger.debug(f"执行命令: {' '.join(cmd)}")
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, errors="replace", check=False)
    except OSError as e:
        raise MirrorCopyError(f"无法启动 {cmd[0]}: {e}") from e
    if result.stderr and result.stderr.strip():
        logger.debug(f"{cmd[0]} stderr: {result.stderr.strip()}")
    return result.returncode


class RobocopyMirror(MirrorCopy):
    """Windows robocopy /MIR"""

    log_tag = "Robocopy"

    def __init__(self, retries: int = 5, wait_seconds: int = 10, executable: str = "robocopy"):
        self.retries = retries
        self.wait_seconds = wait_seconds
        self.executable = executable

    def build_command(self, src: Path, dst: Path, log_file: Path) -> List[str]:
        return [
            self.executable,
            str(src),
            str(dst),
            "*.*",
            "/MIR",
            f"/R:{self.retries}",
            f"/W:{self.wait_seconds}",
            f"/LOG+:{log_file}",
        ]

    def run(self, src: Path, dst: Path, log_file: Path) -> int:
        return _execute(self.build_command(src, dst, log_file))

    def is_success(self, exit_code: int) -> bool:
        # 0-7 为成功或警告，8 及以上表示有文件未能复制
        return 0 <= exit_code < 8

    def describe(self, exit_code: int) -> str:
        if exit_code == 0:
            return "No files were copied, source and destination are in sync"
        if exit_code < 0:
            return "Terminated abnormally"
        return "; ".join(text for flag, text in ROBOCOPY_EXIT_FLAGS.items() if exit_code & flag)


class RsyncMirror(MirrorCopy):
    """POSIX rsync -a --delete，在文件级错误时按次数重试"""

    log_tag = "Rsync"

    def __init__(self, retries: int = 5, wait_seconds: int = 10, executable: str = "rsync"):
        self.retries = retries
        self.wait_seconds = wait_seconds
        self.executable = executable

    def build_command(self, src: Path, dst: Path, log_file: Path) -> List[str]:
        # 末尾的 / 表示同步目录内容而不是目录本身
        return [
            self.executable,
            "-a",
            "--delete",
            f"--log-file={log_file}",
            f"{str(src).rstrip('/')}/",
            f"{str(dst).rstrip('/')}/",
        ]

    def run(self, src: Path, dst: Path, log_file: Path) -> int:
        cmd = self.build_command(src, dst, log_file)
        exit_code = _execute(cmd)
        attempt = 0
        while exit_code in RSYNC_RETRYABLE and attempt < self.retries:
            attempt += 1
            logger.warning(f"rsync 退出码 {exit_code}，{self.wait_seconds} 秒后重试 ({attempt}/{self.retries})")
            time.sleep(self.wait_seconds)
            exit_code = _execute(cmd)
        return exit_code

    def is_success(self, exit_code: int) -> bool:
        return exit_code in (0, 24)

    def describe(self, exit_code: int) -> str:
        return RSYNC_EXIT_CODES.get(exit_code, "Unknown exit code")


def create_mirror(platform: str, retries: int = 5, wait_seconds: int = 10) -> MirrorCopy:
    if platform == "windows":
        return RobocopyMirror(retries=retries, wait_seconds=wait_seconds)
    return RsyncMirror(retries=retries, wait_seconds=wait_seconds)
