"""
权限重置模块 - 复制前接管目标目录所有权，复制后把目录交还给用户

两个操作都针对已经存在的目标目录：
- take_ownership: 所有者改为当前进程身份，并给当前身份加上可继承的完全控制
- grant_user_and_system: 断开继承，给用户和系统账户加上可继承的完全控制，
  再把每个直接子项和根目录本身的所有者改为用户（根目录最后改）
"""
import getpass
import os
import stat
import subprocess
from pathlib import Path
from typing import List, Tuple

from loguru import logger

from .errors import PermissionResetError

# (子项路径, 错误信息)
ChildFailures = List[Tuple[Path, str]]


class PermissionReset:
    """权限重置接口"""

    def take_ownership(self, path: Path) -> None:
        raise NotImplementedError

    def grant_user_and_system(self, path: Path, user_name: str) -> ChildFailures:
        raise NotImplementedError

    def _list_children(self, path: Path) -> List[Path]:
        try:
            return sorted(Path(path).iterdir())
        except OSError as e:
            raise PermissionResetError(f"无法列出 {path} 的子项: {e}") from e


def current_windows_identity() -> str:
    domain = os.environ.get("USERDOMAIN", "")
    user = getpass.getuser()
    return f"{domain}\\{user}" if domain else user


class IcaclsPermissionReset(PermissionReset):
    """基于 icacls 的 Windows 实现"""

    def __init__(self, domain: str = "", system_identity: str = r"NT AUTHORITY\SYSTEM", identity: str = ""):
        self.domain = domain
        self.system_identity = system_identity
        self.identity = identity or current_windows_identity()

    def principal_for(self, user_name: str) -> str:
        return f"{self.domain}\\{user_name}" if self.domain else user_name

    def _icacls(self, path: Path, *args: str) -> None:
        cmd = ["icacls", str(path), *args]
        logger.debug(f"执行命令: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, errors="replace", check=False)
        except OSError as e:
            raise PermissionResetError(f"无法启动 icacls: {e}") from e
        if result.returncode != 0:
            message = (result.stderr or result.stdout or "").strip()
            raise PermissionResetError(f"icacls {' '.join(args)} 作用于 {path} 失败 ({result.returncode}): {message}")

    def take_ownership(self, path: Path) -> None:
        self._icacls(path, "/setowner", self.identity)
        self._icacls(path, "/grant", f"{self.identity}:(OI)(CI)F")
        logger.debug(f"已接管 {path} 的所有权: {self.identity}")

    def grant_user_and_system(self, path: Path, user_name: str) -> ChildFailures:
        principal = self.principal_for(user_name)
        # 断开继承只保留显式规则，同时加上用户和系统账户的完全控制
        self._icacls(
            path,
            "/inheritance:r",
            "/grant",
            f"{principal}:(OI)(CI)F",
            f"{self.system_identity}:(OI)(CI)F",
        )

        failures: ChildFailures = []
        for child in self._list_children(path):
            try:
                self._icacls(child, "/setowner", principal)
            except PermissionResetError as e:
                logger.warning(f"无法设置 {child} 的所有者: {e}")
                failures.append((child, str(e)))

        self._icacls(path, "/setowner", principal)
        return failures


class PosixPermissionReset(PermissionReset):
    """基于 chown/chmod 的 POSIX 实现

    POSIX 没有可继承的 ACL：接管 = 所有者改为当前 uid 并保证所有者 rwx；
    断开继承 = 根目录只保留所有者权限；root 始终拥有访问权。
    """

    def __init__(self, root_mode: int = 0o700):
        self.root_mode = root_mode

    def _uid_for(self, user_name: str) -> int:
        import pwd

        try:
            return pwd.getpwnam(user_name).pw_uid
        except KeyError as e:
            raise PermissionResetError(f"未知用户: {user_name}") from e

    def take_ownership(self, path: Path) -> None:
        try:
            os.chown(path, os.geteuid(), -1)
            mode = os.stat(path).st_mode
            os.chmod(path, stat.S_IMODE(mode) | stat.S_IRWXU)
        except OSError as e:
            raise PermissionResetError(f"无法接管 {path} 的所有权: {e}") from e

    def grant_user_and_system(self, path: Path, user_name: str) -> ChildFailures:
        uid = self._uid_for(user_name)
        try:
            os.chmod(path, self.root_mode)
        except OSError as e:
            raise PermissionResetError(f"无法设置 {path} 的权限: {e}") from e

        failures: ChildFailures = []
        for child in self._list_children(path):
            try:
                os.chown(child, uid, -1, follow_symlinks=False)
            except OSError as e:
                logger.warning(f"无法设置 {child} 的所有者: {e}")
                failures.append((child, str(e)))

        try:
            os.chown(path, uid, -1)
        except OSError as e:
            raise PermissionResetError(f"无法设置 {path} 的所有者: {e}") from e
        return failures


def create_permission_reset(platform: str, domain: str = "", system_identity: str = "") -> PermissionReset:
    if platform == "windows":
        return IcaclsPermissionReset(domain=domain, system_identity=system_identity or r"NT AUTHORITY\SYSTEM")
    return PosixPermissionReset()
