"""homemigf 异常定义"""


class HomeMigError(Exception):
    """所有 homemigf 异常的基类"""


class ConfigError(HomeMigError):
    """配置文件无法解析"""


class ControlTableError(HomeMigError):
    """控制表相关错误"""


class ControlTableNotFound(ControlTableError):
    """控制文件不存在"""


class ControlTableReadError(ControlTableError):
    """控制文件存在但无法打开或解析"""


class BackupFailed(ControlTableError):
    """保存前备份失败，原文件未被覆盖"""


class ControlTableWriteError(ControlTableError):
    """备份完成后写回控制文件失败"""


class PermissionResetError(HomeMigError):
    """读取或写入目录根的访问控制信息失败"""


class MirrorCopyError(HomeMigError):
    """镜像复制工具无法启动"""
