"""
程序全局配置模块
"""
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import List, Optional

import tomli
from loguru import logger

from .core.errors import ConfigError

# 获取脚本所在目录
SCRIPT_DIR = Path(__file__).parent.resolve()

# 默认配置文件路径
CONFIG_FILE = SCRIPT_DIR / "config.toml"

# 控制文件的固定列顺序（文件本身没有表头）
CONTROL_COLUMNS = [
    "MigrationActive",
    "FinalizeMigration",
    "UserName",
    "UserSrcPath",
    "UserDstPath",
    "LastMigration",
    "LastMigrationResult",
    "MigrationLog",
]

DELIMITER = ";"

# 镜像工具在文件级错误时的重试次数和每次等待秒数
RETRIES = 5
WAIT_SECONDS = 10

# 系统账户；POSIX 后端由 root 执行，不需要单独授权
SYSTEM_IDENTITIES = {
    "windows": r"NT AUTHORITY\SYSTEM",
}


@dataclass
class MigrationConfig:
    """运行配置"""
    control_file: Optional[str] = None
    log_dir: Optional[str] = None
    columns: List[str] = field(default_factory=lambda: list(CONTROL_COLUMNS))
    delimiter: str = DELIMITER
    backend: str = "auto"  # auto, windows, posix
    domain: str = ""
    system_identity: str = ""
    retries: int = RETRIES
    wait_seconds: int = WAIT_SECONDS

    @property
    def platform(self) -> str:
        if self.backend == "auto":
            return "windows" if os.name == "nt" else "posix"
        return self.backend

    @property
    def system_principal(self) -> str:
        return self.system_identity or SYSTEM_IDENTITIES.get(self.platform, "")


def load_config(config_path: Optional[Path] = None) -> MigrationConfig:
    """
    从 TOML 文件加载配置，未设置的键使用默认值

    参数:
    config_path (Path, 可选): 配置文件路径，默认为包目录下的 config.toml

    返回:
    MigrationConfig: 合并后的配置
    """
    config_path = Path(config_path) if config_path else CONFIG_FILE
    if not config_path.exists():
        logger.info(f"配置文件不存在: {config_path}，使用默认配置")
        return MigrationConfig()

    try:
        with open(config_path, "rb") as f:
            data = tomli.load(f)
    except (OSError, tomli.TOMLDecodeError) as e:
        raise ConfigError(f"无法读取配置文件 {config_path}: {e}") from e

    section = data.get("migration", data)
    known = {f.name for f in fields(MigrationConfig)}
    unknown = set(section) - known
    if unknown:
        logger.warning(f"忽略未知配置项: {', '.join(sorted(unknown))}")

    config = MigrationConfig(**{k: v for k, v in section.items() if k in known})
    if config.backend not in ("auto", "windows", "posix"):
        raise ConfigError(f"不支持的 backend: {config.backend}")
    if set(config.columns) != set(CONTROL_COLUMNS):
        raise ConfigError(f"columns 必须且只能包含: {', '.join(CONTROL_COLUMNS)}")
    logger.debug(f"已加载配置文件: {config_path}")
    return config
