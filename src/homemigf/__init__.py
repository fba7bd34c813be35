"""
homemigf 包 - 按控制表把用户主目录从旧共享迁移到新存储

对每个符合条件的用户：镜像复制目录树、重置目标目录的所有权和权限、
记录迁移结果，最后带备份写回控制表。
"""

__version__ = "0.1.0"

from .config import MigrationConfig, load_config
from .core.control_table import ControlTable
from .core.engine import MigrationEngine, is_eligible
from .core.models import ControlRecord, MigrationResult, RunContext, RunMode
from .core.runner import MigrationRunner

__all__ = [
    "ControlRecord",     # 控制表中的一行
    "ControlTable",      # 控制表读取/写回
    "MigrationConfig",   # 运行配置
    "MigrationEngine",   # 单条记录的迁移流程
    "MigrationResult",
    "MigrationRunner",   # 整次运行入口
    "RunContext",
    "RunMode",
    "is_eligible",
    "load_config",
]
