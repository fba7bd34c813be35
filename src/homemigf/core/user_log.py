"""
用户日志模块 - 每个用户一次迁移尝试对应一个追加写入的日志文件
"""
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from loguru import logger

# [dd.MM.yyyy - HH:mm:ss]   <message>
USER_LOG_FORMAT = "[{time:DD.MM.YYYY - HH:mm:ss}]   {message}"


class UserLog:
    """单个用户的迁移日志

    消息同时写入 loguru 的主日志和该用户专属的文件 sink，并保存在 lines 中。
    文件 sink 打不开时只记录警告，不影响迁移本身。
    """

    def __init__(self, path: Path, user_name: str):
        self.path = Path(path)
        self.user_name = user_name
        self.lines: List[str] = []
        self._key = str(self.path)
        self._handler_id: Optional[int] = None
        self._logger = logger.bind(user_log=self._key, user=user_name)

    def _accept(self, record) -> bool:
        return record["extra"].get("user_log") == self._key

    def open(self) -> "UserLog":
        try:
            self._handler_id = logger.add(
                self._key,
                level="DEBUG",
                format=USER_LOG_FORMAT,
                filter=self._accept,
                encoding="utf-8",
                mode="a",
                colorize=False,
                catch=True,
            )
        except (OSError, ValueError) as e:
            logger.warning(f"无法打开用户日志 {self.path}: {e}")
            self._handler_id = None
        return self

    def close(self) -> None:
        if self._handler_id is not None:
            logger.remove(self._handler_id)
            self._handler_id = None

    def __enter__(self) -> "UserLog":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def write(self, message: str, level: str = "INFO") -> None:
        self.lines.append(f"[{datetime.now():%d.%m.%Y - %H:%M:%S}]   {message}")
        self._logger.log(level, message)

    def error(self, message: str) -> None:
        self.write(message, level="ERROR")
