"""
日志配置模块

同一进程内只配置一次：一个轮转文件 handler + 一个 stderr handler，
避免模板渲染、接收器、发送器各自初始化导致同一条日志重复输出。
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

LOGGER_NAME = "alert-notifier"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_logging_configured = False


def _parse_level(level) -> int:
    name = str(level).upper()
    if name not in LOG_LEVELS:
        raise ValueError(f"logging.level 非法: {level}，可选值: {', '.join(LOG_LEVELS)}")
    return getattr(logging, name)


def _build_handlers(
    log_dir: Optional[str],
    log_file: str,
    max_bytes: int,
    backup_count: int,
) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(path / log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
        )
    handlers.append(logging.StreamHandler(sys.stderr))
    return handlers


def setup_logging(
    log_dir: Optional[str] = "logs",
    log_file: str = "alert-notifier.log",
    level: str = "INFO",
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """
    配置 alert-notifier 日志（多次调用只生效一次）

    Args:
        log_dir: 日志目录，为空时只输出到 stderr
        log_file: 日志文件名
        level: 日志级别 (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        max_bytes: 单个日志文件最大大小（字节）
        backup_count: 保留的轮转文件数量

    Returns:
        logging.Logger: alert-notifier logger

    Raises:
        ValueError: 日志级别非法
    """
    global _logging_configured
    logger = logging.getLogger(LOGGER_NAME)
    if _logging_configured:
        return logger

    log_level = _parse_level(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    logger.setLevel(log_level)
    logger.propagate = False
    logger.handlers.clear()
    for handler in _build_handlers(log_dir, log_file, int(max_bytes), int(backup_count)):
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    _logging_configured = True
    logger.debug(f"日志已初始化: level={logging.getLevelName(log_level)}, log_dir={log_dir or '(仅 stderr)'}")
    return logger


def get_logger(name: str = LOGGER_NAME) -> logging.Logger:
    """
    获取 logger 实例

    传入子名称（如 "alert-notifier.templates"）时返回子 logger，
    日志仍由 setup_logging 配置的 handler 输出。
    """
    return logging.getLogger(name)
