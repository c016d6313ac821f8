"""
核心功能模块
"""
from .logging_config import setup_logging, get_logger
from .models import Alert, NotificationContext, ReceiverConfig, labels_fingerprint
from .utils import parse_time, format_time, join_url_path, truncate_in_runes, truncate_in_bytes

__all__ = [
    "setup_logging",
    "get_logger",
    "Alert",
    "NotificationContext",
    "ReceiverConfig",
    "labels_fingerprint",
    "parse_time",
    "format_time",
    "join_url_path",
    "truncate_in_runes",
    "truncate_in_bytes",
]
