"""
工具函数模块
"""
import posixpath
from datetime import datetime, timezone
from typing import Optional, Tuple, Union
from urllib.parse import urlsplit, urlunsplit

from dateutil import parser as date_parser

from .logging_config import get_logger

logger = get_logger("alert-notifier")

# Alertmanager / Grafana 用 Go 零值时间表示「未设置」
ZERO_TIMES = ("", "0001-01-01T00:00:00Z", "0001-01-01T00:00:00.000Z")

# 截断标记（单个字符「…」，UTF-8 下占 3 字节）
TRUNCATION_MARKER = "…"


def parse_time(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    解析告警时间，返回带时区的 datetime；零值或空值返回 None

    支持格式：
    - 2024-01-15T10:30:00Z
    - 2024-01-15T10:30:00.123Z
    - 2026-02-10T01:47:51.122980105+08:00（纳秒精度会被截断到微秒）
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    text = str(value).strip()
    if text in ZERO_TIMES or text.startswith("0001-01-01"):
        return None
    try:
        dt = date_parser.isoparse(_truncate_fraction(text))
    except (ValueError, OverflowError) as e:
        raise ValueError(f"无法解析时间格式: {value}") from e
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _truncate_fraction(text: str) -> str:
    """秒的小数部分超过 6 位时截断到 6 位，isoparse 不接受纳秒"""
    dot = text.find(".")
    if dot == -1:
        return text
    end = dot + 1
    while end < len(text) and text[end].isdigit():
        end += 1
    if end - dot - 1 <= 6:
        return text
    return text[: dot + 7] + text[end:]


def format_time(value: Optional[datetime]) -> str:
    """按 RFC3339 输出时间，未设置时返回 Go 零值时间"""
    if value is None:
        return "0001-01-01T00:00:00Z"
    text = value.astimezone(timezone.utc).isoformat()
    return text.replace("+00:00", "Z")


def join_url_path(base: str, *parts: str) -> str:
    """
    拼接 URL 路径并规范化（与 Go path.Join 行为一致），保留 query 和 fragment

    解析失败时返回原 base
    """
    try:
        split = urlsplit(base)
    except ValueError as e:
        logger.debug(f"拼接 URL 时解析失败: url={base}, error={e}")
        return base
    return urlunsplit(split._replace(path=clean_path(split.path, *parts)))


def clean_path(*parts: str) -> str:
    """按 Go path.Join 的语义拼接路径段：忽略空段，规范化 . 和 ..，始终以 / 开头"""
    joined = "/".join(p for p in parts if p)
    if not joined:
        return ""
    cleaned = posixpath.normpath("/" + joined)
    # normpath 会保留 POSIX 允许的双斜杠开头
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def truncate_in_runes(text: str, n: int) -> Tuple[str, bool]:
    """
    按字符数截断字符串，超长时以截断标记结尾

    Returns:
        (截断后的字符串, 是否发生截断)
    """
    if len(text) <= n:
        return text, False
    if n <= 3:
        return text[:n], True
    return text[: n - 1] + TRUNCATION_MARKER, True


def truncate_in_bytes(text: str, n: int) -> Tuple[str, bool]:
    """
    按 UTF-8 字节数截断字符串，保证不截断多字节字符；截断标记本身占 3 字节
    """
    if len(text.encode("utf-8")) <= n:
        return text, False
    if n <= 3:
        if n == 3:
            return TRUNCATION_MARKER, True
        return "." * n, True
    target = n - 3
    truncated = text[:target]
    while len(truncated.encode("utf-8")) > target:
        truncated = truncated[:-1]
    return truncated + TRUNCATION_MARKER, True
