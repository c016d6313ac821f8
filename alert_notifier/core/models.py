"""
数据模型定义
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Prometheus 标签集指纹使用的 FNV-1a 64 位参数
_FNV64_OFFSET = 14695981039346656037
_FNV64_PRIME = 1099511628211
_FNV64_MASK = 0xFFFFFFFFFFFFFFFF
_SEPARATOR_BYTE = 0xFF

STATUS_FIRING = "firing"
STATUS_RESOLVED = "resolved"


def _hash_add(h: int, data: bytes) -> int:
    for b in data:
        h ^= b
        h = (h * _FNV64_PRIME) & _FNV64_MASK
    return h


def labels_fingerprint(labels: Dict[str, str]) -> str:
    """
    计算标签集指纹（与 Prometheus LabelSet.Fingerprint 一致），返回 16 位十六进制字符串
    """
    h = _FNV64_OFFSET
    for name in sorted(labels):
        h = _hash_add(h, name.encode("utf-8"))
        h = _hash_add(h, bytes([_SEPARATOR_BYTE]))
        h = _hash_add(h, str(labels[name]).encode("utf-8"))
        h = _hash_add(h, bytes([_SEPARATOR_BYTE]))
    return f"{h:016x}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """不带时区的时间视为 UTC"""
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


@dataclass
class Alert:
    """通知流水线传入的单条告警"""
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None  # None 表示未设置结束时间（仍在触发）
    generator_url: str = ""
    updated_at: Optional[datetime] = None
    timeout: bool = False

    def resolved_at(self, now: datetime) -> bool:
        """在 now 时刻是否已恢复：设置了结束时间且结束时间不晚于 now"""
        if self.ends_at is None:
            return False
        return as_utc(self.ends_at) <= as_utc(now)

    def status(self, now: datetime) -> str:
        return STATUS_RESOLVED if self.resolved_at(now) else STATUS_FIRING

    def fingerprint(self) -> str:
        return labels_fingerprint(self.labels)

    def __str__(self) -> str:
        name = self.labels.get("alertname", "")
        return f"{name}[{self.fingerprint()[:7]}]"


@dataclass
class NotificationContext:
    """
    一次通知尝试的上下文（接收器名称、分组 key、分组标签、当前时间）

    now 为空时取渲染时刻的 UTC 时间，不带时区的 now 视为 UTC。
    """
    receiver: str = ""
    group_key: str = ""
    group_labels: Dict[str, str] = field(default_factory=dict)
    now: Optional[datetime] = None

    def resolve_now(self) -> datetime:
        return as_utc(self.now) if self.now is not None else utcnow()


@dataclass
class ReceiverConfig:
    """接收器配置"""
    name: str
    type: str
    uid: str = ""
    enabled: bool = True  # 开关：是否启用此接收器
    disable_resolve_message: bool = False  # 为 True 时不发送 resolved 通知
    settings: Dict[str, Any] = field(default_factory=dict)
    proxy: Optional[Dict[str, str]] = None  # 代理配置，格式: {"http": "socks5h://proxy:port", "https": "socks5h://proxy:port"}
