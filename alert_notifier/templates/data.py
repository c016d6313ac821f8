"""
告警模板数据（与 Prometheus Alertmanager 模板数据契约一致）
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence

from ..core.logging_config import get_logger
from ..core.models import STATUS_FIRING, STATUS_RESOLVED, Alert, NotificationContext

ALERT_NAME_LABEL = "alertname"


class Pair(NamedTuple):
    name: str
    value: str


class Pairs(list):
    """按顺序排列的键值对列表"""

    def names(self) -> List[str]:
        return [p.name for p in self]

    def values(self) -> List[str]:
        return [p.value for p in self]


class KV(dict):
    """
    标签 / 注解集合

    sorted_pairs 按名称排序，alertname 始终排在第一位。
    """

    def sorted_pairs(self) -> Pairs:
        keys = sorted(k for k in self if k != ALERT_NAME_LABEL)
        if ALERT_NAME_LABEL in self:
            keys.insert(0, ALERT_NAME_LABEL)
        return Pairs(Pair(k, self[k]) for k in keys)

    def names(self) -> List[str]:
        return self.sorted_pairs().names()

    def sorted_values(self) -> List[str]:
        return self.sorted_pairs().values()

    def remove(self, keys: Iterable[str]) -> "KV":
        """返回去掉指定键后的新集合，原集合不变"""
        drop = set(keys)
        return KV((k, v) for k, v in self.items() if k not in drop)


@dataclass
class TemplateAlert:
    """模板中的单条告警"""
    status: str
    labels: KV
    annotations: KV
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    generator_url: str = ""
    fingerprint: str = ""


class TemplateAlerts(list):

    def firing(self) -> "TemplateAlerts":
        return self.__class__(a for a in self if a.status == STATUS_FIRING)

    def resolved(self) -> "TemplateAlerts":
        return self.__class__(a for a in self if a.status == STATUS_RESOLVED)


@dataclass
class Data:
    """告警组模板数据"""
    receiver: str = ""
    status: str = ""
    alerts: TemplateAlerts = field(default_factory=TemplateAlerts)
    group_labels: KV = field(default_factory=KV)
    common_labels: KV = field(default_factory=KV)
    common_annotations: KV = field(default_factory=KV)
    external_url: str = ""
    group_key: str = ""

    def as_context(self) -> Dict[str, Any]:
        return {
            "receiver": self.receiver,
            "status": self.status,
            "alerts": self.alerts,
            "group_labels": self.group_labels,
            "common_labels": self.common_labels,
            "common_annotations": self.common_annotations,
            "external_url": self.external_url,
            "group_key": self.group_key,
        }


def _common_pairs(sets: Sequence[Dict[str, str]]) -> KV:
    """所有集合中取值完全相同的键值对"""
    if not sets:
        return KV()
    common = KV(sets[0])
    for kv in sets[1:]:
        for name in list(common):
            if kv.get(name) != common[name]:
                del common[name]
    return common


def get_template_data(
    ctx: Optional[NotificationContext],
    external_url: str,
    alerts: Sequence[Alert],
    logger=None,
) -> Data:
    """
    由告警列表和通知上下文生成模板数据

    Args:
        ctx: 通知上下文（接收器名称、分组 key、分组标签、当前时间）
        external_url: 外部访问地址
        alerts: 告警列表
        logger: 日志记录器，默认 alert-notifier

    Returns:
        Data: 分组中只要有一条告警在 now 时刻仍在触发，整体状态即为 firing
    """
    logger = logger or get_logger()
    if ctx is None:
        logger.error("缺少通知上下文，接收器名称和分组标签为空")
        ctx = NotificationContext()
    now = ctx.resolve_now()

    template_alerts = TemplateAlerts()
    for alert in alerts:
        status = alert.status(now)
        template_alerts.append(
            TemplateAlert(
                status=status,
                labels=KV(alert.labels),
                annotations=KV(alert.annotations),
                starts_at=alert.starts_at,
                # 仍在触发的告警不暴露预计结束时间
                ends_at=alert.ends_at if status == STATUS_RESOLVED else None,
                generator_url=alert.generator_url,
                fingerprint=alert.fingerprint(),
            )
        )

    group_status = STATUS_RESOLVED
    if any(a.status == STATUS_FIRING for a in template_alerts):
        group_status = STATUS_FIRING

    return Data(
        receiver=ctx.receiver,
        status=group_status,
        alerts=template_alerts,
        group_labels=KV(ctx.group_labels),
        common_labels=_common_pairs([a.labels for a in template_alerts]),
        common_annotations=_common_pairs([a.annotations for a in template_alerts]),
        external_url=external_url,
        group_key=ctx.group_key,
    )
