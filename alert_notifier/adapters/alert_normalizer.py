"""
统一解析入口模块

支持三种入参：
- 告警组 webhook payload（Prometheus Alertmanager / Grafana Unified Alerting），带 alerts、receiver、groupKey、groupLabels
- 告警列表（Alertmanager API v2 POST /alerts 的格式）
- 单条告警（只有 labels / annotations 等字段）
"""
from enum import Enum
from typing import Any, Dict, List, Tuple, Union

from ..core.logging_config import get_logger
from ..core.models import Alert, NotificationContext
from . import build_alert

logger = get_logger("alert-notifier")


class PayloadFormat(Enum):
    """入参格式"""
    PROMETHEUS_ALERTMANAGER = "prometheus_alertmanager"
    GRAFANA_UNIFIED_ALERTING = "grafana_unified_alerting"
    ALERT_LIST = "alert_list"
    SINGLE_ALERT = "single_alert"
    UNKNOWN = "unknown"


def identify_format(payload: Union[Dict[str, Any], List[Any]]) -> PayloadFormat:
    """
    仅根据 payload 顶层结构判断格式

    判定规则（按优先级）：
    - 列表：告警列表
    - Grafana：顶层存在 orgId；或 version=="1" 且存在 state 或 title（Alertmanager 为 "4"）
    - Alertmanager：存在 alerts
    - 单条告警：存在 labels 或 annotations
    """
    if isinstance(payload, list):
        return PayloadFormat.ALERT_LIST
    if not isinstance(payload, dict):
        return PayloadFormat.UNKNOWN
    if "orgId" in payload:
        return PayloadFormat.GRAFANA_UNIFIED_ALERTING
    if payload.get("version") == "1" and ("state" in payload or "title" in payload):
        return PayloadFormat.GRAFANA_UNIFIED_ALERTING
    if "alerts" in payload:
        return PayloadFormat.PROMETHEUS_ALERTMANAGER
    if "labels" in payload or "annotations" in payload:
        return PayloadFormat.SINGLE_ALERT
    return PayloadFormat.UNKNOWN


def _build_alerts(raw_alerts: Any) -> List[Alert]:
    if not isinstance(raw_alerts, list):
        logger.warning("payload 中 alerts 字段不存在或不是列表类型")
        return []
    alerts = []
    for idx, raw in enumerate(raw_alerts):
        if not isinstance(raw, dict):
            logger.warning(f"跳过非法告警条目: index={idx}, type={type(raw).__name__}")
            continue
        alerts.append(build_alert(raw))
    return alerts


def normalize(payload: Union[Dict[str, Any], List[Any]]) -> Tuple[List[Alert], NotificationContext]:
    """
    统一解析入口

    Returns:
        Tuple[List[Alert], NotificationContext]: (告警列表, 通知上下文)
    """
    format_type = identify_format(payload)
    logger.debug(f"识别 payload 格式: {format_type.value}")

    if format_type == PayloadFormat.ALERT_LIST:
        return _build_alerts(payload), NotificationContext()

    if format_type in (PayloadFormat.PROMETHEUS_ALERTMANAGER, PayloadFormat.GRAFANA_UNIFIED_ALERTING):
        group_labels = payload.get("groupLabels") or {}
        ctx = NotificationContext(
            receiver=str(payload.get("receiver") or ""),
            group_key=str(payload.get("groupKey") or ""),
            group_labels={str(k): str(v) for k, v in group_labels.items()},
        )
        return _build_alerts(payload.get("alerts")), ctx

    if format_type == PayloadFormat.SINGLE_ALERT:
        return [build_alert(payload)], NotificationContext()

    logger.warning("无法识别的 payload 格式，忽略")
    return [], NotificationContext()
