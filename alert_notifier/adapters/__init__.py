"""
告警适配器包级工具

注意：此处不要导入 alert_normalizer，否则容易引入循环依赖。
"""
import json
from typing import Any, Dict

from ..core.models import Alert
from ..core.utils import parse_time

# Grafana webhook 告警中的取值字段，转换回私有注解后由模板扩展数据重新解析
_VALUES_ANNOTATION = "__values__"
_VALUE_STRING_ANNOTATION = "__value_string__"


def _str_map(raw: Any) -> Dict[str, str]:
    if not isinstance(raw, dict):
        return {}
    return {str(k): "" if v is None else str(v) for k, v in raw.items()}


def build_alert(raw: Dict[str, Any]) -> Alert:
    """
    将一条 Alertmanager / Grafana webhook 告警转换为 Alert

    startsAt / endsAt 为空或为 0001-01-01T00:00:00Z 时视为未设置。
    Grafana 告警的 values / valueString 字段写回 __values__ / __value_string__ 注解。
    """
    annotations = _str_map(raw.get("annotations"))
    values = raw.get("values")
    if isinstance(values, dict) and _VALUES_ANNOTATION not in annotations:
        annotations[_VALUES_ANNOTATION] = json.dumps(values)
    value_string = raw.get("valueString")
    if value_string and _VALUE_STRING_ANNOTATION not in annotations:
        annotations[_VALUE_STRING_ANNOTATION] = str(value_string)

    return Alert(
        labels=_str_map(raw.get("labels")),
        annotations=annotations,
        starts_at=parse_time(raw.get("startsAt")),
        ends_at=parse_time(raw.get("endsAt")),
        generator_url=str(raw.get("generatorURL") or ""),
        updated_at=parse_time(raw.get("updatedAt")),
    )


__all__ = ["build_alert"]
