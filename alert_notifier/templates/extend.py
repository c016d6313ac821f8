"""
Grafana 扩展模板数据

在 Alertmanager 模板数据基础上为每条告警补充 Grafana 相关字段：
dashboard / panel 链接、静默链接、解析后的数值，并去掉私有标签和注解。
"""
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

from ..core.logging_config import get_logger
from ..core.models import STATUS_FIRING, STATUS_RESOLVED
from ..core.utils import clean_path, format_time
from .data import KV, Data, TemplateAlert

# 私有注解（以 __ 开头并以 __ 结尾，模板中不可见）
DASHBOARD_UID_ANNOTATION = "__dashboardUid__"
PANEL_ID_ANNOTATION = "__panelId__"
ORG_ID_ANNOTATION = "__orgId__"
VALUES_ANNOTATION = "__values__"
VALUE_STRING_ANNOTATION = "__value_string__"
IMAGE_TOKEN_ANNOTATION = "__alertImageToken__"
IMAGE_URL_ANNOTATION = "__alert_image_url__"

RULE_UID_LABEL = "__alert_rule_uid__"
FOLDER_TITLE_LABEL = "grafana_folder"

# __value_string__ 中每段求值结果的字段前缀，例如
# [ var='I0' metric='eu-central-1' labels={region=eu-central-1} value=1 ]
EVAL_VAR_PREFIX = "var='"
EVAL_METRIC_PREFIX = "metric='"
EVAL_LABELS_PREFIX = "labels="
EVAL_VALUE_PREFIX = "value="


def is_private_key(key: str) -> bool:
    return key.startswith("__") and key.endswith("__")


def remove_private_items(kv: Dict[str, str]) -> KV:
    """返回去掉私有键后的新集合"""
    return KV((k, v) for k, v in kv.items() if not is_private_key(k))


@dataclass
class EvalValue:
    var: str = ""
    metric: str = ""
    labels: str = ""
    value: str = ""


@dataclass
class ExtendedAlert:
    """带 Grafana 字段的单条告警，每次渲染时重新构建"""
    status: str
    labels: KV
    annotations: KV
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    generator_url: str = ""
    fingerprint: str = ""
    silence_url: str = ""
    dashboard_url: str = ""
    panel_url: str = ""
    values: Optional[Dict[str, float]] = None
    value_string: str = ""
    image_url: str = ""
    embedded_image: str = ""
    eval_values: List[EvalValue] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "status": self.status,
            "labels": dict(self.labels),
            "annotations": dict(self.annotations),
            "startsAt": format_time(self.starts_at),
            "endsAt": format_time(self.ends_at),
            "generatorURL": self.generator_url,
            "fingerprint": self.fingerprint,
            "silenceURL": self.silence_url,
            "dashboardURL": self.dashboard_url,
            "panelURL": self.panel_url,
            "values": self.values,
            "valueString": self.value_string,
        }
        if self.image_url:
            data["imageURL"] = self.image_url
        if self.embedded_image:
            data["embeddedImage"] = self.embedded_image
        return data


class ExtendedAlerts(list):

    def firing(self) -> "ExtendedAlerts":
        return self.__class__(a for a in self if a.status == STATUS_FIRING)

    def resolved(self) -> "ExtendedAlerts":
        return self.__class__(a for a in self if a.status == STATUS_RESOLVED)


@dataclass
class ExtendedData:
    """模板根对象"""
    receiver: str = ""
    status: str = ""
    alerts: ExtendedAlerts = field(default_factory=ExtendedAlerts)
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

    def to_dict(self) -> Dict[str, Any]:
        return {
            "receiver": self.receiver,
            "status": self.status,
            "alerts": [a.to_dict() for a in self.alerts],
            "groupLabels": dict(self.group_labels),
            "commonLabels": dict(self.common_labels),
            "commonAnnotations": dict(self.common_annotations),
            "externalURL": self.external_url,
        }


def _silence_query(labels: Dict[str, str]) -> str:
    matchers = sorted(f"{k}={v}" for k, v in labels.items() if not is_private_key(k))
    params = [("alertmanager", "grafana")]
    params.extend(("matcher", m) for m in matchers)
    return urlencode(params)


def _reject_constant(name: str):
    raise ValueError(f"不支持的数值: {name}")


def parse_values(text: str) -> Dict[str, float]:
    """
    解析 __values__ 注解：JSON 对象，值必须是数字（不接受字符串、布尔值、NaN 和 Infinity）

    Raises:
        ValueError: 不是 JSON 对象或存在非数字的值
    """
    values = json.loads(text, parse_constant=_reject_constant)
    if not isinstance(values, dict):
        raise ValueError(f"期望 JSON 对象，实际为 {type(values).__name__}")
    result = {}
    for name, value in values.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{name} 的值不是数字: {value!r}")
        result[name] = float(value)
    return result


def extend_alert(alert: TemplateAlert, external_url: str, logger=None) -> ExtendedAlert:
    """
    为单条告警补充 Grafana 字段

    externalURL 为空或无法解析时只填充基础字段（状态、标签、注解、时间、来源、指纹），不视为错误。

    Args:
        alert: Alertmanager 模板告警
        external_url: 外部访问地址
        logger: 日志记录器

    Returns:
        ExtendedAlert: 扩展后的告警
    """
    logger = logger or get_logger()
    extended = ExtendedAlert(
        status=alert.status,
        labels=remove_private_items(alert.labels),
        annotations=remove_private_items(alert.annotations),
        starts_at=alert.starts_at,
        ends_at=alert.ends_at,
        generator_url=alert.generator_url,
        fingerprint=alert.fingerprint,
    )

    if not external_url:
        return extended
    try:
        u = urlsplit(external_url)
    except ValueError as e:
        logger.debug(f"扩展模板数据时解析 externalURL 失败: url={external_url}, error={e}")
        return extended
    external_path = u.path

    dashboard_uid = alert.annotations.get(DASHBOARD_UID_ANNOTATION, "")
    if dashboard_uid:
        dashboard = u._replace(path=clean_path(external_path, "/d/", dashboard_uid), query="", fragment="")
        extended.dashboard_url = urlunsplit(dashboard)
        panel_id = alert.annotations.get(PANEL_ID_ANNOTATION, "")
        if panel_id:
            extended.panel_url = urlunsplit(dashboard._replace(query="viewPanel=" + panel_id))

    if VALUES_ANNOTATION in alert.annotations:
        try:
            extended.values = parse_values(alert.annotations[VALUES_ANNOTATION])
        except (ValueError, TypeError) as e:
            logger.warning(f"解析 {VALUES_ANNOTATION} 注解失败: alert={alert.fingerprint}, error={e}")

    extended.value_string = alert.annotations.get(VALUE_STRING_ANNOTATION, "")
    extended.eval_values = parse_eval_values(extended.value_string)
    extended.image_url = alert.annotations.get(IMAGE_URL_ANNOTATION, "")

    silence = u._replace(
        path=clean_path(external_path, "/alerting/silence/new"),
        query=_silence_query(alert.labels),
        fragment="",
    )
    extended.silence_url = urlunsplit(silence)
    return extended


def extend_data(data: Data, logger=None) -> ExtendedData:
    """将 Alertmanager 模板数据转换为扩展数据，每次渲染重新构建"""
    alerts = ExtendedAlerts(extend_alert(a, data.external_url, logger) for a in data.alerts)
    return ExtendedData(
        receiver=data.receiver,
        status=data.status,
        alerts=alerts,
        group_labels=remove_private_items(data.group_labels),
        common_labels=remove_private_items(data.common_labels),
        common_annotations=remove_private_items(data.common_annotations),
        external_url=data.external_url,
        group_key=data.group_key,
    )


def parse_eval_values(evaluation: str) -> List[EvalValue]:
    """
    解析旧版 __value_string__ 中的求值结果

    格式: [ var='A' metric='m' labels={k=v} value=1 ], [ var='B' ... ]，metric 可选
    """
    result = []
    if not evaluation:
        return result

    inside = False
    buf = ""
    for c in evaluation:
        if inside:
            buf += c
        if c == "[":
            inside = True
        elif c == "]":
            inside = False
            result.append(_parse_eval_segment(buf))
            buf = ""
    return result


def _read_until(text: str, prefix: str, stop: str, include_stop: bool = False) -> str:
    start = text.find(prefix)
    if start == -1:
        return ""
    out = ""
    for c in text[start + len(prefix):]:
        if c == stop:
            if include_stop:
                out += c
            break
        out += c
    return out


def _parse_eval_segment(segment: str) -> EvalValue:
    return EvalValue(
        var=_read_until(segment, EVAL_VAR_PREFIX, "'"),
        metric=_read_until(segment, EVAL_METRIC_PREFIX, "'"),
        labels=_read_until(segment, EVAL_LABELS_PREFIX, "}", include_stop=True),
        value=_read_until(segment, EVAL_VALUE_PREFIX, " "),
    )

