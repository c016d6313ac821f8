"""
模板预览

在保存模板前用给定告警试渲染候选模板中的每个顶层模板。已有的同名模板定义会被候选模板替换，
其余定义作为上下文可被引用。
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..core.logging_config import get_logger
from ..core.models import Alert, NotificationContext
from .definitions import Kind, TemplateDefinition
from .errors import TemplateError, TemplateSyntaxError
from .util import find_top_level_templates

DEFAULT_RECEIVER_NAME = "TestReceiver"
DEFAULT_GROUP_LABEL = "group_label"
DEFAULT_GROUP_LABEL_VALUE = "group_label_value"

INVALID_TEMPLATE = "invalid_template"
EXECUTION_ERROR = "execution_error"

SCOPE_ROOT = "."
SCOPE_ALERTS = ".Alerts"
SCOPE_ALERT = ".Alert"

# 根作用域失败后依次尝试更具体的作用域
_SCOPE_CALLS = [
    (SCOPE_ROOT, "{% include preview_template_name %}"),
    (SCOPE_ALERTS, "{% with alert_list = alerts %}{% include preview_template_name %}{% endwith %}"),
    (SCOPE_ALERT, "{% with alert = alerts[0] %}{% include preview_template_name %}{% endwith %}"),
]


@dataclass
class PreviewParams:
    alerts: Sequence[Alert]
    template: str
    name: str
    kind: Kind = Kind.GRAFANA


@dataclass
class PreviewResult:
    name: str
    text: str
    scope: str


@dataclass
class PreviewError:
    name: str  # kind 为 invalid_template 时为空
    kind: str
    error: str


@dataclass
class PreviewResults:
    results: List[PreviewResult] = field(default_factory=list)
    errors: List[PreviewError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [{"name": r.name, "text": r.text, "scope": r.scope} for r in self.results],
            "errors": [{"name": e.name, "kind": e.kind, "error": e.error} for e in self.errors],
        }


def preview_template(factory, params: PreviewParams, logger=None) -> PreviewResults:
    """
    试渲染候选模板

    Args:
        factory: 模板工厂
        params: 候选模板、名称、kind 以及用于渲染的告警
        logger: 日志记录器

    Returns:
        PreviewResults: 每个顶层模板的渲染结果或错误

    Raises:
        InvalidKindError: params.kind 未知
    """
    logger = logger or get_logger()
    results = PreviewResults()

    try:
        names = find_top_level_templates(params.template, params.name)
        candidate = factory.with_template(TemplateDefinition(params.name, params.kind, params.template))
        tmpl = candidate.get_template(params.kind)
    except TemplateSyntaxError as e:
        logger.info(f"模板预览: 模板无效, name={params.name}, error={e}")
        results.errors.append(PreviewError(name="", kind=INVALID_TEMPLATE, error=str(e)))
        return results

    ctx = NotificationContext(
        receiver=DEFAULT_RECEIVER_NAME,
        group_labels={DEFAULT_GROUP_LABEL: DEFAULT_GROUP_LABEL_VALUE},
    )
    data = tmpl.extended_data(ctx, params.alerts)
    strict = tmpl.strict()

    for name in names:
        context = dict(data.as_context(), preview_template_name=name)
        text, scope, err = _render_scopes(strict, context)
        if err is not None:
            results.errors.append(PreviewError(name=name, kind=EXECUTION_ERROR, error=str(err)))
        else:
            results.results.append(PreviewResult(name=name, text=text, scope=scope))
    return results


def _render_scopes(tmpl, context: Dict[str, Any]):
    """先用根作用域渲染，失败后尝试 .Alerts、.Alert；都失败时返回根作用域的错误"""
    root_error: Optional[TemplateError] = None
    for scope, call in _SCOPE_CALLS:
        try:
            return tmpl.execute_text_string(call, context), scope, None
        except TemplateError as e:
            if root_error is None:
                root_error = e
    return "", SCOPE_ROOT, root_error
