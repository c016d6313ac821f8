"""
模板定义与 kind

一个 TemplateDefinition 的内容可以包含多个命名模板：

    {% define "slack.title" %}...{% enddefine %}
    {% define "slack.text" %}...{% enddefine %}

命名模板之间通过 {% include "name" %} 互相引用。define 块之外的非空白内容
注册为与 definition 同名的模板。
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union

from .errors import InvalidKindError, TemplateSyntaxError


class Kind(Enum):
    """模板语法/命名空间分区：Grafana 原生 与 Mimir（Prometheus Alertmanager 兼容）"""
    GRAFANA = "grafana"
    MIMIR = "mimir"

    @classmethod
    def parse(cls, value: Union["Kind", str]) -> "Kind":
        """
        解析 kind，接受 Kind 实例、枚举值（"grafana"）或展示名（"Grafana"）

        Raises:
            InvalidKindError: 未知 kind
        """
        kind = cls.lookup(value)
        if kind is None:
            raise InvalidKindError(value)
        return kind

    @classmethod
    def lookup(cls, value) -> Optional["Kind"]:
        """同 parse，未知 kind 返回 None"""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            for kind in cls:
                if value == kind.value or value == str(kind):
                    return kind
        return None

    def __str__(self) -> str:
        return _KIND_DISPLAY_NAMES[self]


_KIND_DISPLAY_NAMES = {
    Kind.GRAFANA: "Grafana",
    Kind.MIMIR: "Mimir",
}

VALID_KINDS = frozenset(Kind)


@dataclass(frozen=True)
class TemplateDefinition:
    """模板定义，(name, kind) 唯一确定一个定义"""
    name: str
    kind: Kind
    template: str = ""

    def __post_init__(self):
        # 接受 "grafana" / "Grafana" 等写法，未知 kind 留给 validate 报错
        kind = Kind.lookup(self.kind)
        if kind is not None:
            object.__setattr__(self, "kind", kind)

    def validate(self) -> None:
        if not isinstance(self.kind, Kind):
            raise InvalidKindError(self.kind)

    @property
    def key(self):
        return self.name, self.kind


_TAG_RE = re.compile(
    r"\{%(?P<lstrip>-?)\s*"
    r"(?:define\s+(?:\"(?P<dq>[^\"]*)\"|'(?P<sq>[^']*)')|(?P<end>enddefine))"
    r"\s*(?P<rstrip>-?)%\}"
)


def _line_of(text: str, pos: int) -> int:
    return text.count("\n", 0, pos) + 1


def split_definitions(text: str, parse_name: str) -> Dict[str, str]:
    """
    将模板内容拆分为 {模板名: 模板源码}

    - define 块不允许嵌套
    - 同一内容中重复定义的名称以后者为准
    - 标签上的 {%- / -%} 会去掉相邻空白，与 Jinja2 行为一致
    - define 块之外的非空白内容注册为 parse_name
    """
    result: Dict[str, str] = {}
    outside = []
    current_name = None
    body_start = 0
    cursor = 0
    strip_next = False

    for m in _TAG_RE.finditer(text):
        chunk = text[cursor:m.start()]
        if strip_next:
            chunk = chunk.lstrip()
            strip_next = False

        if m.group("end"):
            if current_name is None:
                raise TemplateSyntaxError(f"line {_line_of(text, m.start())}: unexpected enddefine")
            body = text[body_start:m.start()]
            if m.group("lstrip"):
                body = body.rstrip()
            result[current_name] = body
            current_name = None
        else:
            if current_name is not None:
                raise TemplateSyntaxError(
                    f"line {_line_of(text, m.start())}: define blocks cannot be nested (inside {current_name!r})"
                )
            name = m.group("dq") if m.group("dq") is not None else m.group("sq")
            if not name:
                raise TemplateSyntaxError(f"line {_line_of(text, m.start())}: define requires a template name")
            if m.group("lstrip"):
                chunk = chunk.rstrip()
            outside.append(chunk)
            current_name = name
            body_start = m.end()
            if m.group("rstrip"):
                while body_start < len(text) and text[body_start].isspace():
                    body_start += 1
        cursor = body_start if current_name is not None else m.end()
        if m.group("end") and m.group("rstrip"):
            strip_next = True

    if current_name is not None:
        raise TemplateSyntaxError(f"unclosed define block {current_name!r}")

    tail = text[cursor:]
    if strip_next:
        tail = tail.lstrip()
    outside.append(tail)

    top_level = "".join(outside)
    if top_level.strip():
        result[parse_name] = top_level
    return result
