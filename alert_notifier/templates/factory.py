"""
模板工厂

按 kind 隔离模板定义：每个 kind 有独立的 Jinja2 环境和加载器，只包含该 kind 的内置默认模板
和调用方提供的模板，不同 kind 之间的命名模板互不可见。
"""
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import urlsplit

import jinja2
from jinja2 import ChoiceLoader, DictLoader
from jinja2.sandbox import ImmutableSandboxedEnvironment

from ..core.logging_config import get_logger
from ..core.models import Alert, NotificationContext
from .data import Data, get_template_data
from .defaults import default_templates_per_kind
from .definitions import Kind, TemplateDefinition, split_definitions
from .errors import (
    InvalidExternalURLError,
    InvalidLimitsError,
    TemplateError,
    TemplateNotDefinedError,
    TemplateRenderError,
    TemplateSyntaxError,
)
from .extend import ExtendedData, extend_data
from .funcs import TmplFuncs, build_function_map, format_number, piped, url_to_link
from .renderer import LimitedWriter

DEFAULT_MAX_TEMPLATE_OUTPUT_SIZE = 1024 * 1024  # 1MB

INLINE_TEMPLATE_NAME = "<inline>"


@dataclass(frozen=True)
class Limits:
    """渲染限制，max_template_output_size 为 0 表示不限制"""
    max_template_output_size: int = DEFAULT_MAX_TEMPLATE_OUTPUT_SIZE

    def validate(self) -> None:
        if self.max_template_output_size < 0:
            raise InvalidLimitsError("maxTemplateOutputSize must be greater than or equal to 0")


DEFAULT_LIMITS = Limits()


@dataclass(frozen=True)
class Config:
    org_id: str
    external_url: str
    limits: Limits = DEFAULT_LIMITS

    def validate(self) -> None:
        if not self.external_url:
            raise InvalidExternalURLError("externalURL must be set")
        self.limits.validate()


def new_config(org_id: str, external_url: str, limits: Optional[Limits] = None) -> Config:
    """
    创建并校验工厂配置

    Raises:
        InvalidExternalURLError: externalURL 为空或无法解析
        InvalidLimitsError: 渲染限制非法
    """
    if not external_url:
        raise InvalidExternalURLError("externalURL must be set")
    try:
        u = urlsplit(external_url)
        u.port  # 端口非法时抛出 ValueError
    except ValueError as e:
        raise InvalidExternalURLError(f"failed to parse externalURL {external_url!r}: {e}") from e
    cfg = Config(org_id=org_id, external_url=external_url, limits=limits if limits is not None else DEFAULT_LIMITS)
    cfg.validate()
    return cfg


def _as_context(data: Any) -> Dict[str, Any]:
    if data is None:
        return {}
    if hasattr(data, "as_context"):
        return data.as_context()
    if isinstance(data, Mapping):
        return dict(data)
    return {"value": data}


class Template:
    """
    某个 kind 的可渲染模板

    构建后只读，可在多个渲染会话间并发使用。
    """

    def __init__(
        self,
        kind: Kind,
        sources: Dict[str, str],
        external_url: str,
        funcs: Dict[str, Any],
        limits: Limits = DEFAULT_LIMITS,
        logger=None,
    ):
        self.kind = kind
        self.external_url = external_url
        self.limits = limits
        self.logger = logger or get_logger()
        self._sources = dict(sources)

        self.env = ImmutableSandboxedEnvironment(
            loader=DictLoader(self._sources),
            autoescape=False,
            keep_trailing_newline=True,
        )
        self.env.globals.update(funcs)
        for name, fn in funcs.items():
            # Jinja2 内置过滤器优先
            if callable(fn) and name not in self.env.filters:
                self.env.filters[name] = piped(fn)
        self.env.filters["format_number"] = format_number
        self.env.filters["url_to_link"] = url_to_link
        if kind == Kind.GRAFANA:
            self.env.globals["tmpl"] = TmplFuncs(self._exec_named, self._exec_inline)

        for name, source in self._sources.items():
            try:
                self.env.parse(source, name=name)
            except jinja2.TemplateSyntaxError as e:
                raise TemplateSyntaxError(f"template: {name}:{e.lineno}: {e.message}") from e

    def lookup(self, name: str) -> Optional[str]:
        """返回命名模板源码，不存在时返回 None"""
        return self._sources.get(name)

    def names(self) -> List[str]:
        return sorted(self._sources)

    def execute_text_string(self, text: str, data: Any) -> str:
        """
        渲染模板文本

        文本中可以内联 {% define %} 块，这些定义只在本次渲染中可见。

        Raises:
            TemplateNotDefinedError: 引用了当前 kind 中不存在的命名模板
            TemplateOutputTooLargeError: 输出超过上限
            TemplateRenderError: 其他语法或执行错误
        """
        if not text:
            return ""
        inline = split_definitions(text, INLINE_TEMPLATE_NAME)
        body = inline.pop(INLINE_TEMPLATE_NAME, "")
        env = self.env
        if inline:
            env = self.env.overlay(loader=ChoiceLoader([DictLoader(inline), self.env.loader]))
        return self._render(lambda: env.from_string(body), data)

    def execute_template(self, name: str, data: Any) -> str:
        """按名称渲染命名模板"""
        return self._render(lambda: self.env.get_template(name), data)

    def data(self, ctx: Optional[NotificationContext], alerts: Sequence[Alert]) -> Data:
        return get_template_data(ctx, self.external_url, alerts, self.logger)

    def extended_data(self, ctx: Optional[NotificationContext], alerts: Sequence[Alert]) -> ExtendedData:
        return extend_data(self.data(ctx, alerts), self.logger)

    def strict(self) -> "Template":
        """返回未定义变量即报错的副本，用于模板预览时判断作用域"""
        clone = object.__new__(Template)
        clone.__dict__.update(self.__dict__)
        clone.env = self.env.overlay(undefined=jinja2.StrictUndefined)
        return clone

    def _exec_named(self, name: str, context=None) -> str:
        return self.execute_template(name, context)

    def _exec_inline(self, name: str, text: str, context=None) -> str:
        env = self.env.overlay(loader=ChoiceLoader([DictLoader({name: text}), self.env.loader]))
        return self._render(lambda: env.get_template(name), context)

    def _render(self, load, data: Any) -> str:
        writer = LimitedWriter(self.limits.max_template_output_size)
        try:
            return writer.write_all(load().generate(_as_context(data)))
        except TemplateError:
            raise
        except jinja2.TemplateNotFound as e:
            raise TemplateNotDefinedError(e.name) from e
        except jinja2.TemplateSyntaxError as e:
            raise TemplateRenderError(f"template: {e.name or INLINE_TEMPLATE_NAME}:{e.lineno}: {e.message}") from e
        except Exception as e:
            raise TemplateRenderError(f"template: {type(e).__name__}: {e}") from e


def _merge_definition(
    groups: Dict[Kind, Tuple[TemplateDefinition, ...]],
    definition: TemplateDefinition,
    logger,
) -> None:
    """同一 kind 下同名定义后者覆盖前者（保留原位置）"""
    definition.validate()
    current = list(groups.get(definition.kind, ()))
    for idx, existing in enumerate(current):
        if existing.name == definition.name:
            logger.warning(f"模板定义重复，后者覆盖前者: name={definition.name}, kind={definition.kind}")
            current[idx] = definition
            break
    else:
        current.append(definition)
    groups[definition.kind] = tuple(current)


class Factory:
    """
    模板工厂

    构建后不可变；with_template 返回新的工厂，原工厂及其已缓存的模板不受影响。
    """

    def __init__(
        self,
        templates: Dict[Kind, Tuple[TemplateDefinition, ...]],
        config: Config,
        tenant_id: str = "",
        logger=None,
    ):
        self._templates = dict(templates)
        self.config = config
        self.tenant_id = tenant_id
        self.logger = logger or get_logger()
        self._cache: Dict[Kind, Template] = {}
        self._lock = threading.Lock()

    @property
    def external_url(self) -> str:
        return self.config.external_url

    def definitions(self, kind: Kind) -> List[TemplateDefinition]:
        """调用方为某个 kind 提供的定义（不含内置默认模板）"""
        return list(self._templates.get(Kind.parse(kind), ()))

    def get_template(self, kind) -> Template:
        """
        获取指定 kind 的模板（首次调用时构建并缓存）

        Raises:
            InvalidKindError: 未知 kind
            TemplateSyntaxError: 模板定义语法错误
        """
        kind = Kind.parse(kind)
        cached = self._cache.get(kind)
        if cached is not None:
            return cached
        with self._lock:
            cached = self._cache.get(kind)
            if cached is None:
                cached = self._build(kind)
                self._cache[kind] = cached
        return cached

    def with_template(self, definition: TemplateDefinition) -> "Factory":
        """
        返回合并了 definition 的新工厂

        Raises:
            InvalidKindError: definition.kind 未知
        """
        templates = dict(self._templates)
        _merge_definition(templates, definition, self.logger)
        return Factory(templates, self.config, tenant_id=self.tenant_id, logger=self.logger)

    def _build(self, kind: Kind) -> Template:
        sources: Dict[str, str] = {}
        for definition in list(default_templates_per_kind(kind)) + list(self._templates.get(kind, ())):
            sources.update(split_definitions(definition.template, definition.name))
        self.logger.debug(f"构建模板: kind={kind}, 命名模板数量={len(sources)}")
        return Template(
            kind,
            sources,
            self.config.external_url,
            build_function_map(kind, self.tenant_id),
            limits=self.config.limits,
            logger=self.logger,
        )


def new_factory(
    definitions: Optional[Iterable[TemplateDefinition]],
    logger,
    external_url: str,
    tenant_id: str = "",
    limits: Optional[Limits] = None,
    org_id: str = "grafana",
) -> Factory:
    """
    创建模板工厂

    Args:
        definitions: 模板定义列表，同一 kind 下同名定义以后者为准
        logger: 日志记录器，为 None 时使用 alert-notifier
        external_url: 外部访问地址
        tenant_id: 租户 ID（Mimir kind 的 tenantID 函数）
        limits: 渲染限制，默认输出上限 1MB
        org_id: 组织 ID

    Raises:
        InvalidExternalURLError: externalURL 为空或无法解析
        InvalidKindError: 存在未知 kind 的定义
    """
    logger = logger or get_logger()
    config = new_config(org_id, external_url, limits)
    groups: Dict[Kind, Tuple[TemplateDefinition, ...]] = {}
    for definition in definitions or ():
        _merge_definition(groups, definition, logger)
    return Factory(groups, config, tenant_id=tenant_id, logger=logger)
