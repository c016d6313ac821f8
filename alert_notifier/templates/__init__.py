"""
模板渲染模块：模板工厂、扩展数据、函数库与有界渲染
"""
from .data import KV, Data, Pair, Pairs, TemplateAlert, TemplateAlerts, get_template_data
from .defaults import (
    DEFAULT_MESSAGE_EMBED,
    DEFAULT_MESSAGE_TITLE_EMBED,
    default_template,
    default_templates_per_kind,
)
from .definitions import Kind, TemplateDefinition, split_definitions
from .errors import (
    InvalidExternalURLError,
    InvalidKindError,
    InvalidLimitsError,
    TemplateError,
    TemplateNotDefinedError,
    TemplateOutputTooLargeError,
    TemplateRenderError,
    TemplateSyntaxError,
)
from .extend import (
    EvalValue,
    ExtendedAlert,
    ExtendedAlerts,
    ExtendedData,
    extend_alert,
    extend_data,
    remove_private_items,
)
from .factory import DEFAULT_LIMITS, Config, Factory, Limits, Template, new_config, new_factory
from .funcs import build_function_map
from .preview import PreviewParams, PreviewResults, preview_template
from .renderer import ErrorCell, LimitedWriter, RenderSession, tmpl_text
from .util import find_top_level_templates

__all__ = [
    "KV",
    "Data",
    "Pair",
    "Pairs",
    "TemplateAlert",
    "TemplateAlerts",
    "get_template_data",
    "DEFAULT_MESSAGE_EMBED",
    "DEFAULT_MESSAGE_TITLE_EMBED",
    "default_template",
    "default_templates_per_kind",
    "Kind",
    "TemplateDefinition",
    "split_definitions",
    "InvalidExternalURLError",
    "InvalidKindError",
    "InvalidLimitsError",
    "TemplateError",
    "TemplateNotDefinedError",
    "TemplateOutputTooLargeError",
    "TemplateRenderError",
    "TemplateSyntaxError",
    "EvalValue",
    "ExtendedAlert",
    "ExtendedAlerts",
    "ExtendedData",
    "extend_alert",
    "extend_data",
    "remove_private_items",
    "DEFAULT_LIMITS",
    "Config",
    "Factory",
    "Limits",
    "Template",
    "new_config",
    "new_factory",
    "build_function_map",
    "PreviewParams",
    "PreviewResults",
    "preview_template",
    "ErrorCell",
    "LimitedWriter",
    "RenderSession",
    "tmpl_text",
    "find_top_level_templates",
]
