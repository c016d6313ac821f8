"""
模板分析工具
"""
from typing import List

import jinja2
from jinja2 import meta

from .definitions import split_definitions
from .errors import TemplateSyntaxError


def find_top_level_templates(text: str, parse_name: str = "") -> List[str]:
    """
    返回模板内容中的顶层模板名（已定义但未被同一内容中任何模板 include 的模板），按名称排序

    define 块之外只有空白时不计入；parse_name 为空时忽略 define 块之外的内容。
    """
    sources = split_definitions(text, parse_name or "")
    sources.pop("", None)
    if not sources:
        return []

    env = jinja2.Environment()
    included = set()
    for name, source in sources.items():
        try:
            ast = env.parse(source, name=name)
        except jinja2.TemplateSyntaxError as e:
            raise TemplateSyntaxError(f"template: {name}:{e.lineno}: {e.message}") from e
        included.update(n for n in meta.find_referenced_templates(ast) if n is not None)

    return sorted(name for name in sources if name not in included)
