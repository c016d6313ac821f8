"""
模板相关异常

构建类异常（InvalidKindError 等）在 new_factory / with_template / get_template 时直接抛出；
渲染类异常（TemplateRenderError 及其子类）记录在渲染会话的错误单元中，不向外抛出。
"""


class TemplateError(Exception):
    """模板模块异常基类"""


class InvalidKindError(TemplateError, ValueError):
    """模板定义的 kind 不在已知枚举内"""

    def __init__(self, kind):
        self.kind = kind
        super().__init__(f"invalid template kind: {kind!r}")


class InvalidExternalURLError(TemplateError, ValueError):
    """externalURL 缺失或无法解析"""


class InvalidLimitsError(TemplateError, ValueError):
    """渲染限制配置非法"""


class TemplateSyntaxError(TemplateError):
    """define / enddefine 结构错误"""


class TemplateRenderError(TemplateError):
    """模板执行失败（语法错误、运行时错误等）"""


class TemplateNotDefinedError(TemplateRenderError):
    """引用了当前 kind 中不存在的命名模板"""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f'template "{name}" not defined')


class TemplateOutputTooLargeError(TemplateRenderError):
    """渲染输出超过 max_template_output_size"""

    def __init__(self, limit: int, partial: str = ""):
        self.limit = limit
        self.partial = partial  # 截断到 limit 的输出前缀
        super().__init__(f"template output exceeds maximum size of {limit}")
