"""
有界渲染

一次通知尝试对应一个渲染会话：扩展数据只构建一次，会话内多次渲染共享同一个错误单元。
第一次出错后，后续渲染直接返回空字符串，避免发送由成功和失败片段拼起来的通知。
"""
import threading
from typing import Iterable, List, Optional, Sequence, Tuple

from ..core.logging_config import get_logger
from ..core.models import Alert, NotificationContext
from .data import get_template_data
from .errors import TemplateError, TemplateOutputTooLargeError
from .extend import ExtendedData, extend_data


class LimitedWriter:
    """
    限制总长度的输出缓冲（按字符计）

    超出上限时保留恰好 limit 个字符的前缀并抛出 TemplateOutputTooLargeError，
    limit 为 0 表示不限制。
    """

    def __init__(self, limit: int = 0):
        self.limit = limit
        self._parts: List[str] = []
        self._size = 0

    def write(self, chunk: str) -> None:
        if self.limit and self._size + len(chunk) > self.limit:
            remaining = self.limit - self._size
            if remaining > 0:
                self._parts.append(chunk[:remaining])
                self._size += remaining
            raise TemplateOutputTooLargeError(self.limit, partial=self.getvalue())
        self._parts.append(chunk)
        self._size += len(chunk)

    def write_all(self, chunks: Iterable[str]) -> str:
        """
        写入所有分块并返回完整输出

        生成分块时抛出的 TemplateOutputTooLargeError 来自嵌套渲染（tmpl.exec），
        其部分输出接在已写入内容之后，重新抛出时 partial 仍是整体输出的前缀。
        """
        chunks = iter(chunks)
        while True:
            try:
                chunk = next(chunks)
            except StopIteration:
                return self.getvalue()
            except TemplateOutputTooLargeError as e:
                self.write(e.partial)
                raise TemplateOutputTooLargeError(e.limit, partial=self.getvalue()) from e
            self.write(chunk)

    def getvalue(self) -> str:
        return "".join(self._parts)


class ErrorCell:
    """渲染会话共享的错误单元，只记录第一个错误"""

    def __init__(self):
        self._lock = threading.Lock()
        self._error: Optional[TemplateError] = None

    @property
    def error(self) -> Optional[TemplateError]:
        return self._error

    def set(self, err: TemplateError) -> bool:
        with self._lock:
            if self._error is not None:
                return False
            self._error = err
            return True

    def __bool__(self) -> bool:
        return self._error is not None


class RenderSession:
    """
    渲染会话

    用法:
        render, data = tmpl_text(ctx, tmpl, alerts)
        title = render('{% include "default.title" %}')
        message = render('{% include "default.message" %}')
        if render.error:
            ...  # 不发送
    """

    def __init__(self, tmpl, data: ExtendedData, error_cell: ErrorCell, logger=None):
        self.tmpl = tmpl
        self.data = data
        self.error_cell = error_cell
        self.logger = logger or get_logger()

    @property
    def error(self) -> Optional[TemplateError]:
        return self.error_cell.error

    def __call__(self, text: str) -> str:
        if self.error_cell.error is not None:
            return ""
        try:
            return self.tmpl.execute_text_string(text, self.data)
        except TemplateOutputTooLargeError as e:
            self.error_cell.set(e)
            self.logger.warning(f"模板输出超过上限: limit={e.limit}")
            return e.partial
        except TemplateError as e:
            self.error_cell.set(e)
            self.logger.debug(f"模板渲染失败: error={e}")
            return ""

    def render(self, text: str) -> Tuple[str, Optional[TemplateError]]:
        """渲染并返回 (结果, 会话中的第一个错误)"""
        result = self(text)
        return result, self.error


def tmpl_text(
    ctx: Optional[NotificationContext],
    tmpl,
    alerts: Sequence[Alert],
    logger=None,
    error_cell: Optional[ErrorCell] = None,
) -> Tuple[RenderSession, ExtendedData]:
    """
    创建渲染会话

    Args:
        ctx: 通知上下文
        tmpl: factory.get_template 返回的模板
        alerts: 告警列表
        logger: 日志记录器
        error_cell: 错误单元，为空时新建；同一次通知尝试内的多个会话可共享

    Returns:
        Tuple[RenderSession, ExtendedData]: (渲染会话, 扩展数据)
    """
    logger = logger or get_logger()
    data = extend_data(get_template_data(ctx, tmpl.external_url, alerts, logger), logger)
    session = RenderSession(tmpl, data, error_cell if error_cell is not None else ErrorCell(), logger)
    return session, data
