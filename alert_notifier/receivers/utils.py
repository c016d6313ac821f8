"""
接收器公共工具
"""
from ..templates.errors import TemplateRenderError


def raise_for_render_error(render, receiver_name: str, logger) -> None:
    """
    渲染会话出错时抛出 TemplateRenderError，不发送由部分渲染结果拼成的通知
    """
    err = render.error
    if err is None:
        return
    logger.warning(f"接收器 [{receiver_name}] 模板渲染失败，不发送通知: {err}")
    if isinstance(err, TemplateRenderError):
        raise err
    raise TemplateRenderError(str(err)) from err
