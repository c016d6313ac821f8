"""
接收器基础定义
"""
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol, Sequence, Union

from ..core.logging_config import get_logger
from ..core.models import Alert, NotificationContext, ReceiverConfig

# Grafana webhook 中 state 字段的取值
ALERT_STATE_ALERTING = "alerting"
ALERT_STATE_OK = "ok"


@dataclass
class SendWebhookSettings:
    """一次 HTTP 投递的参数"""
    url: str
    body: Union[str, bytes] = ""
    http_method: str = "POST"
    http_headers: Dict[str, str] = field(default_factory=dict)
    content_type: str = "application/json"
    user: str = ""
    password: str = ""
    timeout: Optional[float] = None  # 为空时使用发送器默认超时


class WebhookSender(Protocol):
    """HTTP 投递协作者，失败时抛出 requests 异常"""

    def send_webhook(self, settings: SendWebhookSettings):
        ...


class Receiver:
    """
    接收器基类

    子类实现 notify(ctx, alerts)，成功投递返回 True；模板渲染失败时抛出 TemplateRenderError，
    投递失败时由发送器抛出 requests 异常。
    """

    def __init__(self, name: str, type: str, uid: str = "", disable_resolve_message: bool = False, logger=None):
        self.name = name
        self.type = type
        self.uid = uid
        self.disable_resolve_message = disable_resolve_message
        self.logger = logger or get_logger()

    @classmethod
    def from_config(cls, cfg: ReceiverConfig, **kwargs) -> "Receiver":
        return cls(
            name=cfg.name,
            type=cfg.type,
            uid=cfg.uid,
            disable_resolve_message=cfg.disable_resolve_message,
            **kwargs,
        )

    def send_resolved(self) -> bool:
        return not self.disable_resolve_message

    def notify(self, ctx: NotificationContext, alerts: Sequence[Alert]) -> bool:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, type={self.type!r}, uid={self.uid!r})"
