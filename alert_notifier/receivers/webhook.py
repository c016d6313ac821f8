"""
Webhook 接收器：发送 Grafana webhook JSON（version "1"）
"""
import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..core.models import Alert, NotificationContext, ReceiverConfig
from ..templates.defaults import DEFAULT_MESSAGE_EMBED, DEFAULT_MESSAGE_TITLE_EMBED
from ..templates.renderer import tmpl_text
from .base import ALERT_STATE_ALERTING, ALERT_STATE_OK, Receiver, SendWebhookSettings
from .images import with_stored_images
from .utils import raise_for_render_error

WEBHOOK_PROTOCOL_VERSION = "1"


def truncate_alerts(max_alerts: int, alerts: Sequence[Alert]) -> Tuple[List[Alert], int]:
    """max_alerts 大于 0 且告警数超出时只保留前 max_alerts 条，返回 (告警列表, 被截掉的条数)"""
    alerts = list(alerts)
    if max_alerts > 0 and len(alerts) > max_alerts:
        return alerts[:max_alerts], len(alerts) - max_alerts
    return alerts, 0


def _org_id_value(org_id: Any):
    text = str(org_id)
    return int(text) if text.isdigit() else text


class WebhookReceiver(Receiver):
    """
    Webhook 接收器

    settings 字段:
        url / webhook_url: 目标地址（必填，可包含模板）
        http_method: 默认 POST
        max_alerts: 单条消息最多包含的告警数，0 表示不限制
        username / password: HTTP Basic 认证
        authorization_scheme / authorization_credentials: Authorization 头，仅配置凭据时 scheme 默认为 Bearer
        title / message: 标题和正文模板
    """

    def __init__(
        self,
        name: str,
        type: str = "webhook",
        uid: str = "",
        disable_resolve_message: bool = False,
        logger=None,
        settings: Optional[Dict[str, Any]] = None,
        template=None,
        sender=None,
        images=None,
        org_id: Any = 1,
    ):
        super().__init__(name, type, uid, disable_resolve_message, logger)
        settings = settings or {}
        self.url = str(settings.get("url") or settings.get("webhook_url") or "")
        if not self.url:
            raise ValueError(f"接收器 {name} 未配置 url")
        self.http_method = str(settings.get("http_method") or "POST").upper()
        self.max_alerts = int(settings.get("max_alerts") or 0)
        self.user = str(settings.get("username") or "")
        self.password = str(settings.get("password") or "")
        self.authorization_scheme = str(settings.get("authorization_scheme") or "")
        self.authorization_credentials = str(settings.get("authorization_credentials") or "")
        if self.authorization_credentials and not self.authorization_scheme:
            self.authorization_scheme = "Bearer"
        if self.user and self.password and self.authorization_scheme and self.authorization_credentials:
            raise ValueError(f"接收器 {name} 同时配置了 Basic 认证和 Authorization 头，只能二选一")
        self.title = str(settings.get("title") or DEFAULT_MESSAGE_TITLE_EMBED)
        self.message = str(settings.get("message") or DEFAULT_MESSAGE_EMBED)

        self.template = template
        self.sender = sender
        self.images = images
        self.org_id = _org_id_value(org_id)

    @classmethod
    def from_config(cls, cfg: ReceiverConfig, **kwargs) -> "WebhookReceiver":
        return super().from_config(cfg, settings=cfg.settings, **kwargs)

    def build_message(self, ctx: NotificationContext, alerts: Sequence[Alert]) -> Tuple[Dict[str, Any], str]:
        """
        渲染 webhook 消息

        Returns:
            Tuple[Dict[str, Any], str]: (消息体, 渲染后的目标 URL)

        Raises:
            TemplateRenderError: 任一模板渲染失败
        """
        alerts, num_truncated = truncate_alerts(self.max_alerts, alerts)
        render, data = tmpl_text(ctx, self.template, alerts, self.logger)

        def attach_image(index, image):
            if image.url:
                data.alerts[index].image_url = image.url

        with_stored_images(self.images, attach_image, alerts, self.logger)

        msg = data.to_dict()
        msg.update({
            "version": WEBHOOK_PROTOCOL_VERSION,
            "groupKey": ctx.group_key,
            "truncatedAlerts": num_truncated,
            "orgId": self.org_id,
            "title": render(self.title),
            "state": ALERT_STATE_ALERTING if data.status == "firing" else ALERT_STATE_OK,
            "message": render(self.message),
        })
        url = render(self.url)
        raise_for_render_error(render, self.name, self.logger)
        return msg, url

    def notify(self, ctx: NotificationContext, alerts: Sequence[Alert]) -> bool:
        msg, url = self.build_message(ctx, alerts)

        headers = {}
        if self.authorization_scheme and self.authorization_credentials:
            headers["Authorization"] = f"{self.authorization_scheme} {self.authorization_credentials}"

        self.sender.send_webhook(SendWebhookSettings(
            url=url,
            body=json.dumps(msg, ensure_ascii=False),
            http_method=self.http_method,
            http_headers=headers,
            user=self.user,
            password=self.password,
        ))
        return True
