"""
通知服务层

解析 webhook payload，逐个调用接收器渲染并发送，返回每个接收器的处理结果
"""
from typing import Callable, Dict, List, Optional, Sequence

from requests.exceptions import HTTPError, RequestException

from ..adapters.alert_normalizer import normalize
from ..core.logging_config import get_logger
from ..core.models import Alert, NotificationContext, ReceiverConfig
from ..receivers import Receiver, build_receiver
from ..senders.senders import RequestsWebhookSender
from ..templates.errors import TemplateError

logger = get_logger("alert-notifier")

RESULT_SENT = "sent"
RESULT_SKIPPED = "skipped"
RESULT_ERROR = "error"


class NotificationService:
    """通知服务"""

    def __init__(
        self,
        config: Dict,
        receivers: Dict[str, ReceiverConfig],
        factory,
        images=None,
        sender_factory: Callable[[ReceiverConfig], object] = None,
    ):
        """
        初始化通知服务

        Args:
            config: 配置字典
            receivers: 接收器配置字典
            factory: 模板工厂
            images: 截图存储，可为空
            sender_factory: 按接收器配置创建发送器，默认使用带代理的 RequestsWebhookSender
        """
        self.config = config
        self.receiver_configs = receivers
        self.factory = factory
        self.images = images
        self.sender_factory = sender_factory or (
            lambda cfg: RequestsWebhookSender(proxy=cfg.proxy, name=cfg.name)
        )
        self._receivers: Dict[str, Receiver] = {}

    def get_receiver(self, name: str) -> Receiver:
        """按名称获取接收器实例（首次使用时创建）"""
        if name not in self._receivers:
            cfg = self.receiver_configs[name]
            self._receivers[name] = build_receiver(
                cfg, self.factory, self.sender_factory(cfg), images=self.images, logger=logger
            )
        return self._receivers[name]

    def target_receivers(self, ctx: NotificationContext) -> List[str]:
        """payload 指定的接收器已配置时只发给它，否则发给全部接收器"""
        if ctx.receiver and ctx.receiver in self.receiver_configs:
            return [ctx.receiver]
        return list(self.receiver_configs)

    def process_webhook(self, payload) -> dict:
        """
        处理 webhook 请求

        Args:
            payload: Webhook 请求体

        Returns:
            处理结果字典
        """
        alerts, ctx = normalize(payload)
        if not alerts:
            logger.warning("无法解析告警数据格式")
            return {"ok": False, "error": "无法解析告警数据格式"}

        alert_summary = ", ".join(a.labels.get("alertname", "?") for a in alerts)
        logger.info(f"收到告警请求: {len(alerts)} 条 [{alert_summary}], group_key={ctx.group_key}")

        results = [self.notify_receiver(name, ctx, alerts) for name in self.target_receivers(ctx)]
        return {"ok": True, "results": results}

    def notify_receiver(self, name: str, ctx: NotificationContext, alerts: Sequence[Alert]) -> dict:
        """
        发送告警到指定接收器

        Returns:
            发送结果字典，status 为 sent / skipped / error
        """
        cfg: Optional[ReceiverConfig] = self.receiver_configs.get(name)
        if cfg is None:
            error_msg = f"接收器不存在: {name}"
            logger.warning(error_msg)
            return {"receiver": name, "status": RESULT_ERROR, "error": error_msg}

        if not cfg.enabled:
            logger.debug(f"跳过已禁用的接收器: {name}")
            return {"receiver": name, "status": RESULT_SKIPPED, "reason": "接收器已禁用"}

        now = ctx.resolve_now()
        all_resolved = all(a.resolved_at(now) for a in alerts)
        if all_resolved and cfg.disable_resolve_message:
            logger.debug(f"跳过 resolved 通知（接收器 {name} 配置为不发送 resolved）")
            return {"receiver": name, "status": RESULT_SKIPPED, "reason": "resolved 通知已禁用"}

        try:
            receiver = self.get_receiver(name)
        except (ValueError, TemplateError) as e:
            logger.error(f"接收器 {name} 配置无效: {e}")
            return {"receiver": name, "status": RESULT_ERROR, "error": str(e), "kind": "config"}

        if ctx.now is None:
            ctx = NotificationContext(ctx.receiver, ctx.group_key, ctx.group_labels, now)
        try:
            receiver.notify(ctx, alerts)
            logger.info(f"告警已发送到接收器 {name} ({receiver.type}), 告警数: {len(alerts)}")
            return {"receiver": name, "status": RESULT_SENT}
        except TemplateError as e:
            logger.error(f"接收器 {name} 模板渲染失败: {e}")
            return {"receiver": name, "status": RESULT_ERROR, "error": str(e), "kind": "template"}
        except RequestException as e:
            error_msg = str(e)
            is_config_error = (
                isinstance(e, HTTPError)
                and e.response is not None
                and e.response.status_code in (401, 404, 410)
            )
            if is_config_error:
                logger.warning(f"发送到接收器 {name} 失败: {error_msg}（请检查该接收器 URL 配置）")
            else:
                logger.error(f"发送到接收器 {name} 失败: {error_msg}", exc_info=True)
            return {"receiver": name, "status": RESULT_ERROR, "error": error_msg, "kind": "delivery"}
