"""
接收器模块：把渲染后的通知交给发送器投递
"""
from typing import Dict, Type

from ..core.models import ReceiverConfig
from ..templates.definitions import Kind
from .base import ALERT_STATE_ALERTING, ALERT_STATE_OK, Receiver, SendWebhookSettings, WebhookSender
from .images import (
    Image,
    ImageNotFoundError,
    ImagesDone,
    ImagesUnavailableError,
    ImageStore,
    UnavailableImageStore,
    with_stored_images,
)
from .telegram import TelegramReceiver
from .webhook import WebhookReceiver

RECEIVER_TYPES: Dict[str, Type[Receiver]] = {
    "webhook": WebhookReceiver,
    "telegram": TelegramReceiver,
}


def build_receiver(cfg: ReceiverConfig, factory, sender, images=None, logger=None) -> Receiver:
    """
    根据接收器配置创建接收器实例

    settings 中的 template_kind 选择模板 kind（默认 Grafana）。

    Raises:
        ValueError: 接收器类型未知或配置不完整
        InvalidKindError: template_kind 非法
    """
    receiver_cls = RECEIVER_TYPES.get(cfg.type)
    if receiver_cls is None:
        raise ValueError(f"接收器 {cfg.name} 类型未知: {cfg.type}")
    kind = Kind.parse(cfg.settings.get("template_kind", Kind.GRAFANA))
    kwargs = {
        "template": factory.get_template(kind),
        "sender": sender,
        "images": images,
        "logger": logger,
    }
    if receiver_cls is WebhookReceiver:
        kwargs["org_id"] = factory.config.org_id
    return receiver_cls.from_config(cfg, **kwargs)


__all__ = [
    "ALERT_STATE_ALERTING",
    "ALERT_STATE_OK",
    "Receiver",
    "SendWebhookSettings",
    "WebhookSender",
    "Image",
    "ImageNotFoundError",
    "ImagesDone",
    "ImagesUnavailableError",
    "ImageStore",
    "UnavailableImageStore",
    "with_stored_images",
    "TelegramReceiver",
    "WebhookReceiver",
    "RECEIVER_TYPES",
    "build_receiver",
]
