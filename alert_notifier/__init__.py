"""
Alert Notifier 核心模块

告警通知的模板渲染与投递：模板工厂、扩展数据、函数库、有界渲染、接收器与发送器
"""
# 核心模块
from .core import setup_logging, get_logger, Alert, NotificationContext, ReceiverConfig

# 模板渲染
from .templates import (
    Kind,
    TemplateDefinition,
    Factory,
    Template,
    new_factory,
    tmpl_text,
    preview_template,
)

# 接收器与发送器
from .receivers import WebhookReceiver, TelegramReceiver, build_receiver
from .senders import RequestsWebhookSender

# 服务层
from .services import NotificationService

__all__ = [
    # 核心模块
    "setup_logging",
    "get_logger",
    "Alert",
    "NotificationContext",
    "ReceiverConfig",
    # 模板渲染
    "Kind",
    "TemplateDefinition",
    "Factory",
    "Template",
    "new_factory",
    "tmpl_text",
    "preview_template",
    # 接收器与发送器
    "WebhookReceiver",
    "TelegramReceiver",
    "build_receiver",
    "RequestsWebhookSender",
    # 服务层
    "NotificationService",
]
