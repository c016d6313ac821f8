"""
消息发送模块
"""
from .senders import RequestsWebhookSender, clear_session_cache

__all__ = ["RequestsWebhookSender", "clear_session_cache"]
