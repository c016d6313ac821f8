"""
服务层模块
"""
from .notification_service import NotificationService

__all__ = ["NotificationService"]
