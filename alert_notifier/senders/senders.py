"""
HTTP 发送模块

- 使用 HTTP 连接池复用连接，减少连接建立开销
- 支持会话级别的代理配置
- 不做重试，失败直接抛出 requests 异常由调用方记录
"""
import logging
from typing import Dict, Optional

import requests
from requests.adapters import HTTPAdapter

from ..core.logging_config import get_logger
from ..receivers.base import SendWebhookSettings

logger = get_logger("alert-notifier")

DEFAULT_TIMEOUT = 10  # 秒

# 按代理配置缓存会话，会话在进程内长期复用；测试中可调用 clear_session_cache() 清理
_session_cache: Dict[str, requests.Session] = {}


def _get_session(proxy: Optional[Dict[str, str]] = None) -> requests.Session:
    """
    获取或创建 HTTP 会话（带连接池）

    Args:
        proxy: 代理配置

    Returns:
        requests.Session 实例
    """
    cache_key = str(sorted(proxy.items())) if proxy else "no_proxy"

    if cache_key not in _session_cache:
        session = requests.Session()
        adapter = HTTPAdapter(
            pool_connections=10,
            pool_maxsize=20,
            max_retries=0,
        )
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        if proxy:
            session.proxies.update(proxy)
        _session_cache[cache_key] = session

    return _session_cache[cache_key]


def clear_session_cache():
    """清理所有缓存的 HTTP 会话"""
    for session in _session_cache.values():
        session.close()
    _session_cache.clear()


class RequestsWebhookSender:
    """
    基于 requests 的 WebhookSender 实现

    Args:
        proxy: 代理配置，格式: {"http": "socks5h://proxy:port", "https": "socks5h://proxy:port"}
        timeout: 默认超时（秒），SendWebhookSettings.timeout 优先
        name: 日志中显示的接收器名称
    """

    def __init__(self, proxy: Optional[Dict[str, str]] = None, timeout: float = DEFAULT_TIMEOUT, name: str = ""):
        self.proxy = proxy
        self.timeout = timeout
        self.name = name

    def send_webhook(self, settings: SendWebhookSettings) -> requests.Response:
        headers = {"Content-Type": settings.content_type}
        headers.update(settings.http_headers or {})
        auth = (settings.user, settings.password) if settings.user and settings.password else None
        body = settings.body
        if isinstance(body, str):
            body = body.encode("utf-8")

        session = _get_session(proxy=self.proxy)
        logger.info(f"发送 Webhook 消息到接收器 [{self.name}]，{settings.http_method} {_redact(settings.url)}")
        if logger.isEnabledFor(logging.DEBUG) and isinstance(settings.body, str):
            logger.debug(f"发送 Webhook 消息的完整 body:\n{settings.body}")
        try:
            response = session.request(
                settings.http_method or "POST",
                settings.url,
                data=body,
                headers=headers,
                auth=auth,
                timeout=settings.timeout or self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            _log_webhook_error(self.name, e)
            raise
        logger.info(f"Webhook 消息发送成功 (接收器: {self.name})，响应状态码: {response.status_code}")
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Webhook 响应内容:\n{response.text[:500]}")
        return response


def _redact(url: str) -> str:
    """隐藏 Telegram bot token"""
    marker = "api.telegram.org/bot"
    idx = url.find(marker)
    if idx < 0:
        return url
    start = idx + len(marker)
    end = url.find("/", start)
    if end < 0:
        end = len(url)
    return url[:start] + "***" + url[end:]


def _log_webhook_error(receiver_name: str, e: requests.exceptions.RequestException):
    """发送失败时统一日志：404/401/410 视为配置问题"""
    if isinstance(e, requests.exceptions.HTTPError) and e.response is not None:
        code = e.response.status_code
        if code in (401, 404, 410):
            logger.warning(
                f"Webhook 发送失败 (接收器: {receiver_name}): HTTP {code}，"
                "请检查该接收器的 URL 是否有效、未过期或已被删除。"
            )
            return
    logger.error(f"发送 Webhook 消息失败 (接收器: {receiver_name}): {e}")
