"""
Telegram 接收器

先通过 sendMessage 发送文本，再通过 sendPhoto 逐张上传告警截图。
"""
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from urllib3.filepost import encode_multipart_formdata

from ..core.models import Alert, NotificationContext, ReceiverConfig
from ..core.utils import truncate_in_runes
from ..templates.defaults import DEFAULT_MESSAGE_EMBED
from ..templates.renderer import tmpl_text
from .base import Receiver, SendWebhookSettings
from .images import with_stored_images
from .utils import raise_for_render_error

API_URL = "https://api.telegram.org/bot{token}/{action}"

# Telegram 单条消息最多 4096 个字符
TELEGRAM_MAX_MESSAGE_LEN_RUNES = 4096

DEFAULT_PARSE_MODE = "HTML"
SUPPORTED_PARSE_MODES = {"markdown": "Markdown", "markdownv2": "MarkdownV2", "html": "HTML", "none": ""}

Fields = List[Tuple[str, Any]]


def _parse_mode(value: Any) -> str:
    if value is None or value == "":
        return DEFAULT_PARSE_MODE
    mode = SUPPORTED_PARSE_MODES.get(str(value).lower())
    if mode is None:
        raise ValueError("unknown parse_mode, must be Markdown, MarkdownV2, HTML or None")
    return mode


class TelegramReceiver(Receiver):
    """
    Telegram 接收器

    settings 字段:
        bot_token / chat_id: 必填
        message: 正文模板
        parse_mode: Markdown / MarkdownV2 / HTML / None，默认 HTML
        message_thread_id、disable_web_page_preview、protect_content、disable_notifications: 可选
    """

    def __init__(
        self,
        name: str,
        type: str = "telegram",
        uid: str = "",
        disable_resolve_message: bool = False,
        logger=None,
        settings: Optional[Dict[str, Any]] = None,
        template=None,
        sender=None,
        images=None,
    ):
        super().__init__(name, type, uid, disable_resolve_message, logger)
        settings = settings or {}
        self.bot_token = str(settings.get("bot_token") or "")
        if not self.bot_token:
            raise ValueError(f"接收器 {name} 未配置 bot_token")
        self.chat_id = str(settings.get("chat_id") or "")
        if not self.chat_id:
            raise ValueError(f"接收器 {name} 未配置 chat_id")
        self.message = str(settings.get("message") or DEFAULT_MESSAGE_EMBED)
        self.parse_mode = _parse_mode(settings.get("parse_mode"))
        self.message_thread_id = str(settings.get("message_thread_id") or "")
        self.disable_web_page_preview = bool(settings.get("disable_web_page_preview", False))
        self.protect_content = bool(settings.get("protect_content", False))
        self.disable_notifications = bool(settings.get("disable_notifications", False))

        self.template = template
        self.sender = sender
        self.images = images

    @classmethod
    def from_config(cls, cfg: ReceiverConfig, **kwargs) -> "TelegramReceiver":
        return super().from_config(cfg, settings=cfg.settings, **kwargs)

    def _base_fields(self) -> Fields:
        fields: Fields = [("chat_id", self.chat_id)]
        if self.message_thread_id:
            fields.append(("message_thread_id", self.message_thread_id))
        if self.disable_notifications:
            fields.append(("disable_notification", "true"))
        return fields

    def _command(self, action: str, fields: Fields) -> SendWebhookSettings:
        body, content_type = encode_multipart_formdata(fields)
        return SendWebhookSettings(
            url=API_URL.format(token=self.bot_token, action=action),
            body=body,
            http_method="POST",
            http_headers={"Content-Type": content_type},
            content_type=content_type,
        )

    def build_message_fields(self, ctx: NotificationContext, alerts: Sequence[Alert]) -> Fields:
        """
        渲染 sendMessage 的表单字段

        Raises:
            TemplateRenderError: 模板渲染失败
        """
        render, _ = tmpl_text(ctx, self.template, alerts, self.logger)
        text, truncated = truncate_in_runes(render(self.message), TELEGRAM_MAX_MESSAGE_LEN_RUNES)
        raise_for_render_error(render, self.name, self.logger)
        if truncated:
            self.logger.warning(
                f"[Telegram] 接收器 [{self.name}] 消息已截断: group_key={ctx.group_key}, "
                f"max_runes={TELEGRAM_MAX_MESSAGE_LEN_RUNES}"
            )

        fields = self._base_fields()
        fields.append(("text", text))
        if self.parse_mode:
            fields.append(("parse_mode", self.parse_mode))
        if self.disable_web_page_preview:
            fields.append(("disable_web_page_preview", "true"))
        if self.protect_content:
            fields.append(("protect_content", "true"))
        return fields

    def notify(self, ctx: NotificationContext, alerts: Sequence[Alert]) -> bool:
        fields = self.build_message_fields(ctx, alerts)
        self.logger.info(
            f"[Telegram] 接收器 [{self.name}] 请求: sendMessage, chat_id={self.chat_id}, "
            f"parse_mode={self.parse_mode or '(无)'}"
        )
        self.sender.send_webhook(self._command("sendMessage", fields))

        uploaded = set()

        def upload_image(_, image):
            if not image.path or (image.token and image.token in uploaded):
                return
            path = Path(image.path)
            fields = self._base_fields()
            fields.append(("photo", (path.name, path.read_bytes())))
            self.sender.send_webhook(self._command("sendPhoto", fields))
            uploaded.add(image.token)

        with_stored_images(self.images, upload_image, alerts, self.logger)
        return True
