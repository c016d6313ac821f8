"""
告警截图

告警通过 __alertImageToken__ 注解引用截图，接收器在发送前通过 ImageStore 按 token 查询。
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Protocol, Sequence

from ..core.logging_config import get_logger
from ..core.models import Alert
from ..templates.extend import IMAGE_TOKEN_ANNOTATION


class ImageError(Exception):
    """截图相关异常基类"""


class ImageNotFoundError(ImageError):
    def __init__(self, token: str = ""):
        self.token = token
        super().__init__("image not found")


class ImagesUnavailableError(ImageError):
    def __init__(self):
        super().__init__("alert screenshots are unavailable")


class ImagesDone(Exception):
    """在 for_each 回调中抛出以结束剩余告警的遍历"""


@dataclass
class Image:
    token: str = ""
    path: str = ""
    url: str = ""
    created_at: Optional[datetime] = None

    def has_url(self) -> bool:
        return bool(self.url)


class ImageStore(Protocol):
    def get_image(self, token: str) -> Image:
        """返回 token 对应的截图，不存在时抛出 ImageNotFoundError"""
        ...


class UnavailableImageStore:
    """未启用截图功能时使用"""

    def get_image(self, token: str) -> Image:
        raise ImagesUnavailableError()


def _get_image(store: ImageStore, alert: Alert, logger) -> Optional[Image]:
    token = alert.annotations.get(IMAGE_TOKEN_ANNOTATION, "")
    if not token:
        return None
    try:
        return store.get_image(token)
    except (ImageNotFoundError, ImagesUnavailableError):
        return None
    except Exception as e:
        logger.warning(f"按 token 查询截图失败: token={token}, alert={alert}, error={e}")
        raise


def with_stored_images(
    store: Optional[ImageStore],
    for_each: Callable[[int, Image], None],
    alerts: Sequence[Alert],
    logger=None,
) -> None:
    """
    依次查询每条告警的截图，找到时调用 for_each(告警下标, 截图)

    告警没有 token、截图不存在或截图功能不可用时跳过该告警。for_each 抛出 ImagesDone 时
    结束遍历；抛出其他异常时记录日志并向上抛出。
    """
    logger = logger or get_logger()
    if store is None:
        return
    for index, alert in enumerate(alerts):
        image = _get_image(store, alert, logger)
        if image is None:
            continue
        try:
            for_each(index, image)
        except ImagesDone:
            return
        except Exception as e:
            logger.error(f"附加截图到通知失败: alert={alert}, error={e}")
            raise
